"""
FastAPI Dependencies

Common dependencies for dependency injection.
"""

from typing import Callable, Iterable, Optional, Union

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medimind.api.access.audit import AuditAction, AuditLogger, SqlAuditStore
from medimind.api.access.rbac import AccessPolicy, Action, ResourceType, Role, get_access_policy
from medimind.api.auth.jwt import verify_token
from medimind.api.db.models import User
from medimind.api.db.session import get_db, get_session_maker
from medimind.api.exceptions import PolicyDenied


security = HTTPBearer()


def client_ip(request: Request) -> str:
    """Best-effort originating address."""
    return request.client.host if request.client else "unknown"


def client_user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from JWT token.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    token = credentials.credentials
    payload = verify_token(token, "access")

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(
        select(User).where(User.id == payload["sub"])
    )
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


def get_audit_session_maker() -> async_sessionmaker:
    """Session factory for audit writes, separate from the request session."""
    return get_session_maker()


async def get_audit_logger(
    session_maker: async_sessionmaker = Depends(get_audit_session_maker),
) -> AuditLogger:
    """Audit logger committing each entry independently of the request."""
    return AuditLogger(SqlAuditStore(session_maker))


def require_access(
    resource_type: ResourceType,
    action: Action,
    audit_action: Optional[Union[AuditAction, str]] = None,
    resource_id: Optional[str] = None,
) -> Callable:
    """
    Dependency factory enforcing the access policy.

    Every attempt is audited, allowed or denied. The entry's action is
    audit_action if given, else the upper-cased policy action. Denials
    raise PolicyDenied (mapped to 403).

    Usage:
        @router.get("/audit-logs")
        async def list_logs(user: User = Depends(require_access(ResourceType.AUDIT_LOGS, Action.READ))):
            ...
    """
    async def dependency(
        request: Request,
        user: User = Depends(get_current_user),
        policy: AccessPolicy = Depends(get_access_policy),
        audit_logger: AuditLogger = Depends(get_audit_logger),
    ) -> User:
        allowed = policy.check(user.role, resource_type, action)

        details = {"path": request.url.path}
        if request.query_params:
            details["query"] = dict(request.query_params)
        if not allowed:
            details["role"] = user.role

        await audit_logger.record(
            actor_id=user.id,
            action=audit_action or action.value.upper(),
            resource_type=resource_type.value,
            resource_id=resource_id or request.path_params.get("resource_id") or "collection",
            success=allowed,
            ip_address=client_ip(request),
            user_agent=client_user_agent(request),
            details=details,
        )

        if not allowed:
            raise PolicyDenied(
                f"Permission denied: {resource_type.value}:{action.value}",
                role=user.role,
                resource_type=resource_type.value,
                action=action.value,
            )
        return user

    return dependency


def require_roles(
    roles: Iterable[Role],
    resource_type: ResourceType,
    audit_action: Union[AuditAction, str],
    resource_id: str = "collection",
) -> Callable:
    """
    Dependency factory gating on an explicit role set.

    Used for compliance endpoints whose resource types carry no grants in
    the access policy. Denied attempts are audited and raise PolicyDenied.
    """
    allowed_roles = frozenset(r.value for r in roles)

    async def dependency(
        request: Request,
        user: User = Depends(get_current_user),
        audit_logger: AuditLogger = Depends(get_audit_logger),
    ) -> User:
        if user.role in allowed_roles:
            return user

        await audit_logger.record(
            actor_id=user.id,
            action=audit_action,
            resource_type=resource_type.value,
            resource_id=resource_id,
            success=False,
            ip_address=client_ip(request),
            user_agent=client_user_agent(request),
            details={"path": request.url.path, "role": user.role},
        )
        raise PolicyDenied(
            "Access denied",
            role=user.role,
            resource_type=resource_type.value,
        )

    return dependency
