"""
Admin Routes

API endpoints for user administration and the audit log viewer.
Every endpoint is gated by the access policy.
"""

import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from medimind.api.access.audit import AuditAction, AuditFilters, AuditLogger
from medimind.api.access.rbac import AccessPolicy, Action, ResourceType, Role, get_access_policy
from medimind.api.admin.schemas import (
    AuditEntryResponse,
    AuditLogListResponse,
    RoleUpdateRequest,
    RoleUpdateResponse,
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from medimind.api.admin.service import AdminService
from medimind.api.config import settings
from medimind.api.db.models import User
from medimind.api.db.session import get_db
from medimind.api.dependencies import (
    client_ip,
    client_user_agent,
    get_audit_logger,
    get_current_user,
    require_access,
)


router = APIRouter()


# ==================== User Management ====================


@router.get(
    "/users",
    response_model=UserListResponse,
    summary="List users",
)
async def list_users(
    admin: User = Depends(require_access(ResourceType.USERS, Action.READ)),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: Optional[Role] = Query(None, description="Filter by role"),
) -> UserListResponse:
    """Get paginated users, newest first."""
    users, total = await AdminService(db, audit_logger).list_users(
        page=page,
        page_size=page_size,
        role=role.value if role else None,
    )

    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total > 0 else 1,
    )


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
)
async def create_user(
    data: UserCreateRequest,
    request: Request,
    admin: User = Depends(require_access(ResourceType.USERS, Action.CREATE)),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> UserResponse:
    """Create a user with the given role. Audited as USER_CREATED."""
    service = AdminService(db, audit_logger)
    try:
        user = await service.create_user(
            admin,
            data,
            ip_address=client_ip(request),
            user_agent=client_user_agent(request),
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return UserResponse.model_validate(user)


@router.put(
    "/users/{user_id}",
    response_model=UserResponse,
    summary="Update user profile",
)
async def update_user(
    user_id: str,
    data: UserUpdateRequest,
    request: Request,
    admin: User = Depends(require_access(ResourceType.USERS, Action.UPDATE)),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> UserResponse:
    """Edit name, department or specialization. Audited as USER_UPDATED."""
    user = await AdminService(db, audit_logger).update_user(
        admin,
        user_id,
        data,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )
    return UserResponse.model_validate(user)


@router.put(
    "/users/{user_id}/role",
    response_model=RoleUpdateResponse,
    summary="Update user role",
)
async def update_user_role(
    user_id: str,
    data: RoleUpdateRequest,
    request: Request,
    admin: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    policy: AccessPolicy = Depends(get_access_policy),
) -> RoleUpdateResponse:
    """
    Change a user's role.

    Only a super-admin may change a super-admin or grant super-admin.
    Audited as ADMIN_ROLE_UPDATE with the old and new role.
    """
    service = AdminService(db, audit_logger, policy)
    user = await service.update_user_role(
        admin,
        user_id,
        data,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )
    return RoleUpdateResponse(user=UserResponse.model_validate(user))


# ==================== Audit Logs ====================


@router.get(
    "/audit-logs",
    response_model=AuditLogListResponse,
    summary="List audit logs",
)
async def list_audit_logs(
    admin: User = Depends(
        require_access(ResourceType.AUDIT_LOGS, Action.READ, AuditAction.VIEW_AUDIT_LOGS)
    ),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    page: int = Query(1, ge=1),
    page_size: int = Query(
        settings.AUDIT_DEFAULT_PAGE_SIZE, ge=1, le=settings.AUDIT_MAX_PAGE_SIZE
    ),
    action: Optional[str] = Query(None, description="Filter by action"),
    user_id: Optional[str] = Query(None, description="Filter by actor id"),
    resource_type: Optional[str] = Query(None, description="Filter by resource type"),
    start_time: Optional[datetime] = Query(None),
    end_time: Optional[datetime] = Query(None),
) -> AuditLogListResponse:
    """
    Get paginated audit entries, newest first.

    All filters are optional and combined with AND.
    """
    result = await audit_logger.query(
        AuditFilters(
            start_time=start_time,
            end_time=end_time,
            action=action,
            actor_id=user_id,
            resource_type=resource_type,
        ),
        page=page,
        page_size=page_size,
    )

    return AuditLogListResponse(
        logs=[AuditEntryResponse.from_entry(e) for e in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get(
    "/audit-logs/export",
    summary="Export audit logs",
)
async def export_audit_logs(
    start_time: datetime,
    end_time: datetime,
    anonymize: bool = Query(False, description="Mask patient ids and addresses"),
    admin: User = Depends(
        require_access(ResourceType.AUDIT_LOGS, Action.READ, AuditAction.EXPORT_AUDIT_LOGS)
    ),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> Response:
    """Export entries in a period as JSON with an integrity hash."""
    if end_time < start_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_time must not precede start_time",
        )

    content = await audit_logger.export(start_time, end_time, anonymize=anonymize)
    return Response(content=content, media_type="application/json")
