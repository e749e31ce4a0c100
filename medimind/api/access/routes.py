"""
Access Routes

Lets a client ask whether the current user may perform an action.
"""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from medimind.api.access.audit import AuditAction, AuditLogger
from medimind.api.access.rbac import AccessPolicy, Action, ResourceType, get_access_policy
from medimind.api.db.models import User
from medimind.api.dependencies import (
    client_ip,
    client_user_agent,
    get_audit_logger,
    get_current_user,
)


router = APIRouter()


class AccessCheckResponse(BaseModel):
    role: str
    resource_type: str
    action: str
    allowed: bool


@router.get(
    "/check",
    response_model=AccessCheckResponse,
    summary="Check access for the current user",
)
async def check(
    request: Request,
    resource_type: ResourceType = Query(...),
    action: Action = Query(...),
    user: User = Depends(get_current_user),
    policy: AccessPolicy = Depends(get_access_policy),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> AccessCheckResponse:
    """Evaluate the access policy. The decision itself is audited."""
    allowed = policy.check(user.role, resource_type, action)

    await audit_logger.record(
        actor_id=user.id,
        action=AuditAction.ACCESS_CHECK,
        resource_type=resource_type.value,
        resource_id=action.value,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
        success=allowed,
        details={"role": user.role},
    )

    return AccessCheckResponse(
        role=user.role,
        resource_type=resource_type.value,
        action=action.value,
        allowed=allowed,
    )
