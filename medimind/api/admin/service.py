"""
Admin Service

Business logic for user administration.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medimind.api.access.audit import AuditAction, AuditLogger
from medimind.api.access.rbac import AccessPolicy, authorize_role_update
from medimind.api.admin.schemas import RoleUpdateRequest, UserCreateRequest, UserUpdateRequest
from medimind.api.db.models import User, utcnow
from medimind.api.exceptions import PolicyDenied, ResourceNotFound


logger = logging.getLogger(__name__)


class AdminService:
    """Service for admin operations."""

    def __init__(
        self,
        db: AsyncSession,
        audit_logger: AuditLogger,
        policy: Optional[AccessPolicy] = None,
    ):
        """Initialize service with database session and audit logger."""
        self.db = db
        self.audit_logger = audit_logger
        self.policy = policy

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def list_users(
        self,
        page: int = 1,
        page_size: int = 20,
        role: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        """Page of users, newest first, optionally filtered by role."""
        query = select(User)
        if role:
            query = query.where(User.role == role)

        total = await self.db.scalar(
            select(func.count()).select_from(query.subquery())
        )

        query = query.order_by(desc(User.created_at), User.id)
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def create_user(
        self,
        admin: User,
        data: UserCreateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Create a user.

        Raises:
            ValueError: If the email is already registered
        """
        if await self.get_user_by_email(data.email):
            raise ValueError("Email already registered")

        user = User(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role.value,
            department=data.department,
            specialization=data.specialization,
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)

        await self.audit_logger.record(
            actor_id=admin.id,
            action=AuditAction.USER_CREATED,
            resource_type="user",
            resource_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=True,
            details={
                "email": user.email,
                "role": user.role,
                "department": user.department,
                "specialization": user.specialization,
                "created_by": admin.id,
                "admin_role": admin.role,
            },
        )

        logger.info("User %s created by %s with role %s", user.id, admin.id, user.role)
        return user

    async def update_user_role(
        self,
        admin: User,
        target_user_id: str,
        data: RoleUpdateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Change a user's role.

        The super-admin rule is checked before the policy table. Denied
        attempts are audited and re-raised.

        Raises:
            ResourceNotFound: If the target user does not exist
            PolicyDenied: If the admin may not perform this change
        """
        target = await self.get_user_by_id(target_user_id)
        if not target:
            raise ResourceNotFound("Target user not found", resource_type="user")

        old_role = target.role
        new_role = data.role.value
        details = {
            "target_user_id": target.id,
            "admin_user_id": admin.id,
            "old_role": old_role,
            "new_role": new_role,
            "department": data.department,
            "specialization": data.specialization,
            "admin_role": admin.role,
        }

        try:
            authorize_role_update(admin.role, old_role, new_role, self.policy)
        except PolicyDenied as e:
            await self.audit_logger.record(
                actor_id=admin.id,
                action=AuditAction.ADMIN_ROLE_UPDATE,
                resource_type="user",
                resource_id=target.id,
                ip_address=ip_address,
                user_agent=user_agent,
                success=False,
                details={**details, "reason": e.message},
            )
            logger.warning(
                "Role update denied: %s (%s) -> user %s: %s",
                admin.id, admin.role, target.id, e.message,
            )
            raise

        target.role = new_role
        target.department = data.department or target.department
        target.specialization = data.specialization or target.specialization
        target.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(target)

        await self.audit_logger.record(
            actor_id=admin.id,
            action=AuditAction.ADMIN_ROLE_UPDATE,
            resource_type="user",
            resource_id=target.id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=True,
            details=details,
        )

        logger.info("User %s role changed %s -> %s by %s", target.id, old_role, new_role, admin.id)
        return target

    async def update_user(
        self,
        admin: User,
        target_user_id: str,
        data: UserUpdateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Edit a user's profile fields. Audited as USER_UPDATED with the
        submitted changes.

        Raises:
            ResourceNotFound: If the target user does not exist
        """
        target = await self.get_user_by_id(target_user_id)
        if not target:
            raise ResourceNotFound("Target user not found", resource_type="user")

        changes = data.model_dump(exclude_unset=True)
        for name, value in changes.items():
            setattr(target, name, value)
        target.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(target)

        await self.audit_logger.record(
            actor_id=admin.id,
            action=AuditAction.USER_UPDATED,
            resource_type="user",
            resource_id=target.id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=True,
            details={**changes, "updated_by": admin.id},
        )

        logger.info("User %s updated by %s: %s", target.id, admin.id, sorted(changes))
        return target
