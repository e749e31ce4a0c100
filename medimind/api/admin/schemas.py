"""
Admin Schemas

Pydantic models for user administration and audit log views.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from medimind.api.access.audit import AuditEntry
from medimind.api.access.rbac import Role


# ==================== Users ====================


class UserCreateRequest(BaseModel):
    """Admin request to create a user."""

    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role: Role = Role.PATIENT
    department: Optional[str] = Field(None, max_length=100)
    specialization: Optional[str] = Field(None, max_length=100)


class UserUpdateRequest(BaseModel):
    """Admin request to edit a user's profile. Roles change via the role endpoint."""

    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    specialization: Optional[str] = Field(None, max_length=100)

    model_config = ConfigDict(extra="forbid")


class RoleUpdateRequest(BaseModel):
    """Admin request to change a user's role."""

    role: Role
    department: Optional[str] = Field(None, max_length=100)
    specialization: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    """User details for admin view."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    department: Optional[str] = None
    specialization: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    """Paginated list of users, newest first."""

    users: List[UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class RoleUpdateResponse(BaseModel):
    success: bool = True
    message: str = "User role updated successfully"
    user: UserResponse


# ==================== Audit Logs ====================


class AuditEntryResponse(BaseModel):
    """One audit entry."""

    id: Optional[int] = None
    actor_id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    patient_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: str
    timestamp: datetime
    success: bool
    details: Dict[str, Any] = {}
    risk_level: str

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "AuditEntryResponse":
        return cls(**entry.to_dict())


class AuditLogListResponse(BaseModel):
    """Paginated list of audit entries, newest first."""

    logs: List[AuditEntryResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
