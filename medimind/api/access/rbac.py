"""
MediMind - Role-Based Access Control (RBAC)

Defines roles, resource types, actions, and the role -> resource -> action
permission matrix. This is the authoritative source for access control.
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Type, TypeVar, Union

from medimind.api.exceptions import PolicyDenied


logger = logging.getLogger(__name__)


# ============================================================
# Tags
# ============================================================


class Role(str, Enum):
    """User roles. A user holds exactly one at a time."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    NURSE = "nurse"
    FRONT_DESK = "front-desk"
    ADMIN = "admin"
    SUPER_ADMIN = "super-admin"
    INSURANCE = "insurance"
    PHARMACY = "pharmacy"
    DEPARTMENT_HEAD = "department-head"
    SSD = "ssd"


class ResourceType(str, Enum):
    """Protected resource categories."""

    MEDICAL_RECORDS = "medical-records"
    APPOINTMENTS = "appointments"
    PATIENTS = "patients"
    USERS = "users"
    PRESCRIPTIONS = "prescriptions"
    VITALS = "vitals"
    QUEUE = "queue"
    AUDIT_LOGS = "audit-logs"
    PROFILE = "profile"
    LAB_RESULTS = "lab-results"
    IMAGING = "imaging"
    FINANCIAL = "financial"
    CONSENT = "consent"
    SECURITY_INCIDENTS = "security-incidents"
    HIPAA_METRICS = "hipaa-metrics"


class Action(str, Enum):
    """Operations on a resource."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ============================================================
# Role Permission Mappings
# ============================================================


PolicyTable = Mapping[Role, Mapping[ResourceType, FrozenSet[Action]]]

_READ = frozenset({Action.READ})
_ALL = frozenset(Action)
_NO_DELETE = frozenset({Action.READ, Action.CREATE, Action.UPDATE})

# admin and super-admin carry the same explicit grants. Neither includes
# prescriptions, unlike doctor; kept as observed pending product confirmation.
_ADMIN_GRANTS: Dict[ResourceType, FrozenSet[Action]] = {
    ResourceType.MEDICAL_RECORDS: _READ,
    ResourceType.APPOINTMENTS: _ALL,
    ResourceType.PATIENTS: _NO_DELETE,
    ResourceType.USERS: _ALL,
    ResourceType.AUDIT_LOGS: _READ,
}

ACCESS_POLICY: Dict[Role, Dict[ResourceType, FrozenSet[Action]]] = {
    Role.PATIENT: {
        ResourceType.MEDICAL_RECORDS: _READ,
        ResourceType.APPOINTMENTS: frozenset({Action.READ, Action.CREATE}),
        ResourceType.PROFILE: frozenset({Action.READ, Action.UPDATE}),
    },

    Role.DOCTOR: {
        ResourceType.MEDICAL_RECORDS: _NO_DELETE,
        ResourceType.APPOINTMENTS: _ALL,
        ResourceType.PATIENTS: _NO_DELETE,
        ResourceType.PRESCRIPTIONS: _NO_DELETE,
    },

    Role.NURSE: {
        ResourceType.MEDICAL_RECORDS: frozenset({Action.READ, Action.CREATE}),
        ResourceType.APPOINTMENTS: frozenset({Action.READ, Action.UPDATE}),
        ResourceType.PATIENTS: frozenset({Action.READ, Action.UPDATE}),
        ResourceType.VITALS: _NO_DELETE,
    },

    Role.FRONT_DESK: {
        ResourceType.APPOINTMENTS: _NO_DELETE,
        ResourceType.PATIENTS: _NO_DELETE,
        ResourceType.QUEUE: _NO_DELETE,
    },

    Role.ADMIN: dict(_ADMIN_GRANTS),
    Role.SUPER_ADMIN: dict(_ADMIN_GRANTS),

    # No grants
    Role.INSURANCE: {},
    Role.PHARMACY: {},
    Role.DEPARTMENT_HEAD: {},
    Role.SSD: {},
}


def validate_policy_table(table: PolicyTable) -> None:
    """
    Require an explicit entry for every role.

    Raises:
        ValueError: If any Role is missing from the table
    """
    missing = [role.value for role in Role if role not in table]
    if missing:
        raise ValueError(f"Access policy has no entry for roles: {', '.join(missing)}")


validate_policy_table(ACCESS_POLICY)


# ============================================================
# Policy Lookup
# ============================================================


E = TypeVar("E", bound=Enum)


def parse_tag(enum_cls: Type[E], value: Union[E, str, None]) -> Optional[E]:
    """Coerce a string tag into an enum member, or None if unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


class AccessPolicy:
    """
    Pure lookup over a role -> resource -> action table.

    Unknown roles, resource types and actions are denied.
    """

    def __init__(self, table: PolicyTable = ACCESS_POLICY):
        validate_policy_table(table)
        self._table = table

    def check(
        self,
        role: Union[Role, str],
        resource_type: Union[ResourceType, str],
        action: Union[Action, str],
    ) -> bool:
        """Return True iff the action is granted to role on resource_type."""
        if not role or not resource_type or not action:
            raise ValueError("role, resource_type and action are required")

        role_tag = parse_tag(Role, role)
        if role_tag is None:
            logger.warning("Access policy gap: unknown role %r", role)
            return False

        resource_tag = parse_tag(ResourceType, resource_type)
        if resource_tag is None:
            logger.warning("Access policy gap: unknown resource type %r", resource_type)
            return False

        action_tag = parse_tag(Action, action)
        if action_tag is None:
            logger.warning("Access policy gap: unknown action %r", action)
            return False

        allowed = self._table[role_tag].get(resource_tag)
        if allowed is None:
            logger.debug("No grant for %s on %s", role_tag.value, resource_tag.value)
            return False

        return action_tag in allowed

    def allowed_actions(
        self,
        role: Union[Role, str],
        resource_type: Union[ResourceType, str],
    ) -> FrozenSet[Action]:
        """Get the granted actions for a role on a resource type."""
        role_tag = parse_tag(Role, role)
        resource_tag = parse_tag(ResourceType, resource_type)
        if role_tag is None or resource_tag is None:
            return frozenset()
        return self._table[role_tag].get(resource_tag, frozenset())

    def grants(self, role: Union[Role, str]) -> Dict[ResourceType, FrozenSet[Action]]:
        """Get the full grant map for a role."""
        role_tag = parse_tag(Role, role)
        if role_tag is None:
            return {}
        return dict(self._table[role_tag])


DEFAULT_POLICY = AccessPolicy()


def check_access(
    role: Union[Role, str],
    resource_type: Union[ResourceType, str],
    action: Union[Action, str],
    policy: Optional[AccessPolicy] = None,
) -> bool:
    """Check a role against the policy (default table if none given)."""
    return (policy or DEFAULT_POLICY).check(role, resource_type, action)


def get_access_policy() -> AccessPolicy:
    """FastAPI dependency returning the access policy in force."""
    return DEFAULT_POLICY


# ============================================================
# Role Assignment Validation
# ============================================================


def can_modify_role(
    actor_role: Union[Role, str],
    target_current_role: Union[Role, str],
    requested_role: Union[Role, str],
) -> bool:
    """
    Check the super-admin elevation rule.

    Only a super-admin may change the role of a super-admin, or grant
    super-admin to anyone.
    """
    touches_super_admin = Role.SUPER_ADMIN in {
        parse_tag(Role, target_current_role),
        parse_tag(Role, requested_role),
    }
    if touches_super_admin:
        return parse_tag(Role, actor_role) is Role.SUPER_ADMIN
    return True


def authorize_role_update(
    actor_role: Union[Role, str],
    target_current_role: Union[Role, str],
    requested_role: Union[Role, str],
    policy: Optional[AccessPolicy] = None,
) -> None:
    """
    Authorize a role mutation.

    The super-admin rule is evaluated first and independently of the
    policy table; the actor then needs users:update.

    Raises:
        PolicyDenied: If either check fails
    """
    actor_is_super_admin = parse_tag(Role, actor_role) is Role.SUPER_ADMIN

    if parse_tag(Role, target_current_role) is Role.SUPER_ADMIN and not actor_is_super_admin:
        raise PolicyDenied(
            "Only super-admin can modify super-admin roles",
            role=str(getattr(actor_role, "value", actor_role)),
            resource_type=ResourceType.USERS.value,
            action=Action.UPDATE.value,
        )

    if parse_tag(Role, requested_role) is Role.SUPER_ADMIN and not actor_is_super_admin:
        raise PolicyDenied(
            "Only super-admin can assign super-admin role",
            role=str(getattr(actor_role, "value", actor_role)),
            resource_type=ResourceType.USERS.value,
            action=Action.UPDATE.value,
        )

    if not check_access(actor_role, ResourceType.USERS, Action.UPDATE, policy):
        raise PolicyDenied(
            "Access denied. Admin privileges required.",
            role=str(getattr(actor_role, "value", actor_role)),
            resource_type=ResourceType.USERS.value,
            action=Action.UPDATE.value,
        )
