"""
MediMind - Access & Audit Module

Role-based access control, HIPAA audit logging, breach detection and
data retention.

Components:
- rbac.py: Roles, resource types, actions, permission matrix, role mutation rule
- audit.py: Audit entries, audit logger, SQL-backed store
- breach.py: Access burst heuristic and breach detector
- retention.py: Per-type retention periods and classifier
- session.py: Request security assessment

Usage:
    from medimind.api.access import (
        Role,
        ResourceType,
        Action,
        check_access,
        AuditLogger,
        SqlAuditStore,
        BreachDetector,
        classify_retention,
    )
"""

from medimind.api.access.rbac import (
    Role,
    ResourceType,
    Action,
    ACCESS_POLICY,
    AccessPolicy,
    DEFAULT_POLICY,
    check_access,
    get_access_policy,
    can_modify_role,
    authorize_role_update,
    validate_policy_table,
)

from medimind.api.access.audit import (
    AuditAction,
    AuditEntry,
    AuditFilters,
    AuditLogger,
    AuditPage,
    AuditStore,
    RiskLevel,
    SqlAuditStore,
    generate_session_id,
)

from medimind.api.access.breach import (
    BreachDetector,
    BreachSignal,
    evaluate_access_burst,
    evaluate_breach,
)

from medimind.api.access.retention import (
    RetentionAction,
    RetentionDecision,
    RETENTION_PERIODS,
    classify_retention,
)

__all__ = [
    # RBAC
    "Role",
    "ResourceType",
    "Action",
    "ACCESS_POLICY",
    "AccessPolicy",
    "DEFAULT_POLICY",
    "check_access",
    "get_access_policy",
    "can_modify_role",
    "authorize_role_update",
    "validate_policy_table",

    # Audit
    "AuditAction",
    "AuditEntry",
    "AuditFilters",
    "AuditLogger",
    "AuditPage",
    "AuditStore",
    "RiskLevel",
    "SqlAuditStore",
    "generate_session_id",

    # Breach
    "BreachDetector",
    "BreachSignal",
    "evaluate_access_burst",
    "evaluate_breach",

    # Retention
    "RetentionAction",
    "RetentionDecision",
    "RETENTION_PERIODS",
    "classify_retention",
]
