"""
Compliance Routes

HIPAA endpoints: metrics, security incidents, consents, breach scans,
retention classification and request security assessment.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from medimind.api.access.audit import AuditAction, AuditLogger
from medimind.api.access.breach import BreachDetector
from medimind.api.access.rbac import ResourceType, Role
from medimind.api.access.retention import classify_retention, get_retention_days
from medimind.api.access.session import assess_request_security
from medimind.api.compliance.schemas import (
    BreachScanResponse,
    ComplianceMetricsResponse,
    ConsentCreateRequest,
    ConsentResponse,
    IncidentCreateRequest,
    IncidentResponse,
    RetentionResponse,
    SessionSecurityResponse,
)
from medimind.api.compliance.service import ComplianceService
from medimind.api.config import settings
from medimind.api.db.models import User
from medimind.api.db.session import get_db
from medimind.api.dependencies import (
    client_ip,
    client_user_agent,
    get_audit_logger,
    get_current_user,
    require_roles,
)
from medimind.api.exceptions import PolicyDenied


router = APIRouter()


COMPLIANCE_ROLES = (Role.ADMIN, Role.SUPER_ADMIN)
INCIDENT_REPORTER_ROLES = COMPLIANCE_ROLES + (Role.DOCTOR, Role.NURSE)
CONSENT_RECORDER_ROLES = COMPLIANCE_ROLES + (Role.DOCTOR, Role.NURSE, Role.FRONT_DESK)


# ==================== Metrics ====================


@router.get(
    "/metrics",
    response_model=ComplianceMetricsResponse,
    summary="Compliance metrics",
)
async def get_metrics(
    request: Request,
    user: User = Depends(
        require_roles(
            COMPLIANCE_ROLES,
            ResourceType.HIPAA_METRICS,
            AuditAction.VIEW_COMPLIANCE_METRICS,
            resource_id="dashboard",
        )
    ),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> ComplianceMetricsResponse:
    """Counts over stored audit entries and incidents."""
    metrics = await ComplianceService(db, audit_logger).get_metrics()

    await audit_logger.record(
        actor_id=user.id,
        action=AuditAction.VIEW_COMPLIANCE_METRICS,
        resource_type=ResourceType.HIPAA_METRICS,
        resource_id="dashboard",
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )
    return metrics


# ==================== Security Incidents ====================


@router.get(
    "/security-incidents",
    response_model=List[IncidentResponse],
    summary="List security incidents",
)
async def list_incidents(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(
        require_roles(
            COMPLIANCE_ROLES,
            ResourceType.SECURITY_INCIDENTS,
            AuditAction.VIEW_SECURITY_INCIDENTS,
            resource_id="list",
        )
    ),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> List[IncidentResponse]:
    incidents = await ComplianceService(db, audit_logger).list_incidents(
        status=status_filter, limit=limit
    )

    await audit_logger.record(
        actor_id=user.id,
        action=AuditAction.VIEW_SECURITY_INCIDENTS,
        resource_type=ResourceType.SECURITY_INCIDENTS,
        resource_id="list",
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )
    return [IncidentResponse.model_validate(i) for i in incidents]


@router.post(
    "/security-incidents",
    response_model=IncidentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report security incident",
)
async def create_incident(
    data: IncidentCreateRequest,
    request: Request,
    user: User = Depends(
        require_roles(
            INCIDENT_REPORTER_ROLES,
            ResourceType.SECURITY_INCIDENTS,
            AuditAction.CREATE_SECURITY_INCIDENT,
        )
    ),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> IncidentResponse:
    """Open an incident with status "open"."""
    incident = await ComplianceService(db, audit_logger).create_incident(
        user,
        data,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )
    return IncidentResponse.model_validate(incident)


# ==================== Consent ====================


@router.post(
    "/consents",
    response_model=ConsentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record patient consent",
)
async def record_consent(
    data: ConsentCreateRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> ConsentResponse:
    """
    Record a consent decision.

    Patients may record their own consent; clinical, front-desk and
    admin staff may record it for any patient.
    """
    recorder_roles = {r.value for r in CONSENT_RECORDER_ROLES}
    own_consent = user.role == Role.PATIENT.value and data.patient_id == user.id
    if not own_consent and user.role not in recorder_roles:
        await audit_logger.record(
            actor_id=user.id,
            action=AuditAction.CONSENT_RECORDED,
            resource_type=ResourceType.CONSENT,
            resource_id=f"{data.patient_id}_{data.consent_type.value}",
            patient_id=data.patient_id,
            success=False,
            ip_address=client_ip(request),
            user_agent=client_user_agent(request),
            details={"path": request.url.path, "role": user.role},
        )
        raise PolicyDenied(
            "Access denied",
            role=user.role,
            resource_type=ResourceType.CONSENT.value,
        )

    return await ComplianceService(db, audit_logger).record_consent(
        user,
        data,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
    )


# ==================== Breach Scan ====================


@router.post(
    "/breach-scan/{user_id}",
    response_model=BreachScanResponse,
    summary="Scan a user's recent access for breach patterns",
)
async def breach_scan(
    user_id: str,
    request: Request,
    window_minutes: float = Query(5, gt=0, le=1440),
    admin: User = Depends(
        require_roles(
            COMPLIANCE_ROLES,
            ResourceType.AUDIT_LOGS,
            AuditAction.RUN_BREACH_SCAN,
        )
    ),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> BreachScanResponse:
    """
    Count distinct resources the user touched within the window and
    evaluate the burst. A flagged breach is recorded in the audit log.
    """
    detector = BreachDetector(audit_logger, scan_limit=settings.BREACH_SCAN_LIMIT)
    count = await detector.count_recent_resources(user_id, window_minutes)
    signal = await detector.evaluate(user_id, count, window_minutes)

    await audit_logger.record(
        actor_id=admin.id,
        action=AuditAction.RUN_BREACH_SCAN,
        resource_type=ResourceType.AUDIT_LOGS,
        resource_id=user_id,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
        details={
            "window_minutes": window_minutes,
            "resource_count": count,
            "is_breach": signal.is_breach,
            "risk_level": signal.risk_level.value,
        },
    )

    return BreachScanResponse(
        user_id=user_id,
        window_minutes=window_minutes,
        resource_count=count,
        is_breach=signal.is_breach,
        risk_level=signal.risk_level.value,
    )


# ==================== Retention ====================


@router.get(
    "/retention",
    response_model=RetentionResponse,
    summary="Classify a record for retention",
)
async def retention(
    resource_type: str,
    created_at: datetime,
    request: Request,
    user: User = Depends(
        require_roles(
            COMPLIANCE_ROLES,
            ResourceType.AUDIT_LOGS,
            AuditAction.VIEW_RETENTION,
        )
    ),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> RetentionResponse:
    decision = classify_retention(resource_type, created_at)

    await audit_logger.record(
        actor_id=user.id,
        action=AuditAction.VIEW_RETENTION,
        resource_type=ResourceType.AUDIT_LOGS,
        resource_id=resource_type,
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
        details={
            "created_at": created_at,
            "days_remaining": decision.days_remaining,
            "action": decision.action,
        },
    )

    return RetentionResponse(
        resource_type=resource_type,
        created_at=created_at,
        retention_days=get_retention_days(resource_type),
        **decision.to_dict(),
    )


# ==================== Session Security ====================


@router.get(
    "/session-security",
    response_model=SessionSecurityResponse,
    summary="Assess the security of the current request",
)
async def session_security(
    request: Request,
    user: User = Depends(get_current_user),
    audit_logger: AuditLogger = Depends(get_audit_logger),
) -> SessionSecurityResponse:
    result = assess_request_security(request)

    await audit_logger.record(
        actor_id=user.id,
        action=AuditAction.VIEW_SESSION_SECURITY,
        resource_type="session",
        resource_id="current",
        ip_address=client_ip(request),
        user_agent=client_user_agent(request),
        details={
            "security_level": result.security_level,
            "warnings": result.warnings,
        },
    )

    return SessionSecurityResponse(
        is_valid=result.is_valid,
        security_level=result.security_level.value,
        warnings=result.warnings,
    )
