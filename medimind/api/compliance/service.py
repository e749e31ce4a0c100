"""
Compliance Service

Consent recording, security incidents and compliance metrics.
"""

import logging
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medimind.api.access.audit import AuditAction, AuditLogger, RiskLevel
from medimind.api.access.rbac import ResourceType
from medimind.api.compliance.schemas import (
    ComplianceMetricsResponse,
    ConsentCreateRequest,
    ConsentResponse,
    IncidentCreateRequest,
)
from medimind.api.db.models import AuditLog, PatientConsent, SecurityIncident, User
from medimind.api.services.encryption import PHIEncryptionService, get_encryption_service


logger = logging.getLogger(__name__)


class ComplianceService:
    """Service for HIPAA compliance operations."""

    def __init__(
        self,
        db: AsyncSession,
        audit_logger: AuditLogger,
        encryption: Optional[PHIEncryptionService] = None,
    ):
        self.db = db
        self.audit_logger = audit_logger
        self.encryption = encryption or get_encryption_service()

    # ==================== Consent ====================

    async def record_consent(
        self,
        recorder: User,
        data: ConsentCreateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ConsentResponse:
        """
        Store a consent decision and audit it as CONSENT_RECORDED.

        Free-text details are encrypted at rest. Key derivation is CPU
        bound and runs in the threadpool.
        """
        encrypted_details = None
        if data.details:
            encrypted_details = await run_in_threadpool(self.encryption.encrypt, data.details)

        consent = PatientConsent(
            patient_id=data.patient_id,
            consent_type=data.consent_type.value,
            granted=data.granted,
            details=encrypted_details,
            recorded_by=recorder.id,
            ip_address=ip_address,
        )
        self.db.add(consent)
        await self.db.flush()
        await self.db.refresh(consent)

        await self.audit_logger.record(
            actor_id=recorder.id,
            action=AuditAction.CONSENT_RECORDED,
            resource_type=ResourceType.CONSENT,
            resource_id=f"{consent.patient_id}_{consent.consent_type}",
            patient_id=consent.patient_id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=True,
            details={
                "consent_id": consent.id,
                "consent_type": consent.consent_type,
                "granted": consent.granted,
                "recorded_by": recorder.id,
            },
        )

        return await self._consent_response(consent)

    async def _consent_response(self, consent: PatientConsent) -> ConsentResponse:
        details = None
        if consent.details:
            details = await run_in_threadpool(self.encryption.decrypt, consent.details)

        return ConsentResponse(
            id=consent.id,
            patient_id=consent.patient_id,
            consent_type=consent.consent_type,
            granted=consent.granted,
            details=details,
            recorded_by=consent.recorded_by,
            ip_address=consent.ip_address,
            recorded_at=consent.recorded_at,
        )

    # ==================== Security Incidents ====================

    async def create_incident(
        self,
        reporter: User,
        data: IncidentCreateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityIncident:
        """Open a security incident. Audited as CREATE_SECURITY_INCIDENT."""
        incident = SecurityIncident(
            incident_type=data.incident_type,
            severity=data.severity.value,
            description=data.description,
            affected_patients=data.affected_patients,
            status="open",
            reported_by=reporter.id,
        )
        self.db.add(incident)
        await self.db.flush()
        await self.db.refresh(incident)

        await self.audit_logger.record(
            actor_id=reporter.id,
            action=AuditAction.CREATE_SECURITY_INCIDENT,
            resource_type=ResourceType.SECURITY_INCIDENTS,
            resource_id=incident.id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=True,
            details={
                "incident_type": incident.incident_type,
                "severity": incident.severity,
                "description": incident.description,
                "affected_patients": incident.affected_patients,
                "status": incident.status,
                "reported_by": incident.reported_by,
            },
        )

        logger.warning(
            "Security incident %s reported by %s: %s (%s)",
            incident.id, reporter.id, incident.incident_type, incident.severity,
        )
        return incident

    async def list_incidents(
        self,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[SecurityIncident]:
        """Incidents, most recently detected first."""
        query = select(SecurityIncident)
        if status:
            query = query.where(SecurityIncident.status == status)
        query = query.order_by(desc(SecurityIncident.detected_at), desc(SecurityIncident.id))
        query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ==================== Metrics ====================

    async def get_metrics(self) -> ComplianceMetricsResponse:
        """Compute compliance counts from stored audit entries and incidents."""
        total_audits = await self.db.scalar(
            select(func.count(AuditLog.id))
        )

        failed_attempts = await self.db.scalar(
            select(func.count(AuditLog.id)).where(AuditLog.success == False)
        )

        high_risk = await self.db.scalar(
            select(func.count(AuditLog.id)).where(
                AuditLog.risk_level == RiskLevel.HIGH.value
            )
        )

        breaches = await self.db.scalar(
            select(func.count(AuditLog.id)).where(
                AuditLog.action == AuditAction.SECURITY_BREACH_DETECTED.value
            )
        )

        incidents = await self.db.scalar(
            select(func.count(SecurityIncident.id))
        )

        open_incidents = await self.db.scalar(
            select(func.count(SecurityIncident.id)).where(
                SecurityIncident.status != "resolved"
            )
        )

        last_audit = await self.db.scalar(
            select(func.max(AuditLog.timestamp))
        )

        return ComplianceMetricsResponse(
            total_audits=total_audits or 0,
            failed_access_attempts=failed_attempts or 0,
            high_risk_events=high_risk or 0,
            security_incidents=incidents or 0,
            open_incidents=open_incidents or 0,
            data_breaches=breaches or 0,
            last_audit=last_audit,
        )
