"""
HIPAA Compliance API Tests

Metrics, security incidents, consents, breach scans, retention and
request security assessment.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.concurrency import run_in_threadpool
from httpx import AsyncClient
from sqlalchemy import select

from medimind.api.access.audit import AuditFilters, AuditLogger, SqlAuditStore
from medimind.api.compliance import service as compliance_service
from medimind.api.db.models import PatientConsent


def _audit(session_maker) -> AuditLogger:
    return AuditLogger(SqlAuditStore(session_maker))


# ==================== Metrics ====================


@pytest.mark.asyncio
async def test_metrics_count_stored_entries(
    async_client: AsyncClient,
    admin_headers: dict,
    session_maker,
):
    audit = _audit(session_maker)
    await audit.record(actor_id="doctor-3", action="READ", resource_type="patients")
    await audit.record(actor_id="doctor-3", action="READ", resource_type="users", success=False)
    await audit.record(
        actor_id="doctor-3",
        action="SECURITY_BREACH_DETECTED",
        resource_type="security",
        details={"resource_count": 60},
    )

    response = await async_client.get("/api/v1/hipaa/metrics", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total_audits"] == 3
    assert data["failed_access_attempts"] == 1
    assert data["high_risk_events"] == 1
    assert data["data_breaches"] == 1
    assert data["security_incidents"] == 0
    assert data["last_audit"] is not None


@pytest.mark.asyncio
async def test_metrics_view_is_audited(
    async_client: AsyncClient,
    admin_headers: dict,
    admin_user,
    session_maker,
):
    await async_client.get("/api/v1/hipaa/metrics", headers=admin_headers)

    page = await _audit(session_maker).query(
        AuditFilters(actor_id=admin_user.id, action="VIEW_COMPLIANCE_METRICS")
    )
    assert page.total == 1
    assert page.items[0].resource_type == "hipaa-metrics"


@pytest.mark.asyncio
async def test_doctor_cannot_view_metrics(
    async_client: AsyncClient,
    doctor_headers: dict,
    doctor_user,
    session_maker,
):
    response = await async_client.get("/api/v1/hipaa/metrics", headers=doctor_headers)

    assert response.status_code == 403
    page = await _audit(session_maker).query(AuditFilters(actor_id=doctor_user.id))
    assert page.total == 1
    assert page.items[0].success is False


# ==================== Security Incidents ====================


@pytest.mark.asyncio
async def test_doctor_reports_incident(
    async_client: AsyncClient,
    doctor_headers: dict,
    doctor_user,
    session_maker,
):
    response = await async_client.post(
        "/api/v1/hipaa/security-incidents",
        json={
            "incident_type": "unauthorized_access",
            "severity": "high",
            "description": "Chart opened from an unknown workstation",
            "affected_patients": 2,
        },
        headers=doctor_headers,
    )

    assert response.status_code == 201
    incident = response.json()
    assert incident["status"] == "open"
    assert incident["reported_by"] == doctor_user.id

    page = await _audit(session_maker).query(AuditFilters(action="CREATE_SECURITY_INCIDENT"))
    assert page.total == 1
    entry = page.items[0]
    assert entry.resource_id == str(incident["id"])
    assert entry.risk_level.value == "medium"
    assert entry.details["affected_patients"] == 2


@pytest.mark.asyncio
async def test_patient_cannot_report_incident(
    async_client: AsyncClient,
    patient_headers: dict,
):
    response = await async_client.post(
        "/api/v1/hipaa/security-incidents",
        json={"incident_type": "phishing", "description": "Suspicious email"},
        headers=patient_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_lists_incidents(
    async_client: AsyncClient,
    admin_headers: dict,
    doctor_headers: dict,
):
    await async_client.post(
        "/api/v1/hipaa/security-incidents",
        json={"incident_type": "lost_device", "description": "Tablet left in lobby"},
        headers=doctor_headers,
    )

    response = await async_client.get(
        "/api/v1/hipaa/security-incidents",
        params={"status": "open"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    incidents = response.json()
    assert len(incidents) == 1
    assert incidents[0]["incident_type"] == "lost_device"
    assert incidents[0]["severity"] == "medium"


# ==================== Consent ====================


@pytest.mark.asyncio
async def test_patient_records_own_consent(
    async_client: AsyncClient,
    patient_headers: dict,
    patient_user,
    db_session,
    session_maker,
):
    response = await async_client.post(
        "/api/v1/hipaa/consents",
        json={
            "patient_id": patient_user.id,
            "consent_type": "research",
            "granted": True,
            "details": "Oncology study 2026-A",
        },
        headers=patient_headers,
    )

    assert response.status_code == 201
    consent = response.json()
    assert consent["details"] == "Oncology study 2026-A"

    stored = await db_session.scalar(
        select(PatientConsent).where(PatientConsent.id == consent["id"])
    )
    assert stored.details != "Oncology study 2026-A"

    page = await _audit(session_maker).query(AuditFilters(action="CONSENT_RECORDED"))
    assert page.total == 1
    assert page.items[0].patient_id == patient_user.id
    assert page.items[0].resource_id == f"{patient_user.id}_research"


@pytest.mark.asyncio
async def test_consent_encryption_runs_off_the_event_loop(
    async_client: AsyncClient,
    doctor_headers: dict,
    monkeypatch,
):
    offloaded = []

    async def recording_threadpool(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(compliance_service, "run_in_threadpool", recording_threadpool)

    response = await async_client.post(
        "/api/v1/hipaa/consents",
        json={
            "patient_id": "patient-12",
            "consent_type": "operations",
            "granted": True,
            "details": "Share imaging with referring clinic",
        },
        headers=doctor_headers,
    )

    assert response.status_code == 201
    assert response.json()["details"] == "Share imaging with referring clinic"
    assert offloaded == ["encrypt", "decrypt"]

@pytest.mark.asyncio
async def test_patient_cannot_record_consent_for_others(
    async_client: AsyncClient,
    patient_headers: dict,
):
    response = await async_client.post(
        "/api/v1/hipaa/consents",
        json={"patient_id": "someone-else", "consent_type": "marketing", "granted": False},
        headers=patient_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_doctor_records_consent(
    async_client: AsyncClient,
    doctor_headers: dict,
    doctor_user,
):
    response = await async_client.post(
        "/api/v1/hipaa/consents",
        json={"patient_id": "patient-77", "consent_type": "treatment", "granted": True},
        headers=doctor_headers,
    )

    assert response.status_code == 201
    assert response.json()["recorded_by"] == doctor_user.id
    assert response.json()["details"] is None


# ==================== Breach Scan ====================


@pytest.mark.asyncio
async def test_breach_scan_flags_burst(
    async_client: AsyncClient,
    admin_headers: dict,
    session_maker,
):
    audit = _audit(session_maker)
    for i in range(51):
        await audit.record(
            actor_id="doctor-burst",
            action="READ",
            resource_type="medical-records",
            resource_id=f"mr_{i}",
        )

    response = await async_client.post(
        "/api/v1/hipaa/breach-scan/doctor-burst",
        params={"window_minutes": 4},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["resource_count"] == 51
    assert data["is_breach"] is True
    assert data["risk_level"] == "high"

    page = await audit.query(AuditFilters(action="SECURITY_BREACH_DETECTED"))
    assert page.total == 1
    assert page.items[0].actor_id == "doctor-burst"
    assert page.items[0].user_agent == "breach_detector"


@pytest.mark.asyncio
async def test_breach_scan_is_audited(
    async_client: AsyncClient,
    admin_headers: dict,
    admin_user,
    session_maker,
):
    response = await async_client.post(
        "/api/v1/hipaa/breach-scan/nurse-4",
        params={"window_minutes": 10},
        headers=admin_headers,
    )
    assert response.status_code == 200

    page = await _audit(session_maker).query(
        AuditFilters(actor_id=admin_user.id, action="RUN_BREACH_SCAN")
    )
    assert page.total == 1
    entry = page.items[0]
    assert entry.success is True
    assert entry.resource_type == "audit-logs"
    assert entry.resource_id == "nurse-4"
    assert entry.details["window_minutes"] == 10
    assert entry.details["resource_count"] == 0
    assert entry.details["is_breach"] is False


@pytest.mark.asyncio
async def test_doctor_cannot_run_breach_scan(
    async_client: AsyncClient,
    doctor_headers: dict,
    doctor_user,
    session_maker,
):
    response = await async_client.post(
        "/api/v1/hipaa/breach-scan/nurse-4",
        headers=doctor_headers,
    )

    assert response.status_code == 403
    page = await _audit(session_maker).query(
        AuditFilters(actor_id=doctor_user.id, action="RUN_BREACH_SCAN")
    )
    assert page.total == 1
    assert page.items[0].success is False


@pytest.mark.asyncio
async def test_breach_scan_quiet_actor(
    async_client: AsyncClient,
    admin_headers: dict,
    session_maker,
):
    response = await async_client.post(
        "/api/v1/hipaa/breach-scan/nobody",
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["is_breach"] is False
    assert response.json()["resource_count"] == 0


# ==================== Retention ====================


@pytest.mark.asyncio
async def test_retention_final_year_archives(
    async_client: AsyncClient,
    admin_headers: dict,
):
    created_at = datetime.now(timezone.utc) - timedelta(days=1094)

    response = await async_client.get(
        "/api/v1/hipaa/retention",
        params={"resource_type": "appointments", "created_at": created_at.isoformat()},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["retention_days"] == 1095
    assert data["days_remaining"] == 1
    assert data["action"] == "archive"
    assert data["should_retain"] is True


@pytest.mark.asyncio
async def test_retention_expired_record_deleted(
    async_client: AsyncClient,
    admin_headers: dict,
):
    created_at = datetime.now(timezone.utc) - timedelta(days=1096)

    response = await async_client.get(
        "/api/v1/hipaa/retention",
        params={"resource_type": "appointments", "created_at": created_at.isoformat()},
        headers=admin_headers,
    )

    data = response.json()
    assert data["action"] == "delete"
    assert data["should_retain"] is False


@pytest.mark.asyncio
async def test_retention_lookup_is_audited(
    async_client: AsyncClient,
    admin_headers: dict,
    admin_user,
    session_maker,
):
    created_at = datetime.now(timezone.utc) - timedelta(days=10)

    response = await async_client.get(
        "/api/v1/hipaa/retention",
        params={"resource_type": "imaging", "created_at": created_at.isoformat()},
        headers=admin_headers,
    )
    assert response.status_code == 200

    page = await _audit(session_maker).query(
        AuditFilters(actor_id=admin_user.id, action="VIEW_RETENTION")
    )
    assert page.total == 1
    entry = page.items[0]
    assert entry.success is True
    assert entry.resource_id == "imaging"
    assert entry.details["action"] == "retain"
    assert entry.details["days_remaining"] == 3640


# ==================== Session Security ====================


@pytest.mark.asyncio
async def test_plain_http_session_is_low(
    async_client: AsyncClient,
    patient_headers: dict,
):
    response = await async_client.get("/api/v1/hipaa/session-security", headers=patient_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is False
    assert data["security_level"] == "low"
    assert "Connection not using HTTPS" in data["warnings"]


@pytest.mark.asyncio
async def test_forwarded_https_session_is_high(
    async_client: AsyncClient,
    patient_headers: dict,
):
    headers = {**patient_headers, "X-Forwarded-Proto": "https", "User-Agent": "MediMind/1.0"}
    response = await async_client.get("/api/v1/hipaa/session-security", headers=headers)

    data = response.json()
    assert data["is_valid"] is True
    assert data["security_level"] == "high"
    assert data["warnings"] == []


@pytest.mark.asyncio
async def test_session_security_check_is_audited(
    async_client: AsyncClient,
    patient_headers: dict,
    patient_user,
    session_maker,
):
    await async_client.get("/api/v1/hipaa/session-security", headers=patient_headers)

    page = await _audit(session_maker).query(
        AuditFilters(actor_id=patient_user.id, action="VIEW_SESSION_SECURITY")
    )
    assert page.total == 1
    entry = page.items[0]
    assert entry.success is True
    assert entry.details["security_level"] == "low"
    assert "Connection not using HTTPS" in entry.details["warnings"]
