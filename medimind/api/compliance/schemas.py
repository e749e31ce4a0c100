"""
Compliance Schemas

Request/response models for the HIPAA compliance endpoints.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConsentType(str, Enum):
    TREATMENT = "treatment"
    PAYMENT = "payment"
    OPERATIONS = "operations"
    MARKETING = "marketing"
    RESEARCH = "research"


class IncidentSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ==================== Consent ====================


class ConsentCreateRequest(BaseModel):
    """Record a patient's consent decision."""

    patient_id: str = Field(..., min_length=1, max_length=64)
    consent_type: ConsentType
    granted: bool
    details: Optional[str] = Field(None, max_length=2000)


class ConsentResponse(BaseModel):
    """Stored consent. Details are returned decrypted."""

    id: int
    patient_id: str
    consent_type: str
    granted: bool
    details: Optional[str] = None
    recorded_by: str
    ip_address: Optional[str] = None
    recorded_at: datetime


# ==================== Security Incidents ====================


class IncidentCreateRequest(BaseModel):
    """Report a security incident."""

    incident_type: str = Field(..., min_length=1, max_length=64)
    severity: IncidentSeverity = IncidentSeverity.MEDIUM
    description: str = Field(..., min_length=1)
    affected_patients: int = Field(0, ge=0)


class IncidentResponse(BaseModel):
    id: int
    incident_type: str
    severity: str
    description: str
    affected_patients: int
    status: str
    reported_by: str
    detected_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== Metrics ====================


class ComplianceMetricsResponse(BaseModel):
    """Counts derived from stored audit entries and incidents."""

    total_audits: int
    failed_access_attempts: int
    high_risk_events: int
    security_incidents: int
    open_incidents: int
    data_breaches: int
    last_audit: Optional[datetime] = None


# ==================== Breach / Retention / Session ====================


class BreachScanResponse(BaseModel):
    user_id: str
    window_minutes: float
    resource_count: int
    is_breach: bool
    risk_level: str


class RetentionResponse(BaseModel):
    resource_type: str
    created_at: datetime
    retention_days: int
    should_retain: bool
    days_remaining: int
    action: str


class SessionSecurityResponse(BaseModel):
    is_valid: bool
    security_level: str
    warnings: List[str] = []
