"""
MediMind - HIPAA Audit Logging

Append-only audit trail of every access attempt, allowed or denied.
Writes are best effort: a failed write is logged and never reaches the
caller, so audit storage can never block clinical operations.
"""

import hashlib
import json
import logging
import math
import secrets
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

from sqlalchemy import and_, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from medimind.api.db.models import AuditLog, utcnow
from medimind.api.exceptions import AuditWriteFailure
from medimind.api.services.encryption import anonymize as anonymize_record


logger = logging.getLogger(__name__)


# ============================================================
# Audit Actions
# ============================================================


class AuditAction(str, Enum):
    """Well-known audit actions. Callers may also record free-form actions."""

    # Policy-checked access
    ACCESS_CHECK = "ACCESS_CHECK"
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # User management
    USER_CREATED = "USER_CREATED"
    USER_SIGNUP = "USER_SIGNUP"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ADMIN_ROLE_UPDATE = "ADMIN_ROLE_UPDATE"

    # Payments
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_FAILED = "PAYMENT_FAILED"

    # Compliance
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"
    EXPORT_AUDIT_LOGS = "EXPORT_AUDIT_LOGS"
    VIEW_COMPLIANCE_METRICS = "VIEW_COMPLIANCE_METRICS"
    VIEW_SECURITY_INCIDENTS = "VIEW_SECURITY_INCIDENTS"
    CREATE_SECURITY_INCIDENT = "CREATE_SECURITY_INCIDENT"
    CONSENT_RECORDED = "CONSENT_RECORDED"
    RUN_BREACH_SCAN = "RUN_BREACH_SCAN"
    VIEW_RETENTION = "VIEW_RETENTION"
    VIEW_SESSION_SECURITY = "VIEW_SESSION_SECURITY"

    # Security
    SECURITY_BREACH_DETECTED = "SECURITY_BREACH_DETECTED"


class RiskLevel(str, Enum):
    """Coarse risk classification of an audit entry."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================
# Risk Mapping
# ============================================================


ACTION_RISK: Dict[str, RiskLevel] = {
    AuditAction.SECURITY_BREACH_DETECTED.value: RiskLevel.HIGH,

    AuditAction.ADMIN_ROLE_UPDATE.value: RiskLevel.MEDIUM,
    AuditAction.USER_DELETED.value: RiskLevel.MEDIUM,
    AuditAction.EXPORT_AUDIT_LOGS.value: RiskLevel.MEDIUM,
    AuditAction.CREATE_SECURITY_INCIDENT.value: RiskLevel.MEDIUM,
    AuditAction.PAYMENT_FAILED.value: RiskLevel.MEDIUM,
}

# Masked in anonymized exports
EXPORT_MASKED_FIELDS = ("patient_id", "ip_address")

# Entries for these actions must document the change or event in `details`
DETAILED_ACTIONS = frozenset({
    AuditAction.USER_CREATED.value,
    AuditAction.USER_SIGNUP.value,
    AuditAction.USER_UPDATED.value,
    AuditAction.ADMIN_ROLE_UPDATE.value,
    AuditAction.PAYMENT_VERIFIED.value,
    AuditAction.PAYMENT_FAILED.value,
    AuditAction.CREATE_SECURITY_INCIDENT.value,
    AuditAction.SECURITY_BREACH_DETECTED.value,
})


def get_action_risk(action: str, risk_level: Optional[Union[RiskLevel, str]] = None) -> RiskLevel:
    """
    Resolve the risk level for an entry: explicit, mapped, else low.

    An unrecognised explicit level is logged and replaced by the mapped one.
    """
    if risk_level is not None:
        try:
            return RiskLevel(risk_level)
        except ValueError:
            logger.warning(
                "Unknown risk level %r for audit action %s, using mapped level",
                risk_level,
                action,
            )
    return ACTION_RISK.get(action, RiskLevel.LOW)


# ============================================================
# Audit Entry Structure
# ============================================================


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one access attempt."""

    actor_id: str
    action: str
    resource_type: str
    resource_id: Optional[str]
    success: bool
    timestamp: datetime
    session_id: str
    risk_level: RiskLevel = RiskLevel.LOW
    patient_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for transport."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["risk_level"] = self.risk_level.value
        return data

    def compute_hash(self) -> str:
        """Compute SHA256 hash for integrity verification."""
        content = f"{self.session_id}{self.timestamp.isoformat()}{self.actor_id}{self.action}"
        return hashlib.sha256(content.encode()).hexdigest()


@dataclass
class AuditFilters:
    """Query filters. Unset fields match everything."""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    action: Optional[str] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None


@dataclass
class AuditPage:
    """One page of audit entries, newest first."""

    items: List[AuditEntry]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total > 0 else 1


def generate_session_id(actor_id: str, timestamp: Optional[datetime] = None) -> str:
    """
    Generate a session-correlation id.

    One-way hash of actor, millisecond timestamp and 16 random bytes.
    """
    moment = timestamp or utcnow()
    millis = int(moment.timestamp() * 1000)
    random_part = secrets.token_hex(16)
    return hashlib.sha256(f"{actor_id}_{millis}_{random_part}".encode()).hexdigest()


def _sanitize_for_audit(data: Any) -> Any:
    """Remove sensitive fields from data before logging."""
    sensitive_fields = {
        "password", "password_hash", "secret", "token", "api_key",
        "access_token", "encryption_key", "card_number", "cvv",
        "credit_card", "ssn", "private_key",
    }

    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in sensitive_fields else _sanitize_for_audit(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [_sanitize_for_audit(item) for item in data]
    elif isinstance(data, datetime):
        return data.isoformat()
    elif isinstance(data, Enum):
        return data.value
    else:
        return data


# ============================================================
# Persistence
# ============================================================


class AuditStore(Protocol):
    """Persistence collaborator for audit entries. Insert and find only."""

    async def insert(self, entry: AuditEntry) -> int:
        ...

    async def find(
        self,
        filters: AuditFilters,
        offset: int,
        limit: int,
    ) -> Tuple[List[AuditEntry], int]:
        ...


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round trip; naive values are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_entry(row: AuditLog) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        actor_id=row.user_id,
        action=row.action,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        patient_id=row.patient_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        session_id=row.session_id,
        timestamp=_as_utc(row.timestamp),
        success=row.success,
        details=dict(row.details or {}),
        risk_level=RiskLevel(row.risk_level),
    )


class SqlAuditStore:
    """
    Audit store backed by the audit_logs table.

    Each insert commits in its own short-lived session, so an entry
    survives a rollback of the request that produced it (denied
    requests included).
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def insert(self, entry: AuditEntry) -> int:
        """
        Insert and commit one entry.

        Raises:
            AuditWriteFailure: If the database rejects the insert
        """
        row = AuditLog(
            user_id=entry.actor_id,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            patient_id=entry.patient_id,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            session_id=entry.session_id,
            timestamp=_as_utc(entry.timestamp),
            success=entry.success,
            details=entry.details,
            risk_level=entry.risk_level.value,
        )
        try:
            async with self.session_maker() as session:
                session.add(row)
                await session.flush()
                entry_id = row.id
                await session.commit()
        except SQLAlchemyError as e:
            raise AuditWriteFailure(
                f"Failed to store audit entry: {e}",
                actor_id=entry.actor_id,
            ) from e
        return entry_id

    async def find(
        self,
        filters: AuditFilters,
        offset: int,
        limit: int,
    ) -> Tuple[List[AuditEntry], int]:
        """Find entries matching all filters, newest first."""
        query = select(AuditLog)

        conditions = []
        if filters.start_time is not None:
            conditions.append(AuditLog.timestamp >= _as_utc(filters.start_time))
        if filters.end_time is not None:
            conditions.append(AuditLog.timestamp <= _as_utc(filters.end_time))
        if filters.action:
            conditions.append(AuditLog.action == filters.action)
        if filters.actor_id:
            conditions.append(AuditLog.user_id == filters.actor_id)
        if filters.resource_type:
            conditions.append(AuditLog.resource_type == filters.resource_type)
        if conditions:
            query = query.where(and_(*conditions))

        count_query = select(func.count()).select_from(query.subquery())
        query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        query = query.limit(limit).offset(offset)

        async with self.session_maker() as session:
            total = await session.scalar(count_query) or 0
            result = await session.execute(query)
            return [_row_to_entry(row) for row in result.scalars().all()], total


# ============================================================
# Audit Logger
# ============================================================


class AuditLogger:
    """
    Central audit logging service.

    All audit entries flow through this class. The store and clock are
    injected; nothing here is process-global.
    """

    def __init__(
        self,
        store: AuditStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.clock = clock

    async def record(
        self,
        actor_id: str,
        action: Union[AuditAction, str],
        resource_type: str,
        resource_id: Optional[str] = None,
        success: bool = True,
        patient_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        risk_level: Optional[Union[RiskLevel, str]] = None,
    ) -> Optional[AuditEntry]:
        """
        Append one audit entry.

        Returns:
            The stored entry, or None if the write failed. Never raises
            for storage errors.
        """
        action_name = action.value if isinstance(action, Enum) else str(action)
        resource_name = resource_type.value if isinstance(resource_type, Enum) else str(resource_type)

        if action_name in DETAILED_ACTIONS and not details:
            logger.warning("Audit entry %s recorded without details", action_name)

        timestamp = self.clock()
        entry = AuditEntry(
            actor_id=str(actor_id),
            action=action_name,
            resource_type=resource_name,
            resource_id=str(resource_id) if resource_id is not None else None,
            patient_id=str(patient_id) if patient_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=timestamp,
            session_id=generate_session_id(str(actor_id), timestamp),
            success=success,
            details=_sanitize_for_audit(details or {}),
            risk_level=get_action_risk(action_name, risk_level),
        )

        logger.info(
            "AUDIT",
            extra={
                "audit_event": entry.to_dict(),
                "event_hash": entry.compute_hash(),
            },
        )

        try:
            entry_id = await self.store.insert(entry)
        except Exception:
            logger.exception(
                "Audit write failed for actor=%s action=%s resource=%s/%s",
                entry.actor_id,
                entry.action,
                entry.resource_type,
                entry.resource_id,
            )
            return None

        return replace(entry, id=entry_id)

    async def query(
        self,
        filters: Optional[AuditFilters] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AuditPage:
        """Query audit entries with filters and pagination."""
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        offset = (page - 1) * page_size
        items, total = await self.store.find(filters or AuditFilters(), offset, page_size)
        return AuditPage(items=items, total=total, page=page, page_size=page_size)

    async def export(
        self,
        start_time: datetime,
        end_time: datetime,
        limit: int = 10000,
        include_hash: bool = True,
        anonymize: bool = False,
    ) -> str:
        """
        Export audit entries for compliance as JSON.

        With anonymize=True, patient ids and client addresses are masked
        before the integrity hash is computed.
        """
        result = await self.query(
            AuditFilters(start_time=start_time, end_time=end_time),
            page=1,
            page_size=limit,
        )

        events = [e.to_dict() for e in result.items]
        if anonymize:
            events = [anonymize_record(e, EXPORT_MASKED_FIELDS) for e in events]

        export_data = {
            "export_timestamp": self.clock().isoformat(),
            "period_start": start_time.isoformat(),
            "period_end": end_time.isoformat(),
            "event_count": len(events),
            "anonymized": anonymize,
            "events": events,
        }
        if include_hash:
            content = json.dumps(export_data, sort_keys=True, default=str)
            export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()

        return json.dumps(export_data, indent=2, default=str)
