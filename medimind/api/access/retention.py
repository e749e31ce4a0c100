"""
MediMind - Data Retention Policy

Maps a record's type and age to a retain / archive / delete decision.
Executing archival or deletion is the job of an external lifecycle job.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from medimind.api.access.rbac import ResourceType


class RetentionAction(str, Enum):
    RETAIN = "retain"
    ARCHIVE = "archive"
    DELETE = "delete"


# Retention periods in days
RETENTION_PERIODS: Dict[str, int] = {
    ResourceType.MEDICAL_RECORDS.value: 7 * 365,
    ResourceType.APPOINTMENTS.value: 3 * 365,
    ResourceType.AUDIT_LOGS.value: 6 * 365,
    ResourceType.PRESCRIPTIONS.value: 5 * 365,
    ResourceType.LAB_RESULTS.value: 7 * 365,
    ResourceType.IMAGING.value: 10 * 365,
    ResourceType.FINANCIAL.value: 7 * 365,
}

DEFAULT_RETENTION_DAYS = 365

# Records enter the archive window during their final year
ARCHIVE_WINDOW_DAYS = 365


@dataclass(frozen=True)
class RetentionDecision:
    should_retain: bool
    days_remaining: int
    action: RetentionAction

    def to_dict(self) -> dict:
        return {
            "should_retain": self.should_retain,
            "days_remaining": self.days_remaining,
            "action": self.action.value,
        }


def get_retention_days(resource_type: Union[ResourceType, str]) -> int:
    """Retention period for a record type, 365 days if unlisted."""
    key = resource_type.value if isinstance(resource_type, Enum) else resource_type
    return RETENTION_PERIODS.get(key, DEFAULT_RETENTION_DAYS)


def classify_retention(
    resource_type: Union[ResourceType, str],
    created_at: datetime,
    now: Optional[datetime] = None,
) -> RetentionDecision:
    """Decide what to do with a record of the given type and creation date."""
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    # timedelta.days floors, matching whole elapsed days
    days_since_creation = (now - created_at).days
    days_remaining = get_retention_days(resource_type) - days_since_creation

    if days_remaining <= 0:
        return RetentionDecision(False, days_remaining, RetentionAction.DELETE)
    if days_remaining <= ARCHIVE_WINDOW_DAYS:
        return RetentionDecision(True, days_remaining, RetentionAction.ARCHIVE)
    return RetentionDecision(True, days_remaining, RetentionAction.RETAIN)
