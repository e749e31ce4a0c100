"""Database module."""

from medimind.api.db.session import get_db, init_db, close_db
from medimind.api.db.models import Base, User, AuditLog, PatientConsent, SecurityIncident

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "Base",
    "User",
    "AuditLog",
    "PatientConsent",
    "SecurityIncident",
]
