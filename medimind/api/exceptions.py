"""
MediMind - Exception Hierarchy

Structured exception types for the access and audit core.

Exception Categories:
    - PolicyDenied: the access policy refused an action
    - AuditWriteFailure: an audit entry could not be persisted
    - ResourceNotFound: a referenced user or record does not exist
"""

from typing import Any, Dict, Optional


class MediMindError(Exception):
    """
    Base exception for all MediMind errors.

    Attributes:
        message: Human-readable error description
        code: Optional error code for programmatic handling
        details: Optional dict with additional context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class PolicyDenied(MediMindError):
    """The access policy did not permit the requested action."""

    def __init__(
        self,
        message: str,
        role: Optional[str] = None,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("code", "POLICY_DENIED")
        super().__init__(message, **kwargs)
        self.role = role
        self.resource_type = resource_type
        self.action = action


class AuditWriteFailure(MediMindError):
    """An audit entry could not be stored. Never surfaced to end users."""

    def __init__(self, message: str, actor_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", "AUDIT_WRITE_FAILURE")
        super().__init__(message, **kwargs)
        self.actor_id = actor_id


class ResourceNotFound(MediMindError):
    """A referenced resource does not exist."""

    def __init__(self, message: str, resource_type: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", "NOT_FOUND")
        super().__init__(message, **kwargs)
        self.resource_type = resource_type
