"""
MediMind - Breach Detection

Fixed-threshold heuristic over access volume. Flags one actor touching
many resources in a short window. Not a statistical detector: no
baseline, no learning.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from medimind.api.access.audit import (
    AuditAction,
    AuditFilters,
    AuditLogger,
    RiskLevel,
)


logger = logging.getLogger(__name__)


BREACH_RESOURCE_TYPE = "security"
BREACH_RESOURCE_ID = "breach_detection"


@dataclass(frozen=True)
class BreachSignal:
    """Derived judgement for one access burst. Never persisted."""

    is_breach: bool
    risk_level: RiskLevel

    def to_dict(self) -> dict:
        return {"is_breach": self.is_breach, "risk_level": self.risk_level.value}


def evaluate_access_burst(resource_count: int, window_minutes: float) -> BreachSignal:
    """
    Classify an access burst.

    Thresholds:
        > 50 resources in < 5 minutes  -> high, breach
        > 20 resources in < 10 minutes -> medium
        > 10 resources in < 30 minutes -> low
        otherwise                      -> low
    """
    if resource_count > 50 and window_minutes < 5:
        return BreachSignal(is_breach=True, risk_level=RiskLevel.HIGH)
    if resource_count > 20 and window_minutes < 10:
        return BreachSignal(is_breach=False, risk_level=RiskLevel.MEDIUM)
    if resource_count > 10 and window_minutes < 30:
        return BreachSignal(is_breach=False, risk_level=RiskLevel.LOW)
    return BreachSignal(is_breach=False, risk_level=RiskLevel.LOW)


class BreachDetector:
    """Evaluates access bursts and records flagged breaches in the audit log."""

    def __init__(self, audit_logger: AuditLogger, scan_limit: int = 1000):
        self.audit_logger = audit_logger
        self.scan_limit = scan_limit

    async def evaluate(
        self,
        actor_id: str,
        resource_count: int,
        window_minutes: float,
    ) -> BreachSignal:
        """Classify a burst; a breach appends SECURITY_BREACH_DETECTED."""
        signal = evaluate_access_burst(resource_count, window_minutes)

        if signal.is_breach:
            details = (
                f"Unusual access pattern detected: {resource_count} resources "
                f"accessed in {window_minutes} minutes"
            )
            logger.warning("SECURITY ALERT - potential breach by %s: %s", actor_id, details)
            await self.audit_logger.record(
                actor_id=actor_id,
                action=AuditAction.SECURITY_BREACH_DETECTED,
                resource_type=BREACH_RESOURCE_TYPE,
                resource_id=BREACH_RESOURCE_ID,
                ip_address="system",
                user_agent="breach_detector",
                success=True,
                risk_level=RiskLevel.HIGH,
                details={
                    "user_id": actor_id,
                    "risk_level": signal.risk_level.value,
                    "resource_count": resource_count,
                    "window_minutes": window_minutes,
                    "details": details,
                },
            )

        return signal

    async def count_recent_resources(
        self,
        actor_id: str,
        window_minutes: float,
    ) -> int:
        """
        Count distinct resources an actor touched within the window.

        Breach entries are excluded so a flagged breach does not feed
        the next scan.
        """
        now = self.audit_logger.clock()
        page = await self.audit_logger.query(
            AuditFilters(
                actor_id=actor_id,
                start_time=now - timedelta(minutes=window_minutes),
                end_time=now,
            ),
            page=1,
            page_size=self.scan_limit,
        )
        if page.total > self.scan_limit:
            logger.warning(
                "Breach scan for %s truncated to %d of %d entries",
                actor_id,
                self.scan_limit,
                page.total,
            )

        resources = {
            (entry.resource_type, entry.resource_id)
            for entry in page.items
            if entry.action != AuditAction.SECURITY_BREACH_DETECTED.value
        }
        return len(resources)

    async def scan(
        self,
        actor_id: str,
        window_minutes: float,
    ) -> BreachSignal:
        """Count recent resources for an actor from the audit log and evaluate."""
        count = await self.count_recent_resources(actor_id, window_minutes)
        return await self.evaluate(actor_id, count, window_minutes)


async def evaluate_breach(
    audit_logger: AuditLogger,
    actor_id: str,
    resource_count: int,
    window_minutes: float,
    scan_limit: Optional[int] = None,
) -> BreachSignal:
    """Function form of BreachDetector.evaluate."""
    detector = BreachDetector(audit_logger, scan_limit or 1000)
    return await detector.evaluate(actor_id, resource_count, window_minutes)
