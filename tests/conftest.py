"""
MediMind Test Configuration
===========================

Pytest fixtures for the access and audit core unit tests.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from medimind.api.access.audit import AuditEntry, AuditFilters, AuditLogger


class InMemoryAuditStore:
    """Audit store keeping entries in a list, newest appended last."""

    def __init__(self):
        self.entries: List[AuditEntry] = []

    async def insert(self, entry: AuditEntry) -> int:
        self.entries.append(entry)
        return len(self.entries)

    async def find(
        self,
        filters: AuditFilters,
        offset: int,
        limit: int,
    ) -> Tuple[List[AuditEntry], int]:
        matched = [
            e for e in self.entries
            if (filters.start_time is None or e.timestamp >= filters.start_time)
            and (filters.end_time is None or e.timestamp <= filters.end_time)
            and (filters.action is None or e.action == filters.action)
            and (filters.actor_id is None or e.actor_id == filters.actor_id)
            and (filters.resource_type is None or e.resource_type == filters.resource_type)
        ]
        matched.sort(key=lambda e: e.timestamp, reverse=True)
        return matched[offset:offset + limit], len(matched)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def fixed_now():
    """Reference instant for time-dependent tests."""
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now):
    return FakeClock(fixed_now)


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def audit_logger(audit_store, clock):
    """Audit logger over an in-memory store and a fake clock."""
    return AuditLogger(audit_store, clock=clock)
