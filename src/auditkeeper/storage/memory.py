"""In-process audit sink.

Suitable for tests and single-process development runs; contents are lost
when the process exits.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from collections.abc import Sequence
from datetime import datetime
from datetime import timezone

from auditkeeper.audit.schemas import AuditCriteria
from auditkeeper.audit.schemas import AuditEntry
from auditkeeper.errors import SinkClosedError
from auditkeeper.storage.base import AuditSink
from auditkeeper.storage.schema import DEFAULT_RETENTION_DAYS
from auditkeeper.storage.schema import GROUPABLE_FIELDS
from auditkeeper.storage.schema import encode_index_value
from auditkeeper.storage.schema import retention_cutoff


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAuditSink(AuditSink):
    """Dict-backed sink keyed by entry id; re-inserting an id overwrites it."""

    def __init__(
        self,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._retention_days = retention_days
        self._clock = clock
        self._entries: dict[str, AuditEntry] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def retention_days(self) -> int:
        return self._retention_days

    # -- write --

    async def insert_many(self, entries: Sequence[AuditEntry]) -> None:
        self._ensure_open()
        async with self._lock:
            for entry in entries:
                self._entries[entry.id] = entry
            self._purge_locked()

    # -- read --

    async def find(
        self,
        criteria: AuditCriteria,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> list[AuditEntry]:
        matched = await self._matching(criteria)
        matched.sort(key=lambda e: e.timestamp, reverse=True)
        return matched[skip : skip + limit]

    async def count(self, criteria: AuditCriteria) -> int:
        return len(await self._matching(criteria))

    async def count_by(self, field: str, criteria: AuditCriteria) -> dict[str, int]:
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group audit entries by {field!r}")
        counts: dict[str, int] = {}
        for entry in await self._matching(criteria):
            key = encode_index_value(getattr(entry, field))
            counts[key] = counts.get(key, 0) + 1
        return counts

    # -- retention / lifecycle --

    async def purge_expired(self) -> int:
        self._ensure_open()
        async with self._lock:
            return self._purge_locked()

    async def close(self) -> None:
        self._closed = True

    def __len__(self) -> int:
        return len(self._entries)

    # -- internal --

    async def _matching(self, criteria: AuditCriteria) -> list[AuditEntry]:
        self._ensure_open()
        cutoff = retention_cutoff(self._clock(), self._retention_days)
        async with self._lock:
            return [
                entry
                for entry in self._entries.values()
                if entry.timestamp >= cutoff and criteria.matches(entry)
            ]

    def _purge_locked(self) -> int:
        cutoff = retention_cutoff(self._clock(), self._retention_days)
        expired = [k for k, e in self._entries.items() if e.timestamp < cutoff]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SinkClosedError("In-memory audit sink is closed")
