"""Read paths over the audit sink: filtered pagination and window statistics.

Neither path touches the write queue.  Sink failures propagate to the
caller unchanged.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from time import perf_counter

from auditkeeper.audit.schemas import AuditCriteria
from auditkeeper.audit.schemas import AuditEventType
from auditkeeper.audit.schemas import AuditPage
from auditkeeper.audit.schemas import AuditQuery
from auditkeeper.audit.schemas import AuditStatistics
from auditkeeper.config import AuditConfig
from auditkeeper.observability import record_latency
from auditkeeper.storage.base import AuditSink


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditQueryService:
    """Query Service and Stats Aggregator over one :class:`AuditSink`."""

    def __init__(
        self,
        sink: AuditSink,
        *,
        config: AuditConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sink = sink
        self.config = config or AuditConfig()
        self._clock = clock

    def effective_limit(self, limit: int | None) -> int:
        """Apply the default page size and the upper clamp."""
        if limit is None or limit < 1:
            return self.config.default_page_size
        return min(limit, self.config.max_page_size)

    async def query(self, filters: AuditQuery | None = None) -> AuditPage:
        """Return one page of matching entries, newest first."""
        filters = filters or AuditQuery()
        criteria = filters.criteria()
        page = filters.page
        limit = self.effective_limit(filters.limit)

        start = perf_counter()
        ok = False
        try:
            entries, total = await asyncio.gather(
                self._sink.find(criteria, skip=(page - 1) * limit, limit=limit),
                self._sink.count(criteria),
            )
            ok = True
        finally:
            record_latency(
                operation="audit.query",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        return AuditPage(
            entries=entries,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def statistics(self, days: int | None = None) -> AuditStatistics:
        """Summarise the trailing *days* window.

        The five counts are independent reads issued concurrently.
        """
        if days is None:
            days = self.config.default_statistics_days
        if days < 0:
            raise ValueError("days must be >= 0")

        since = self._clock() - timedelta(days=days)
        window = AuditCriteria(start_date=since)

        start = perf_counter()
        ok = False
        try:
            total, by_type, by_severity, failed, alerts = await asyncio.gather(
                self._sink.count(window),
                self._sink.count_by("event_type", window),
                self._sink.count_by("severity", window),
                self._sink.count(window.model_copy(update={"success": False})),
                self._sink.count(
                    window.model_copy(
                        update={"event_type": AuditEventType.SECURITY_ALERT}
                    )
                ),
            )
            ok = True
        finally:
            record_latency(
                operation="audit.statistics",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        return AuditStatistics(
            days=days,
            since=since,
            total_events=total,
            by_event_type=by_type,
            by_severity=by_severity,
            failed_operations=failed,
            security_alerts=alerts,
        )
