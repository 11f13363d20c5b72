"""Audit service — the single logical writer for audit entries in a process.

Construct one :class:`AuditService` at startup and hand it to every caller.
Log calls classify, sanitize and enqueue synchronously; persistence happens
in batches, either when the queue reaches the batch size (the caller awaits
that flush) or on the periodic timer.  Write-path failures are absorbed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from datetime import timezone
from typing import Any

from auditkeeper.audit.alerts import AlertChannel
from auditkeeper.audit.alerts import log_critical_alert
from auditkeeper.audit.classification import classify_severity
from auditkeeper.audit.classification import sanitize_state
from auditkeeper.audit.query import AuditQueryService
from auditkeeper.audit.schemas import AuditContext
from auditkeeper.audit.schemas import AuditEntry
from auditkeeper.audit.schemas import AuditEventInput
from auditkeeper.audit.schemas import AuditEventType
from auditkeeper.audit.schemas import AuditPage
from auditkeeper.audit.schemas import AuditQuery
from auditkeeper.audit.schemas import AuditSeverity
from auditkeeper.audit.schemas import AuditStatistics
from auditkeeper.buffer import BatchFlusher
from auditkeeper.buffer import WriteQueue
from auditkeeper.config import AuditConfig
from auditkeeper.storage.base import AuditSink

logger = logging.getLogger(__name__)

_INPUT_FIELDS = frozenset(AuditEventInput.model_fields)
_NO_CONTEXT = AuditContext()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditService:
    """Buffered audit logging plus the query and statistics read paths."""

    def __init__(
        self,
        sink: AuditSink,
        *,
        config: AuditConfig | None = None,
        alert_channel: AlertChannel = log_critical_alert,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or AuditConfig()
        if sink.retention_days != self.config.retention_days:
            raise ValueError(
                f"Sink retention ({sink.retention_days} days) does not match "
                f"AuditConfig.retention_days ({self.config.retention_days} days)"
            )
        self.sink = sink
        self.queue = WriteQueue(max_size=self.config.max_queue_size)
        self.flusher = BatchFlusher(
            self.queue,
            sink,
            batch_size=self.config.batch_size,
            interval_seconds=self.config.flush_interval_seconds,
        )
        self._queries = AuditQueryService(sink, config=self.config, clock=clock)
        self._alert_channel = alert_channel
        self._clock = clock
        self._threshold_flushes: set[asyncio.Task[int]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic flush timer."""
        self.flusher.start()

    async def shutdown(self) -> None:
        """Stop the timer, then flush batch by batch until the queue is empty.

        The final pass stops at the first failed batch, which goes through the
        capped requeue; entries left behind stay in memory and are reported by
        :meth:`diagnostics`.
        """
        await self.flusher.stop()
        if self._threshold_flushes:
            await asyncio.gather(*list(self._threshold_flushes))
        while len(self.queue):
            if not await self.flusher.flush():
                break
        if len(self.queue):
            logger.warning(
                "Audit shutdown left %d entries unflushed", len(self.queue)
            )

    async def __aenter__(self) -> AuditService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def log(self, event: AuditEventInput) -> AuditEntry:
        """Accept *event* into the write queue and return the stored entry."""
        entry = AuditEntry.model_validate(
            {
                **event.model_dump(include=_INPUT_FIELDS),
                "timestamp": self._clock(),
                "severity": classify_severity(event.event_type),
            }
        )

        length = await self.queue.append(entry)
        if entry.severity is AuditSeverity.CRITICAL:
            self._emit_alert(entry)
        if length >= self.flusher.batch_size:
            await self._threshold_flush()
        return entry

    async def log_auth(
        self,
        event_type: AuditEventType,
        user_id: str | None,
        user_email: str,
        success: bool,
        context: AuditContext | None = None,
    ) -> AuditEntry:
        """Record an authentication event (login, logout, refresh, ...)."""
        ctx = context or _NO_CONTEXT
        event_type = AuditEventType(event_type)
        return await self.log(
            AuditEventInput(
                event_type=event_type,
                user_id=user_id,
                user_email=user_email,
                action=event_type.value.lower().replace("_", " "),
                success=success,
                error_message=ctx.error_message,
                **self._request_fields(ctx),
            )
        )

    async def log_user_change(
        self,
        event_type: AuditEventType,
        actor_id: str,
        target_user_id: str,
        action: str,
        context: AuditContext | None = None,
    ) -> AuditEntry:
        """Record a user, role or permission change; states are sanitized."""
        ctx = context or _NO_CONTEXT
        return await self.log(
            AuditEventInput(
                event_type=event_type,
                user_id=actor_id,
                resource_type="user",
                resource_id=target_user_id,
                action=action,
                previous_state=sanitize_state(ctx.previous_state),
                new_state=sanitize_state(ctx.new_state),
                success=True,
                **self._request_fields(ctx),
            )
        )

    async def log_task_operation(
        self,
        event_type: AuditEventType,
        user_id: str,
        task_id: str,
        action: str,
        context: AuditContext | None = None,
    ) -> AuditEntry:
        ctx = context or _NO_CONTEXT
        return await self.log(
            AuditEventInput(
                event_type=event_type,
                user_id=user_id,
                resource_type="task",
                resource_id=task_id,
                action=action,
                previous_state=ctx.previous_state,
                new_state=ctx.new_state,
                success=True,
                **self._request_fields(ctx),
            )
        )

    async def log_data_operation(
        self,
        event_type: AuditEventType,
        user_id: str,
        action: str,
        details: dict[str, Any],
        context: AuditContext | None = None,
    ) -> AuditEntry:
        """Record an export, import, backup or restore."""
        ctx = context or _NO_CONTEXT
        return await self.log(
            AuditEventInput(
                event_type=event_type,
                user_id=user_id,
                resource_type="data",
                action=action,
                details=details,
                success=True,
                **self._request_fields(ctx),
            )
        )

    async def log_security_alert(
        self,
        action: str,
        details: dict[str, Any],
        context: AuditContext | None = None,
    ) -> AuditEntry:
        """Record a security alert: always CRITICAL, always ``success=False``."""
        ctx = context or _NO_CONTEXT
        return await self.log(
            AuditEventInput(
                event_type=AuditEventType.SECURITY_ALERT,
                user_id=ctx.user_id,
                action=action,
                details=details,
                success=False,
                **self._request_fields(ctx),
            )
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def query(self, filters: AuditQuery | None = None) -> AuditPage:
        return await self._queries.query(filters)

    async def statistics(self, days: int | None = None) -> AuditStatistics:
        return await self._queries.statistics(days)

    def diagnostics(self) -> dict[str, Any]:
        """Snapshot of write-path state for operators and tests."""
        return {
            "queue_depth": len(self.queue),
            "max_queue_size": self.queue.max_size,
            "dropped_entries": self.queue.dropped_total,
            "flush_attempts": self.flusher.flush_attempts,
            "failed_flushes": self.flusher.failed_flushes,
            "flushed_entries": self.flusher.flushed_entries,
            "timer_running": self.flusher.running,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _request_fields(ctx: AuditContext) -> dict[str, str | None]:
        return {
            "ip_address": ctx.ip_address,
            "user_agent": ctx.user_agent,
            "request_id": ctx.request_id,
            "session_id": ctx.session_id,
        }

    async def _threshold_flush(self) -> None:
        # A cancelled caller must not cancel a batch the sink may already hold
        task = asyncio.ensure_future(self.flusher.flush())
        self._threshold_flushes.add(task)
        task.add_done_callback(self._threshold_flushes.discard)
        await asyncio.shield(task)

    def _emit_alert(self, entry: AuditEntry) -> None:
        try:
            self._alert_channel(entry)
        except Exception:
            logger.exception("Audit alert channel failed (entry_id=%s)", entry.id)
