"""Batch flusher: drains the write queue into the audit sink."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter

from auditkeeper.buffer.queue import WriteQueue
from auditkeeper.observability import ENTRIES_DROPPED
from auditkeeper.observability import ENTRIES_FLUSHED
from auditkeeper.observability import FLUSH_FAILURES
from auditkeeper.observability import increment_counter
from auditkeeper.observability import record_latency
from auditkeeper.storage.base import AuditSink

logger = logging.getLogger(__name__)


class BatchFlusher:
    """Moves bounded batches from a :class:`WriteQueue` to an :class:`AuditSink`.

    Flushes are serialized: at most one batch is in flight at any time.
    A failed batch goes back to the front of the queue, subject to the
    queue's cap.  ``flush()`` never raises for sink failures.

    The periodic timer is an asyncio task started with :meth:`start` and
    stopped with :meth:`stop`; stopping waits for an in-flight timer flush
    to finish rather than cancelling it.
    """

    def __init__(
        self,
        queue: WriteQueue,
        sink: AuditSink,
        *,
        batch_size: int = 100,
        interval_seconds: float = 5.0,
    ) -> None:
        self._queue = queue
        self._sink = sink
        self._batch_size = batch_size
        self._interval = interval_seconds
        self._flush_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

        self.flush_attempts = 0
        self.failed_flushes = 0
        self.flushed_entries = 0

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- flush --

    async def flush(self) -> int:
        """Persist one batch; return how many entries reached the sink."""
        async with self._flush_lock:
            batch = await self._queue.drain(self._batch_size)
            if not batch:
                return 0

            self.flush_attempts += 1
            start = perf_counter()
            ok = False
            try:
                await self._sink.insert_many(batch)
                ok = True
            except asyncio.CancelledError:
                await self._queue.requeue(batch)
                raise
            except Exception:
                self.failed_flushes += 1
                increment_counter(FLUSH_FAILURES)
                logger.exception("Failed to flush audit entries (count=%d)", len(batch))
                dropped = await self._queue.requeue(batch)
                increment_counter(ENTRIES_DROPPED, dropped)
                return 0
            finally:
                record_latency(
                    operation="audit.flush",
                    duration_ms=(perf_counter() - start) * 1000,
                    ok=ok,
                )

            self.flushed_entries += len(batch)
            increment_counter(ENTRIES_FLUSHED, len(batch))
            logger.debug("Flushed %d audit entries", len(batch))
            return len(batch)

    # -- periodic timer --

    def start(self) -> None:
        """Launch the periodic flush task on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._stop_event), name="auditkeeper-flush-timer"
        )

    async def stop(self) -> None:
        """Stop the timer; returns once no timer-driven flush can start."""
        task, event = self._task, self._stop_event
        if task is None or event is None:
            return
        event.set()
        try:
            await task
        finally:
            self._task = None
            self._stop_event = None

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.flush()
