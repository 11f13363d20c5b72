"""Bounded in-memory FIFO of audit entries awaiting persistence."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence

from auditkeeper.audit.schemas import AuditEntry

logger = logging.getLogger(__name__)


class WriteQueue:
    """Ordered buffer shared by log callers and the flusher.

    Every mutation (append, drain, requeue) runs under one ``asyncio.Lock``
    so concurrent callers never interleave with a drain or a requeue.

    Appends always succeed.  The ``max_size`` cap is enforced only when a
    failed batch is put back: the queue is never grown past the cap by a
    requeue, and the oldest entries of the batch that do not fit are dropped.
    """

    def __init__(self, *, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._entries: deque[AuditEntry] = deque()
        self._lock = asyncio.Lock()
        self.dropped_total = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    async def append(self, entry: AuditEntry) -> int:
        """Add *entry* at the back and return the new queue length."""
        async with self._lock:
            self._entries.append(entry)
            return len(self._entries)

    async def drain(self, limit: int) -> list[AuditEntry]:
        """Remove and return up to *limit* entries from the front."""
        async with self._lock:
            count = min(limit, len(self._entries))
            return [self._entries.popleft() for _ in range(count)]

    async def requeue(self, batch: Sequence[AuditEntry]) -> int:
        """Put *batch* back at the front, ahead of newer entries.

        Returns the number of entries dropped to respect ``max_size``.
        """
        if not batch:
            return 0
        async with self._lock:
            room = max(self._max_size - len(self._entries), 0)
            dropped = max(len(batch) - room, 0)
            keep = batch[dropped:]
            self._entries.extendleft(reversed(keep))
            self.dropped_total += dropped
            if dropped:
                logger.warning(
                    "Audit queue at capacity: dropped %d of %d requeued entries "
                    "(queue=%d, max_size=%d)",
                    dropped,
                    len(batch),
                    len(self._entries),
                    self._max_size,
                )
            return dropped

    def snapshot(self) -> list[AuditEntry]:
        """Return the pending entries in flush order without removing them."""
        return list(self._entries)
