"""Redis-backed audit sink.

Entries are stored as JSON strings keyed by ``auditkeeper:entry:{id}`` with
an absolute expiry at ``timestamp + retention``.  A sorted set
``auditkeeper:timeline`` orders every entry by timestamp (score = epoch
seconds), and one sorted set per indexed field value
(``auditkeeper:idx:{field}:{value}``) backs filtered reads.  Compound
filters intersect the per-field sets into a short-lived scratch key.
The set ``auditkeeper:indexes`` remembers every index key so retention
sweeps can trim them.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from collections.abc import Callable
from collections.abc import Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from datetime import timezone

from redis.asyncio import Redis  # type: ignore[import-untyped]

from auditkeeper.audit.schemas import AuditCriteria
from auditkeeper.audit.schemas import AuditEntry
from auditkeeper.config import RedisSinkConfig
from auditkeeper.errors import SinkClosedError
from auditkeeper.storage.base import AuditSink
from auditkeeper.storage.schema import DEFAULT_RETENTION_DAYS
from auditkeeper.storage.schema import GROUPABLE_FIELDS
from auditkeeper.storage.schema import criteria_index_values
from auditkeeper.storage.schema import entry_index_values
from auditkeeper.storage.schema import expires_at
from auditkeeper.storage.schema import retention_cutoff

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class RedisAuditSink(AuditSink):
    """Audit sink on top of ``redis.asyncio``.

    The sink owns *redis* and closes it in :meth:`close`.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        config: RedisSinkConfig | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._redis = redis
        self.config = config or RedisSinkConfig()
        self._retention_days = retention_days
        self._clock = clock
        self._closed = False

        prefix = self.config.key_prefix
        self._entry_key = f"{prefix}:entry"
        self._timeline_key = f"{prefix}:timeline"
        self._index_key = f"{prefix}:idx"
        self._index_registry_key = f"{prefix}:indexes"
        self._tmp_key = f"{prefix}:tmp"

    @classmethod
    def from_config(
        cls,
        config: RedisSinkConfig,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> RedisAuditSink:
        return cls(
            Redis.from_url(config.url),
            config=config,
            retention_days=retention_days,
        )

    @property
    def retention_days(self) -> int:
        return self._retention_days

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def insert_many(self, entries: Sequence[AuditEntry]) -> None:
        """Write the whole batch in one MULTI/EXEC transaction."""
        self._ensure_open()
        now = self._clock()
        cutoff_score = retention_cutoff(now, self._retention_days).timestamp()

        pipe = self._redis.pipeline(transaction=True)
        touched: set[str] = set()
        for entry in entries:
            expiry = expires_at(entry, self._retention_days)
            if expiry <= now:
                continue
            score = entry.timestamp.timestamp()
            pipe.set(
                f"{self._entry_key}:{entry.id}",
                entry.model_dump_json(),
                exat=int(expiry.timestamp()),
            )
            pipe.zadd(self._timeline_key, {entry.id: score})
            for field, value in entry_index_values(entry).items():
                key = self._field_key(field, value)
                pipe.zadd(key, {entry.id: score})
                touched.add(key)

        if touched:
            pipe.sadd(self._index_registry_key, *touched)
        for key in (self._timeline_key, *touched):
            pipe.zremrangebyscore(key, "-inf", f"({cutoff_score}")
        await pipe.execute()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def find(
        self,
        criteria: AuditCriteria,
        *,
        skip: int = 0,
        limit: int = 50,
    ) -> list[AuditEntry]:
        self._ensure_open()
        low, high = self._score_range(criteria)
        if low > high:
            return []

        index_keys = self._criteria_keys(criteria)
        async with self._candidates(index_keys) as key:
            raw_ids = await self._redis.zrevrangebyscore(
                key, high, low, start=skip, num=limit
            )
        if not raw_ids:
            return []

        ids = [_decode(raw) for raw in raw_ids]
        pipe = self._redis.pipeline()
        for entry_id in ids:
            pipe.get(f"{self._entry_key}:{entry_id}")
        raw_entries = await pipe.execute()

        stale_ids: list[str] = []
        results: list[AuditEntry] = []
        for entry_id, raw in zip(ids, raw_entries):
            if raw is None:
                stale_ids.append(entry_id)
            else:
                results.append(AuditEntry.model_validate_json(raw))

        if stale_ids:
            logger.debug("Pruning %d stale audit ids from indexes", len(stale_ids))
            pipe = self._redis.pipeline()
            for key in (self._timeline_key, *index_keys):
                pipe.zrem(key, *stale_ids)
            await pipe.execute()
        return results

    async def count(self, criteria: AuditCriteria) -> int:
        self._ensure_open()
        low, high = self._score_range(criteria)
        if low > high:
            return 0
        async with self._candidates(self._criteria_keys(criteria)) as key:
            return int(await self._redis.zcount(key, low, high))

    async def count_by(self, field: str, criteria: AuditCriteria) -> dict[str, int]:
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group audit entries by {field!r}")
        values = GROUPABLE_FIELDS[field]
        counts = await asyncio.gather(
            *(
                self.count(criteria.model_copy(update={field: value}))
                for value in values
            )
        )
        return {value: n for value, n in zip(values, counts) if n}

    # ------------------------------------------------------------------
    # Retention / lifecycle
    # ------------------------------------------------------------------

    async def purge_expired(self) -> int:
        """Trim index members past the horizon; entry keys expire natively."""
        self._ensure_open()
        cutoff_score = retention_cutoff(self._clock(), self._retention_days).timestamp()
        index_keys = [
            _decode(raw) for raw in await self._redis.smembers(self._index_registry_key)
        ]

        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(self._timeline_key, "-inf", f"({cutoff_score}")
        for key in index_keys:
            pipe.zremrangebyscore(key, "-inf", f"({cutoff_score}")
        removed = await pipe.execute()
        return int(removed[0])

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._redis.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _field_key(self, field: str, value: str) -> str:
        return f"{self._index_key}:{field}:{value}"

    def _score_range(self, criteria: AuditCriteria) -> tuple[float, float]:
        low = retention_cutoff(self._clock(), self._retention_days).timestamp()
        if criteria.start_date is not None:
            low = max(low, criteria.start_date.timestamp())
        high = float("inf")
        if criteria.end_date is not None:
            high = criteria.end_date.timestamp()
        return low, high

    def _criteria_keys(self, criteria: AuditCriteria) -> list[str]:
        return [
            self._field_key(field, value)
            for field, value in criteria_index_values(criteria).items()
        ]

    @asynccontextmanager
    async def _candidates(self, keys: list[str]) -> AsyncIterator[str]:
        """Yield the sorted-set key holding the intersection of *keys*."""
        if not keys:
            yield self._timeline_key
            return
        if len(keys) == 1:
            yield keys[0]
            return

        scratch = f"{self._tmp_key}:{uuid.uuid4().hex}"
        pipe = self._redis.pipeline(transaction=True)
        pipe.zinterstore(scratch, keys, aggregate="MIN")
        pipe.expire(scratch, self.config.temp_key_ttl_seconds)
        await pipe.execute()
        try:
            yield scratch
        finally:
            await self._redis.delete(scratch)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SinkClosedError("Redis audit sink is closed")
