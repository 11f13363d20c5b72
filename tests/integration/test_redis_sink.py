"""Integration tests for the Redis audit sink against a real Redis."""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest
from redis.asyncio import Redis

from auditkeeper.audit import AuditCriteria
from auditkeeper.audit import AuditEntry
from auditkeeper.audit import AuditEventType
from auditkeeper.audit import AuditSeverity
from auditkeeper.audit import classify_severity
from auditkeeper.config import RedisSinkConfig
from auditkeeper.errors import SinkClosedError
from auditkeeper.storage import RedisAuditSink


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture()
def store(redis_client, clock) -> RedisAuditSink:
    return RedisAuditSink(redis_client, retention_days=10, clock=clock)


def _entry(
    clock: _Clock,
    event_type: AuditEventType = AuditEventType.TASK_UPDATE,
    *,
    minutes_ago: float = 0,
    **kwargs,
) -> AuditEntry:
    return AuditEntry(
        event_type=event_type,
        severity=classify_severity(event_type),
        action=kwargs.pop("action", "seeded"),
        timestamp=clock.now - timedelta(minutes=minutes_ago),
        **kwargs,
    )


class TestWriteAndRead:
    async def test_roundtrip_preserves_fields(self, store, clock):
        entry = _entry(
            clock,
            AuditEventType.USER_UPDATE,
            user_id="admin-1",
            user_email="admin@example.com",
            resource_type="user",
            resource_id="user-7",
            previous_state={"role": "member"},
            new_state={"role": "admin"},
            details={"reason": "promotion"},
            metadata={"tenant": "acme"},
        )
        await store.insert_many([entry])

        found = await store.find(AuditCriteria())
        assert found == [entry]

    async def test_entry_key_carries_retention_expiry(self, store, clock, redis_client):
        entry = _entry(clock)
        await store.insert_many([entry])
        expire_at = await redis_client.expiretime(f"auditkeeper:entry:{entry.id}")
        assert expire_at == int((entry.timestamp + timedelta(days=10)).timestamp())

    async def test_newest_first_with_skip_and_limit(self, store, clock):
        await store.insert_many(
            [_entry(clock, minutes_ago=n, resource_id=str(n)) for n in range(6)]
        )
        page = await store.find(AuditCriteria(), skip=2, limit=3)
        assert [e.resource_id for e in page] == ["2", "3", "4"]
        assert await store.count(AuditCriteria()) == 6

    async def test_custom_key_prefix(self, redis_client, clock):
        store = RedisAuditSink(
            redis_client, config=RedisSinkConfig(key_prefix="tenant-a"), clock=clock
        )
        await store.insert_many([_entry(clock)])
        assert await redis_client.zcard("tenant-a:timeline") == 1
        assert await redis_client.exists("auditkeeper:timeline") == 0


class TestFilters:
    @pytest.fixture(autouse=True)
    async def _seed(self, store, clock):
        await store.insert_many(
            [
                _entry(clock, AuditEventType.AUTH_LOGIN, user_id="u1", minutes_ago=1),
                _entry(
                    clock,
                    AuditEventType.AUTH_LOGIN_FAILED,
                    user_id="u1",
                    success=False,
                    minutes_ago=2,
                ),
                _entry(
                    clock,
                    AuditEventType.TASK_DELETE,
                    user_id="u2",
                    resource_type="task",
                    resource_id="t-1",
                    minutes_ago=3,
                ),
                _entry(
                    clock,
                    AuditEventType.TASK_UPDATE,
                    user_id="u1",
                    resource_type="task",
                    resource_id="t-1",
                    minutes_ago=60,
                ),
            ]
        )

    async def test_single_field(self, store):
        assert await store.count(AuditCriteria(user_id="u1")) == 3
        assert await store.count(AuditCriteria(severity=AuditSeverity.WARNING)) == 2

    async def test_compound_filter_intersects(self, store):
        found = await store.find(
            AuditCriteria(user_id="u1", resource_type="task", resource_id="t-1")
        )
        assert [e.event_type for e in found] == [AuditEventType.TASK_UPDATE]

    async def test_success_flag(self, store):
        found = await store.find(AuditCriteria(user_id="u1", success=False))
        assert [e.event_type for e in found] == [AuditEventType.AUTH_LOGIN_FAILED]

    async def test_scratch_keys_are_removed(self, store, redis_client):
        await store.count(AuditCriteria(user_id="u1", success=True))
        assert [key async for key in redis_client.scan_iter("auditkeeper:tmp:*")] == []

    async def test_date_range(self, store, clock):
        criteria = AuditCriteria(
            start_date=clock.now - timedelta(minutes=3),
            end_date=clock.now - timedelta(minutes=2),
        )
        assert await store.count(criteria) == 2

    async def test_inverted_range_is_empty(self, store, clock):
        criteria = AuditCriteria(
            start_date=clock.now,
            end_date=clock.now - timedelta(days=1),
        )
        assert await store.find(criteria) == []
        assert await store.count(criteria) == 0

    async def test_count_by(self, store):
        assert await store.count_by("event_type", AuditCriteria(user_id="u1")) == {
            "AUTH_LOGIN": 1,
            "AUTH_LOGIN_FAILED": 1,
            "TASK_UPDATE": 1,
        }
        assert await store.count_by("severity", AuditCriteria()) == {
            "INFO": 2,
            "WARNING": 2,
        }

    async def test_count_by_rejects_unindexed_field(self, store):
        with pytest.raises(ValueError):
            await store.count_by("ip_address", AuditCriteria())


class TestRetention:
    async def test_reads_ignore_entries_past_horizon(self, store, clock):
        await store.insert_many([_entry(clock), _entry(clock, minutes_ago=60 * 24 * 5)])
        clock.now += timedelta(days=6)
        assert await store.count(AuditCriteria()) == 1
        assert len(await store.find(AuditCriteria())) == 1

    async def test_purge_trims_indexes(self, store, clock, redis_client):
        await store.insert_many(
            [_entry(clock, user_id="u1"), _entry(clock, user_id="u1", minutes_ago=60 * 24 * 5)]
        )
        clock.now += timedelta(days=6)
        assert await store.purge_expired() == 1
        assert await redis_client.zcard("auditkeeper:timeline") == 1
        assert await redis_client.zcard("auditkeeper:idx:user_id:u1") == 1

    async def test_already_expired_entries_are_not_written(self, store, clock, redis_client):
        await store.insert_many([_entry(clock, minutes_ago=60 * 24 * 11)])
        assert await redis_client.zcard("auditkeeper:timeline") == 0

    async def test_stale_ids_are_pruned_on_read(self, store, clock, redis_client):
        entry = _entry(clock)
        await store.insert_many([entry])
        await redis_client.delete(f"auditkeeper:entry:{entry.id}")

        assert await store.find(AuditCriteria()) == []
        assert await redis_client.zcard("auditkeeper:timeline") == 0


    async def test_stale_ids_are_pruned_from_filter_indexes(self, store, clock, redis_client):
        kept = _entry(clock, user_id="u1", success=False)
        gone = _entry(clock, user_id="u1", success=False, minutes_ago=1)
        await store.insert_many([kept, gone])
        await redis_client.delete(f"auditkeeper:entry:{gone.id}")

        criteria = AuditCriteria(user_id="u1", success=False)
        assert await store.find(criteria) == [kept]
        assert await store.count(criteria) == 1
        assert await redis_client.zscore("auditkeeper:idx:user_id:u1", gone.id) is None
        assert await redis_client.zscore("auditkeeper:idx:success:0", gone.id) is None

class TestClose:
    async def test_close_releases_client_and_blocks_use(self, redis_container, clock):
        store = RedisAuditSink(Redis.from_url(redis_container), clock=clock)
        await store.close()
        await store.close()
        with pytest.raises(SinkClosedError):
            await store.count(AuditCriteria())
