"""Unit test fixtures — in-memory sinks, captured alerts, service factory and MCP client."""

from __future__ import annotations

from collections.abc import Sequence

import pytest
from fastmcp import Client

from auditkeeper.audit import AuditEntry
from auditkeeper.audit import AuditService
from auditkeeper.config import AuditConfig
from auditkeeper.observability import reset_metrics
from auditkeeper.storage import InMemoryAuditSink


class ScriptedSink(InMemoryAuditSink):
    """In-memory sink whose writes can be switched to fail on demand."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_writes = False
        self.fail_reads = False
        self.insert_calls: list[list[str]] = []

    async def insert_many(self, entries: Sequence[AuditEntry]) -> None:
        self.insert_calls.append([e.id for e in entries])
        if self.fail_writes:
            raise ConnectionError("audit sink unavailable")
        await super().insert_many(entries)

    async def count(self, criteria):
        if self.fail_reads:
            raise ConnectionError("audit sink unavailable")
        return await super().count(criteria)

    async def find(self, criteria, *, skip=0, limit=50):
        if self.fail_reads:
            raise ConnectionError("audit sink unavailable")
        return await super().find(criteria, skip=skip, limit=limit)


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def sink() -> ScriptedSink:
    return ScriptedSink()


@pytest.fixture()
def alerts() -> list[AuditEntry]:
    """Collects every entry passed to the alert side-channel."""
    return []


@pytest.fixture()
async def make_service(sink, alerts):
    """Factory building an ``AuditService`` on the scripted sink.

    Timers of services created here are stopped at teardown so no
    background task outlives its test.
    """
    created: list[AuditService] = []

    def _make(**config_overrides) -> AuditService:
        defaults = {"flush_interval_seconds": 60.0}
        defaults.update(config_overrides)
        service = AuditService(
            sink,
            config=AuditConfig(**defaults),
            alert_channel=alerts.append,
        )
        created.append(service)
        return service

    yield _make

    for service in created:
        await service.flusher.stop()


@pytest.fixture()
async def mcp_client(sink, alerts):
    """Yield a FastMCP Client wired to the AuditKeeper server on *sink*."""
    from auditkeeper.server import configure
    from auditkeeper.server import mcp
    from auditkeeper.server import shutdown

    await configure(
        sink=sink,
        audit_config=AuditConfig(flush_interval_seconds=60.0),
        alert_channel=alerts.append,
    )

    async with Client(mcp) as client:
        yield client

    await shutdown()
