"""Root conftest — suite markers and the session-scoped Redis container.

The container is only started when a test (in practice, the integration
suite) requests ``redis_container``.  Setting ``AUDITKEEPER_TEST_REDIS_URL``
(in the environment or a repository-root ``.env``) points the suite at an
existing Redis instead.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import time

import pytest
import redis as sync_redis
from dotenv import load_dotenv
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Load repository-root .env for test opt-ins (existing env vars stay authoritative).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Attach suite markers from test path.

    - `tests/unit/*` -> `unit`
    - `tests/integration/*` -> `integration`
    """
    root = Path(__file__).resolve().parents[1]
    for item in items:
        item_path = Path(str(item.fspath)).resolve()
        try:
            rel = item_path.relative_to(root)
        except ValueError:
            continue

        parts = rel.parts
        if len(parts) < 2 or parts[0] != "tests":
            continue
        if parts[1] == "unit":
            item.add_marker(pytest.mark.unit)
        elif parts[1] == "integration":
            item.add_marker(pytest.mark.integration)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


def _wait_for_redis(host: str, port: int) -> None:
    r = sync_redis.Redis(host=host, port=port)
    max_attempts = 30
    for attempt in range(max_attempts):
        try:
            r.ping()
            r.close()
            return
        except Exception as exc:
            if attempt == max_attempts - 1:
                r.close()
                raise
            logger.debug(
                "Redis not ready (attempt %d/%d): %s",
                attempt + 1,
                max_attempts,
                exc,
            )
            time.sleep(1)


@pytest.fixture(scope="session")
def redis_container():
    """Yield the URL of a Redis 7 instance for the whole session."""
    external = os.getenv("AUDITKEEPER_TEST_REDIS_URL")
    if external:
        yield external
        return

    from testcontainers.core.container import DockerContainer

    container = DockerContainer("redis:7-alpine").with_exposed_ports(6379)
    with container as c:
        host = c.get_container_host_ip()
        port = c.get_exposed_port(6379)
        _wait_for_redis(host, int(port))
        yield f"redis://{host}:{port}"


@pytest.fixture()
async def redis_client(redis_container):
    """Yield an async Redis client, flushing the database around each test."""
    client = Redis.from_url(redis_container)
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.aclose()
