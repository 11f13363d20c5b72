"""Storage domain — persistent audit sinks and their index/retention contract."""

from auditkeeper.storage.base import AuditSink
from auditkeeper.storage.memory import InMemoryAuditSink
from auditkeeper.storage.redis_store import RedisAuditSink
from auditkeeper.storage.schema import AUDIT_INDEXES
from auditkeeper.storage.schema import DEFAULT_RETENTION_DAYS

__all__ = [
    "AUDIT_INDEXES",
    "AuditSink",
    "DEFAULT_RETENTION_DAYS",
    "InMemoryAuditSink",
    "RedisAuditSink",
]
