"""Storage contract for persisted audit entries — indexes and retention.

Sinks are free to realise the contract however their engine allows; the
field lists below are what every query and statistics path relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta

from auditkeeper.audit.schemas import AuditCriteria
from auditkeeper.audit.schemas import AuditEntry
from auditkeeper.audit.schemas import AuditEventType
from auditkeeper.audit.schemas import AuditSeverity

DEFAULT_RETENTION_DAYS = 730


@dataclass(frozen=True)
class IndexSpec:
    """A compound index; every index is implicitly ordered by timestamp desc."""

    name: str
    fields: tuple[str, ...]


AUDIT_INDEXES: tuple[IndexSpec, ...] = (
    IndexSpec("audit_user_timeline", ("user_id",)),
    IndexSpec("audit_event_timeline", ("event_type",)),
    IndexSpec("audit_resource_timeline", ("resource_type", "resource_id")),
    IndexSpec("audit_outcome_timeline", ("success", "severity")),
)

# Every field any index covers, in declaration order
INDEXED_FIELDS: tuple[str, ...] = tuple(
    dict.fromkeys(field for spec in AUDIT_INDEXES for field in spec.fields)
)

# Fields ``count_by`` can group on, with their closed value sets
GROUPABLE_FIELDS: dict[str, tuple[str, ...]] = {
    "event_type": tuple(member.value for member in AuditEventType),
    "severity": tuple(member.value for member in AuditSeverity),
}


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    """Oldest timestamp still inside the retention horizon."""
    return now - timedelta(days=retention_days)


def expires_at(entry: AuditEntry, retention_days: int) -> datetime:
    """Instant at which *entry* leaves the store."""
    return entry.timestamp + timedelta(days=retention_days)


def encode_index_value(value: object) -> str:
    """Normalise a field value into the string used as an index key part."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (AuditEventType, AuditSeverity)):
        return value.value
    return str(value)


def entry_index_values(entry: AuditEntry) -> dict[str, str]:
    """Indexed field values present on *entry*."""
    values: dict[str, str] = {}
    for field in INDEXED_FIELDS:
        value = getattr(entry, field)
        if value is not None:
            values[field] = encode_index_value(value)
    return values


def criteria_index_values(criteria: AuditCriteria) -> dict[str, str]:
    """Indexed field constraints present on *criteria*."""
    values: dict[str, str] = {}
    for field in INDEXED_FIELDS:
        value = getattr(criteria, field)
        if value is not None:
            values[field] = encode_index_value(value)
    return values
