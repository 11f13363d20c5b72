"""Synchronous side-channel for CRITICAL audit entries.

Alerts are emitted when an entry is accepted into the write queue, before
and independently of any flush, so they remain visible during a full
storage outage.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auditkeeper.audit.schemas import AuditEntry

alert_logger = logging.getLogger("auditkeeper.alerts")


class AlertChannel(Protocol):
    """Callable notified synchronously for every CRITICAL entry."""

    def __call__(self, entry: AuditEntry) -> None: ...


def log_critical_alert(entry: AuditEntry) -> None:
    """Default channel: a WARNING record on the ``auditkeeper.alerts`` logger."""
    alert_logger.warning(
        "AUDIT CRITICAL event_type=%s user_id=%s action=%s resource_id=%s "
        "ip_address=%s entry_id=%s",
        entry.event_type.value,
        entry.user_id,
        entry.action,
        entry.resource_id,
        entry.ip_address,
        entry.id,
    )
