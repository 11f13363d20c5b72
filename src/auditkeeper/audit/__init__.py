"""Audit domain — entry models, classification, logging service and read paths.

Exports are loaded lazily so that ``auditkeeper.storage`` can import the
entry models without pulling in the service (which itself depends on
storage).
"""

from __future__ import annotations

from importlib import import_module

__all__ = [
    "AlertChannel",
    "AuditContext",
    "AuditCriteria",
    "AuditEntry",
    "AuditEventInput",
    "AuditEventType",
    "AuditPage",
    "AuditQuery",
    "AuditQueryService",
    "AuditService",
    "AuditSeverity",
    "AuditStatistics",
    "classify_severity",
    "log_critical_alert",
    "sanitize_state",
]


_EXPORT_TO_MODULE = {
    "AlertChannel": "auditkeeper.audit.alerts",
    "log_critical_alert": "auditkeeper.audit.alerts",
    "classify_severity": "auditkeeper.audit.classification",
    "sanitize_state": "auditkeeper.audit.classification",
    "AuditQueryService": "auditkeeper.audit.query",
    "AuditContext": "auditkeeper.audit.schemas",
    "AuditCriteria": "auditkeeper.audit.schemas",
    "AuditEntry": "auditkeeper.audit.schemas",
    "AuditEventInput": "auditkeeper.audit.schemas",
    "AuditEventType": "auditkeeper.audit.schemas",
    "AuditPage": "auditkeeper.audit.schemas",
    "AuditQuery": "auditkeeper.audit.schemas",
    "AuditSeverity": "auditkeeper.audit.schemas",
    "AuditStatistics": "auditkeeper.audit.schemas",
    "AuditService": "auditkeeper.audit.service",
}


def __getattr__(name: str):
    module_name = _EXPORT_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_name)
    return getattr(module, name)
