"""Severity classification and state redaction.

Both helpers are pure: no stored state, no I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from auditkeeper.audit.schemas import AuditEventType
from auditkeeper.audit.schemas import AuditSeverity

_INFO = AuditSeverity.INFO
_WARNING = AuditSeverity.WARNING
_CRITICAL = AuditSeverity.CRITICAL

SEVERITY_BY_EVENT_TYPE: Mapping[AuditEventType, AuditSeverity] = {
    AuditEventType.AUTH_LOGIN: _INFO,
    AuditEventType.AUTH_LOGOUT: _INFO,
    AuditEventType.AUTH_LOGIN_FAILED: _WARNING,
    AuditEventType.AUTH_PASSWORD_CHANGE: _WARNING,
    AuditEventType.AUTH_TOKEN_REFRESH: _INFO,
    AuditEventType.USER_CREATE: _INFO,
    AuditEventType.USER_UPDATE: _INFO,
    AuditEventType.USER_DELETE: _WARNING,
    AuditEventType.USER_ROLE_CHANGE: _WARNING,
    AuditEventType.USER_PERMISSION_CHANGE: _WARNING,
    AuditEventType.TASK_CREATE: _INFO,
    AuditEventType.TASK_UPDATE: _INFO,
    AuditEventType.TASK_DELETE: _WARNING,
    AuditEventType.TASK_STATUS_CHANGE: _INFO,
    AuditEventType.TASK_ASSIGN: _INFO,
    AuditEventType.DATA_EXPORT: _WARNING,
    AuditEventType.DATA_IMPORT: _WARNING,
    AuditEventType.DATA_BACKUP: _INFO,
    AuditEventType.DATA_RESTORE: _CRITICAL,
    AuditEventType.SETTINGS_CHANGE: _WARNING,
    AuditEventType.API_KEY_CREATE: _WARNING,
    AuditEventType.API_KEY_REVOKE: _WARNING,
    AuditEventType.SECURITY_ALERT: _CRITICAL,
}

SENSITIVE_STATE_KEYS = ("password", "token", "secret", "apiKey", "refreshToken")
REDACTED = "[REDACTED]"


def classify_severity(event_type: AuditEventType | str) -> AuditSeverity:
    """Return the severity for *event_type*; unknown identifiers map to INFO."""
    try:
        return SEVERITY_BY_EVENT_TYPE.get(AuditEventType(event_type), _INFO)
    except ValueError:
        return _INFO


def sanitize_state(state: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Return a copy of *state* with sensitive top-level keys redacted.

    Only exact top-level key matches are replaced; nested mappings are
    passed through untouched. ``None`` stays ``None``.
    """
    if state is None:
        return None

    sanitized = dict(state)
    for key in SENSITIVE_STATE_KEYS:
        if key in sanitized:
            sanitized[key] = REDACTED
    return sanitized
