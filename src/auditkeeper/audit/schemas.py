"""Audit event types and data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AuditEventType(str, Enum):
    """Categories of auditable operations."""

    # Authentication
    AUTH_LOGIN = "AUTH_LOGIN"
    AUTH_LOGOUT = "AUTH_LOGOUT"
    AUTH_LOGIN_FAILED = "AUTH_LOGIN_FAILED"
    AUTH_PASSWORD_CHANGE = "AUTH_PASSWORD_CHANGE"
    AUTH_TOKEN_REFRESH = "AUTH_TOKEN_REFRESH"
    # User management
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    USER_ROLE_CHANGE = "USER_ROLE_CHANGE"
    USER_PERMISSION_CHANGE = "USER_PERMISSION_CHANGE"
    # Task management
    TASK_CREATE = "TASK_CREATE"
    TASK_UPDATE = "TASK_UPDATE"
    TASK_DELETE = "TASK_DELETE"
    TASK_STATUS_CHANGE = "TASK_STATUS_CHANGE"
    TASK_ASSIGN = "TASK_ASSIGN"
    # Data operations
    DATA_EXPORT = "DATA_EXPORT"
    DATA_IMPORT = "DATA_IMPORT"
    DATA_BACKUP = "DATA_BACKUP"
    DATA_RESTORE = "DATA_RESTORE"
    # Settings / API keys
    SETTINGS_CHANGE = "SETTINGS_CHANGE"
    API_KEY_CREATE = "API_KEY_CREATE"
    API_KEY_REVOKE = "API_KEY_REVOKE"
    # Security
    SECURITY_ALERT = "SECURITY_ALERT"


class AuditSeverity(str, Enum):
    """Severity derived from the event type."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Write-side models
# ---------------------------------------------------------------------------


class AuditEventInput(BaseModel):
    """Caller-supplied part of an audit entry.

    Timestamp and severity are never accepted from callers; the service
    assigns both when the entry is enqueued.
    """

    event_type: AuditEventType
    action: str
    success: bool = True
    user_id: str | None = None
    user_email: str | None = None
    user_role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    session_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] | None = None
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None
    error_message: str | None = None
    metadata: dict[str, Any] | None = None


class AuditEntry(AuditEventInput):
    """A single immutable audit record, as buffered and persisted."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: f"aud_{uuid.uuid4().hex}")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="UTC instant the entry was accepted into the write queue.",
    )
    severity: AuditSeverity

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AuditContext(BaseModel):
    """Optional request context passed to the typed ``log_*`` helpers."""

    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    session_id: str | None = None
    error_message: str | None = None
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Read-side models
# ---------------------------------------------------------------------------


class AuditCriteria(BaseModel):
    """Filter set understood by every sink. ``None`` means unconstrained."""

    user_id: str | None = None
    event_type: AuditEventType | None = None
    severity: AuditSeverity | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    success: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=timezone.utc)

    def matches(self, entry: AuditEntry) -> bool:
        """Return ``True`` when *entry* satisfies every present filter."""
        if self.user_id is not None and entry.user_id != self.user_id:
            return False
        if self.event_type is not None and entry.event_type != self.event_type:
            return False
        if self.severity is not None and entry.severity != self.severity:
            return False
        if self.resource_type is not None and entry.resource_type != self.resource_type:
            return False
        if self.resource_id is not None and entry.resource_id != self.resource_id:
            return False
        if self.success is not None and entry.success != self.success:
            return False
        if self.start_date is not None and entry.timestamp < self.start_date:
            return False
        if self.end_date is not None and entry.timestamp > self.end_date:
            return False
        return True


class AuditQuery(AuditCriteria):
    """Filters plus pagination for :meth:`AuditQueryService.query`.

    ``page`` below 1 falls back to 1 and a missing or non-positive ``limit``
    falls back to the default page size; the upper clamp is applied by the
    query service so it can honour the configured maximum.
    """

    page: int = 1
    limit: int | None = None

    @field_validator("page", mode="before")
    @classmethod
    def _default_page(cls, value: Any) -> Any:
        if value is None:
            return 1
        return value if int(value) >= 1 else 1

    @field_validator("limit")
    @classmethod
    def _positive_limit(cls, value: int | None) -> int | None:
        if value is None or value < 1:
            return None
        return value

    def criteria(self) -> AuditCriteria:
        """Strip pagination and return the bare filter set."""
        return AuditCriteria.model_validate(
            self.model_dump(exclude={"page", "limit"})
        )


class AuditPage(BaseModel):
    """One page of query results, newest first."""

    entries: list[AuditEntry] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50
    total_pages: int = 0


class AuditStatistics(BaseModel):
    """Aggregate counts over a trailing window."""

    days: int
    since: datetime
    total_events: int = 0
    by_event_type: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    failed_operations: int = 0
    security_alerts: int = 0
