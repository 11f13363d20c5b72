"""Pydantic models for the MCP interface.

Tool results carry a ``status`` plus an optional ``error_code``/``message``
pair instead of raising for invalid arguments.  FastMCP v2 serializes
Pydantic models automatically.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field

from auditkeeper.audit.schemas import AuditPage
from auditkeeper.audit.schemas import AuditStatistics


class QueryAuditLogResult(BaseModel):
    """Output of the query_audit_log tool."""

    status: str = "ok"
    error_code: str | None = None
    message: str | None = None
    result: AuditPage | None = None


class AuditStatisticsResult(BaseModel):
    """Output of the get_audit_statistics tool."""

    status: str = "ok"
    error_code: str | None = None
    message: str | None = None
    statistics: AuditStatistics | None = None


class ReportSecurityAlertInput(BaseModel):
    """Input for the report_security_alert tool."""

    action: str = Field(
        min_length=1,
        description="What happened, in a short sentence.",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Alert-specific detail (rule name, counts, offending values).",
    )
    user_id: str | None = Field(
        default=None,
        description="User the alert concerns, if any.",
    )
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


class ReportSecurityAlertResult(BaseModel):
    """Output of the report_security_alert tool."""

    entry_id: str
    status: str = "accepted"
    error_code: str | None = None
    message: str | None = None
