"""AuditKeeper — FastMCP v2 server exposing the audit read paths.

Process startup calls ``configure(...)`` once; it builds the single
``AuditService`` for the process and starts its flush timer.  In-process
callers obtain that instance through ``get_audit_service()`` and log
through it directly.  ``shutdown()`` drains the write queue and closes the
sink.
"""

from __future__ import annotations

import logging
from time import perf_counter

from fastmcp import FastMCP
from pydantic import ValidationError

from auditkeeper.audit.alerts import AlertChannel
from auditkeeper.audit.alerts import log_critical_alert
from auditkeeper.audit.schemas import AuditContext
from auditkeeper.audit.schemas import AuditQuery
from auditkeeper.audit.service import AuditService
from auditkeeper.config import AuditConfig
from auditkeeper.config import RedisSinkConfig
from auditkeeper.observability import record_latency
from auditkeeper.schemas import AuditStatisticsResult
from auditkeeper.schemas import QueryAuditLogResult
from auditkeeper.schemas import ReportSecurityAlertInput
from auditkeeper.schemas import ReportSecurityAlertResult
from auditkeeper.storage.base import AuditSink
from auditkeeper.storage.redis_store import RedisAuditSink

logger = logging.getLogger(__name__)

mcp = FastMCP("AuditKeeper")

# ---------------------------------------------------------------------------
# Service instance (set via configure())
# ---------------------------------------------------------------------------

_service: AuditService | None = None


async def configure(
    redis_url: str = "redis://localhost:6379",
    *,
    sink: AuditSink | None = None,
    audit_config: AuditConfig | None = None,
    redis_config: RedisSinkConfig | None = None,
    alert_channel: AlertChannel = log_critical_alert,
) -> AuditService:
    """Build and start the process-wide audit service.

    A supplied *sink* wins over *redis_url*/*redis_config*.  Reconfiguring
    shuts the previous service down first.
    """
    global _service
    if _service is not None:
        await shutdown()

    cfg = audit_config or AuditConfig()
    if sink is None:
        sink = RedisAuditSink.from_config(
            redis_config or RedisSinkConfig(url=redis_url),
            retention_days=cfg.retention_days,
        )

    service = AuditService(sink, config=cfg, alert_channel=alert_channel)
    await service.start()
    _service = service
    logger.info(
        "Audit service configured (sink=%s, batch_size=%d, interval=%.1fs)",
        type(sink).__name__,
        cfg.batch_size,
        cfg.flush_interval_seconds,
    )
    return service


async def shutdown() -> None:
    """Drain the write queue and release the sink."""
    global _service
    service = _service
    if service is None:
        return
    _service = None
    try:
        await service.shutdown()
    finally:
        await service.sink.close()


def get_audit_service() -> AuditService:
    """Return the configured audit service or raise."""
    if _service is None:
        raise RuntimeError("Audit service not configured. Call configure() first.")
    return _service


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = str(err.get("msg", "Invalid input"))
    return f"{loc}: {msg}" if loc else msg


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def query_audit_log(
    user_id: str | None = None,
    event_type: str | None = None,
    severity: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    success: bool | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> QueryAuditLogResult:
    """Search persisted audit entries, newest first.

    Args:
        user_id: Only entries performed by this user.
        event_type: Only this event type (e.g. "AUTH_LOGIN_FAILED").
        severity: Only this severity: INFO, WARNING or CRITICAL.
        resource_type: Only entries about this kind of resource.
        resource_id: Only entries about this resource.
        success: Only successful (true) or failed (false) operations.
        start_date: ISO-8601 lower bound on the timestamp (inclusive).
        end_date: ISO-8601 upper bound on the timestamp (inclusive).
        page: 1-based page number.
        limit: Page size, capped at 100.
    """
    start = perf_counter()
    ok = False
    try:
        service = get_audit_service()
        try:
            filters = AuditQuery.model_validate(
                {
                    "user_id": user_id,
                    "event_type": event_type,
                    "severity": severity,
                    "resource_type": resource_type,
                    "resource_id": resource_id,
                    "success": success,
                    "start_date": start_date,
                    "end_date": end_date,
                    "page": page,
                    "limit": limit,
                }
            )
        except ValidationError as exc:
            return QueryAuditLogResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        result = await service.query(filters)
        ok = True
        return QueryAuditLogResult(result=result)
    finally:
        record_latency(
            operation="mcp.query_audit_log",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def get_audit_statistics(days: int = 30) -> AuditStatisticsResult:
    """Summarise audit activity over the trailing window.

    Args:
        days: Window length in days (default 30).
    """
    start = perf_counter()
    ok = False
    try:
        service = get_audit_service()
        if days < 0:
            return AuditStatisticsResult(
                status="error",
                error_code="validation_error",
                message="days must be >= 0",
            )
        statistics = await service.statistics(days)
        ok = True
        return AuditStatisticsResult(statistics=statistics)
    finally:
        record_latency(
            operation="mcp.get_audit_statistics",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def report_security_alert(
    action: str,
    details: dict | None = None,
    user_id: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    request_id: str | None = None,
) -> ReportSecurityAlertResult:
    """Record a CRITICAL security alert.

    Args:
        action: What happened.
        details: Alert-specific detail.
        user_id: User the alert concerns.
        ip_address: Origin address.
        user_agent: Origin user agent.
        request_id: Correlation id of the triggering request.
    """
    start = perf_counter()
    ok = False
    try:
        service = get_audit_service()
        try:
            validated = ReportSecurityAlertInput.model_validate(
                {
                    "action": action,
                    "details": details or {},
                    "user_id": user_id,
                    "ip_address": ip_address,
                    "user_agent": user_agent,
                    "request_id": request_id,
                }
            )
        except ValidationError as exc:
            return ReportSecurityAlertResult(
                entry_id="",
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        entry = await service.log_security_alert(
            validated.action,
            validated.details,
            AuditContext(
                user_id=validated.user_id,
                ip_address=validated.ip_address,
                user_agent=validated.user_agent,
                request_id=validated.request_id,
            ),
        )
        ok = True
        return ReportSecurityAlertResult(entry_id=entry.id)
    finally:
        record_latency(
            operation="mcp.report_security_alert",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )
