"""
Audit trail: security log rows and per-credential daily usage statistics.

Both writes join the caller's unit of work; the handler commits them together
with (or instead of) its own changes.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from authserver.core.logging import get_logger
from authserver.models.api_credential import ApiCredentials
from authserver.models.security_log import SecurityLogs
from authserver.models.usage_stat import UsageStats
from authserver.utils.dates import utcnow

logger = get_logger(__name__)


class RequestInfo:
    """Origin of the request being audited."""

    def __init__(self, ip: str = "unknown", user_agent: str = "unknown") -> None:
        self.ip = ip
        self.user_agent = user_agent


async def log_security_event(
    db: AsyncSession,
    action: str,
    success: bool,
    request_info: RequestInfo,
    user_id: str | None = None,
    credential_id: str | None = None,
    error: str | None = None,
    details: dict[str, Any] | None = None,
) -> SecurityLogs:
    """
    Append a security log entry and mirror it to the structured log.

    Args:
        db: Database session (the row is added, not committed)
        action: One of SecurityAction
        success: Whether the protocol step succeeded
        request_info: Caller IP and user agent
        user_id: End user involved, if known
        credential_id: Client credential involved, if resolved
        error: Error code or message on failure
        details: Extra context (never raw secrets)

    Returns:
        The pending SecurityLogs row
    """
    entry = SecurityLogs(
        action=action,
        success=success,
        ip=request_info.ip,
        user_agent=request_info.user_agent[:512],
        user_id=user_id or None,
        credential_id=credential_id,
        error=error[:512] if error else None,
        details=details,
    )
    db.add(entry)

    log = logger.info if success else logger.warning
    log(
        "security_event",
        action=action,
        success=success,
        ip=request_info.ip,
        user_id=user_id or None,
        credential_id=credential_id,
        error=error,
        **(details or {}),
    )
    return entry


def usage_stats_id(credential_id: str, day: str) -> str:
    return f"{credential_id}_{day}"


async def record_usage_stats(db: AsyncSession, credential: ApiCredentials, success: bool) -> UsageStats:
    """
    Count one request against the credential's row for today (UTC).

    A failed request counts as both an error and a failed authorization.
    Also stamps the credential's last_used.
    """
    now = utcnow()
    day = now.date().isoformat()
    stats_id = usage_stats_id(credential.id, day)

    stats = await db.get(UsageStats, stats_id)
    if stats is None:
        stats = UsageStats(
            id=stats_id,
            credential_id=credential.id,
            date=day,
        )
        db.add(stats)

    stats.requests += 1
    if success:
        stats.successful_auths += 1
    else:
        stats.errors += 1
        stats.failed_auths += 1
    stats.last_request = now

    credential.last_used = now
    db.add(credential)
    return stats


async def record_server_error(
    db: AsyncSession,
    action: str,
    request_info: RequestInfo,
    exc: Exception,
    credential_id: str | None = None,
) -> None:
    """
    Roll back the failed unit of work and audit the unexpected exception.

    The raw exception text goes into the log row's metadata only; callers
    answer with a generic message. `credential_id` must be captured before
    the rollback expires the ORM objects it came from.
    """
    logger.exception("unhandled_handler_error", action=action, credential_id=credential_id)
    await db.rollback()

    await log_security_event(
        db,
        action,
        False,
        request_info,
        credential_id=credential_id,
        error="server_error",
        details={"error": str(exc) or exc.__class__.__name__},
    )
    try:
        await db.commit()
    except Exception:
        # The store itself may be what failed
        logger.exception("security_log_write_failed", action=action)
        await db.rollback()
