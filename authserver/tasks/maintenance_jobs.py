"""Housekeeping background jobs for arq worker."""

from typing import Any

from arq import Retry

from authserver.core.database import get_async_session
from authserver.core.logging import bind_context, get_logger

logger = get_logger(__name__)


async def cleanup_expired_sessions_job(ctx: dict[str, Any]) -> dict[str, int]:
    """
    Delete pending OAuth sessions that expired without being completed.

    Expired sessions are already rejected at use time; this only keeps the
    table from growing.

    Args:
        ctx: ARQ context dict

    Returns:
        dict with the number of deleted sessions

    Raises:
        Retry: If the database operation fails
    """
    bind_context(task="oauth_session_sweep")

    try:
        from authserver.services.oauth_sessions import cleanup_expired_sessions

        async with get_async_session() as db:
            deleted = await cleanup_expired_sessions(db)

        logger.info("oauth_session_sweep_completed", deleted_count=deleted)
        return {"deleted": deleted}

    except Exception as e:
        logger.error(
            "oauth_session_sweep_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        # Retry with backoff
        raise Retry(defer=ctx.get("job_try", 1) * 5) from e
