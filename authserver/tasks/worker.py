"""
ARQ worker configuration and job definitions.
Run worker with: arq authserver.tasks.worker.WorkerSettings
"""

from typing import Any

from arq import cron
from arq.connections import RedisSettings
from arq.worker import func

from authserver.config import settings
from authserver.tasks.maintenance_jobs import cleanup_expired_sessions_job


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup - initialize any shared resources."""
    from authserver.core.logging import configure_logging, get_logger

    configure_logging()
    logger = get_logger(__name__)
    logger.info("arq_worker_starting", redis_url=settings.ARQ_REDIS_URL)


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown - cleanup resources."""
    from authserver.core.database import engine
    from authserver.core.logging import get_logger

    await engine.dispose()
    logger = get_logger(__name__)
    logger.info("arq_worker_shutdown")


class WorkerSettings:
    """ARQ worker configuration."""

    # Redis connection from settings
    redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)

    # Worker behavior
    max_jobs = 10
    job_timeout = 300  # 5 minutes max per job
    keep_result = settings.ARQ_KEEP_RESULT  # Keep results for 1 hour

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Job functions
    functions = [
        func(cleanup_expired_sessions_job, max_tries=3),
    ]

    # Sweep stale authorization attempts every 15 minutes
    cron_jobs = [
        cron(cleanup_expired_sessions_job, minute={0, 15, 30, 45}, run_at_startup=False),
    ]
