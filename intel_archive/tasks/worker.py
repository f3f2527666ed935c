"""ARQ worker configuration."""

import os

from arq import cron
from arq.connections import RedisSettings
from loguru import logger

from intel_archive.config import get_settings
from intel_archive.logs import configure_logging

settings = get_settings()


def get_redis_settings() -> RedisSettings:
    """Get Redis settings from app config."""
    return RedisSettings.from_dsn(settings.redis_url)


async def startup(ctx: dict) -> None:
    """Worker startup handler."""
    configure_logging()
    logger.info("ARQ Worker starting up...")
    logger.info(f"Cron enabled: {os.environ.get('ENABLE_CRON', 'false')}")


async def shutdown(ctx: dict) -> None:
    """Worker shutdown handler."""
    logger.info("ARQ Worker shutting down...")


def get_cron_jobs():
    """
    Get cron jobs based on environment configuration.

    Set ENABLE_CRON=true to enable scheduled jobs. The job only checks
    whether a sync is due; the interval itself is the operator's
    SyncConfiguration.
    """
    from intel_archive.tasks.pipeline import sync_due_task

    if os.environ.get("ENABLE_CRON", "false").lower() != "true":
        return []

    step = max(1, min(settings.sync_check_minutes, 59))
    return [
        cron(
            sync_due_task,
            minute=set(range(0, 60, step)),
            timeout=3600,
            unique=True,  # Prevent overlapping runs
        ),
    ]


class WorkerSettings:
    """ARQ Worker settings."""

    # Redis connection
    redis_settings = get_redis_settings()

    # Task functions
    from intel_archive.tasks.pipeline import TASK_FUNCTIONS
    functions = TASK_FUNCTIONS

    # Startup/shutdown handlers
    on_startup = startup
    on_shutdown = shutdown

    # Cron jobs (scheduled tasks) - loaded dynamically
    cron_jobs = get_cron_jobs()

    # Worker settings
    max_jobs = 2
    job_timeout = 3600  # A deep scan of 300 pages takes a while
    keep_result = 3600

    # Scans are not idempotent in cost; failures are reported, not retried
    max_tries = 1
