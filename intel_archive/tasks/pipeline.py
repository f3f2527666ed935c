"""Ingestion task definitions for ARQ."""

import functools
import time
from typing import Any, Callable

from loguru import logger

from intel_archive.services.ingestion import ScanDepth, ScanState, get_orchestrator
from intel_archive.services.notifications import (
    notify_job_failed,
    notify_scan_failed,
    notify_scan_finished,
    notify_sync_summary,
)


def notify_on_failure(task_name: str):
    """
    Decorator that sends a Telegram notification on task failure, then re-raises.

    Usage:
        @notify_on_failure("my_task")
        async def my_task(ctx: dict, ...) -> dict:
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"[{task_name.upper()}] Failed: {e}")
                await notify_job_failed(task_name, str(e))
                raise

        return wrapper
    return decorator


@notify_on_failure("scan_source")
async def scan_source_task(
    ctx: dict,
    url: str,
    depth: str = ScanDepth.LATEST.value,
    region: str | None = None,
) -> dict:
    """
    Scan one source and merge its events into the archive.

    Args:
        ctx: ARQ context
        url: Channel or web page URL
        depth: ScanDepth value ("LATEST_20", "1_MONTH", ..., "RESUME")
        region: Optional focus region for extraction

    Returns:
        dict with the scan report
    """
    report = await get_orchestrator().scan_source(url, depth=ScanDepth(depth), region=region)

    if report.state is ScanState.FAILED:
        await notify_scan_failed(report)
    else:
        await notify_scan_finished(report)

    return {"status": report.state.value, "task": "scan_source", **report.model_dump(mode="json")}


@notify_on_failure("sync_sources")
async def sync_sources_task(ctx: dict) -> dict:
    """Scan every monitored source at LATEST depth."""
    start_time = time.time()
    reports = await get_orchestrator().sync_all()
    duration = time.time() - start_time

    if reports:
        await notify_sync_summary(reports, duration_seconds=duration)

    return {
        "status": "completed" if reports else "skipped",
        "task": "sync_sources",
        "duration_seconds": duration,
        "sources": len(reports),
        "inserted": sum(report.inserted for report in reports),
        "merged": sum(report.merged for report in reports),
        "failed": [report.source_url for report in reports if report.error],
    }


@notify_on_failure("sync_due")
async def sync_due_task(ctx: dict) -> dict:
    """Sync only when the background sync is enabled and its interval elapsed."""
    orchestrator = get_orchestrator()
    if not orchestrator.state.is_sync_due():
        logger.debug("[SYNC] Not due")
        return {"status": "not_due", "task": "sync_due"}
    return await sync_sources_task(ctx)


# List of all task functions for the worker
TASK_FUNCTIONS = [
    scan_source_task,
    sync_sources_task,
    sync_due_task,
]
