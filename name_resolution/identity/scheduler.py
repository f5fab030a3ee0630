"""APScheduler integration for periodic batch resolution runs.

Provides scheduler setup, the batch job and FastAPI lifespan
integration, so new transcripts, roster entries and transliteration
rules are picked up without a manual trigger.
"""

from contextlib import asynccontextmanager
from datetime import UTC
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from name_resolution.adapters.notion_roster_adapter import RosterFetchError
from name_resolution.repositories.transcript_repo import TranscriptFetchError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from name_resolution.identity.resolver import BatchResolver

logger = structlog.get_logger()

BATCH_JOB_ID = "name_resolution_batch"

# Module-level scheduler instance
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance.

    Returns:
        AsyncIOScheduler instance
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=UTC)
    return _scheduler


def reset_scheduler() -> None:
    """Reset the scheduler instance (for testing)."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None


@asynccontextmanager
async def batch_scheduler_lifespan(
    resolver: "BatchResolver", interval_hours: int = 6
) -> "AsyncGenerator[None, None]":
    """Lifespan context manager for the batch resolver schedule.

    Usage:
        async with batch_scheduler_lifespan(resolver):
            # Scheduler is running
            yield
        # Scheduler stopped
    """
    scheduler = get_scheduler()

    scheduler.add_job(
        run_scheduled_batch,
        "interval",
        hours=interval_hours,
        args=[resolver],
        id=BATCH_JOB_ID,
        replace_existing=True,
        max_instances=1,  # Prevent overlapping runs
    )

    logger.info("Starting batch resolver scheduler", interval_hours=interval_hours)
    scheduler.start()

    try:
        yield
    finally:
        logger.info("Shutting down batch resolver scheduler")
        scheduler.shutdown(wait=False)


async def run_scheduled_batch(resolver: "BatchResolver") -> None:
    """Scheduled job: run one batch resolution pass.

    Fetch failures abort the run without writes; they are logged here
    and retried on the next tick.
    """
    try:
        summary = await resolver.run()
        logger.info(
            "Scheduled batch run finished",
            auto_matched=summary.auto_matched,
            suggested=summary.suggested,
            failed=summary.failed,
        )
    except (RosterFetchError, TranscriptFetchError) as e:
        logger.error("Scheduled batch run aborted", error=str(e))
    except Exception as e:
        logger.error("Scheduled batch run failed", error=str(e))
