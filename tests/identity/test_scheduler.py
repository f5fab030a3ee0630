"""Tests for the batch resolver scheduler."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from name_resolution.adapters.notion_roster_adapter import RosterFetchError
from name_resolution.identity.scheduler import (
    BATCH_JOB_ID,
    batch_scheduler_lifespan,
    get_scheduler,
    reset_scheduler,
    run_scheduled_batch,
)
from name_resolution.identity.schemas import BatchRunSummary


@pytest.fixture
def resolver() -> MagicMock:
    """Mock BatchResolver."""
    resolver = MagicMock()
    resolver.run = AsyncMock(return_value=BatchRunSummary(auto_matched=3, suggested=2))
    return resolver


class TestGetScheduler:
    """Tests for get_scheduler function."""

    def setup_method(self):
        """Reset scheduler before each test."""
        reset_scheduler()

    def teardown_method(self):
        """Reset scheduler after each test."""
        reset_scheduler()

    def test_returns_same_instance(self):
        """get_scheduler returns same instance on multiple calls."""
        assert get_scheduler() is get_scheduler()

    def test_reset_clears_instance(self):
        """reset_scheduler clears the singleton."""
        scheduler1 = get_scheduler()
        reset_scheduler()
        assert get_scheduler() is not scheduler1


class TestBatchSchedulerLifespan:
    """Tests for batch_scheduler_lifespan context manager."""

    def setup_method(self):
        """Reset scheduler before each test."""
        reset_scheduler()

    def teardown_method(self):
        """Reset scheduler after each test."""
        reset_scheduler()

    @pytest.mark.asyncio
    async def test_starts_scheduler_with_batch_job(self, resolver: MagicMock):
        async with batch_scheduler_lifespan(resolver):
            scheduler = get_scheduler()
            assert scheduler.running is True
            job = scheduler.get_job(BATCH_JOB_ID)
            assert job is not None
            assert job.args == (resolver,)

    @pytest.mark.asyncio
    async def test_interval_and_max_instances(self, resolver: MagicMock):
        """Runs never overlap and follow the configured interval."""
        async with batch_scheduler_lifespan(resolver, interval_hours=2):
            job = get_scheduler().get_job(BATCH_JOB_ID)
            assert job.trigger.interval.total_seconds() == 2 * 3600
            assert job.max_instances == 1

    @pytest.mark.asyncio
    async def test_calls_shutdown_on_exit(self, resolver: MagicMock):
        with patch(
            "name_resolution.identity.scheduler.AsyncIOScheduler"
        ) as mock_scheduler_class:
            mock_scheduler = MagicMock()
            mock_scheduler.running = True
            mock_scheduler_class.return_value = mock_scheduler
            reset_scheduler()

            async with batch_scheduler_lifespan(resolver):
                pass

            mock_scheduler.shutdown.assert_called_once_with(wait=False)


class TestRunScheduledBatch:
    """Tests for run_scheduled_batch function."""

    @pytest.mark.asyncio
    async def test_runs_resolver(self, resolver: MagicMock):
        await run_scheduled_batch(resolver)

        resolver.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_logs_summary(self, resolver: MagicMock):
        with patch("name_resolution.identity.scheduler.logger") as mock_logger:
            await run_scheduled_batch(resolver)

            mock_logger.info.assert_called_with(
                "Scheduled batch run finished", auto_matched=3, suggested=2, failed=0
            )

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_raise(self, resolver: MagicMock):
        """CRM outages are retried on the next tick."""
        resolver.run.side_effect = RosterFetchError("CRM returned 503")

        with patch("name_resolution.identity.scheduler.logger") as mock_logger:
            await run_scheduled_batch(resolver)

            mock_logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_raise(self, resolver: MagicMock):
        resolver.run.side_effect = RuntimeError("boom")

        await run_scheduled_batch(resolver)
