"""Unit tests for the periodic refresh scheduler."""

import asyncio

import pytest

from feed_aggregator.services import scheduler


# Mark all tests as async
pytestmark = pytest.mark.anyio


@pytest.fixture(autouse=True)
async def stop_scheduler():
    """Never leave a scheduler running between tests."""
    yield
    scheduler.shutdown_scheduler()


async def idle_job():
    pass


class TestScheduler:
    """Tests for starting, rescheduling and stopping the refresh job."""

    async def test_not_running_by_default(self):
        assert scheduler.get_polling_interval() is None
        assert scheduler.set_polling_interval(600) is False

    async def test_create_uses_interval(self):
        created = scheduler.create_scheduler(idle_job, 300)

        assert created.running is True
        assert created.get_job(scheduler.REFRESH_JOB_ID) is not None
        assert scheduler.get_polling_interval() == 300

    async def test_set_polling_interval(self):
        scheduler.create_scheduler(idle_job, 300)

        assert scheduler.set_polling_interval(600) is True
        assert scheduler.get_polling_interval() == 600

    async def test_create_replaces_running_scheduler(self):
        first = scheduler.create_scheduler(idle_job, 300)
        second = scheduler.create_scheduler(idle_job, 900)

        assert first.running is False
        assert second.running is True
        assert scheduler.get_polling_interval() == 900

    async def test_shutdown(self):
        scheduler.create_scheduler(idle_job, 300)

        scheduler.shutdown_scheduler()

        assert scheduler.get_polling_interval() is None
        scheduler.shutdown_scheduler()

    async def test_job_runs_on_interval(self):
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler.create_scheduler(job, 0.05)

        await asyncio.wait_for(ran.wait(), timeout=2)

    async def test_offered_intervals(self):
        assert [seconds // 60 for seconds in scheduler.POLLING_INTERVALS] == [5, 10, 15, 30]
