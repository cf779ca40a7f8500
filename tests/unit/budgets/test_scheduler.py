from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from costguard.modules.budgets.domain.processor import RunSummary
from costguard.modules.budgets.domain.scheduler import JOB_ID, AlertScheduler


def _session_maker(db):
    @asynccontextmanager
    async def maker():
        yield db
    return maker


@pytest.mark.asyncio
async def test_job_runs_processor_with_fresh_session():
    db = MagicMock()
    processor = MagicMock()
    processor.run_scheduled = AsyncMock(
        return_value=RunSummary(mode="scheduled", budgets_processed=3, alerts_triggered=1, notifications_sent=1)
    )
    factory = MagicMock(return_value=processor)
    scheduler = AlertScheduler(_session_maker(db), factory)

    await scheduler.budget_alert_job()

    factory.assert_called_once_with(db)
    status = scheduler.get_status()
    assert status["last_run_success"] is True
    assert status["last_summary"]["budgets_processed"] == 3
    assert status["last_run_time"] is not None
    assert status["running"] is False


@pytest.mark.asyncio
async def test_job_failure_is_recorded_not_raised():
    processor = MagicMock()
    processor.run_scheduled = AsyncMock(side_effect=RuntimeError("store unavailable"))
    scheduler = AlertScheduler(_session_maker(MagicMock()), MagicMock(return_value=processor))

    await scheduler.budget_alert_job()

    assert scheduler.get_status()["last_run_success"] is False


@pytest.mark.asyncio
async def test_start_registers_single_hourly_job():
    scheduler = AlertScheduler(_session_maker(MagicMock()), MagicMock(), minute=15)
    scheduler.start()
    try:
        job = scheduler.scheduler.get_job(JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert str(job.trigger.fields[6]) == "15"
        assert scheduler.get_status()["jobs"] == [JOB_ID]
    finally:
        scheduler.stop()
