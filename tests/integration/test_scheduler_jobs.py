from datetime import date

import pytest

import roi_ledger.scheduler.jobs as jobs
from roi_ledger.scheduler.main import LedgerScheduler


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tick_job_uses_its_own_session(session_factory, monkeypatch):
    monkeypatch.setattr(jobs, "async_session_factory", session_factory)

    summary = await jobs.run_scheduler_tick(as_of=date(2026, 5, 1))

    assert summary is not None
    assert summary.run_date == date(2026, 5, 1)
    assert summary.returns_created == 0
    assert summary.returns_promoted == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_overlapping_tick_is_skipped(session_factory, monkeypatch):
    monkeypatch.setattr(jobs, "async_session_factory", session_factory)

    async with jobs._tick_lock:
        assert await jobs.run_scheduler_tick() is None


@pytest.mark.asyncio
async def test_tick_job_swallows_failures(monkeypatch):
    async def boom(as_of=None):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(jobs, "run_scheduler_tick", boom)
    await jobs.payout_tick_job()


@pytest.mark.asyncio
async def test_scheduler_registers_daily_tick():
    scheduler = LedgerScheduler()
    scheduler.start()
    try:
        job = scheduler.scheduler.get_job("payout_tick")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert scheduler.running
    finally:
        scheduler.stop()
