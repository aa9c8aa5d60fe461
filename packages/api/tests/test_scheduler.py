# This project was developed with assistance from AI tools.
"""Tests for the background workflow scheduler."""

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from eservice.services.scheduler import WorkflowScheduler, default_jobs


@dataclass
class _Report:
    processed_count: int


@pytest.mark.asyncio
async def test_run_job_reports_success_with_dataclass_result(session_factory):
    job = AsyncMock(return_value=_Report(processed_count=4))
    scheduler = WorkflowScheduler(session_factory, jobs={"sweep": (60, job)})

    outcome = await scheduler.run_job("sweep")

    assert outcome["job_name"] == "sweep"
    assert outcome["status"] == "success"
    assert outcome["result"] == {"processed_count": 4}
    assert outcome["error"] is None
    assert outcome["duration_ms"] >= 0
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_job_is_captured(session_factory):
    job = AsyncMock(side_effect=RuntimeError("database unavailable"))
    scheduler = WorkflowScheduler(session_factory, jobs={"sweep": (60, job)})

    outcome = await scheduler.run_job("sweep")

    assert outcome["status"] == "failed"
    assert outcome["error"] == "database unavailable"
    assert outcome["result"] is None


@pytest.mark.asyncio
async def test_unknown_job(session_factory):
    scheduler = WorkflowScheduler(session_factory, jobs={})

    outcome = await scheduler.run_job("nope")

    assert outcome["status"] == "error"
    assert "nope" in outcome["error"]


@pytest.mark.asyncio
async def test_run_once_runs_every_job_in_order(session_factory):
    first = AsyncMock(return_value=1)
    second = AsyncMock(side_effect=RuntimeError("boom"))
    third = AsyncMock(return_value=3)
    scheduler = WorkflowScheduler(
        session_factory,
        jobs={"a": (60, first), "b": (60, second), "c": (60, third)},
    )

    outcomes = await scheduler.run_once()

    assert [o["job_name"] for o in outcomes] == ["a", "b", "c"]
    assert [o["status"] for o in outcomes] == ["success", "failed", "success"]
    third.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_loops_until_stopped(session_factory):
    calls = asyncio.Event()
    count = 0

    async def job(session):
        nonlocal count
        count += 1
        if count >= 2:
            calls.set()

    scheduler = WorkflowScheduler(session_factory, jobs={"tick": (0.01, job)})
    scheduler.start()
    assert scheduler.running

    await asyncio.wait_for(calls.wait(), timeout=5)
    await scheduler.stop()

    assert not scheduler.running
    assert count >= 2


@pytest.mark.asyncio
async def test_start_twice_keeps_one_loop_per_job(session_factory):
    ran = asyncio.Event()
    count = 0

    async def job(session):
        nonlocal count
        count += 1
        ran.set()

    scheduler = WorkflowScheduler(session_factory, jobs={"tick": (60, job)})
    scheduler.start()
    scheduler.start()
    await asyncio.wait_for(ran.wait(), timeout=5)
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert count == 1


def test_default_jobs_follow_settings():
    jobs = default_jobs()
    assert set(jobs) == {"overdue_sweep", "scheduled_notifications"}
    assert jobs["overdue_sweep"][0] == 300
    assert jobs["scheduled_notifications"][0] == 60
