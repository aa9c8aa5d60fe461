# This project was developed with assistance from AI tools.
"""Background scheduler for the periodic workflow sweeps.

Two jobs run on their own asyncio loop each: the overdue sweep and the
scheduled-notification sweep. Every pass opens a fresh session from the
injected factory. A failed pass is logged and the loop keeps going.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, is_dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from .notification import get_notification_service
from .overdue import run_overdue_sweep

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]
Job = Callable[[AsyncSession], Awaitable[object]]


async def _process_scheduled_notifications(session: AsyncSession) -> int:
    return await get_notification_service().process_scheduled(session)


def default_jobs() -> dict[str, tuple[float, Job]]:
    """Job name -> (interval seconds, job)."""
    return {
        "overdue_sweep": (settings.OVERDUE_SWEEP_INTERVAL_SECONDS, run_overdue_sweep),
        "scheduled_notifications": (
            settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS,
            _process_scheduled_notifications,
        ),
    }


class WorkflowScheduler:
    def __init__(
        self,
        session_factory: SessionFactory,
        jobs: dict[str, tuple[float, Job]] | None = None,
    ):
        self._session_factory = session_factory
        self._jobs = jobs if jobs is not None else default_jobs()
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def start(self) -> None:
        if self.running:
            return
        for name, (interval, job) in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._loop(name, interval, job), name=name)
        logger.info("Workflow scheduler started with jobs %s", sorted(self._jobs))

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Workflow scheduler stopped")

    async def run_job(self, name: str) -> dict:
        """Run one job now.

        Returns:
            {"job_name", "status", "duration_ms", "result", "error"}
        """
        entry = self._jobs.get(name)
        if entry is None:
            return {"job_name": name, "status": "error", "error": f"Unknown job: {name}"}
        _, job = entry

        start = time.monotonic()
        result = None
        error = None
        status = "success"
        try:
            async with self._session_factory() as session:
                result = await job(session)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Scheduled job %s failed", name)

        return {
            "job_name": name,
            "status": status,
            "duration_ms": int((time.monotonic() - start) * 1000),
            "result": asdict(result) if is_dataclass(result) else result,
            "error": error,
        }

    async def run_once(self) -> list[dict]:
        """One pass of every job, in registration order."""
        return [await self.run_job(name) for name in self._jobs]

    async def _loop(self, name: str, interval: float, job: Job) -> None:
        while True:
            await self.run_job(name)
            await asyncio.sleep(interval)
