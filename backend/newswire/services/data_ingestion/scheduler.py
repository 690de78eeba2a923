"""
Timer-driven ingestion for the `serve` command of the CLI.

The API process schedules the same two jobs with APScheduler; this module
covers running without it. Each job gets its own task, so a slow cleanup
never delays the next fetch.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Optional
import logging

if TYPE_CHECKING:
    from newswire.jobs.ingestion_cycle import IngestionCycle

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    name: str
    interval: timedelta
    run: Callable[[], Awaitable[str]]
    last_run: Optional[datetime] = None
    failures: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def next_run(self) -> Optional[datetime]:
        return self.last_run + self.interval if self.last_run else None

    async def run_once(self):
        self.last_run = datetime.now(timezone.utc)
        try:
            outcome = await self.run()
        except Exception as e:
            self.failures += 1
            logger.error(f"{self.name} failed: {e}", exc_info=True)
            return
        logger.info(f"{self.name}: {outcome}")

    async def repeat(self):
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            await self.run_once()


class IngestionScheduler:
    """
    Runs ingestion cycles and expiry sweeps on fixed intervals.

    Both jobs run once as soon as the scheduler starts. A failing run is
    logged and counted; the job stays scheduled.
    """

    def __init__(
        self,
        cycle: "IngestionCycle",
        fetch_interval_minutes: int = 5,
        cleanup_interval_hours: int = 24,
    ):
        self.cycle = cycle
        self.fetch = PeriodicJob("fetch", timedelta(minutes=fetch_interval_minutes), self._fetch)
        self.cleanup = PeriodicJob(
            "cleanup", timedelta(hours=cleanup_interval_hours), self._cleanup
        )
        self._running = False

    @property
    def jobs(self) -> tuple[PeriodicJob, PeriodicJob]:
        return (self.fetch, self.cleanup)

    async def _fetch(self) -> str:
        report = await self.cycle.run_cycle()
        return report.message

    async def _cleanup(self) -> str:
        deleted = await self.cycle.run_cleanup()
        return f"{deleted} expired articles deleted"

    async def start(self):
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        logger.info(
            f"Ingestion scheduler started (fetch every {self.fetch.interval}, "
            f"cleanup every {self.cleanup.interval})"
        )

        for job in self.jobs:
            await job.run_once()
            job.task = asyncio.create_task(job.repeat(), name=f"ingestion-{job.name}")

    async def stop(self):
        self._running = False
        tasks = [job.task for job in self.jobs if job.task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for job in self.jobs:
            job.task = None
        logger.info("Ingestion scheduler stopped")

    async def wait(self):
        """Block until the jobs are cancelled."""
        tasks = [job.task for job in self.jobs if job.task]
        if tasks:
            await asyncio.gather(*tasks)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_fetch(self) -> Optional[datetime]:
        return self.fetch.last_run

    def get_status(self) -> dict:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "running": self._running,
            "fetch_interval_minutes": self.fetch.interval.total_seconds() / 60,
            "last_fetch": iso(self.fetch.last_run),
            "next_fetch": iso(self.fetch.next_run),
            "last_cleanup": iso(self.cleanup.last_run),
            "failures": {job.name: job.failures for job in self.jobs},
            "cycle": self.cycle.get_status(),
        }
