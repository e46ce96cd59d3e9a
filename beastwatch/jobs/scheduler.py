"""Check Scheduler -- fires the JobRunner on a fixed schedule.

Runs a periodic loop that:
1. Sleeps until the next fire time (fixed interval, or cron when configured)
2. Runs one JobRunner pass unless the previous one is still in flight
3. Logs the run's terminal status

A failed run never stops the loop; the next tick is the retry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from croniter import croniter

from beastwatch.config import Settings
from beastwatch.jobs.runner import JobRunner

logger = logging.getLogger(__name__)


class CheckScheduler:
    """Background scheduler that triggers a run every schedule_interval seconds.

    Runs a single asyncio task. When schedule_cron is set, the delay to
    each tick is computed from the cron expression instead.
    """

    def __init__(self, runner: JobRunner, settings: Settings) -> None:
        self._runner = runner
        self._settings = settings
        self._task: asyncio.Task | None = None
        self._running = False
        self.ticks = 0

    async def start(self) -> None:
        """Start the scheduler loop."""
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="check-scheduler")
        if self._settings.schedule_cron:
            logger.info("Check scheduler started (cron=%s)", self._settings.schedule_cron)
        else:
            logger.info(
                "Check scheduler started (interval=%ds)",
                self._settings.schedule_interval,
            )

    async def stop(self) -> None:
        """Stop the scheduler."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Check scheduler stopped")

    def seconds_until_next(self, now: datetime | None = None) -> float:
        """Delay before the next tick."""
        if not self._settings.schedule_cron:
            return float(self._settings.schedule_interval)
        now = now or datetime.now(UTC)
        next_fire = croniter(self._settings.schedule_cron, now).get_next(datetime)
        return max(0.0, (next_fire - now).total_seconds())

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        """Periodic loop: sleep -> run -> repeat."""
        while self._running:
            try:
                await asyncio.sleep(self.seconds_until_next())
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Scheduled run failed")

    async def tick(self) -> bool:
        """Run once unless a run is already in progress. Returns True if it ran."""
        if self._runner.busy:
            logger.warning("Previous run still in progress, skipping this tick")
            return False
        self.ticks += 1
        report = await self._runner.run()
        if report.ok:
            logger.info("Scheduled run #%d finished: ok", self.ticks)
        else:
            logger.error("Scheduled run #%d finished: error (%s)", self.ticks, report.error)
        return True
