"""In-process scheduler that runs the alert check on interval boundaries."""

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from energy_alerts.core.clock import Clock, system_clock
from energy_alerts.core.config import settings
from energy_alerts.core.database import SessionLocal
from energy_alerts.services.alert_evaluator import AlertEvaluatorService, BatchResult

logger = logging.getLogger(__name__)

TickFn = Callable[[], BatchResult]
SleepFn = Callable[[float], Awaitable[None]]


def run_alert_check_tick() -> BatchResult:
    """Evaluate all enabled rules on a fresh session."""
    db = SessionLocal()
    try:
        return AlertEvaluatorService(db).evaluate_all()
    finally:
        db.close()


class AlertScheduler:
    """Runs ``run_tick`` on wall-clock multiples of the interval.

    With the default hourly interval ticks land on the hour. Each tick runs
    in a worker thread so the event loop stays responsive. If a tick overruns
    one or more boundaries, the overdue ticks are skipped and the scheduler
    resumes at the next boundary after the tick finished.
    """

    def __init__(
        self,
        run_tick: TickFn = run_alert_check_tick,
        interval_seconds: int | None = None,
        clock: Clock = system_clock,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._run_tick = run_tick
        self.interval_seconds = interval_seconds or settings.ALERT_CHECK_INTERVAL_SECONDS
        self.clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.ticks_run = 0
        self.ticks_skipped = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, interval_seconds: int | None = None) -> None:
        """Start the tick loop; a no-op if already started."""
        if self._running:
            return
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError("interval_seconds must be positive")
            self.interval_seconds = interval_seconds

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Alert scheduler started (interval %ds)", self.interval_seconds)

    async def stop(self) -> None:
        """Stop the tick loop.

        A tick already running in its worker thread completes in the
        background; no further ticks are scheduled.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("Alert scheduler stopped")

    def next_boundary(self, now: datetime) -> datetime:
        """First interval boundary strictly after ``now``."""
        interval = self.interval_seconds
        ticks = math.floor(now.timestamp() / interval) + 1
        return datetime.fromtimestamp(ticks * interval, UTC)

    async def _loop(self) -> None:
        interval = timedelta(seconds=self.interval_seconds)
        next_tick = self.next_boundary(self.clock())

        while self._running:
            delay = (next_tick - self.clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)
            if not self._running:
                break

            await self._tick()

            now = self.clock()
            following = next_tick + interval
            if following <= now:
                following = self.next_boundary(now)
                skipped = int((following - next_tick) / interval) - 1
                self.ticks_skipped += skipped
                logger.warning(
                    "Alert check overran the interval, skipping %d overdue tick(s)", skipped
                )
            next_tick = following

    async def _tick(self) -> None:
        started = time.monotonic()
        try:
            result = await asyncio.to_thread(self._run_tick)
        except Exception:
            logger.exception("Alert check tick failed")
            return
        finally:
            self.ticks_run += 1

        duration_ms = int((time.monotonic() - started) * 1000)
        if not result.success:
            logger.error("Alert check tick failed: %s", result.error)
            return
        logger.info(
            "Alert check tick: checked=%d triggered=%d errored=%d in %dms",
            result.total_checked,
            len(result.triggered),
            len(result.errors),
            duration_ms,
        )
