"""Per-job run loop: wait for the interval, back up, sweep, repeat."""

import math
import threading
import time
from typing import Callable, Optional

from .artifacts import utc_timestamp
from .errors import DumpError, RunnerFault, SweepError
from .jobs import BackupJob
from .log import get_logger
from .models import RunOutcome
from .retention import RetentionSweeper

logger = get_logger(__name__)


class JobRunner:
    """Drives one job until the stop event is set.

    Ticks are on a fixed period measured from the runner's start, so the time
    spent backing up does not push later runs back. Ticks missed while a cycle
    was still running are skipped. A job never runs concurrently with itself.
    """

    def __init__(self, job: BackupJob, sweeper: RetentionSweeper,
                 stop_event: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.job = job
        self.sweeper = sweeper
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self.cycles = 0
        self.last_outcome: Optional[RunOutcome] = None

    @property
    def alias(self) -> str:
        return self.job.alias

    @property
    def interval(self) -> float:
        return float(self.job.schedule.interval_seconds)

    def run(self, max_cycles: Optional[int] = None, immediate: bool = False) -> None:
        """Run the loop.

        Args:
            max_cycles: Stop after this many cycles; None runs until stopped.
            immediate: Fire the first cycle now instead of after one interval.

        Raises:
            RunnerFault: if a cycle fails with an unexpected exception.
        """
        logger.info("runner_started", alias=self.alias, interval_seconds=self.interval)

        next_tick = self.clock()
        if not (immediate or getattr(self.job.schedule, "run_on_start", False)):
            next_tick += self.interval

        while max_cycles is None or self.cycles < max_cycles:
            if self._wait_until(next_tick):
                break
            try:
                self.run_cycle()
            except Exception as e:
                raise RunnerFault(self.alias, e) from e
            next_tick = self._next_tick(next_tick)

        logger.info("runner_stopped", alias=self.alias, cycles=self.cycles)

    def run_cycle(self) -> RunOutcome:
        """Back up once, then sweep. Expected failures are logged, not raised."""
        self.cycles += 1
        timestamp = utc_timestamp()
        outcome = RunOutcome(alias=self.alias, timestamp=timestamp)

        started = self.clock()
        try:
            outcome.artifact = self.job.execute(timestamp)
            logger.info(
                "backup_completed",
                alias=self.alias,
                artifact=str(outcome.artifact),
                duration_seconds=round(self.clock() - started, 3),
            )
        except DumpError as e:
            outcome.error = str(e)
            logger.error("backup_failed", alias=self.alias, error=str(e))

        try:
            self.sweeper.sweep(self.job.backup_dir, self.alias)
        except SweepError as e:
            logger.warning("sweep_failed", alias=self.alias, error=str(e))

        self.last_outcome = outcome
        return outcome

    def _wait_until(self, deadline: float) -> bool:
        """Block until ``deadline``. Returns True if stopped meanwhile."""
        delay = deadline - self.clock()
        if delay > 0:
            return self.stop_event.wait(delay)
        return self.stop_event.is_set()

    def _next_tick(self, previous: float) -> float:
        next_tick = previous + self.interval
        now = self.clock()
        if next_tick <= now:
            skipped = math.floor((now - next_tick) / self.interval) + 1
            logger.warning("ticks_skipped", alias=self.alias, skipped=skipped)
            next_tick += skipped * self.interval
        return next_tick
