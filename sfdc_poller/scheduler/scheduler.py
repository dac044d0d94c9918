"""Interval poll loop for extraction cycles.

Runs a cycle, then sleeps for whatever is left of the interval. The
sleep is a timed wait on a ``threading.Event`` so a stop request wakes
it immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStats:
    """Summary of a scheduler run."""

    cycles: int = 0
    failed_cycles: int = 0
    overruns: int = 0
    last_result: Any = None
    last_cycle_failed: bool = False


class PollScheduler:
    """Repeats an extraction cycle on a fixed interval.

    States: idle -> running -> sleeping | stopped. A cycle that has
    started always runs to completion; the stop signal is honoured
    before the next cycle and during the sleep.
    """

    def __init__(
        self,
        cycle: Callable[[], Any],
        interval: float | None = None,
        stop_event: threading.Event | None = None,
        stop_on_error: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the scheduler.

        Args:
            cycle: Callable running one cycle; its return value may carry a
                ``success`` attribute (e.g. CycleResult)
            interval: Seconds between cycle starts; None or negative runs once
            stop_event: Cancellation token shared with signal handlers
            stop_on_error: Stop after the first failed cycle
            clock: Monotonic clock (replaceable in tests)
        """
        self.cycle = cycle
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.stop_on_error = stop_on_error
        self._clock = clock
        self.state = "idle"

    @property
    def one_shot(self) -> bool:
        return self.interval is None or self.interval < 0

    def stop(self) -> None:
        """Signal the loop to stop; safe to call from any thread."""
        if not self.stop_event.is_set():
            logger.info("Stop requested")
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run(self) -> SchedulerStats:
        """Run cycles until one-shot completion, stop or fatal error.

        Returns:
            SchedulerStats for the run
        """
        stats = SchedulerStats()

        try:
            while not self.stop_event.is_set():
                self.state = "running"
                started = self._clock()
                failed = self._run_cycle(stats)
                duration = self._clock() - started

                if failed and self.stop_on_error:
                    logger.error("Stopping after failed cycle (stop_on_error)")
                    break

                if self.one_shot:
                    break

                assert self.interval is not None
                remaining = max(0.0, self.interval - duration)
                if remaining == 0:
                    stats.overruns += 1
                    logger.warning(
                        f"Cycle took {duration:.1f}s, longer than the "
                        f"{self.interval}s interval; starting next cycle now"
                    )
                    continue

                self.state = "sleeping"
                logger.debug(f"Sleeping {remaining:.1f}s until next cycle")
                if self.stop_event.wait(remaining):
                    break
        finally:
            self.state = "stopped"

        logger.info(
            f"Scheduler stopped after {stats.cycles} cycle(s), "
            f"{stats.failed_cycles} failed"
        )
        return stats

    def _run_cycle(self, stats: SchedulerStats) -> bool:
        """Run one cycle, returning True if it failed."""
        stats.cycles += 1
        try:
            result = self.cycle()
        except Exception as e:
            logger.exception(f"Cycle {stats.cycles} raised: {e}")
            result = None
            failed = True
        else:
            failed = not getattr(result, "success", True)

        stats.last_result = result
        stats.last_cycle_failed = failed
        if failed:
            stats.failed_cycles += 1
        return failed
