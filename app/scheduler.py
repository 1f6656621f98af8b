# =============================================================================
# POLYMARKET LADDER TRADER - CLOCK-ALIGNED SCHEDULER
# =============================================================================
#
# Runs one callback at fixed minute offsets of every hour
# (e.g. :00 :10 :20 ...).
#
# - Exactly one cycle at a time: the next wait starts after the callback
#   returned or raised.
# - A raising callback is logged and does not stop the loop.
# - stop() sets the stop event; the current wait ends immediately, an
#   in-flight cycle finishes normally.
#
# =============================================================================

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

ERROR_BACKOFF_THRESHOLD = 5
MAX_ERROR_BACKOFF_SECONDS = 600


def delay_until_next_minute(minutes: Sequence[int], now: Optional[datetime] = None) -> float:
    """
    Seconds from now until the next listed minute offset.

    A minute equal to the current one counts as passed; after the last
    offset of the hour the first offset of the next hour is used.
    """
    if not minutes:
        raise ValueError("scheduled minutes must not be empty")

    now = now or datetime.now(timezone.utc)
    ordered = sorted(minutes)
    elapsed = now.second + now.microsecond / 1_000_000

    upcoming = [m for m in ordered if m > now.minute]
    if upcoming:
        minutes_until = upcoming[0] - now.minute
    else:
        minutes_until = 60 - now.minute + ordered[0]
    return minutes_until * 60 - elapsed


class ClockAlignedScheduler:
    """Cancellable loop that fires callback at the scheduled minutes."""

    def __init__(
        self,
        minutes: Sequence[int],
        callback: Callable[[], object],
        name: str = "cycle",
        stop_event: Optional[threading.Event] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not minutes:
            raise ValueError("scheduled minutes must not be empty")
        self.minutes = sorted(minutes)
        self.callback = callback
        self.name = name
        self.stop_event = stop_event or threading.Event()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.run_count = 0
        self.consecutive_errors = 0

    def stop(self) -> None:
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run_once(self) -> bool:
        """Run the callback once. Returns False if it raised."""
        self.run_count += 1
        try:
            self.callback()
        except Exception:
            self.consecutive_errors += 1
            logger.exception(
                f"Scheduled {self.name} failed | run={self.run_count} | "
                f"consecutive_errors={self.consecutive_errors}"
            )
            return False
        self.consecutive_errors = 0
        return True

    def run(self, run_immediately: bool = False) -> int:
        """
        Loop until stop(). Returns the number of runs.
        """
        logger.info(f"Scheduler started | name={self.name} | minutes={self.minutes}")
        if run_immediately and not self.stopped:
            self.run_once()

        while not self.stopped:
            now = self.clock()
            delay = delay_until_next_minute(self.minutes, now)
            if self.consecutive_errors >= ERROR_BACKOFF_THRESHOLD:
                backoff = min(self.consecutive_errors * 60, MAX_ERROR_BACKOFF_SECONDS)
                logger.warning(f"Many consecutive errors, extra wait | seconds={backoff}")
                delay += backoff

            next_time = now + timedelta(seconds=delay)
            logger.info(f"Next {self.name} scheduled | at={next_time.strftime('%Y-%m-%d %H:%M:%S')}")

            if self.stop_event.wait(delay):
                break
            self.run_once()

        logger.info(f"Scheduler stopped | name={self.name} | runs={self.run_count}")
        return self.run_count
