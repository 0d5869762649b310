"""Elapsed wall-clock time accounting for a batch run."""

import asyncio
import time
from collections.abc import Callable
from types import TracebackType

from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


def format_duration(seconds: float) -> str:
    """Format a duration as hours, minutes and seconds.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2h 05m 09s")
    """
    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"


class ElapsedTimer:
    """Reports the elapsed time of a run on every exit path.

    The start time is recorded on entry. On exit, whether the block finished,
    raised or was cancelled, the elapsed time is logged and handed to
    ``on_report``. Exceptions are never suppressed.

    Example:
        with ElapsedTimer(on_report=print_elapsed) as timer:
            await coordinator.run()
    """

    def __init__(
        self,
        on_report: Callable[[float, BaseException | None], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_report = on_report
        self._clock = clock
        self._started: float | None = None
        self._finished: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since entry, frozen once the block exits."""
        if self._started is None:
            return 0.0
        end = self._finished if self._finished is not None else self._clock()
        return end - self._started

    def __enter__(self) -> "ElapsedTimer":
        self._started = self._clock()
        self._finished = None
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._finished = self._clock()
        elapsed = self.elapsed_seconds

        if exc_val is None:
            outcome = "completed"
        elif isinstance(exc_val, (asyncio.CancelledError, KeyboardInterrupt)):
            outcome = "cancelled"
        else:
            outcome = "failed"

        logger.info(
            "run_finished",
            outcome=outcome,
            elapsed=format_duration(elapsed),
            elapsed_seconds=round(elapsed, 3),
        )

        if self.on_report is not None:
            self.on_report(elapsed, exc_val)
