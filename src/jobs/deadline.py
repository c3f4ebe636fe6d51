"""Wall-clock ceilings for sync and classification runs."""

import time
from typing import Callable

from src.utils.errors import JobTimeoutError


class Deadline:
    """A hard wall-clock ceiling checked before each new unit of work.

    Work already in flight is not interrupted; ``check`` only stops new
    fetches or classifications from being issued.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        if seconds <= 0:
            raise ValueError(f"Deadline must be positive, got {seconds}")
        self._seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, stage: str = "") -> None:
        """Raise JobTimeoutError if the ceiling has passed."""
        if self.expired:
            where = f" during {stage}" if stage else ""
            raise JobTimeoutError(f"Exceeded {self._seconds:g}s ceiling{where}")
