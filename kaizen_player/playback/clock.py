# kaizen_player/playback/clock.py
from __future__ import annotations

import time
from typing import Callable, Optional

# Elapsed-time gap between the two videos that triggers a corrective seek.
DRIFT_THRESHOLD = 0.15


class NarrationClock:
    """
    Wall-clock stopwatch used for narration time when no narration audio is
    playing. Pausing stops accumulation; resuming continues from the stored value.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._base = 0.0
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def reset(self, elapsed: float = 0.0) -> None:
        self._base = max(0.0, float(elapsed))
        self._started_at = None

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def stop(self) -> None:
        if self._started_at is not None:
            self._base += self._clock() - self._started_at
            self._started_at = None

    def elapsed(self) -> float:
        if self._started_at is None:
            return self._base
        return self._base + (self._clock() - self._started_at)


def drift_target(before_elapsed: float, after_elapsed: float, threshold: float = DRIFT_THRESHOLD) -> Optional[float]:
    """
    Elapsed time the after video must be moved to, or None if the two
    videos are within `threshold` of each other.

    The before video is the reference; only the after video is ever corrected.
    """
    if abs(before_elapsed - after_elapsed) > threshold:
        return before_elapsed
    return None
