"""
Millisecond timer used as the only clock for progress extrapolation.
Based on time.monotonic() so wall-clock adjustments never move it.
"""
import time
from typing import Callable


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class Timer:
    """Pausable elapsed-time tracker.

    Accumulates time into ``_base_time`` across pause/start cycles; while
    running, the current cycle's elapsed time is added on read.
    """

    def __init__(self, clock: Callable[[], float] = monotonic_ms):
        """
        Args:
            clock: Monotonic clock returning milliseconds (injectable for tests)
        """
        self._clock = clock
        self._base_time = 0.0
        self._start_time = 0.0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start or resume; no-op while already running."""
        if not self._running:
            self._start_time = self._clock()
            self._running = True

    def get_time(self) -> float:
        """Accumulated milliseconds, including the running cycle."""
        if self._running:
            return self._base_time + (self._clock() - self._start_time)
        return self._base_time

    def pause(self) -> None:
        """Freeze the current time; no-op while already paused."""
        if self._running:
            self._base_time += self._clock() - self._start_time
            self._running = False

    def set_time(self, time_ms: float) -> None:
        """Jump to ``time_ms``, keeping the running state."""
        self._base_time = float(time_ms)
        if self._running:
            self._start_time = self._clock()

    def reset(self) -> None:
        """Zero the time and stop."""
        self._base_time = 0.0
        self._start_time = 0.0
        self._running = False

    def __repr__(self) -> str:
        state = "running" if self._running else "paused"
        return f"<Timer {self.get_time():.0f}ms {state}>"
