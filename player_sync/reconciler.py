"""
Progress reconciliation.

Authoritative progress arrives a few times per second at most. Between
ticks the Timer extrapolates, and the refresh loop copies its value into
the StateStore on every display frame so progress moves smoothly.
"""
import asyncio

from logging_config import get_logger
from .decoder import ProgressTickEvent
from .state import StateStore
from .timer import Timer

logger = get_logger(__name__)

DEFAULT_COMPENSATION_MS = 140
DEFAULT_REFRESH_INTERVAL = 0.016


class ProgressReconciler:
    def __init__(
        self,
        timer: Timer,
        store: StateStore,
        compensation_ms: int = DEFAULT_COMPENSATION_MS,
        jitter_tolerance_ms: int = 0,
        time_offset_ms: int = 0,
    ):
        """
        Args:
            timer: Clock shared with the rest of the pipeline
            store: Where progress and the paused flag are published
            compensation_ms: Fixed forward offset added to every tick
            jitter_tolerance_ms: Late ticks that would pull a running clock
                back by at most this much are ignored (0 disables)
            time_offset_ms: User display offset applied by display_time()
        """
        self.timer = timer
        self.store = store
        self.compensation_ms = compensation_ms
        self.jitter_tolerance_ms = max(0, jitter_tolerance_ms)
        self.time_offset_ms = time_offset_ms

    def on_progress_tick(self, tick: ProgressTickEvent) -> None:
        """Re-align the clock to an authoritative position."""
        if tick.replay:
            logger.debug("Track replayed from the start")
            self._restart_clock()
            return

        if tick.is_paused is not None:
            self.store.set_paused(tick.is_paused)
        is_paused = self.store.get_player_state().is_paused

        target = tick.progress + self.compensation_ms
        if self._is_late_tick(target, is_paused):
            logger.debug(f"Ignoring late progress tick ({target:.0f}ms < {self.timer.get_time():.0f}ms)")
        else:
            self.timer.set_time(target)

        if is_paused:
            self.timer.pause()
        else:
            self.timer.start()
        self.store.set_progress(self.timer.get_time())

    def on_pause_state(self, is_paused: bool) -> None:
        """Halt or resume extrapolation right away, without waiting for a tick."""
        self.store.set_paused(is_paused)
        if is_paused:
            self.timer.pause()
        else:
            self.timer.start()
        self.store.set_progress(self.timer.get_time())

    def on_track_change(self) -> None:
        """A new track starts from zero until its first tick."""
        self._restart_clock()

    def refresh(self) -> float:
        """Publish the extrapolated position; called once per display frame."""
        position = self.timer.get_time()
        self.store.set_progress(position)
        return position

    def display_time(self) -> int:
        """Progress as the display should use it, with the user offset applied."""
        return max(0, self.store.get_player_state().progress + self.time_offset_ms)

    async def run(self, interval: float = DEFAULT_REFRESH_INTERVAL) -> None:
        """Display-refresh loop; runs until cancelled."""
        logger.debug(f"Progress refresh loop started ({interval * 1000:.0f}ms cadence)")
        try:
            while True:
                self.refresh()
                await asyncio.sleep(interval)
        finally:
            logger.debug("Progress refresh loop stopped")

    def _restart_clock(self) -> None:
        self.timer.reset()
        if not self.store.get_player_state().is_paused:
            self.timer.start()
        self.store.set_progress(0)

    def _is_late_tick(self, target: float, is_paused: bool) -> bool:
        if not self.jitter_tolerance_ms or is_paused or not self.timer.is_running:
            return False
        behind = self.timer.get_time() - target
        return 0 < behind <= self.jitter_tolerance_ms
