"""Start/pause focus timer with clock-driven display ticks."""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

TickCallback = Callable[[str], None]


class TimerState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'


def format_elapsed(milliseconds: int) -> str:
    """Render elapsed time as MM:SS; minutes are not wrapped at 60."""
    total_seconds = max(0, int(milliseconds)) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class FocusTimer:
    """
    Measures focus time across start/pause cycles.

    elapsed() is computed from the clock on demand, so it stays correct with
    no tick running. While running, subscribers registered through on_tick()
    also receive the formatted time once per tick_interval. Each tick re-reads
    the clock, so missed or late ticks never accumulate drift.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Any = None,
        tick_interval: float = 1.0
    ):
        """
        Initialize the timer.

        Args:
            clock: Monotonic clock in seconds
            scheduler: Object with call_later(delay, callback) returning a
                cancellable handle, e.g. an asyncio event loop. Defaults to
                the running asyncio loop at start() time, if any.
            tick_interval: Seconds between display ticks (default: 1.0)
        """
        self._clock = clock
        self._scheduler = scheduler
        self.tick_interval = tick_interval
        self._state = TimerState.IDLE
        self._start_instant = 0.0
        self._accumulated = 0.0
        self._tick_handle = None
        self._subscribers: List[TickCallback] = []

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is TimerState.RUNNING

    def start(self) -> None:
        """Idle/Paused -> Running. Resuming continues from the accumulated time."""
        if self.is_running:
            return
        self._start_instant = self._clock() - self._accumulated
        self._state = TimerState.RUNNING
        logger.debug(f"Timer started at {format_elapsed(self.elapsed())}")
        self._schedule_tick()

    def pause(self) -> None:
        """Running -> Paused. No-op in any other state."""
        if not self.is_running:
            return
        self._accumulated = self._clock() - self._start_instant
        self._state = TimerState.PAUSED
        self._cancel_tick()
        logger.debug(f"Timer paused at {format_elapsed(self.elapsed())}")

    def elapsed(self) -> int:
        """Accumulated focus time in milliseconds."""
        if self.is_running:
            seconds = self._clock() - self._start_instant
        else:
            seconds = self._accumulated
        return int(seconds * 1000)

    def on_tick(self, callback: TickCallback) -> Callable[[], None]:
        """
        Subscribe to MM:SS display updates.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def dispose(self) -> None:
        """Release the timer: stops ticking and freezes elapsed time."""
        self.pause()
        self._subscribers.clear()

    def __enter__(self) -> 'FocusTimer':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def _resolve_scheduler(self):
        if self._scheduler is not None:
            return self._scheduler
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _schedule_tick(self) -> None:
        scheduler = self._resolve_scheduler()
        if scheduler is None:
            logger.debug("No scheduler available, display ticks disabled")
            return
        self._tick_handle = scheduler.call_later(self.tick_interval, self._tick)

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _tick(self) -> None:
        self._tick_handle = None
        if not self.is_running:
            return

        display = format_elapsed(self.elapsed())
        for callback in list(self._subscribers):
            try:
                callback(display)
            except Exception as e:
                logger.warning(f"Tick subscriber failed: {e}")

        if self.is_running:
            self._schedule_tick()
