"""A running focus session: timer plus telemetry checkpoints."""
import asyncio
import logging
from typing import Callable, Optional

from focus.models import CheckpointResult
from focus.telemetry import SessionTelemetry
from focus.timer import FocusTimer, TickCallback

logger = logging.getLogger(__name__)


class FocusSession:
    """
    Owns a FocusTimer and reports its time on every pause and on close.

    There is no periodic checkpoint while running: time since the last
    pause is only lost if the process dies before close() runs.

    pause() and close() checkpoint on the calling thread. Code running on an
    event loop should use pause_async() and close_async(), which run the
    checkpoint in the loop's executor so a slow backend never holds up
    timer ticks or other work scheduled on the loop.
    """

    def __init__(self, timer: FocusTimer, telemetry: SessionTelemetry):
        self.timer = timer
        self.telemetry = telemetry
        self._closed = False
        self._checkpoint_lock: Optional[asyncio.Lock] = None

    @property
    def is_running(self) -> bool:
        return self.timer.is_running

    def on_tick(self, callback: TickCallback) -> Callable[[], None]:
        return self.timer.on_tick(callback)

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("Focus session already closed")
        self.timer.start()

    def pause(self) -> Optional[CheckpointResult]:
        """
        Pause the timer and checkpoint the elapsed time.

        Returns:
            CheckpointResult, or None if the timer was not running
        """
        if not self.timer.is_running:
            return None
        self.timer.pause()
        return self.telemetry.checkpoint(self.timer.elapsed() // 1000)

    async def pause_async(self) -> Optional[CheckpointResult]:
        """
        Pause the timer now and checkpoint without blocking the event loop.

        Ticking stops before the first await. Checkpoints of one session
        run one at a time so each sees the previous acknowledged baseline.

        Returns:
            CheckpointResult, or None if the timer was not running
        """
        if not self.timer.is_running:
            return None
        self.timer.pause()
        elapsed_seconds = self.timer.elapsed() // 1000

        if self._checkpoint_lock is None:
            self._checkpoint_lock = asyncio.Lock()
        async with self._checkpoint_lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None, self.telemetry.checkpoint, elapsed_seconds
            )

    def close(self) -> Optional[CheckpointResult]:
        """Pause (best effort checkpoint) and release the timer."""
        if self._closed:
            return None
        self._closed = True
        try:
            return self.pause()
        finally:
            self.timer.dispose()

    async def close_async(self) -> Optional[CheckpointResult]:
        """close() for code running on an event loop."""
        if self._closed:
            return None
        self._closed = True
        try:
            return await self.pause_async()
        finally:
            self.timer.dispose()

    def __enter__(self) -> 'FocusSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.close()
        except Exception as e:
            # Do not mask the exception that ended the session
            if exc_type is None:
                raise
            logger.error(f"Checkpoint on close failed: {e}")

    async def __aenter__(self) -> 'FocusSession':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.close_async()
        except Exception as e:
            if exc_type is None:
                raise
            logger.error(f"Checkpoint on close failed: {e}")
