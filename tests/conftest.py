"""Shared fixtures: deterministic clock and scheduler."""
import pytest


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """call_later() compatible scheduler driven by a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.pending = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self.clock.now + delay, callback)
        self.pending.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.pending if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing callbacks that come due in order."""
        target = self.clock.now + seconds
        while True:
            due = sorted(
                (h for h in self.active if h.when <= target),
                key=lambda h: h.when
            )
            if not due:
                break
            handle = due[0]
            self.pending.remove(handle)
            self.clock.now = max(self.clock.now, handle.when)
            handle.callback()
        self.clock.now = target


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)
