"""A timer whose period is shortened by a random jitter."""

from __future__ import annotations

import threading
import time

from xsampling.clock import DefaultRand, Rand

_NANOS_PER_SECOND = 1_000_000_000


class JitterTimer:
    """Fires once after ``duration`` seconds minus a random jitter.

    Each time the timer is armed, a random amount in ``[0, jitter)`` seconds is
    subtracted from ``duration``. Call :meth:`reset` to arm it again.
    """

    def __init__(self, duration: float, jitter: float, rand: Rand | None = None) -> None:
        self.duration = duration
        self.jitter = jitter
        self._rand = rand if rand is not None else DefaultRand()
        self.delay = 0.0
        self.deadline = 0.0
        self.reset()

    def reset(self) -> None:
        """Arm the timer again with a freshly drawn jitter."""
        jitter_ns = self._rand.int63n(int(round(self.jitter * _NANOS_PER_SECOND)))
        self.delay = self.duration - jitter_ns / _NANOS_PER_SECOND
        self.deadline = time.monotonic() + self.delay

    def remaining(self) -> float:
        """Seconds left until the timer fires, never negative."""
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, stop_event: threading.Event | None = None) -> bool:
        """Block until the timer fires or ``stop_event`` is set.

        Returns True when the timer fired, False when it was stopped.
        """
        if stop_event is None:
            time.sleep(self.remaining())
            return True
        return not stop_event.wait(self.remaining())