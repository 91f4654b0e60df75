"""Sources of the current time and of random numbers used by the samplers."""

from __future__ import annotations

import os
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Something that tells the current time."""

    def now(self) -> datetime:
        """Return the current time as an aware datetime."""

    def increment(self, seconds: int, nanoseconds: int) -> datetime:
        """Advance the clock, where supported, and return the new time."""


@dataclass(frozen=True)
class DefaultClock:
    """Clock backed by the system wall clock."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(timezone.utc)

    def increment(self, seconds: int, nanoseconds: int) -> datetime:
        """The system clock cannot be moved; return the current time."""
        return self.now()


@runtime_checkable
class Rand(Protocol):
    """Something that produces pseudo-random numbers."""

    def int63n(self, n: int) -> int:
        """Return a non-negative integer in [0, n)."""

    def intn(self, n: int) -> int:
        """Return a non-negative integer in [0, n)."""

    def float64(self) -> float:
        """Return a float in [0.0, 1.0)."""


def _new_seed() -> int:
    try:
        return int.from_bytes(os.urandom(8), "big", signed=True)
    except (OSError, NotImplementedError):
        return time.time_ns()


class _LockedRandom:
    """A pseudo-random generator that is safe to share between threads."""

    def __init__(self, seed: int) -> None:
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def below(self, n: int) -> int:
        if n <= 0:
            raise ValueError(f"invalid argument {n}: must be positive")
        with self._lock:
            return self._random.randrange(n)

    def unit(self) -> float:
        with self._lock:
            return self._random.random()


_GLOBAL_RAND = _LockedRandom(_new_seed())


@dataclass(frozen=True)
class DefaultRand:
    """Random source shared by the whole process, safe for concurrent use."""

    def int63n(self, n: int) -> int:
        """Return a non-negative pseudo-random integer in [0, n)."""
        return _GLOBAL_RAND.below(n)

    def intn(self, n: int) -> int:
        """Return a non-negative pseudo-random integer in [0, n)."""
        return _GLOBAL_RAND.below(n)

    def float64(self) -> float:
        """Return a pseudo-random float in [0.0, 1.0)."""
        return _GLOBAL_RAND.unit()