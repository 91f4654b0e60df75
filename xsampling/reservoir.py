"""Reservoirs that allow a limited number of samples per second."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from xsampling.clock import Clock, DefaultClock


@dataclass
class CentralizedReservoir:
    """A reservoir whose quota is shared among all running clients.

    ``capacity``, ``used`` and ``current_epoch`` are common to all reservoirs;
    the rest tracks the quota the sampling service assigned to this client.
    """

    quota: int = 0
    refreshed_at: int = 0
    expires_at: int = 0
    interval: int = 0
    borrowed: bool = False
    capacity: int = 0
    used: int = 0
    current_epoch: int = 0

    def expired(self, now: int) -> bool:
        """True if ``now`` is past the quota's expiry."""
        return now > self.expires_at

    def borrow(self, now: int) -> bool:
        """True if nothing has been borrowed yet in this second."""
        if now != self.current_epoch:
            self.reset(now)
        already = self.borrowed
        self.borrowed = True
        return not already and self.capacity != 0

    def take(self, now: int) -> bool:
        """Consume one unit of quota if any remains in this second."""
        if now != self.current_epoch:
            self.reset(now)
        if self.quota > self.used:
            self.used += 1
            return True
        return False

    def reset(self, now: int) -> None:
        """Start a new one-second epoch."""
        self.current_epoch = now
        self.used = 0
        self.borrowed = False


@dataclass
class Reservoir:
    """A reservoir local to this process, refilled every second."""

    clock: Clock = field(default_factory=DefaultClock)
    capacity: int = 0
    used: int = 0
    current_epoch: int = 0

    def take(self) -> bool:
        """Consume one unit if the reservoir is not used up this second."""
        now = math.floor(self.clock.now().timestamp())
        if now != self.current_epoch:
            self.used = 0
            self.current_epoch = now
        if self.used >= self.capacity:
            return False
        self.used += 1
        return True