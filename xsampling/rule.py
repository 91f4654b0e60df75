"""Sampling rules: local rules read from a file and rules published centrally."""

from __future__ import annotations

import functools
import logging
import math
import re
import threading
from dataclasses import dataclass, field
from typing import Optional

from xsampling.clock import Clock, DefaultClock, DefaultRand, Rand
from xsampling.model import Decision, Request, SamplingStatisticsDocument
from xsampling.reservoir import CentralizedReservoir, Reservoir

_log = logging.getLogger(__name__)


@functools.lru_cache(maxsize=512)
def _compile_wildcard(pattern: str) -> re.Pattern[str]:
    pieces = []
    for char in pattern:
        if char == "*":
            pieces.append(".*")
        elif char == "?":
            pieces.append(".")
        else:
            pieces.append(re.escape(char))
    return re.compile("".join(pieces), re.IGNORECASE | re.DOTALL)


def _wildcard_match(pattern: str, text: str) -> bool:
    """Case-insensitive match where '*' is any run of characters and '?' is one."""
    return _compile_wildcard(pattern).fullmatch(text) is not None


def _unix_seconds(clock: Clock) -> int:
    return math.floor(clock.now().timestamp())


@dataclass
class Properties:
    """The base set of properties that define a sampling rule."""

    service_name: str = ""
    host: str = ""
    http_method: str = ""
    url_path: str = ""
    fixed_target: int = 0
    rate: float = 0.0

    def applies_to(self, host: str, path: str, method: str) -> bool:
        """True if the rule matches the given request parameters.

        An empty parameter matches any rule value.
        """
        return (
            (not host or _wildcard_match(self.host, host))
            and (not path or _wildcard_match(self.url_path, path))
            and (not method or _wildcard_match(self.http_method, method))
        )


@dataclass
class CentralizedRule:
    """A sampling rule published by the sampling service."""

    rule_name: str = ""
    priority: int = 0
    reservoir: CentralizedReservoir = field(default_factory=CentralizedReservoir)
    properties: Properties = field(default_factory=Properties)
    requests: int = 0
    sampled: int = 0
    borrows: int = 0
    used_at: int = 0
    service_type: str = ""
    resource_arn: str = ""
    attributes: Optional[dict[str, Optional[str]]] = None
    clock: Clock = field(default_factory=DefaultClock)
    rand: Rand = field(default_factory=DefaultRand)
    lock: threading.RLock = field(
        default_factory=threading.RLock, compare=False, repr=False
    )

    def applies_to(self, request: Request) -> bool:
        """True if the rule matches the request; empty request fields match anything."""
        props = self.properties
        return (
            (not request.host or _wildcard_match(props.host, request.host))
            and (not request.url or _wildcard_match(props.url_path, request.url))
            and (not request.method or _wildcard_match(props.http_method, request.method))
            and (
                not request.service_name
                or _wildcard_match(props.service_name, request.service_name)
            )
            and (
                not request.service_type
                or _wildcard_match(self.service_type, request.service_type)
            )
        )

    def stale(self, now: int) -> bool:
        """True if the rule has been used and its quota is due for a refresh."""
        with self.lock:
            return (
                self.requests != 0
                and now >= self.reservoir.refreshed_at + self.reservoir.interval
            )

    def sample(self) -> Decision:
        """Decide whether the current request is sampled under this rule."""
        now = _unix_seconds(self.clock)
        decision = Decision(rule=self.rule_name)
        with self.lock:
            self.requests += 1

            if self.reservoir.expired(now):
                if self.reservoir.borrow(now):
                    _log.debug(
                        "Sampling target has expired for rule %s. Borrowing a request.",
                        self.rule_name,
                    )
                    decision.sample = True
                    self.borrows += 1
                    return decision
                _log.debug(
                    "Sampling target has expired for rule %s. Using fixed rate.",
                    self.rule_name,
                )
                decision.sample = self._bernoulli_sample()
                return decision

            if self.reservoir.take(now):
                self.sampled += 1
                decision.sample = True
                return decision

            _log.debug(
                "Sampling target has been exhausted for rule %s. Using fixed rate.",
                self.rule_name,
            )
            decision.sample = self._bernoulli_sample()
            return decision

    def _bernoulli_sample(self) -> bool:
        if self.rand.float64() < self.properties.rate:
            self.sampled += 1
            return True
        return False

    def snapshot(self) -> SamplingStatisticsDocument:
        """Return the statistics counters and reset them to zero."""
        with self.lock:
            requests, sampled, borrows = self.requests, self.sampled, self.borrows
            self.requests = self.sampled = self.borrows = 0
        return SamplingStatisticsDocument(
            rule_name=self.rule_name,
            request_count=requests,
            sampled_count=sampled,
            borrow_count=borrows,
            timestamp=self.clock.now(),
        )


@dataclass
class Rule:
    """A sampling rule local to this process."""

    properties: Properties = field(default_factory=Properties)
    reservoir: Reservoir = field(default_factory=Reservoir)
    rand: Rand = field(default_factory=DefaultRand)
    lock: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    def sample(self) -> Decision:
        """Sample from the reservoir first, then at the fixed rate."""
        with self.lock:
            if self.reservoir.take():
                return Decision(sample=True)
            return Decision(sample=self.rand.float64() < self.properties.rate)