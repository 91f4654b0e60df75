"""The set of sampling rules published by the sampling service."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, TypeVar

from xsampling.clock import Clock, DefaultClock, DefaultRand
from xsampling.model import SamplingRule
from xsampling.reservoir import CentralizedReservoir
from xsampling.rule import CentralizedRule, Properties

DEFAULT_RULE_NAME = "Default"
DEFAULT_INTERVAL = 10
MANIFEST_TTL = 3600  # seconds

_T = TypeVar("_T")


def _require(value: Optional[_T], name: str, rule_name: Optional[str]) -> _T:
    if value is None:
        raise ValueError(f"sampling rule {rule_name!r} is missing field {name!r}")
    return value


@dataclass
class _UserFields:
    properties: Properties
    priority: int
    capacity: int
    service_type: str
    resource_arn: str
    attributes: Optional[dict[str, Optional[str]]]


def _user_fields(svc_rule: SamplingRule) -> _UserFields:
    """Read every field a user-defined rule needs, before anything is changed."""
    name = svc_rule.rule_name
    capacity = _require(svc_rule.reservoir_size, "reservoir_size", name)
    properties = Properties(
        service_name=_require(svc_rule.service_name, "service_name", name),
        http_method=_require(svc_rule.http_method, "http_method", name),
        url_path=_require(svc_rule.url_path, "url_path", name),
        fixed_target=capacity,
        rate=_require(svc_rule.fixed_rate, "fixed_rate", name),
        host=_require(svc_rule.host, "host", name),
    )
    return _UserFields(
        properties=properties,
        priority=_require(svc_rule.priority, "priority", name),
        capacity=capacity,
        service_type=_require(svc_rule.service_type, "service_type", name),
        resource_arn=_require(svc_rule.resource_arn, "resource_arn", name),
        attributes=svc_rule.attributes,
    )


def _default_fields(svc_rule: SamplingRule) -> tuple[Properties, int]:
    name = svc_rule.rule_name
    capacity = _require(svc_rule.reservoir_size, "reservoir_size", name)
    rate = _require(svc_rule.fixed_rate, "fixed_rate", name)
    return Properties(fixed_target=capacity, rate=rate), capacity


@dataclass
class CentralizedManifest:
    """Custom rules sorted by matching priority, plus a default rule.

    ``index`` maps rule names to rules, the default rule included.
    """

    default: Optional[CentralizedRule] = None
    rules: list[CentralizedRule] = field(default_factory=list)
    index: dict[str, CentralizedRule] = field(default_factory=dict)
    refreshed_at: int = 0
    clock: Clock = field(default_factory=DefaultClock)
    lock: threading.RLock = field(
        default_factory=threading.RLock, compare=False, repr=False
    )

    def put_rule(self, svc_rule: SamplingRule) -> CentralizedRule:
        """Update the named rule, or create it if it does not exist.

        A newly created user rule is appended, which may break the order of
        ``rules``; call :meth:`sort` afterwards. Raises ValueError if the rule
        lacks a field it needs; the manifest is then left unchanged.
        """
        name = _require(svc_rule.rule_name, "rule_name", None)

        if name == DEFAULT_RULE_NAME:
            with self.lock:
                existing = self.default
            if existing is not None:
                self._update_default_rule(existing, svc_rule)
                return existing
            return self._create_default_rule(svc_rule)

        with self.lock:
            existing = self.index.get(name)
        if existing is None:
            return self._create_user_rule(svc_rule)
        self._update_user_rule(existing, svc_rule)
        return existing

    def _create_user_rule(self, svc_rule: SamplingRule) -> CentralizedRule:
        fields = _user_fields(svc_rule)
        name = svc_rule.rule_name
        assert name is not None
        rule = CentralizedRule(
            rule_name=name,
            priority=fields.priority,
            reservoir=CentralizedReservoir(
                capacity=fields.capacity, interval=DEFAULT_INTERVAL
            ),
            properties=fields.properties,
            service_type=fields.service_type,
            resource_arn=fields.resource_arn,
            attributes=fields.attributes,
            clock=DefaultClock(),
            rand=DefaultRand(),
        )
        with self.lock:
            existing = self.index.get(name)
            if existing is not None:
                return existing
            self.rules.append(rule)
            self.index[name] = rule
        return rule

    @staticmethod
    def _update_user_rule(rule: CentralizedRule, svc_rule: SamplingRule) -> None:
        fields = _user_fields(svc_rule)
        with rule.lock:
            rule.properties = fields.properties
            rule.priority = fields.priority
            rule.reservoir.capacity = fields.capacity
            rule.service_type = fields.service_type
            rule.resource_arn = fields.resource_arn
            rule.attributes = fields.attributes

    def _create_default_rule(self, svc_rule: SamplingRule) -> CentralizedRule:
        properties, capacity = _default_fields(svc_rule)
        name = svc_rule.rule_name
        assert name is not None
        rule = CentralizedRule(
            rule_name=name,
            reservoir=CentralizedReservoir(capacity=capacity, interval=DEFAULT_INTERVAL),
            properties=properties,
            clock=DefaultClock(),
            rand=DefaultRand(),
        )
        with self.lock:
            if self.default is not None:
                return self.default
            self.default = rule
            self.index[name] = rule
        return rule

    @staticmethod
    def _update_default_rule(rule: CentralizedRule, svc_rule: SamplingRule) -> None:
        properties, capacity = _default_fields(svc_rule)
        with rule.lock:
            rule.properties = properties
            rule.reservoir.capacity = capacity

    def prune(self, actives: Iterable[CentralizedRule]) -> None:
        """Remove every user rule not among ``actives``, keeping the order."""
        keep = {id(rule) for rule in actives}
        with self.lock:
            removed = [rule for rule in self.rules if id(rule) not in keep]
            self.rules[:] = [rule for rule in self.rules if id(rule) in keep]
            for rule in removed:
                self.index.pop(rule.rule_name, None)

    def sort(self) -> None:
        """Order the rules by priority, then by rule name."""
        with self.lock:
            self.rules.sort(key=lambda rule: (rule.priority, rule.rule_name))

    def expired(self) -> bool:
        """True if the manifest has not been refreshed in the last hour."""
        now = math.floor(self.clock.now().timestamp())
        with self.lock:
            return self.refreshed_at < now - MANIFEST_TTL