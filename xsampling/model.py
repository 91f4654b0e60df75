"""Data exchanged between callers, sampling strategies and the sampling service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable


@dataclass
class Decision:
    """A sampling decision and the name of the rule that made it, if any."""

    sample: bool = False
    rule: Optional[str] = None


@dataclass
class Request:
    """Parameters used to make a sampling decision."""

    host: str = ""
    method: str = ""
    url: str = ""
    service_name: str = ""
    service_type: str = ""


@runtime_checkable
class SamplingStrategy(Protocol):
    """Anything that decides whether a request is traced."""

    def should_trace(self, request: Request) -> Decision:
        """Return the sampling decision for ``request``."""
        ...


@dataclass
class SamplingRule:
    """A sampling rule as published by the sampling service.

    Every field may be missing; missing fields are None.
    """

    rule_name: Optional[str] = None
    service_name: Optional[str] = None
    http_method: Optional[str] = None
    url_path: Optional[str] = None
    reservoir_size: Optional[int] = None
    fixed_rate: Optional[float] = None
    priority: Optional[int] = None
    host: Optional[str] = None
    service_type: Optional[str] = None
    resource_arn: Optional[str] = None
    version: Optional[int] = None
    attributes: Optional[dict[str, Optional[str]]] = None


@dataclass
class SamplingRuleRecord:
    """A record wrapping one sampling rule."""

    sampling_rule: Optional[SamplingRule] = None


@dataclass
class SamplingTargetDocument:
    """A sampling target assigned to one rule for the next interval."""

    rule_name: Optional[str] = None
    fixed_rate: Optional[float] = None
    reservoir_quota: Optional[int] = None
    reservoir_quota_ttl: Optional[datetime] = None
    interval: Optional[int] = None


@dataclass
class SamplingStatisticsDocument:
    """Sampling counters reported for one rule."""

    client_id: Optional[str] = None
    rule_name: Optional[str] = None
    request_count: Optional[int] = None
    sampled_count: Optional[int] = None
    borrow_count: Optional[int] = None
    timestamp: Optional[datetime] = None


@dataclass
class UnprocessedStatistics:
    """Statistics the service could not process, with the reason."""

    rule_name: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class SamplingTargetsOutput:
    """The service's answer to a request for sampling targets."""

    last_rule_modification: Optional[datetime] = None
    sampling_target_documents: list[SamplingTargetDocument] = field(default_factory=list)
    unprocessed_statistics: list[UnprocessedStatistics] = field(default_factory=list)