"""Access to the sampling service through the local trace daemon."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from xsampling.model import (
    SamplingRule,
    SamplingRuleRecord,
    SamplingStatisticsDocument,
    SamplingTargetDocument,
    SamplingTargetsOutput,
    UnprocessedStatistics,
)

_log = logging.getLogger(__name__)

DEFAULT_DAEMON_ADDRESS = "127.0.0.1:2000"

_T = TypeVar("_T")


class ProxyError(Exception):
    """A call to the sampling service failed."""


@runtime_checkable
class ServiceProxy(Protocol):
    """The calls a centralized strategy makes to the sampling service."""

    def get_sampling_rules(self) -> list[SamplingRuleRecord]:
        """Return the sampling rules currently published."""

    def get_sampling_targets(
        self, statistics: Sequence[SamplingStatisticsDocument]
    ) -> SamplingTargetsOutput:
        """Report statistics and return targets for the next interval."""


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port_text = address.strip().rpartition(":")
    if not sep or not host or not port_text.isdigit():
        raise ValueError(f"invalid daemon address {address!r}: expected host:port")
    port = int(port_text)
    if not 0 < port < 65536:
        raise ValueError(f"invalid daemon address {address!r}: port out of range")
    return host, port


def _field(obj: dict[str, Any], key: str, kind: Callable[[Any], _T]) -> Optional[_T]:
    value = obj.get(key)
    if value is None:
        return None
    try:
        if kind is int and isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        if kind in (int, float) and isinstance(value, (bool, str)):
            raise TypeError(value)
        return kind(value)
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise ProxyError(f"field {key!r} has invalid value {value!r}") from exc


def _time(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value), timezone.utc)


def _object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ProxyError(f"{what} must be a JSON object")
    return value


def _list(obj: dict[str, Any], key: str) -> list[Any]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProxyError(f"field {key!r} must be a list")
    return value


def _decode_attributes(value: Any) -> Optional[dict[str, Optional[str]]]:
    if value is None:
        return None
    attributes = _object(value, "Attributes")
    return {str(k): None if v is None else str(v) for k, v in attributes.items()}


def _decode_rule(value: Any) -> SamplingRule:
    obj = _object(value, "SamplingRule")
    return SamplingRule(
        rule_name=_field(obj, "RuleName", str),
        service_name=_field(obj, "ServiceName", str),
        http_method=_field(obj, "HTTPMethod", str),
        url_path=_field(obj, "URLPath", str),
        reservoir_size=_field(obj, "ReservoirSize", int),
        fixed_rate=_field(obj, "FixedRate", float),
        priority=_field(obj, "Priority", int),
        host=_field(obj, "Host", str),
        service_type=_field(obj, "ServiceType", str),
        resource_arn=_field(obj, "ResourceARN", str),
        version=_field(obj, "Version", int),
        attributes=_decode_attributes(obj.get("Attributes")),
    )


def _decode_rule_record(value: Any) -> SamplingRuleRecord:
    obj = _object(value, "SamplingRuleRecord")
    rule = obj.get("SamplingRule")
    return SamplingRuleRecord(sampling_rule=None if rule is None else _decode_rule(rule))


def _decode_target(value: Any) -> SamplingTargetDocument:
    obj = _object(value, "SamplingTargetDocument")
    return SamplingTargetDocument(
        rule_name=_field(obj, "RuleName", str),
        fixed_rate=_field(obj, "FixedRate", float),
        reservoir_quota=_field(obj, "ReservoirQuota", int),
        reservoir_quota_ttl=_field(obj, "ReservoirQuotaTTL", _time),
        interval=_field(obj, "Interval", int),
    )


def _decode_unprocessed(value: Any) -> UnprocessedStatistics:
    obj = _object(value, "UnprocessedStatistics")
    return UnprocessedStatistics(
        rule_name=_field(obj, "RuleName", str),
        error_code=_field(obj, "ErrorCode", str),
        message=_field(obj, "Message", str),
    )


def _encode_statistics(doc: SamplingStatisticsDocument) -> dict[str, Any]:
    encoded = {
        "ClientID": doc.client_id,
        "RuleName": doc.rule_name,
        "RequestCount": doc.request_count,
        "SampledCount": doc.sampled_count,
        "BorrowCount": doc.borrow_count,
        "Timestamp": None if doc.timestamp is None else doc.timestamp.timestamp(),
    }
    return {key: value for key, value in encoded.items() if value is not None}


class DaemonProxy:
    """Sends unsigned sampling requests to the trace daemon, which forwards them."""

    def __init__(self, address: str = DEFAULT_DAEMON_ADDRESS, timeout: float = 5.0) -> None:
        host, port = _split_address(address)
        self.address = f"{host}:{port}"
        self.endpoint = f"http://{self.address}"
        self.timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
        _log.info("X-Ray proxy using address : %s", self.address)

    def _call(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        request = urllib.request.Request(
            self.endpoint + path,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with self._opener.open(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            exc.close()
            raise ProxyError(f"{path} failed with status {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise ProxyError(f"{path} failed: {exc}") from exc
        try:
            document = json.loads(raw) if raw.strip() else {}
        except ValueError as exc:
            raise ProxyError(f"{path} returned malformed JSON") from exc
        return _object(document, f"{path} response")

    def get_sampling_rules(self) -> list[SamplingRuleRecord]:
        """Fetch the sampling rules currently published."""
        document = self._call("/GetSamplingRules", {})
        return [_decode_rule_record(item) for item in _list(document, "SamplingRuleRecords")]

    def get_sampling_targets(
        self, statistics: Sequence[SamplingStatisticsDocument]
    ) -> SamplingTargetsOutput:
        """Report sampling statistics and fetch targets for the next interval."""
        payload = {
            "SamplingStatisticsDocuments": [_encode_statistics(doc) for doc in statistics]
        }
        document = self._call("/SamplingTargets", payload)
        return SamplingTargetsOutput(
            last_rule_modification=_field(document, "LastRuleModification", _time),
            sampling_target_documents=[
                _decode_target(item) for item in _list(document, "SamplingTargetDocuments")
            ],
            unprocessed_statistics=[
                _decode_unprocessed(item) for item in _list(document, "UnprocessedStatistics")
            ],
        )