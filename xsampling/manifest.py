"""Local sampling rule sets read from JSON."""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from typing import Any, Union

from xsampling.clock import DefaultClock, DefaultRand
from xsampling.reservoir import Reservoir
from xsampling.rule import Properties, Rule

_STRING_FIELDS = ("service_name", "host", "http_method", "url_path")


@dataclass
class RuleManifest:
    """A full local rule set: custom rules and a default for everything else."""

    version: int = 0
    default: Rule = field(default_factory=Rule)
    rules: list[Rule] = field(default_factory=list)


def manifest_from_file_path(path: Union[str, os.PathLike[str]]) -> RuleManifest:
    """Read a rule set from the JSON file at ``path``."""
    with open(path, "rb") as handle:
        data = handle.read()
    return manifest_from_json_bytes(data)


def manifest_from_json_bytes(data: Union[bytes, str]) -> RuleManifest:
    """Build a rule set from JSON text.

    Raises ValueError if the JSON is malformed or the rule set is invalid.
    """
    document = json.loads(data)
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ValueError("sampling rule manifest must be a JSON object")

    version = _get_int(document, "version")
    default_obj = document.get("default")
    rules_obj = document.get("rules")
    if rules_obj is None:
        rules_obj = []
    if not isinstance(rules_obj, list):
        raise ValueError("sampling rule manifest field 'rules' must be a list")

    default = None if default_obj is None else _parse_properties(default_obj)
    rules = [_parse_properties(item) for item in rules_obj]

    _validate(version, default, rules)
    assert default is not None

    return RuleManifest(
        version=version,
        default=_make_rule(default),
        rules=[_make_rule(props) for props in rules],
    )


def _get_int(obj: dict[str, Any], key: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _get_float(obj: dict[str, Any], key: str) -> float:
    value = obj.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _get_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _parse_properties(obj: Any) -> Properties:
    if not isinstance(obj, dict):
        raise ValueError("sampling rule must be a JSON object")
    strings = {key: _get_str(obj, key) for key in _STRING_FIELDS}
    return Properties(
        fixed_target=_get_int(obj, "fixed_target"),
        rate=_get_float(obj, "rate"),
        **strings,
    )


def _validate(version: int, default: Properties | None, rules: list[Properties]) -> None:
    if version not in (1, 2):
        raise ValueError(f"sampling rule manifest version {version} not supported")
    if default is None:
        raise ValueError("sampling rule manifest must include a default rule")
    if default.url_path or default.service_name or default.http_method:
        raise ValueError(
            "the default rule must not specify values for url_path, service_name, "
            "or http_method"
        )
    if default.fixed_target < 0 or default.rate < 0:
        raise ValueError(
            "the default rule must specify non-negative values for fixed_target and rate"
        )
    for props in rules:
        if version == 1:
            _validate_version1(props)
            # Version 1 rules name the host in service_name.
            props.host = props.service_name
            props.service_name = ""
        else:
            _validate_version2(props)


def _validate_version1(props: Properties) -> None:
    if props.fixed_target < 0 or props.rate < 0:
        raise ValueError("all rules must have non-negative values for fixed_target and rate")
    if props.host or not props.service_name or not props.http_method or not props.url_path:
        raise ValueError(
            "all non-default rules must have values for url_path, service_name, "
            "and http_method"
        )


def _validate_version2(props: Properties) -> None:
    if props.fixed_target < 0 or props.rate < 0:
        raise ValueError("all rules must have non-negative values for fixed_target and rate")
    if props.service_name or not props.host or not props.http_method or not props.url_path:
        raise ValueError(
            "all non-default rules must have values for url_path, host, and http_method"
        )


def _make_rule(props: Properties) -> Rule:
    clock = DefaultClock()
    reservoir = Reservoir(
        clock=clock,
        capacity=props.fixed_target,
        used=0,
        current_epoch=math.floor(clock.now().timestamp()),
    )
    return Rule(properties=props, reservoir=reservoir, rand=DefaultRand())