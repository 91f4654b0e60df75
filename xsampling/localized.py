"""Sampling decisions made from a local rule set."""

from __future__ import annotations

import logging
import os
from typing import Union

from xsampling.manifest import RuleManifest, manifest_from_file_path, manifest_from_json_bytes
from xsampling.model import Decision, Request

_log = logging.getLogger(__name__)

# Sample the first request each second and 5% of requests thereafter.
_DEFAULT_RULES = b'{"version": 2, "default": {"fixed_target": 1, "rate": 0.05}, "rules": []}'


class LocalizedStrategy:
    """Decides whether to trace a request using rules from a local JSON document.

    Decisions are made by the root service of a trace and passed downstream
    through the trace header.
    """

    def __init__(self, manifest: RuleManifest) -> None:
        self.manifest = manifest

    @classmethod
    def default(cls) -> "LocalizedStrategy":
        """A strategy sampling one request per second and 5% of the rest."""
        return cls(manifest_from_json_bytes(_DEFAULT_RULES))

    @classmethod
    def from_file_path(cls, path: Union[str, os.PathLike[str]]) -> "LocalizedStrategy":
        """A strategy using the rule set in the JSON file at ``path``."""
        return cls(manifest_from_file_path(path))

    @classmethod
    def from_json_bytes(cls, data: Union[bytes, str]) -> "LocalizedStrategy":
        """A strategy using the rule set in the given JSON text."""
        return cls(manifest_from_json_bytes(data))

    def should_trace(self, request: Request) -> Decision:
        """Apply the first matching rule, or the default rule if none match."""
        _log.debug(
            "Determining ShouldTrace decision for: host: %s path: %s method: %s",
            request.host,
            request.url,
            request.method,
        )
        for rule in self.manifest.rules:
            props = rule.properties
            if props.applies_to(request.host, request.url, request.method):
                _log.debug(
                    "Applicable rule: fixed_target: %d rate: %f host: %s url_path: %s "
                    "http_method: %s",
                    props.fixed_target,
                    props.rate,
                    props.host,
                    props.url_path,
                    props.http_method,
                )
                return rule.sample()
        default = self.manifest.default
        _log.debug(
            "Default rule applies: fixed_target: %d rate: %f",
            default.properties.fixed_target,
            default.properties.rate,
        )
        return default.sample()