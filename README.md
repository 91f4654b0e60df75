# xsampling

xsampling decides whether an incoming request should be traced. It provides these pieces:

- a sampling strategy driven by a local JSON rule document;
- the rules, reservoirs and rule set used for centrally published sampling rules;
- a client that fetches those rules and quotas from a local trace daemon.

It has no dependencies outside the standard library.

## Installation

```
pip install xsampling
```

## Local rules

`xsampling.localized.LocalizedStrategy` makes decisions from a rule document. The document has these parts:

- a `version`, which is 1 or 2;
- a `default` rule;
- an optional list of `rules`.

What a rule in the list must name depends on the version:

- Version 1 rules must give `service_name`, `http_method` and `url_path`, and must not give `host`. The `service_name` value is then used as the rule's host.
- Version 2 rules must give `host`, `http_method` and `url_path`, and must not give `service_name`.

Every rule has two numbers:

- `fixed_target` is how many requests per second are always sampled.
- `rate` is the fraction of the remaining requests that are sampled.

Both must be non-negative. The default rule must not give `url_path`, `service_name` or `http_method`.

```python
from xsampling.localized import LocalizedStrategy
from xsampling.model import Request

rules = b"""{
  "version": 2,
  "default": {"fixed_target": 1, "rate": 0.05},
  "rules": [
    {"host": "*", "http_method": "*", "url_path": "/checkout",
     "fixed_target": 10, "rate": 0.05}
  ]
}"""

strategy = LocalizedStrategy.from_json_bytes(rules)
decision = strategy.should_trace(Request(host="shop.example.com", method="GET", url="/checkout"))
print(decision.sample)   # True or False
print(decision.rule)     # always None for local rules
```

There are three ways to build a local strategy:

- `LocalizedStrategy.from_json_bytes(data)` takes the document as bytes or a string.
- `LocalizedStrategy.from_file_path(path)` reads the document from a file.
- `LocalizedStrategy.default()` samples the first request in each second and 5% of the requests after that.

Malformed JSON or an invalid document raises `ValueError`. The lower-level functions `xsampling.manifest.manifest_from_json_bytes` and `manifest_from_file_path` return the parsed `RuleManifest`.

`should_trace` uses the first rule in the list that matches. If none matches, it uses the default rule.

## Matching

Rule values may contain wildcards:

- `*` matches any run of characters.
- `?` matches exactly one character.

Matching ignores case. An empty field in a `Request` matches any rule value.

## Centrally published rules

The module `xsampling.centralized_manifest` holds `CentralizedManifest`. This is a rule set of `xsampling.rule.CentralizedRule` objects kept in order of priority, plus an optional rule named `Default`. Its methods:

- `put_rule(svc_rule)` takes a `xsampling.model.SamplingRule`. It creates the named rule, or updates it if it already exists, and returns it. A rule that lacks a field it needs raises `ValueError` and leaves the manifest unchanged. A new rule is appended at the end, so call `sort()` afterwards.
- `sort()` orders the rules by priority, then by rule name.
- `prune(actives)` removes every rule that is not in `actives` and keeps the order of the rest.
- `expired()` is true when `refreshed_at` is more than an hour older than the manifest's clock.

```python
from xsampling.centralized_manifest import CentralizedManifest
from xsampling.model import Request, SamplingRule

manifest = CentralizedManifest()
rule = manifest.put_rule(SamplingRule(
    rule_name="checkout", priority=1, reservoir_size=5, fixed_rate=0.1,
    service_name="*", host="*", http_method="POST", url_path="/checkout",
    service_type="*", resource_arn="*",
))
manifest.sort()

request = Request(host="shop.example.com", method="POST", url="/checkout")
if rule.applies_to(request):
    print(rule.sample())      # Decision(sample=..., rule='checkout')
print(rule.snapshot())        # counters since the last snapshot, then reset
```

`CentralizedRule.sample()` decides as follows:

1. While the rule's quota is valid, it samples from that quota. Once the quota is used up for the current second, it samples at the fixed rate.
2. After the quota has expired, it samples one request per second (if the rule's capacity is non-zero) and the rest at the fixed rate.

`stale(now)` tells whether a rule that has been used is due for a new quota.

## Talking to the daemon

`xsampling.proxy.DaemonProxy(address="127.0.0.1:2000", timeout=5.0)` sends unsigned JSON POST requests to the trace daemon:

- `get_sampling_rules()` returns a list of `SamplingRuleRecord`.
- `get_sampling_targets(statistics)` reports `SamplingStatisticsDocument`s and returns a `SamplingTargetsOutput`.

Network failures and malformed replies raise `xsampling.proxy.ProxyError`. An address that is not `host:port` raises `ValueError`. Anything that has these two methods satisfies the `ServiceProxy` protocol.

## Supporting pieces

- `xsampling.reservoir`:
  - `Reservoir` is a local per-second reservoir.
  - `CentralizedReservoir` is a reservoir with a quota assigned by the service.
- `xsampling.clock`:
  - `DefaultClock` is the system clock, in UTC.
  - `DefaultRand` is a thread-safe, process-wide random source.
  - `Clock` and `Rand` are protocols, so you can substitute your own.
- `xsampling.timer.JitterTimer(duration, jitter)`:
  - It fires after `duration` seconds less a random amount in `[0, jitter)`.
  - `wait(stop_event)` returns True when the timer fires and False when the event is set first.
  - `reset()` arms it again.

## What this package does not do

There is no strategy that ties the central rule set, the daemon client and a local fallback together. Nothing here polls the daemon in the background or applies returned sampling targets to rules automatically. To use central rules, you must do these steps yourself with the pieces above:

1. Fetch the rules and call `put_rule`, `prune` and `sort`.
2. Match requests against the rules.
3. Report `snapshot()` statistics.
4. Fall back to a `LocalizedStrategy` when the manifest has `expired()`.

The package has no command-line interface.