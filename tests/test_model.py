from dataclasses import replace
from datetime import datetime, timezone

from xsampling.model import (
    Decision,
    Request,
    SamplingRule,
    SamplingRuleRecord,
    SamplingStatisticsDocument,
    SamplingStrategy,
    SamplingTargetDocument,
    SamplingTargetsOutput,
    UnprocessedStatistics,
)


class _AlwaysSample:
    def should_trace(self, request):
        return Decision(sample=True, rule=request.host)


def test_decision_defaults_to_not_sampled_without_rule():
    decision = Decision()
    assert decision.sample is False
    assert decision.rule is None


def test_decision_equality_by_value():
    assert Decision(True, "r1") == Decision(sample=True, rule="r1")
    assert Decision(True, "r1") != Decision(True, "r2")


def test_request_defaults_are_empty_strings():
    request = Request()
    assert (request.host, request.method, request.url) == ("", "", "")
    assert (request.service_name, request.service_type) == ("", "")


def test_request_is_mutable():
    request = Request(host="www.foo.com")
    request.service_type = "AWS::EC2::Instance"
    assert request == Request(host="www.foo.com", service_type="AWS::EC2::Instance")


def test_strategy_protocol_is_structural():
    strategy = _AlwaysSample()
    assert isinstance(strategy, SamplingStrategy)
    assert strategy.should_trace(Request(host="h")) == Decision(True, "h")


def test_sampling_rule_fields_default_to_missing():
    rule = SamplingRule(rule_name="r2", fixed_rate=0.05)
    assert rule.rule_name == "r2"
    assert rule.fixed_rate == 0.05
    assert rule.priority is None
    assert rule.attributes is None


def test_rule_record_wraps_rule():
    rule = SamplingRule(rule_name="r1", version=1)
    record = SamplingRuleRecord(sampling_rule=rule)
    assert record.sampling_rule is rule
    assert SamplingRuleRecord().sampling_rule is None


def test_target_document_replace_keeps_other_fields():
    ttl = datetime.fromtimestamp(1500000060, timezone.utc)
    target = SamplingTargetDocument(rule_name="r1", fixed_rate=0.05, reservoir_quota=10, reservoir_quota_ttl=ttl)
    updated = replace(target, fixed_rate=0.07)
    assert updated.reservoir_quota_ttl == ttl
    assert updated.rule_name == "r1"
    assert target.fixed_rate == 0.05


def test_statistics_document_equality():
    now = datetime.fromtimestamp(1500000000, timezone.utc)
    a = SamplingStatisticsDocument("c1", "r1", 1000, 100, 5, now)
    b = SamplingStatisticsDocument(
        client_id="c1", rule_name="r1", request_count=1000, sampled_count=100, borrow_count=5, timestamp=now
    )
    assert a == b


def test_targets_output_lists_are_independent():
    first = SamplingTargetsOutput()
    second = SamplingTargetsOutput()
    first.sampling_target_documents.append(SamplingTargetDocument(rule_name="r1"))
    first.unprocessed_statistics.append(UnprocessedStatistics(rule_name="r1", error_code="500"))
    assert second.sampling_target_documents == []
    assert second.unprocessed_statistics == []
    assert len(first.sampling_target_documents) == 1