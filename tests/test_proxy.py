import json
import socket
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from xsampling.model import SamplingRule, SamplingStatisticsDocument
from xsampling.proxy import DaemonProxy, ProxyError


class FakeDaemon:
    def __init__(self):
        self.requests = []
        self.status = 200
        self.body = b"{}"
        daemon = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                payload = self.rfile.read(length)
                daemon.requests.append((self.path, payload))
                self.send_response(daemon.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(daemon.body)))
                self.end_headers()
                self.wfile.write(daemon.body)

            def log_message(self, *args):
                pass

        self.server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.address = f"127.0.0.1:{self.server.server_address[1]}"

    def respond(self, document, status=200):
        self.body = json.dumps(document).encode("utf-8")
        self.status = status


@pytest.fixture
def daemon():
    fake = FakeDaemon()
    thread = threading.Thread(target=fake.server.serve_forever, daemon=True)
    thread.start()
    yield fake
    fake.server.shutdown()
    fake.server.server_close()
    thread.join()


def test_endpoint_built_from_address():
    proxy = DaemonProxy("127.0.0.1:3000")
    assert proxy.endpoint == "http://127.0.0.1:3000"
    assert proxy.address == "127.0.0.1:3000"


@pytest.mark.parametrize(
    "address", ["localhost", "127.0.0.1:", ":2000", "127.0.0.1:port", "127.0.0.1:70000"]
)
def test_invalid_address_raises(address):
    with pytest.raises(ValueError):
        DaemonProxy(address)


def test_get_sampling_rules_parses_records(daemon):
    daemon.respond(
        {
            "SamplingRuleRecords": [
                {
                    "SamplingRule": {
                        "RuleName": "r1",
                        "ServiceName": "www.foo.com",
                        "HTTPMethod": "POST",
                        "URLPath": "/resource/bar",
                        "ReservoirSize": 50,
                        "FixedRate": 0.05,
                        "Priority": 4,
                        "Host": "www.foo.com",
                        "ServiceType": "*",
                        "ResourceARN": "*",
                        "Version": 1,
                        "Attributes": {"a": "b"},
                    }
                },
                {},
            ]
        }
    )
    records = DaemonProxy(daemon.address).get_sampling_rules()

    assert daemon.requests[0][0] == "/GetSamplingRules"
    assert len(records) == 2
    assert records[0].sampling_rule == SamplingRule(
        rule_name="r1",
        service_name="www.foo.com",
        http_method="POST",
        url_path="/resource/bar",
        reservoir_size=50,
        fixed_rate=0.05,
        priority=4,
        host="www.foo.com",
        service_type="*",
        resource_arn="*",
        version=1,
        attributes={"a": "b"},
    )
    assert records[1].sampling_rule is None


def test_get_sampling_rules_without_records(daemon):
    daemon.respond({})
    assert DaemonProxy(daemon.address).get_sampling_rules() == []


def test_missing_fields_are_none(daemon):
    daemon.respond({"SamplingRuleRecords": [{"SamplingRule": {"RuleName": "r2"}}]})
    rule = DaemonProxy(daemon.address).get_sampling_rules()[0].sampling_rule
    assert rule == SamplingRule(rule_name="r2")


def test_get_sampling_targets_round_trip(daemon):
    daemon.respond(
        {
            "LastRuleModification": 1499999900,
            "SamplingTargetDocuments": [
                {
                    "RuleName": "r1",
                    "FixedRate": 0.07,
                    "ReservoirQuota": 3,
                    "ReservoirQuotaTTL": 1500000060,
                    "Interval": 10,
                }
            ],
            "UnprocessedStatistics": [
                {"RuleName": "r3", "ErrorCode": "400", "Message": "bad"}
            ],
        }
    )
    stamp = datetime.fromtimestamp(1500000000, timezone.utc)
    statistics = [
        SamplingStatisticsDocument(
            client_id="c1",
            rule_name="r1",
            request_count=100,
            sampled_count=12,
            borrow_count=2,
            timestamp=stamp,
        )
    ]

    output = DaemonProxy(daemon.address).get_sampling_targets(statistics)

    path, payload = daemon.requests[0]
    assert path == "/SamplingTargets"
    assert json.loads(payload) == {
        "SamplingStatisticsDocuments": [
            {
                "ClientID": "c1",
                "RuleName": "r1",
                "RequestCount": 100,
                "SampledCount": 12,
                "BorrowCount": 2,
                "Timestamp": 1500000000,
            }
        ]
    }
    assert output.last_rule_modification == datetime.fromtimestamp(1499999900, timezone.utc)
    target = output.sampling_target_documents[0]
    assert target.rule_name == "r1"
    assert target.fixed_rate == 0.07
    assert target.reservoir_quota == 3
    assert target.reservoir_quota_ttl == datetime.fromtimestamp(1500000060, timezone.utc)
    assert target.interval == 10
    unprocessed = output.unprocessed_statistics[0]
    assert (unprocessed.rule_name, unprocessed.error_code, unprocessed.message) == (
        "r3",
        "400",
        "bad",
    )


def test_server_error_raises(daemon):
    daemon.respond({"message": "boom"}, status=500)
    with pytest.raises(ProxyError):
        DaemonProxy(daemon.address).get_sampling_rules()


def test_malformed_json_raises(daemon):
    daemon.body = b"{not json"
    with pytest.raises(ProxyError):
        DaemonProxy(daemon.address).get_sampling_targets([])


def test_non_object_response_raises(daemon):
    daemon.respond([1, 2, 3])
    with pytest.raises(ProxyError):
        DaemonProxy(daemon.address).get_sampling_rules()


def test_invalid_field_value_raises(daemon):
    daemon.respond(
        {"SamplingRuleRecords": [{"SamplingRule": {"RuleName": "r1", "ReservoirSize": "lots"}}]}
    )
    with pytest.raises(ProxyError):
        DaemonProxy(daemon.address).get_sampling_rules()


def test_unreachable_daemon_raises():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    proxy = DaemonProxy(f"127.0.0.1:{port}", timeout=2.0)
    with pytest.raises(ProxyError):
        proxy.get_sampling_rules()