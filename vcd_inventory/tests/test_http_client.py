"""
Tests for the shared HTTP client: headers, retries, circuit breaking, caching.
"""
import json

import pytest
import requests

from ingestion.http_client import CircuitBreaker, CircuitOpenError, HttpClient, RetryConfig


def make_response(status_code, body=None, headers=None):
    response = requests.Response()
    response.status_code = status_code
    response.url = "https://vcd.example.com/cloudapi/1.0.0/vms"
    response.encoding = "utf-8"
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
    response._content = (body or "").encode("utf-8")
    response.headers.update(headers or {})
    return response


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.headers = {}
        self.verify = True
        self.requests = []

    def request(self, method, url, params=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "headers": headers})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []
    monkeypatch.setattr(
        HttpClient, "_sleep_with_backoff", lambda self, attempt, retry_after: delays.append(retry_after)
    )
    return delays


def make_client(session, **kwargs):
    return HttpClient(
        "https://vcd.example.com/",
        auth_token="secret-token",
        session=session,
        retry_config=RetryConfig(max_retries=2),
        **kwargs,
    )


def test_bearer_token_and_versioned_accept_header():
    session = FakeSession(make_response(200, {"values": []}))
    client = make_client(session, api_version="38.0")

    assert client.get_json("/cloudapi/1.0.0/vms", {"page": 1}) == {"values": []}

    sent = session.requests[0]
    assert session.headers["Authorization"] == "Bearer secret-token"
    assert sent["url"] == "https://vcd.example.com/cloudapi/1.0.0/vms"
    assert sent["headers"]["Accept"] == "application/json;version=38.0"
    assert sent["params"] == {"page": 1}


def test_get_text_uses_xml_accept_header():
    session = FakeSession(make_response(200, "<QueryResultRecords/>"))
    client = make_client(session)

    assert client.get_text("/api/query", {"type": "vm"}) == "<QueryResultRecords/>"
    assert session.requests[0]["headers"]["Accept"] == "application/*+xml;version=37.2"


def test_retries_server_errors_then_succeeds(no_sleep):
    session = FakeSession(
        make_response(503),
        make_response(429, headers={"Retry-After": "2"}),
        make_response(200, {"values": [1]}),
    )
    client = make_client(session)

    assert client.get_json("/cloudapi/1.0.0/vms") == {"values": [1]}
    assert len(session.requests) == 3
    assert no_sleep == [None, 2.0]


def test_client_errors_are_not_retried(no_sleep):
    session = FakeSession(make_response(404))
    breaker = CircuitBreaker(failure_threshold=1)
    client = make_client(session, circuit_breaker=breaker)

    with pytest.raises(requests.HTTPError) as excinfo:
        client.get_json("/cloudapi/1.0.0/vms")

    assert excinfo.value.response.status_code == 404
    assert len(session.requests) == 1
    assert no_sleep == []
    assert not breaker.is_open


def test_exhausted_retries_open_the_circuit(no_sleep):
    session = FakeSession(make_response(500), make_response(500), make_response(500))
    client = make_client(session, circuit_breaker=CircuitBreaker(failure_threshold=1, open_seconds=300))

    with pytest.raises(requests.HTTPError):
        client.get_json("/cloudapi/1.0.0/vms")
    assert len(session.requests) == 3
    assert client.circuit_breaker.is_open

    with pytest.raises(CircuitOpenError):
        client.get_json("/cloudapi/1.0.0/vms")
    assert len(session.requests) == 3


def test_connection_errors_retried_then_raised(no_sleep):
    session = FakeSession(
        requests.ConnectionError("refused"),
        requests.ConnectionError("refused"),
        requests.ConnectionError("refused"),
    )
    client = make_client(session)

    with pytest.raises(requests.ConnectionError):
        client.get_text("/api/query")
    assert len(session.requests) == 3


def test_circuit_breaker_half_open_trial(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr("ingestion.http_client.time.monotonic", lambda: clock[0])
    breaker = CircuitBreaker(failure_threshold=2, open_seconds=60)

    breaker.record_failure()
    assert breaker.can_attempt()
    breaker.record_failure()
    assert not breaker.can_attempt()

    clock[0] += 61
    assert breaker.can_attempt()
    assert not breaker.can_attempt()

    breaker.record_success()
    assert breaker.can_attempt()
    assert not breaker.is_open


def test_half_open_trial_answered_with_client_error_closes_circuit(monkeypatch, no_sleep):
    """A 4xx answer to the half-open trial request proves the endpoint is up."""
    clock = [1000.0]
    monkeypatch.setattr("ingestion.http_client.time.monotonic", lambda: clock[0])
    session = FakeSession(
        make_response(500), make_response(500), make_response(500),
        make_response(403),
        make_response(200, {"values": []}),
    )
    breaker = CircuitBreaker(failure_threshold=1, open_seconds=60)
    client = make_client(session, circuit_breaker=breaker)

    with pytest.raises(requests.HTTPError):
        client.get_json("/cloudapi/1.0.0/vms")
    assert breaker.state == CircuitBreaker.OPEN

    clock[0] += 61
    with pytest.raises(requests.HTTPError) as excinfo:
        client.get_json("/cloudapi/1.0.0/vms")
    assert excinfo.value.response.status_code == 403
    assert breaker.state == CircuitBreaker.CLOSED

    assert client.get_json("/cloudapi/1.0.0/vms") == {"values": []}
    assert len(session.requests) == 5


def test_cache_serves_repeated_requests():
    session = FakeSession(make_response(200, {"values": ["a"]}), make_response(200, {"values": ["b"]}))
    client = make_client(session, cache_enabled=True)

    first = client.get_json("/cloudapi/1.0.0/tasks", {"page": 1})
    second = client.get_json("/cloudapi/1.0.0/tasks", {"page": 1})

    assert first == second == {"values": ["a"]}
    assert len(session.requests) == 1

    client.clear_cache()
    assert client.get_json("/cloudapi/1.0.0/tasks", {"page": 1}) == {"values": ["b"]}


def test_from_config_reads_vcd_section():
    client = HttpClient.from_config(
        {"base_url": "https://vcd.example.com", "api_version": 38.1, "max_retries": 5, "verify_tls": False},
        auth_token="t",
    )

    assert client.api_version == "38.1"
    assert client.retry_config.max_retries == 5
    assert client.session.verify is False
    assert client.session.headers["Authorization"] == "Bearer t"
