"""Retry/backoff and route-fallback circuit, driven by an injected clock and sleep."""

import asyncio

import pytest

from polywatch.ingestion.circuit import RouteFallbackCircuit, RouteMode
from polywatch.ingestion.http import FetchTimeout, PayloadDecodeError, TransportFailure, UpstreamHttpError
from polywatch.ingestion.retry import RetryingFetcher, RetryPolicy

URL = "https://gamma.test/events"


class ScriptedClient:
    """Stands in for FetchClient: pops one outcome per call and route."""

    def __init__(self, direct=(), alternate=(), has_alternate=True):
        self.scripts = {False: list(direct), True: list(alternate)}
        self.calls: list[bool] = []
        self.has_alternate = has_alternate

    async def fetch(self, url, timeout, use_alternate=False):
        self.calls.append(use_alternate)
        outcome = self.scripts[use_alternate].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _retrying(client, **policy):
    sleeps: list[float] = []

    async def sleep(seconds):
        sleeps.append(seconds)

    fetcher = RetryingFetcher(client, RetryPolicy(**policy), sleep=sleep, jitter=lambda upper: 0.0)
    return fetcher, sleeps


# --- retry ---------------------------------------------------------------


def test_retries_retryable_status_with_exponential_backoff():
    client = ScriptedClient(direct=[UpstreamHttpError(503, URL), UpstreamHttpError(502, URL), ["ok"]])
    fetcher, sleeps = _retrying(client)
    assert asyncio.run(fetcher.fetch(URL, 5.0)) == ["ok"]
    assert sleeps == [0.75, 1.5]


def test_non_retryable_status_raised_immediately():
    client = ScriptedClient(direct=[UpstreamHttpError(404, URL)])
    fetcher, sleeps = _retrying(client)
    with pytest.raises(UpstreamHttpError):
        asyncio.run(fetcher.fetch(URL, 5.0))
    assert sleeps == []
    assert len(client.calls) == 1


def test_decode_error_not_retried():
    client = ScriptedClient(direct=[PayloadDecodeError(URL)])
    fetcher, sleeps = _retrying(client)
    with pytest.raises(PayloadDecodeError):
        asyncio.run(fetcher.fetch(URL, 5.0))
    assert sleeps == []


def test_retry_after_is_a_floor():
    client = ScriptedClient(direct=[UpstreamHttpError(429, URL, retry_after_ms=5000), ["ok"]])
    fetcher, sleeps = _retrying(client)
    asyncio.run(fetcher.fetch(URL, 5.0))
    assert sleeps == [5.0]


def test_wait_capped_at_sixty_seconds():
    client = ScriptedClient(direct=[UpstreamHttpError(429, URL, retry_after_ms=600_000), ["ok"]])
    fetcher, sleeps = _retrying(client)
    asyncio.run(fetcher.fetch(URL, 5.0))
    assert sleeps == [60.0]


def test_exhaustion_reraises_last_failure():
    last = TransportFailure("ConnectError", URL, "third")
    client = ScriptedClient(direct=[UpstreamHttpError(500, URL), FetchTimeout(URL, 5.0), last])
    fetcher, sleeps = _retrying(client, max_retries=2)
    with pytest.raises(TransportFailure) as exc:
        asyncio.run(fetcher.fetch(URL, 5.0))
    assert exc.value is last
    assert len(sleeps) == 2


def test_policy_delay_with_jitter():
    policy = RetryPolicy(base_delay_sec=1.0)
    assert policy.delay_for(0, None, 0.2) == pytest.approx(1.2)
    assert policy.delay_for(3, None, 0.0) == 8.0
    assert policy.delay_for(1, 10_000, 0.1) == 10.0


# --- circuit -------------------------------------------------------------


def _circuit(client, clock):
    fetcher, _ = _retrying(client, max_retries=0)
    return RouteFallbackCircuit(fetcher, clock=clock)


def test_blocked_direct_opens_window_and_skips_direct():
    clock = FakeClock()
    client = ScriptedClient(direct=[UpstreamHttpError(403, URL)], alternate=[["a1"], ["a2"]])
    circuit = _circuit(client, clock)

    assert asyncio.run(circuit.fetch_json(URL, 5.0)) == ["a1"]
    assert circuit.mode() is RouteMode.FORCED_ALTERNATE

    clock.now += 14 * 60
    assert asyncio.run(circuit.fetch_json(URL, 5.0)) == ["a2"]
    assert client.calls == [False, True, True]


def test_window_expires_after_fifteen_minutes():
    clock = FakeClock()
    client = ScriptedClient(direct=[UpstreamHttpError(451, URL), ["d"]], alternate=[["a"]])
    circuit = _circuit(client, clock)
    asyncio.run(circuit.fetch_json(URL, 5.0))

    clock.now += 15 * 60
    assert circuit.mode() is RouteMode.DIRECT
    assert asyncio.run(circuit.fetch_json(URL, 5.0)) == ["d"]
    assert client.calls == [False, True, False]


def test_alternate_failure_closes_window():
    clock = FakeClock()
    alt_error = UpstreamHttpError(502, URL)
    client = ScriptedClient(
        direct=[TransportFailure("ConnectError", URL), ["d"]],
        alternate=[alt_error],
    )
    circuit = _circuit(client, clock)

    with pytest.raises(UpstreamHttpError) as exc:
        asyncio.run(circuit.fetch_json(URL, 5.0))
    assert exc.value is alt_error
    assert circuit.forced_until == 0.0
    assert circuit.mode() is RouteMode.DIRECT

    assert asyncio.run(circuit.fetch_json(URL, 5.0)) == ["d"]
    assert client.calls == [False, True, False]


def test_rate_limit_exhaustion_does_not_fall_back():
    clock = FakeClock()
    client = ScriptedClient(direct=[UpstreamHttpError(429, URL)], alternate=[["a"]])
    circuit = _circuit(client, clock)
    with pytest.raises(UpstreamHttpError):
        asyncio.run(circuit.fetch_json(URL, 5.0))
    assert client.calls == [False]
    assert circuit.mode() is RouteMode.DIRECT


def test_no_alternate_propagates_unchanged():
    clock = FakeClock()
    error = UpstreamHttpError(403, URL)
    client = ScriptedClient(direct=[error], has_alternate=False)
    circuit = _circuit(client, clock)
    with pytest.raises(UpstreamHttpError) as exc:
        asyncio.run(circuit.fetch_json(URL, 5.0))
    assert exc.value is error
    assert circuit.mode() is RouteMode.DIRECT


def test_independent_circuits_do_not_share_state():
    clock = FakeClock()
    first = _circuit(ScriptedClient(direct=[UpstreamHttpError(403, URL)], alternate=[["a"]]), clock)
    second = _circuit(ScriptedClient(direct=[["d"]]), clock)
    asyncio.run(first.fetch_json(URL, 5.0))
    assert first.mode() is RouteMode.FORCED_ALTERNATE
    assert second.mode() is RouteMode.DIRECT
