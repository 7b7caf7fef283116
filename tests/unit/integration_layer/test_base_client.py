"""
Unit Tests for BaseIntegrationClient

Transport failures and HTTP errors are mapped to integration errors at the
client boundary; the retry policy then decides on exception type alone.
"""

import httpx
import pytest

from src.core.config.constants import CircuitState
from src.core.exceptions import (
    CircuitBreakerOpenError,
    IntegrationError,
    UpstreamConnectionError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamTimeoutError,
    UpstreamUnauthorizedError,
)
from src.core.resilience.circuit_breaker import CircuitBreaker
from src.core.resilience.retry import RetryExecutor
from src.integrations.base_client import BaseIntegrationClient, map_status_error
from tests.conftest import no_sleep


class Upstream:
    """MockTransport handler replaying a list of responses or exceptions."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def build_client(upstream, failure_threshold=20, metrics=None) -> BaseIntegrationClient:
    return BaseIntegrationClient(
        "erp",
        "http://erp.local",
        headers={"X-API-KEY": "secret"},
        breaker=CircuitBreaker("erp", failure_threshold=failure_threshold),
        retry_executor=RetryExecutor(sleep=no_sleep),
        metrics=metrics,
        transport=httpx.MockTransport(upstream),
    )


@pytest.mark.unit
class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, UpstreamUnauthorizedError),
            (404, UpstreamNotFoundError),
            (429, UpstreamRateLimitError),
            (500, UpstreamServerError),
            (503, UpstreamServerError),
        ],
    )
    def test_status_codes(self, status, expected):
        request = httpx.Request("GET", "http://erp.local/api/v1/stock")
        error = map_status_error("erp", httpx.Response(status, request=request, text="nope"))

        assert type(error) is expected
        assert error.details["status_code"] == status
        assert error.details["integration"] == "erp"

    def test_other_client_errors_are_generic(self):
        request = httpx.Request("GET", "http://erp.local/api/v1/stock")
        error = map_status_error("erp", httpx.Response(422, request=request))

        assert type(error) is IntegrationError
        assert not error.retryable

    def test_unauthorized_carries_suggestion(self):
        request = httpx.Request("GET", "http://erp.local/")
        error = map_status_error("erp", httpx.Response(401, request=request))

        assert "API key" in error.to_dict()["details"]["suggestion"]


@pytest.mark.unit
class TestRequests:
    async def test_get_returns_json_and_sends_headers(self):
        upstream = Upstream(httpx.Response(200, json={"data": [1, 2]}))
        client = build_client(upstream)

        payload = await client.get("/api/v1/products", params={"limit": 10})

        assert payload == {"data": [1, 2]}
        request = upstream.requests[0]
        assert request.headers["X-API-KEY"] == "secret"
        assert request.url.params["limit"] == "10"

    async def test_empty_body_returns_none(self):
        client = build_client(Upstream(httpx.Response(204)))

        assert await client.delete("/api/v1/products/1") is None

    async def test_post_sends_json_body(self):
        upstream = Upstream(httpx.Response(201, json={"id": 1}))
        client = build_client(upstream)

        await client.post("/api/v1/products", json={"name": "Drill"})

        assert upstream.requests[0].method == "POST"
        assert b'"name"' in upstream.requests[0].content

    async def test_records_upstream_outcome(self, mock_metrics_collector):
        client = build_client(Upstream(httpx.Response(200, json={})), metrics=mock_metrics_collector)

        await client.get("/api/v1/stock")

        integration, outcome, _ = mock_metrics_collector.record_upstream_call.call_args.args
        assert (integration, outcome) == ("erp", "success")


@pytest.mark.unit
class TestRetryBehavior:
    async def test_server_errors_retry_up_to_max_attempts(self):
        upstream = Upstream(httpx.Response(503))
        client = build_client(upstream)

        with pytest.raises(UpstreamServerError):
            await client.get("/api/v1/stock")

        assert len(upstream.requests) == 5

    async def test_recovers_after_transient_failure(self):
        upstream = Upstream(httpx.Response(500), httpx.Response(200, json={"ok": True}))
        client = build_client(upstream)

        assert await client.get("/api/v1/stock") == {"ok": True}
        assert len(upstream.requests) == 2

    async def test_not_found_is_not_retried(self):
        upstream = Upstream(httpx.Response(404))
        client = build_client(upstream)

        with pytest.raises(UpstreamNotFoundError):
            await client.get("/api/v1/stock/sku/X")

        assert len(upstream.requests) == 1

    async def test_unauthorized_is_not_retried(self):
        upstream = Upstream(httpx.Response(401))
        client = build_client(upstream)

        with pytest.raises(UpstreamUnauthorizedError):
            await client.get("/api/v1/stock")

        assert len(upstream.requests) == 1

    async def test_generic_client_error_gets_default_attempts(self):
        upstream = Upstream(httpx.Response(400))
        client = build_client(upstream)

        with pytest.raises(IntegrationError):
            await client.get("/api/v1/stock")

        assert len(upstream.requests) == 3

    async def test_timeout_is_mapped_and_retried(self):
        upstream = Upstream(httpx.ReadTimeout("slow"), httpx.Response(200, json=[]))
        client = build_client(upstream)

        assert await client.get("/v1/rest/inventory") == []
        assert len(upstream.requests) == 2

    async def test_connection_error_is_mapped(self):
        client = build_client(Upstream(httpx.ConnectError("refused")))

        with pytest.raises(UpstreamConnectionError):
            await client.get("/api/v1/stock")

    async def test_timeout_surfaces_after_attempts(self):
        client = build_client(Upstream(httpx.ConnectTimeout("slow")))

        with pytest.raises(UpstreamTimeoutError):
            await client.get("/api/v1/stock")

    async def test_breaker_opens_and_short_circuits(self):
        upstream = Upstream(httpx.Response(500))
        client = build_client(upstream, failure_threshold=2)

        with pytest.raises((UpstreamServerError, CircuitBreakerOpenError)):
            await client.get("/api/v1/stock")

        assert client.breaker.state == CircuitState.OPEN
        assert len(upstream.requests) == 2

        with pytest.raises(CircuitBreakerOpenError):
            await client.get("/api/v1/stock")
        assert len(upstream.requests) == 2

    async def test_one_rate_limit_slot_per_call(self):
        upstream = Upstream(httpx.Response(500), httpx.Response(200, json={}))
        client = build_client(upstream)

        await client.get("/api/v1/stock")

        assert client.rate_limiter.count == 1


@pytest.mark.unit
class TestHealthCheck:
    async def test_healthy(self):
        upstream = Upstream(httpx.Response(200, json={"status": "ok"}))
        client = build_client(upstream)

        assert await client.health_check() is True
        assert upstream.requests[0].url.path == "/health"

    async def test_unhealthy_bypasses_retries(self):
        upstream = Upstream(httpx.Response(503))
        client = build_client(upstream)

        assert await client.health_check() is False
        assert len(upstream.requests) == 1
        assert client.breaker.failure_count == 0

    def test_breaker_stats(self):
        client = build_client(Upstream(httpx.Response(200)))

        stats = client.get_circuit_breaker_stats()

        assert stats["name"] == "erp"
        assert stats["state"] == CircuitState.CLOSED.value
