"""
Base Integration Client

Architecture:
    BaseIntegrationClient (Public API: get/post/put/delete, health_check)
        ├── ResilientCall: rate limiter -> retry executor -> circuit breaker
        └── Transport: httpx.AsyncClient with request/response event hooks

Every upstream failure is mapped to one ``IntegrationError`` subclass at the
transport boundary, so the retry policy and the circuit breaker decide on
exception type alone.

Architectural Decision: one breaker and one limiter per client instance
- The ERP general client and the ERP stock client hit the same host but keep
  independent quotas and failure budgets
- Breakers come from the shared ``CircuitBreakerManager`` so the admin API can
  list and reset them by name

Author: System Architect
Date: 2025-12-14
"""

import socket
import time
from typing import Any

import httpx

from src.core.config.constants import Stage
from src.core.exceptions import (
    IntegrationError,
    UpstreamConnectionError,
    UpstreamHostNotFoundError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamServerError,
    UpstreamTimeoutError,
    UpstreamUnauthorizedError,
)
from src.core.logging.logger import get_logger
from src.core.resilience.circuit_breaker import CircuitBreaker, get_circuit_breaker_manager
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.resilient_call import ResilientCall
from src.core.resilience.retry import RetryExecutor, RetryPolicy

logger = get_logger(__name__)

_HEALTH_TIMEOUT = 5.0


def map_status_error(integration: str, response: httpx.Response) -> IntegrationError:
    """Translate an HTTP error response into the matching integration error."""
    status = response.status_code
    details = {
        "integration": integration,
        "status_code": status,
        "url": str(response.request.url) if response.request else None,
        "body": response.text[:500],
    }
    message = f"{integration} responded {status}"

    if status == 401:
        return UpstreamUnauthorizedError(message, details=details).with_suggestion(
            "Check the API key and client id for this integration"
        )
    if status == 404:
        return UpstreamNotFoundError(message, details=details)
    if status == 429:
        return UpstreamRateLimitError(message, details=details)
    if status >= 500:
        return UpstreamServerError(message, details=details)
    return IntegrationError(message, details=details)


def map_transport_error(integration: str, error: httpx.TransportError) -> IntegrationError:
    details = {"integration": integration, "error": str(error)}
    if isinstance(error, httpx.TimeoutException):
        return UpstreamTimeoutError(f"{integration} timed out", details=details)
    if isinstance(error, httpx.ConnectError) and isinstance(error.__context__, socket.gaierror):
        return UpstreamHostNotFoundError(f"{integration} host could not be resolved", details=details)
    return UpstreamConnectionError(f"{integration} connection failed", details=details)


def _outcome(error: IntegrationError) -> str:
    if isinstance(error, UpstreamTimeoutError):
        return "timeout"
    if isinstance(error, (UpstreamConnectionError, UpstreamHostNotFoundError)):
        return "connection_error"
    if isinstance(error, UpstreamServerError):
        return "server_error"
    return "client_error"


class BaseIntegrationClient:
    """
    Usage:
        class ErpClient(BaseIntegrationClient):
            async def fetch_products(self):
                return await self.get("/api/v1/products")
    """

    health_path = "/health"

    def __init__(
        self,
        name: str,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        rate_limit_per_minute: int = 100,
        breaker: CircuitBreaker | None = None,
        retry_executor: RetryExecutor | None = None,
        metrics=None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self._metrics = metrics
        self._breaker = breaker or get_circuit_breaker_manager().get_breaker(name)
        self._rate_limiter = SlidingWindowRateLimiter(
            name,
            rate_limit_per_minute,
            on_wait=metrics.record_rate_limit_wait if metrics is not None else None,
        )
        self._invoker = ResilientCall(self._breaker, self._rate_limiter, retry_executor)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
            event_hooks={"request": [self._log_request], "response": [self._log_response]},
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        return self._rate_limiter

    # -------------------------------------------------------------------------
    # Event hooks
    # -------------------------------------------------------------------------

    async def _log_request(self, request: httpx.Request) -> None:
        logger.debug(
            "API request",
            stage=Stage.INTEGRATION.value,
            integration=self.name,
            method=request.method,
            url=str(request.url),
        )

    async def _log_response(self, response: httpx.Response) -> None:
        logger.debug(
            "API response",
            stage=Stage.INTEGRATION.value,
            integration=self.name,
            status_code=response.status_code,
            url=str(response.request.url),
        )

    # -------------------------------------------------------------------------
    # Transport (one attempt)
    # -------------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> Any:
        started = time.perf_counter()
        kwargs: dict[str, Any] = {"params": params, "json": json}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            error = map_transport_error(self.name, e)
            self._record(_outcome(error), started)
            raise error from e

        if response.status_code >= 400:
            error = map_status_error(self.name, response)
            self._record(_outcome(error), started)
            logger.warning(
                "API error",
                stage=Stage.INTEGRATION.value,
                integration=self.name,
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise error

        self._record("success", started)
        if not response.content:
            return None
        return response.json()

    def _record(self, outcome: str, started: float) -> None:
        if self._metrics is not None:
            self._metrics.record_upstream_call(self.name, outcome, time.perf_counter() - started)

    # -------------------------------------------------------------------------
    # Resilient verbs
    # -------------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        timeout: float | None = None,
        policy: RetryPolicy | None = None,
    ) -> Any:
        return await self._invoker.call(
            self._send,
            method,
            path,
            params=params,
            json=json,
            timeout=timeout,
            policy=policy,
            operation=f"{method} {path}",
        )

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    # -------------------------------------------------------------------------
    # Health & stats
    # -------------------------------------------------------------------------

    async def health_check(self) -> bool:
        """Single direct call, bypassing retries and the breaker."""
        try:
            await self._send("GET", self.health_path, timeout=_HEALTH_TIMEOUT)
            return True
        except IntegrationError as e:
            logger.error(
                "Health check failed", stage=Stage.INTEGRATION.value, integration=self.name, error=str(e)
            )
            return False

    def get_circuit_breaker_stats(self) -> dict[str, Any]:
        return self._breaker.get_stats().to_dict()

    async def close(self) -> None:
        await self._client.aclose()
