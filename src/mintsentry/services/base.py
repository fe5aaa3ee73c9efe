"""Base API client for rate-limited provider access.

This module provides BaseAPIClient, the shared plumbing of every provider
client:
- one lazily created httpx client per endpoint
- a random endpoint per dispatch attempt
- classification of HTTP failures into typed errors
- dispatch through a shared RateLimitedAccess
- optional single-flight caching of parsed results
"""

import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

from mintsentry.constants.provider import RETRYABLE_STATUS_CODES
from mintsentry.core.exceptions import FatalProviderError, TransientProviderError
from mintsentry.services.access.models import EndpointPool, ProviderEndpoint
from mintsentry.services.access.rate_limiter import RateLimitedAccess
from mintsentry.services.access.single_flight import SingleFlightCache, Validator

log = structlog.get_logger(__name__)

T = TypeVar("T")


class BaseAPIClient:
    """Base API client dispatching through a shared limiter.

    Every request is one limiter-scheduled operation: each attempt picks an
    endpoint at random, so retries may land on a different endpoint.

    Attributes:
        service_name: Provider name used in errors and logs.
        timeout: Request timeout in seconds.
        api_key_param: Query parameter carrying the endpoint's api_key, if any.

    Example:
        client = BaseAPIClient(
            endpoints=[ProviderEndpoint(base_url="https://api.example.com")],
            limiter=RateLimitedAccess(name="example"),
        )
        response = await client.get("/endpoint")
        await client.close()
    """

    service_name = "provider"
    api_key_param: str | None = None

    def __init__(
        self,
        endpoints: list[ProviderEndpoint],
        limiter: RateLimitedAccess,
        cache: SingleFlightCache | None = None,
        timeout: float = 10.0,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize BaseAPIClient.

        Args:
            endpoints: Endpoints serving this provider (at least one).
            limiter: Shared limiter for this provider.
            cache: Optional single-flight cache for parsed results.
            timeout: Request timeout in seconds (default: 10).
            rng: Random source for endpoint selection.
        """
        self._pool = EndpointPool(endpoints, rng=rng)
        self._limiter = limiter
        self._cache = cache
        self.timeout = timeout
        self._clients: dict[str, httpx.AsyncClient] = {}

    @property
    def endpoints(self) -> list[ProviderEndpoint]:
        """Endpoints this client spreads requests over."""
        return self._pool.endpoints

    async def _get_client(self, endpoint: ProviderEndpoint) -> httpx.AsyncClient:
        """Get or create the httpx client for ``endpoint`` (lazy initialization)."""
        client = self._clients.get(endpoint.base_url)
        if client is None:
            client = httpx.AsyncClient(
                base_url=endpoint.base_url,
                timeout=self.timeout,
                headers=endpoint.headers,
            )
            self._clients[endpoint.base_url] = client
            log.debug("httpx_client_created", service=self.service_name)
        return client

    async def close(self) -> None:
        """Close every httpx client and release resources."""
        for client in self._clients.values():
            await client.aclose()
        if self._clients:
            log.debug("httpx_clients_closed", service=self.service_name, count=len(self._clients))
        self._clients.clear()

    def _auth_params(self, endpoint: ProviderEndpoint) -> dict[str, str]:
        if self.api_key_param and endpoint.api_key is not None:
            return {self.api_key_param: endpoint.api_key.get_secret_value()}
        return {}

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one attempt to a randomly chosen endpoint.

        Raises:
            TransientProviderError: 429 or retryable 5xx status.
            FatalProviderError: Any other error status.
            httpx.TransportError: Connection-level failures (classified by the limiter).
        """
        endpoint = self._pool.pick()
        client = await self._get_client(endpoint)

        auth = self._auth_params(endpoint)
        if auth:
            kwargs["params"] = {**kwargs.get("params", {}), **auth}

        response = await client.request(method, path, **kwargs)
        status_code = response.status_code
        if status_code < 400:
            return response

        message = f"{method} {path} returned HTTP {status_code}"
        if status_code in RETRYABLE_STATUS_CODES:
            raise TransientProviderError(self.service_name, message, status_code=status_code)
        raise FatalProviderError(self.service_name, message, status_code=status_code)

    async def _request(
        self,
        method: str,
        path: str,
        description: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request through the limiter (budget, spacing, retry).

        Args:
            method: HTTP method.
            path: Request path, relative to the endpoint's base URL.
            description: Label for limiter logs.
            **kwargs: Additional arguments passed to httpx.

        Returns:
            httpx.Response on success.

        Raises:
            RetryExhaustedError: Retryable failures persisted.
            FatalProviderError: Non-retryable failure.
        """
        return await self._limiter.schedule(
            lambda: self._send(method, path, **kwargs),
            description or f"{self.service_name} {method} {path}",
        )

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request."""
        return await self._request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Make a POST request."""
        return await self._request("POST", path, **kwargs)

    async def _cached(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[T]],
        validate: Validator | None = None,
    ) -> T:
        """Serve ``key`` from the single-flight cache, or fetch directly when uncached."""
        if self._cache is None:
            return await fetch_fn()
        return await self._cache.get_or_fetch(
            f"{self.service_name}:{key}", ttl_seconds, fetch_fn, validate
        )
