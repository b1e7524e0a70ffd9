"""
Google REST API client with rate limiting and connection pooling.

Features:
- Token bucket algorithm for request throttling
- Connection pooling via a shared httpx.AsyncClient
- Bearer tokens supplied by a pluggable TokenSource
- Configurable timeouts

Requests are never retried here. A throttled, failed or unreachable call
raises DriveAPIError and the caller decides what fails with it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from shareaudit.exceptions import DriveAPIError

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_SECOND = 10
DEFAULT_BURST_SIZE = 20


class TokenSource(Protocol):
    """Anything that can hand out a current OAuth access token."""

    async def get_token(self) -> str:
        ...


@dataclass
class StaticTokenSource:
    """Token source for an already-issued access token."""

    token: str

    async def get_token(self) -> str:
        return self.token


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiting."""

    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    burst_size: int = DEFAULT_BURST_SIZE


@dataclass
class TokenBucket:
    """
    Token bucket rate limiter with async support.

    Allows bursts up to burst_size, then rate-limits to requests_per_second.
    """

    rate: float  # tokens per second
    capacity: int  # max tokens (burst size)
    tokens: float = field(default=0.0)
    last_update: float = field(default_factory=time.monotonic)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __post_init__(self):
        self.tokens = float(self.capacity)

    async def acquire(self, tokens: int = 1) -> float:
        """
        Acquire tokens, waiting if necessary.

        Returns the time to wait in seconds.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)

            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0

            deficit = tokens - self.tokens
            wait_time = deficit / self.rate
            self.tokens = 0

            return wait_time


def _error_message(response: httpx.Response) -> str:
    """Extract the human-readable message from a Google error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.reason_phrase
    if isinstance(error, str):
        return body.get("error_description") or error
    return response.reason_phrase


class GoogleAPIClient:
    """
    Rate-limited JSON client for one Google API base URL.

    Usage:
        client = GoogleAPIClient(base_url, StaticTokenSource(token))
        async with client:
            data = await client.get("/about", params={"fields": "user"})
    """

    def __init__(
        self,
        base_url: str,
        token_source: TokenSource,
        rate_config: Optional[RateLimiterConfig] = None,
        pool_size: int = 20,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. https://www.googleapis.com/drive/v3
            token_source: Supplies bearer tokens
            rate_config: Rate limiting configuration
            pool_size: HTTP connection pool size
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._token_source = token_source
        self.rate_config = rate_config or RateLimiterConfig()
        self.pool_size = pool_size
        self._timeout = timeout
        self._connect_timeout = connect_timeout
        self._transport = transport

        self._rate_limiter = TokenBucket(
            rate=self.rate_config.requests_per_second,
            capacity=self.rate_config.burst_size,
        )

        # Connection pool (created on __aenter__)
        self._client: Optional[httpx.AsyncClient] = None

        self.stats = {
            "requests": 0,
            "throttled": 0,
            "errors": 0,
        }

    async def __aenter__(self) -> "GoogleAPIClient":
        """Create connection pool on context enter."""
        self._client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=self.pool_size,
                max_keepalive_connections=max(1, self.pool_size // 2),
            ),
            timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
            http2=True,  # Enable HTTP/2 for multiplexing
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close connection pool on context exit."""
        if self._client:
            logger.debug(
                "Closing %s: %d requests, %d throttled, %d errors",
                self.base_url, self.stats["requests"], self.stats["throttled"], self.stats["errors"],
            )
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs,
    ) -> httpx.Response:
        """Make a single rate-limited, authenticated request."""
        if not self._client:
            raise RuntimeError(f"{type(self).__name__} must be used as async context manager")

        wait_time = await self._rate_limiter.acquire()
        if wait_time > 0:
            self.stats["throttled"] += 1
            await asyncio.sleep(wait_time)

        url = path if path.startswith("http") else f"{self.base_url}{path}"

        token = await self._token_source.get_token()
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {token}"

        self.stats["requests"] += 1
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            self.stats["errors"] += 1
            raise DriveAPIError(
                f"Request timed out after {self._timeout}s",
                endpoint=url,
                context=f"{method} request to Google API",
            ) from e
        except httpx.TransportError as e:
            self.stats["errors"] += 1
            raise DriveAPIError(
                f"Transport error during Google API request: {type(e).__name__}",
                endpoint=url,
                context=f"{method} request encountered network issue",
            ) from e

        if response.status_code >= 400:
            self.stats["errors"] += 1
            raise DriveAPIError(
                _error_message(response),
                status_code=response.status_code,
                endpoint=url,
                context=f"{method} request to Google API",
            )

        return response

    async def get(self, path: str, **kwargs) -> dict[str, Any]:
        """GET request returning JSON."""
        response = await self._request("GET", path, **kwargs)
        return response.json()

    async def patch(self, path: str, **kwargs) -> dict[str, Any]:
        """PATCH request returning JSON."""
        response = await self._request("PATCH", path, **kwargs)
        return response.json()

    async def delete(self, path: str, **kwargs) -> None:
        """DELETE request, no body expected."""
        await self._request("DELETE", path, **kwargs)
