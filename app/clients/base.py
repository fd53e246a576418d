"""Shared HTTP plumbing for social platform clients.

Every platform client:
- owns (or receives) an httpx.AsyncClient
- sends requests through a per-client AsyncLimiter
- retries transient failures (timeouts, connection errors, 429, 5xx) up to 3
  attempts via tenacity, waiting Retry-After on 429 and backing off
  exponentially otherwise
- returns a PostOutcome instead of raising for platform-reported errors, so
  publish_service can classify the raw message uniformly

Non-transient platform errors (other 4xx with an error body) are never retried.
Once a post exists on the platform, nothing read afterwards (final ids,
permalinks) can turn the outcome into a failure.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from aiolimiter import AsyncLimiter
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

log = structlog.get_logger(__name__)

# Upper bound on a Retry-After wait between attempts (seconds)
MAX_RETRY_AFTER = 30.0


def error_message(response: httpx.Response, default: str) -> str:
    """Extract the platform error message from a JSON error body.

    Graph API and Google APIs both use {"error": {"message": ...}}.
    Falls back to the raw body, then to `default`.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text or default


def json_object(response: httpx.Response) -> dict[str, Any]:
    """Response body as a dict; {} when it is not a JSON object."""
    try:
        body = response.json()
    except ValueError:
        log.debug("platform_non_json_body", status_code=response.status_code)
        return {}
    return body if isinstance(body, dict) else {}


def _parse_retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


class TransientHTTPError(Exception):
    """Raised for 429 and 5xx responses so tenacity retries them.

    Attributes:
        status_code: HTTP status of the response.
        retry_after: Seconds from the Retry-After header, if any.
    """

    def __init__(self, response: httpx.Response):
        self.status_code = response.status_code
        self.response_body = response.text
        self.retry_after = _parse_retry_after(response)
        detail = error_message(response, "")
        message = f"Transient error - Status: {response.status_code}"
        super().__init__(f"{message} - {detail}" if detail else message)


_backoff = wait_exponential(multiplier=1, min=1, max=8)


def wait_retry_after(retry_state: RetryCallState) -> float:
    """Wait the server's Retry-After (capped) when given, else back off."""
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    if isinstance(error, TransientHTTPError) and error.retry_after is not None:
        return min(error.retry_after, MAX_RETRY_AFTER)
    return _backoff(retry_state)


@dataclass
class PostOutcome:
    """Result of one platform publish attempt (error text is unclassified)."""

    success: bool
    post_id: str | None = None
    url: str | None = None
    error: str | None = None


async def poll_for_url(
    fetch: Callable[[], Awaitable[str | None]],
    attempts: int,
    first_wait: float,
    next_wait: float,
) -> str | None:
    """Poll `fetch` until it returns a URL or attempts run out.

    Waits first_wait seconds before the first attempt and next_wait before
    each later one (the platform may still be transcoding). Failed attempts,
    including bodies that are not JSON yet, are logged and skipped.

    Returns:
        The first URL returned, or None when every attempt came back empty.
    """
    for attempt in range(attempts):
        await asyncio.sleep(first_wait if attempt == 0 else next_wait)
        try:
            url = await fetch()
        except (httpx.HTTPError, TransientHTTPError, ValueError) as e:
            log.debug("permalink_poll_failed", attempt=attempt + 1, error=str(e))
            continue
        if url:
            return url
    return None


class PlatformClient:
    """Base class for rate-limited, retrying platform API clients.

    Args:
        http_client: Optional shared httpx.AsyncClient. When omitted the
            client creates (and closes) its own.
        max_rate: Requests allowed per `time_period` seconds.
    """

    platform_name = "platform"

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        max_rate: float = 10,
        time_period: float = 1,
    ):
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, read=300.0))
        self.rate_limiter = AsyncLimiter(max_rate=max_rate, time_period=time_period)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "PlatformClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception_type(
            (httpx.TimeoutException, httpx.ConnectError, TransientHTTPError)
        ),
        stop=stop_after_attempt(3),
        wait=wait_retry_after,
        reraise=True,
    )
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with self.rate_limiter:
            response = await self.client.request(method, url, **kwargs)
        if response.status_code == 429 or response.status_code >= 500:
            log.warning(
                "platform_transient_error",
                platform=self.platform_name,
                status_code=response.status_code,
            )
            raise TransientHTTPError(response)
        return response
