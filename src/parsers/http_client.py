"""Shared async HTTP fetcher with exponential backoff.

Errors are split in two: transient ones (network, timeout, 5xx, 429) are
retried ``max_retries`` more times with delays ``backoff_base * 2**n``;
permanent ones (other 4xx, undecodable body) surface immediately. A
``Retry-After`` on 429 can lengthen a delay, up to ``max_retry_after``.
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from src.parsers.exceptions import (
    PermanentUpstreamError,
    TransientUpstreamError,
    UpstreamError,
)
from src.parsers.rate_limiter import RateLimiter

MAX_RETRIES = 2
BACKOFF_BASE_SEC = 2.0
MAX_RETRY_AFTER_SEC = 60.0


def _redact(url: str) -> str:
    """Drop the query string so API keys never reach the logs."""
    return url.split("?", 1)[0]


class RateLimitedClient:
    """Async GET client returning decoded JSON, with retry on transient errors."""

    def __init__(
        self,
        *,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE_SEC,
        max_retry_after: float = MAX_RETRY_AFTER_SEC,
        timeout: float = 15.0,
        rate_limiter: RateLimiter | None = None,
        client: httpx.AsyncClient | None = None,
        tag: str = "HTTP",
    ) -> None:
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_retry_after = max_retry_after
        self._rate_limiter = rate_limiter
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )
        self._tag = tag

    @property
    def rate_limiter(self) -> RateLimiter | None:
        return self._rate_limiter

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        return self._backoff_base * (2**attempt)

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``url`` and return the decoded JSON body.

        Raises TransientUpstreamError once retries are exhausted, or
        PermanentUpstreamError straight away.
        """
        last_error: UpstreamError | None = None

        for attempt in range(self._max_retries + 1):
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire()

            retry_after = 0.0
            try:
                response = await self._client.get(url, params=params)
            except httpx.TransportError as e:
                last_error = TransientUpstreamError(
                    f"{type(e).__name__}: {e}", url=_redact(url)
                )
            else:
                status = response.status_code
                if status == 429:
                    last_error = TransientUpstreamError(
                        "HTTP 429 rate limited", url=_redact(url), status_code=status
                    )
                    retry_after = min(_parse_retry_after(response), self._max_retry_after)
                elif status >= 500:
                    last_error = TransientUpstreamError(
                        f"HTTP {status}", url=_redact(url), status_code=status
                    )
                elif status >= 400:
                    raise PermanentUpstreamError(
                        f"HTTP {status}", url=_redact(url), status_code=status
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise PermanentUpstreamError(
                            f"Invalid JSON body: {e}", url=_redact(url), status_code=status
                        ) from e

            if attempt < self._max_retries:
                delay = max(self.backoff_delay(attempt), retry_after)
                logger.debug(
                    f"[{self._tag}] {last_error}, retry {attempt + 1}/{self._max_retries} "
                    f"in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        logger.warning(f"[{self._tag}] giving up on {last_error.url}: {last_error}")
        raise last_error


def _parse_retry_after(response: httpx.Response) -> float:
    value = response.headers.get("Retry-After")
    if not value:
        return 0.0
    try:
        return max(float(value), 0.0)
    except ValueError:
        return 0.0
