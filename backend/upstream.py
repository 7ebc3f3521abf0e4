"""Upstream fetch layer: GET JSON from the product-info API with retry and backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[Any]]


# ── Errors ────────────────────────────────────────────────────────────────────


class FetchError(Exception):
    """Base class for anything that stops an upstream fetch from producing JSON."""


class UpstreamError(FetchError):
    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}")


class NetworkError(FetchError):
    pass


class RateLimitExceeded(FetchError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Rate limited by upstream after {attempts} attempts")


# ── Fetcher ───────────────────────────────────────────────────────────────────


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    retries: int = MAX_RETRIES,
    delay: float = BASE_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """
    GET ``url`` and return the decoded JSON body.

    - 2xx:   returned immediately.
    - 429:   wait ``delay * attempt`` and try again; if every attempt is
             rate limited, RateLimitExceeded is raised.
    - other non-2xx and transport failures: wait a flat ``delay`` and try
      again; on the last attempt the error propagates (UpstreamError or
      NetworkError).
    """
    for i in range(retries):
        last = i == retries - 1
        try:
            response = await client.get(url)

            if response.status_code == 429:
                logger.warning("Rate limited on %s (attempt %d/%d)", url, i + 1, retries)
                if not last:
                    await sleep(delay * (i + 1))
                continue

            if not response.is_success:
                raise UpstreamError(response.status_code, response.reason_phrase)

            try:
                return response.json()
            except ValueError as exc:
                raise NetworkError(f"Undecodable body from upstream: {exc}") from exc

        except (UpstreamError, NetworkError) as exc:
            if last:
                raise
            logger.warning("Fetch %s failed (attempt %d/%d): %s", url, i + 1, retries, exc)
        except httpx.HTTPError as exc:
            if last:
                raise NetworkError(str(exc) or exc.__class__.__name__) from exc
            logger.warning("Fetch %s failed (attempt %d/%d): %r", url, i + 1, retries, exc)

        await sleep(delay)

    raise RateLimitExceeded(retries)
