"""Gamepass lookups: cache-or-fetch resolution of validated ids into normalized records."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from cache import TTLCache
from upstream import Sleep, fetch_with_retry

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://apis.roblox.com/game-passes/v1/game-passes/{id}/product-info"
MAX_BATCH_SIZE = 20
BATCH_DELAY_SECONDS = 0.1

_ID_RE = re.compile(r"^[0-9]+$")


class ValidationError(ValueError):
    """Client supplied an identifier or batch the service will not look up."""


def cache_key(gamepass_id: Any) -> str:
    return f"gamepass_{gamepass_id}"


def validate_id(gamepass_id: str) -> str:
    # fullmatch so a trailing newline is not accepted
    if not isinstance(gamepass_id, str) or not _ID_RE.fullmatch(gamepass_id):
        raise ValidationError("Invalid gamepass ID")
    return gamepass_id


def validate_batch(ids: Any) -> list:
    if not isinstance(ids, list) or not ids:
        raise ValidationError("Invalid IDs array")
    if len(ids) > MAX_BATCH_SIZE:
        raise ValidationError(f"Maximum {MAX_BATCH_SIZE} IDs per request")
    return ids


def normalize(gamepass_id: Any, data: dict, with_timestamps: bool = True) -> dict:
    """Map upstream product-info fields onto the record shape served to clients."""
    record = {
        "id":          gamepass_id,
        "name":        data.get("Name") or "Unknown",
        "description": data.get("Description") or "",
        "price":       data.get("PriceInRobux") or 0,
        "isForSale":   data.get("IsForSale") or False,
    }
    if with_timestamps:
        record["created"] = data.get("Created") or None
        record["updated"] = data.get("Updated") or None
    return record


class GamepassService:
    """
    Resolves gamepass records through a TTL cache, falling back to the
    upstream API on a miss.

    The cache and HTTP client are owned by the caller; the FastAPI lifespan
    builds one service per process and tests build their own.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: httpx.AsyncClient,
        api_url: str = DEFAULT_API_URL,
        retry_delay: float = 1.0,
        batch_delay: float = BATCH_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.cache = cache
        self.client = client
        self.api_url = api_url
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay
        self._sleep = sleep

    def url_for(self, gamepass_id: Any) -> str:
        return self.api_url.format(id=gamepass_id)

    async def _fetch(self, gamepass_id: Any) -> dict:
        data = await fetch_with_retry(
            self.client, self.url_for(gamepass_id), delay=self.retry_delay, sleep=self._sleep
        )
        if not isinstance(data, dict):
            raise TypeError(f"Unexpected upstream payload for {gamepass_id}: {type(data).__name__}")
        return data

    async def get(self, gamepass_id: str) -> tuple[dict, bool]:
        """Return ``(record, cached)`` for a single identifier."""
        gamepass_id = validate_id(gamepass_id)
        key = cache_key(gamepass_id)

        cached = self.cache.get(key)
        if cached is not None:
            return cached, True

        record = normalize(gamepass_id, await self._fetch(gamepass_id))
        self.cache.set(key, record)
        return record, False

    async def get_many(self, ids: Any) -> tuple[list[dict], list[dict]]:
        """
        Resolve up to MAX_BATCH_SIZE identifiers one after another.

        Returns ``(results, errors)``. A failing item lands in ``errors`` as
        ``{"id", "error"}`` and the remaining items are still processed.
        Items are paced ``batch_delay`` apart to ease upstream rate limits.
        """
        ids = validate_batch(ids)
        results: list[dict] = []
        errors: list[dict] = []

        for n, gamepass_id in enumerate(ids):
            if n:
                await self._sleep(self.batch_delay)
            try:
                key = cache_key(gamepass_id)
                record = self.cache.get(key)
                if record is None:
                    data = await self._fetch(gamepass_id)
                    record = normalize(gamepass_id, data, with_timestamps=False)
                    self.cache.set(key, record)
                results.append(record)
            except Exception as exc:
                logger.warning("Batch lookup failed for %s: %s", gamepass_id, exc)
                errors.append({"id": gamepass_id, "error": str(exc)})

        return results, errors
