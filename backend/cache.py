"""In-memory TTL cache for normalized gamepass records (no external dependencies)."""

import time
from typing import Any, Callable

CACHE_TTL_SECONDS = 5 * 60


class TTLCache:
    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._store: dict[str, tuple[Any, float]] = {}
        self._ttl = ttl_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def get(self, key: str) -> Any | None:
        """Return the stored value, evicting it if it has outlived the TTL."""
        if key in self._store:
            val, ts = self._store[key]
            if self._clock() - ts < self._ttl:
                return val
            del self._store[key]
        return None

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (value, self._clock())

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, ts) in self._store.items() if now - ts >= self._ttl]
        for key in expired:
            del self._store[key]
        return len(expired)
