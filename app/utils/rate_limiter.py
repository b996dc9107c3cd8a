from __future__ import annotations

import re
import threading
import time

from cachetools import TTLCache

from utils import ApiError


class InMemoryRateLimiter:
    def __init__(self, *, window_seconds: int = 60, max_keys: int = 50_000):
        self._window_seconds = window_seconds
        self._lock = threading.Lock()
        # Counters for the current window expire with it.
        self._store: TTLCache = TTLCache(maxsize=max_keys, ttl=window_seconds)

    @staticmethod
    def _parse_limit_per_minute(limit: str) -> int:
        m = re.match(r"^\s*(\d+)\s+per\s+minute\s*$", str(limit or ""), re.IGNORECASE)
        if not m:
            return 300
        return max(1, int(m.group(1)))

    def check(self, key: str, limit: str) -> None:
        max_per_minute = self._parse_limit_per_minute(limit)
        window_id = int(time.time() // self._window_seconds)
        slot = f"{key}:{window_id}"

        with self._lock:
            count = int(self._store.get(slot, 0)) + 1
            self._store[slot] = count

        if count > max_per_minute:
            raise ApiError("RATE_LIMITED", "Rate limit exceeded", status=429)

    def reset(self) -> None:
        with self._lock:
            self._store.clear()
