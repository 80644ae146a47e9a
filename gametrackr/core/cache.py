from __future__ import annotations

import json
import threading
import time
from typing import Any, Optional

# Minimum seconds between sweeps of expired values and closed rate-limit windows.
SWEEP_INTERVAL_SECONDS = 30.0


class CacheClient:
    """Process-local TTL cache shared by the IGDB client and the rate limiter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, tuple[float, str]] = {}
        # key -> (epoch second the window closes, hits so far)
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_value_sweep = 0.0
        self._next_window_sweep = 0.0

    def connect(self) -> None:
        self.clear()

    def disconnect(self) -> None:
        self.clear()

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._windows.clear()
            self._next_value_sweep = 0.0
            self._next_window_sweep = 0.0

    def get_json(self, key: str) -> Optional[Any]:
        now = time.monotonic()
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at and expires_at <= now:
                self._values.pop(key, None)
                return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any, ttl: int = 300) -> None:
        raw = json.dumps(value, default=str)
        now = time.monotonic()
        expires_at = now + ttl if ttl > 0 else 0.0
        with self._lock:
            if now >= self._next_value_sweep:
                self._values = {
                    name: entry
                    for name, entry in self._values.items()
                    if not entry[0] or entry[0] > now
                }
                self._next_value_sweep = now + SWEEP_INTERVAL_SECONDS
            self._values[key] = (expires_at, raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def check_rate_limit(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        if limit <= 0:
            return True
        span = max(1, window_seconds)
        now = time.time()
        window_end = (now // span + 1) * span
        with self._lock:
            if now >= self._next_window_sweep:
                self._windows = {
                    name: entry for name, entry in self._windows.items() if entry[0] > now
                }
                self._next_window_sweep = now + SWEEP_INTERVAL_SECONDS
            current_end, count = self._windows.get(key, (window_end, 0))
            if current_end != window_end:
                count = 0
            count += 1
            self._windows[key] = (window_end, count)
        return count <= limit


cache_client = CacheClient()
