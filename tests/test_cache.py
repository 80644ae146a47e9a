"""
Tests for the process-local cache client and rate limiter.
"""

import time

from gametrackr.core.cache import SWEEP_INTERVAL_SECONDS, CacheClient


class TestJsonValues:
    def test_set_and_get(self):
        cache = CacheClient()

        cache.set_json("k", {"a": [1, 2]})

        assert cache.get_json("k") == {"a": [1, 2]}

    def test_missing_key(self):
        assert CacheClient().get_json("nope") is None

    def test_expiry(self, monkeypatch):
        cache = CacheClient()
        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now)
        cache.set_json("k", 1, ttl=10)

        monkeypatch.setattr(time, "monotonic", lambda: now + 11)

        assert cache.get_json("k") is None

    def test_delete_and_clear(self):
        cache = CacheClient()
        cache.set_json("a", 1)
        cache.set_json("b", 2)

        cache.delete("a")
        assert cache.get_json("a") is None
        cache.clear()
        assert cache.get_json("b") is None

    def test_expired_values_are_swept_on_write(self, monkeypatch):
        cache = CacheClient()
        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now)
        cache.set_json("short", 1, ttl=10)
        cache.set_json("forever", 2, ttl=0)

        monkeypatch.setattr(time, "monotonic", lambda: now + SWEEP_INTERVAL_SECONDS + 1)
        cache.set_json("fresh", 3)

        assert set(cache._values) == {"forever", "fresh"}


class TestRateLimit:
    def test_allows_up_to_limit(self):
        cache = CacheClient()

        results = [cache.check_rate_limit("ip", 3) for _ in range(4)]

        assert results == [True, True, True, False]

    def test_keys_are_independent(self):
        cache = CacheClient()
        cache.check_rate_limit("a", 1)

        assert cache.check_rate_limit("a", 1) is False
        assert cache.check_rate_limit("b", 1) is True

    def test_new_window_resets(self, monkeypatch):
        cache = CacheClient()
        now = 1_000_000.0
        monkeypatch.setattr(time, "time", lambda: now)
        assert cache.check_rate_limit("ip", 1) is True
        assert cache.check_rate_limit("ip", 1) is False

        monkeypatch.setattr(time, "time", lambda: now + 60)

        assert cache.check_rate_limit("ip", 1) is True

    def test_non_positive_limit_disables(self):
        cache = CacheClient()

        assert all(cache.check_rate_limit("ip", 0) for _ in range(100))

    def test_closed_windows_are_pruned(self, monkeypatch):
        """Per-path keys from an earlier window do not accumulate."""
        cache = CacheClient()
        now = 1_000_000.0
        monkeypatch.setattr(time, "time", lambda: now)
        for index in range(1000):
            cache.check_rate_limit(f"ip:/api/games/{index}", 5)
        assert len(cache._windows) == 1000

        monkeypatch.setattr(time, "time", lambda: now + 3600)
        cache.check_rate_limit("ip:/api/health", 5)

        assert list(cache._windows) == ["ip:/api/health"]

    def test_open_window_survives_sweep(self, monkeypatch):
        cache = CacheClient()
        now = 1_000_000.0
        monkeypatch.setattr(time, "time", lambda: now)
        cache.check_rate_limit("ip", 2)
        cache.check_rate_limit("ip", 2)

        monkeypatch.setattr(time, "time", lambda: now + 1)
        cache._next_window_sweep = 0.0

        assert cache.check_rate_limit("ip", 2) is False
