# tests/test_ttl_cache.py — Expiring cache and rate limiter
import pytest

from exceptions import RateLimitError
from ttl_cache import RateLimiter, TTLCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLCache:
    def test_insert_get_and_expire(self, clock):
        cache = TTLCache(60, clock=clock)
        cache.insert("a", b"1")
        assert "a" in cache
        assert cache.get("a") == b"1"
        clock.advance(60)
        assert "a" not in cache
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_remove_consumes_entry(self, clock):
        cache = TTLCache(60, clock=clock)
        cache.insert("a", b"1")
        assert cache.remove("a") == b"1"
        assert cache.remove("a") is None

    def test_remove_expired_returns_none(self, clock):
        cache = TTLCache(60, clock=clock)
        cache.insert("a", b"1")
        clock.advance(61)
        assert cache.remove("a") is None

    def test_capacity_evicts_oldest(self, clock):
        cache = TTLCache(60, max_entries=2, clock=clock)
        cache.insert("a", 1)
        cache.insert("b", 2)
        cache.insert("c", 3)
        assert "a" not in cache
        assert cache.get("b") == 2 and cache.get("c") == 3

    def test_replace_keeps_expiry(self, clock):
        cache = TTLCache(60, clock=clock)
        cache.insert("a", 1)
        clock.advance(30)
        assert cache.replace("a", 2)
        clock.advance(30)
        assert "a" not in cache
        assert not cache.replace("missing", 1)

    def test_purge_expired(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.insert("a", 1)
        clock.advance(5)
        cache.insert("b", 2)
        clock.advance(6)
        assert cache.purge_expired() == 1
        assert cache.items() == [("b", 2)]


class TestRateLimiter:
    def test_allows_up_to_max_hits(self, clock):
        limiter = RateLimiter(420, 5, clock=clock)
        for _ in range(5):
            limiter.check("rpc:1")
        with pytest.raises(RateLimitError):
            limiter.check("rpc:1")

    def test_keys_are_independent(self, clock):
        limiter = RateLimiter(420, 1, clock=clock)
        limiter.check("rpc:1")
        limiter.check("rpc:2")
        assert limiter.snapshot() == {"rpc:1": 1, "rpc:2": 1}

    def test_window_is_fixed_from_first_hit(self, clock):
        limiter = RateLimiter(420, 2, clock=clock)
        limiter.check("rpc:1")
        clock.advance(400)
        limiter.check("rpc:1")
        clock.advance(20)
        # Window opened by the first hit has closed
        limiter.check("rpc:1")
        assert limiter.snapshot() == {"rpc:1": 1}
