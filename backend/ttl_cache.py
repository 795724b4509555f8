# ttl_cache.py — Expiring in-process key/value store and the per-user rate limiter built on it
#
# Both the CDN chunk cache and the RPC rate limiter are instances built once at
# startup (see state.py) and handed to request handlers; nothing here is a module global.

import time
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from exceptions import RateLimitError

logger = logging.getLogger("arcadia-panel.cache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Insertion-ordered cache whose entries expire ``ttl_seconds`` after insertion.

    When ``max_entries`` is reached the oldest entry is evicted. Expired entries
    are dropped lazily on access and on every insert.
    """

    def __init__(self, ttl_seconds: float, max_entries: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[K, Tuple[float, V]]" = OrderedDict()

    def _expired(self, expires_at: float) -> bool:
        return expires_at <= self._clock()

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [key for key, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in stale:
            del self._data[key]
        return len(stale)

    def contains(self, key: K) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        if self._expired(entry[0]):
            del self._data[key]
            return False
        return True

    __contains__ = contains

    def get(self, key: K, default: Any = None) -> Any:
        if not self.contains(key):
            return default
        return self._data[key][1]

    def insert(self, key: K, value: V) -> None:
        self.purge_expired()
        self._data.pop(key, None)
        if self.max_entries is not None:
            while len(self._data) >= self.max_entries:
                evicted, _ = self._data.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted!r} (capacity {self.max_entries})")
        self._data[key] = (self._clock() + self.ttl_seconds, value)

    def replace(self, key: K, value: V) -> bool:
        """Swap the value of a live entry without touching its expiry."""
        if not self.contains(key):
            return False
        expires_at, _ = self._data[key]
        self._data[key] = (expires_at, value)
        return True

    def items(self):
        self.purge_expired()
        return [(key, value) for key, (_, value) in self._data.items()]

    def remove(self, key: K) -> Optional[V]:
        """Pop ``key``; returns None when absent or expired."""
        entry = self._data.pop(key, None)
        if entry is None or self._expired(entry[0]):
            return None
        return entry[1]

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._data)


class RateLimiter:
    """Counts hits per key inside a fixed window opened by the first hit.

    Read-modify-insert against the cache, so under heavy concurrent bursts the
    count is best-effort rather than exact.
    """

    def __init__(self, window_seconds: float, max_hits: int,
                 clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self._counts: TTLCache[str, int] = TTLCache(window_seconds, clock=clock)

    def hit(self, key: str) -> int:
        count = self._counts.get(key, 0) + 1
        # Window opens on the first hit and does not slide forward
        if not self._counts.replace(key, count):
            self._counts.insert(key, count)
        return count

    def check(self, key: str) -> None:
        count = self.hit(key)
        if count > self.max_hits:
            logger.warning(f"Rate limit exceeded for {key} ({count}/{self.max_hits})")
            raise RateLimitError("You are being ratelimited right now. Please try again later")

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counts.items())
