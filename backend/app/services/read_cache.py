"""
services/read_cache.py — Keyed TTL memoizer for shared ledger reads.

One ReadCache is built per app in create_app() and handed to the services
that need it. Nothing here is a module-level singleton.

Semantics:
  - get_cached(key, fetcher, ttl) returns the stored value while
    now - stored_at < ttl; otherwise it calls fetcher(), stores the result
    with the current time and returns it.
  - Expiry is lazy: nothing runs in the background.
  - invalidate(key) drops an entry immediately regardless of age. Every
    successful mutation invalidates the keys whose data it changed before
    reporting success.
  - Concurrent misses for the same key each call fetcher(). Fetchers are
    idempotent reads, so this only costs an extra query.
  - A fetch that overlaps an invalidate of its key is returned to its caller
    but not stored. Each key carries a generation that invalidate(),
    invalidate_prefix() and clear() bump.
  - peek(key) returns the last stored value even if it has expired. It is the
    read-only fallback used when the store is unavailable. Invalidated keys
    have nothing to peek at.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 60.0


class CacheKeys:
    PERSONS         = "persons"
    SETTLED_RECORDS = "settled_records"
    ACTIVITY_LOGS   = "activity_logs"


class ReadCache:
    """
    In-process TTL cache keyed by logical resource name.

    Args:
        default_ttl: Lifetime used when get_cached() is not given one.
                     Seconds or a timedelta.
        clock:       Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
            self,
            default_ttl: float | timedelta = DEFAULT_TTL_SECONDS,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = _to_seconds(default_ttl)
        self._clock = clock
        # key -> (stored_at, value)
        self._entries: dict[str, tuple[float, Any]] = {}
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    def get_cached(
            self,
            key: str,
            fetcher: Callable[[], T],
            ttl: float | timedelta | None = None,
    ) -> T:
        lifetime = self.default_ttl if ttl is None else _to_seconds(ttl)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            generation = self._generations.setdefault(key, 0)
        if entry is not None and now - entry[0] < lifetime:
            return entry[1]

        logger.debug("Read cache miss for %r", key)
        value = fetcher()
        with self._lock:
            if self._generations.get(key) == generation:
                self._entries[key] = (now, value)
            else:
                logger.debug("Discarding fetch for %r invalidated in flight", key)
        return value

    def peek(self, key: str) -> Any | None:
        """Last stored value for `key`, ignoring age. None if absent."""
        with self._lock:
            entry = self._entries.get(key)
        return None if entry is None else entry[1]

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._bump(key)
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._generations if k.startswith(prefix)]:
                self._bump(key)
                self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            for key in list(self._generations):
                self._bump(key)
            self._entries.clear()

    def _bump(self, key: str) -> None:
        # Caller holds self._lock.
        self._generations[key] = self._generations.get(key, 0) + 1

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


def _to_seconds(ttl: float | timedelta) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)
