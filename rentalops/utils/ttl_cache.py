"""Time-boxed in-memory cache with single-flight computation."""

from __future__ import annotations

import time
from concurrent.futures import Future
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Generic, Hashable, Optional, TypeVar

from rentalops.utils.logger import get_logger


logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    inserted_at: float


class TimeBoxedCache(Generic[K, V]):
    """Maps keys to (value, insertion time) and expires entries after a TTL.

    Concurrent `get_or_compute` calls for the same missing key share one
    computation: the first caller runs it, the rest wait on its result.
    A failed computation is not cached and its exception reaches every waiter.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._in_flight: dict[K, Future] = {}
        self._lock = Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def _is_fresh(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.inserted_at <= self._ttl_seconds

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_fresh(entry):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry):
                return entry.value
            pending = self._in_flight.get(key)
            if pending is None:
                pending = Future()
                self._in_flight[key] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())
            self._in_flight.pop(key, None)
        pending.set_result(value)
        logger.debug("Cache entry computed | key=%s", key)
        return value

    def invalidate(self, prefix: Optional[str] = None) -> int:
        """Drop every entry, or only string keys starting with `prefix`."""
        with self._lock:
            if prefix is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [
                key
                for key in self._entries
                if isinstance(key, str) and key.startswith(prefix)
            ]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
