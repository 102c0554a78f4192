"""
In-memory API response cache with stale fallback.

Stores upstream responses by string key with a per-entry TTL. Expired
entries are kept around so get_stale() can serve them while an upstream
is down; a background cleanup only evicts entries older than 10x their
TTL.

Values are stored by reference. Mutating a returned value mutates the
cached copy.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Entries are evicted once older than GRACE_FACTOR * their TTL.
GRACE_FACTOR = 10

CLEANUP_INTERVAL_SECONDS = 300


class CacheTTL(IntEnum):
    """Named TTLs in milliseconds."""

    NEWS = 60_000  # fast-changing feeds
    DEFAULT = 300_000
    STOCKS = 600_000
    SLOW = 900_000
    VERY_SLOW = 1_800_000  # near-static data, e.g. regulatory documents


def wall_clock_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """A cached value with its timing metadata (epoch milliseconds)."""

    value: Any
    stored_at: int
    expires_at: int

    @property
    def ttl(self) -> int:
        return self.expires_at - self.stored_at

    def is_stale(self, now: int) -> bool:
        return now > self.expires_at

    def age(self, now: int) -> int:
        """Milliseconds since this entry was stored."""
        return now - self.stored_at


@dataclass
class StaleResult:
    """Result of get_stale(): the value plus whether it has expired."""

    value: Any
    is_stale: bool
    stored_at: int


@dataclass
class EntryInfo:
    key: str
    is_stale: bool
    age_ms: int


@dataclass
class CacheStats:
    size: int
    hits: int
    misses: int
    hit_rate: str
    entries: list[EntryInfo] = field(default_factory=list)


def _format_hit_rate(hits: int, total: int) -> str:
    """Percentage with one decimal, ties rounded up (6.25 -> "6.3%")."""
    tenths = (hits * 2000 + total) // (2 * total)
    return f"{tenths // 10}.{tenths % 10}%"


class ResponseCache:
    """
    Response cache with TTL expiry and a stale grace period.

    - get(): returns value if not expired, counts a hit or a miss.
    - get_stale(): returns value even if expired (fallback path, no stats).
    - set(): stores a value with a TTL in milliseconds.
    - cleanup(): evicts entries older than GRACE_FACTOR * TTL. Runs on a
      daemon thread every `cleanup_interval` seconds until stop().
    """

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        cleanup_interval: Optional[float] = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()
        self._clock = clock or wall_clock_ms
        # None, 0 and negative intervals disable the background thread
        self._cleanup_interval = (
            cleanup_interval if cleanup_interval and cleanup_interval > 0 else None
        )
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None
        if self._cleanup_interval:
            self.start()

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None or entry.is_stale(self._clock()):
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def get_stale(self, key: str) -> Optional[StaleResult]:
        """
        Return the cached value even if it has expired.

        Meant as a fallback when an upstream call fails. Returns None only
        if no entry exists for the key.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            return StaleResult(
                value=entry.value,
                is_stale=entry.is_stale(self._clock()),
                stored_at=entry.stored_at,
            )

    def set(self, key: str, value: Any, ttl_ms: int = CacheTTL.DEFAULT) -> None:
        """Store a value, replacing any existing entry for the key."""
        now = self._clock()
        with self._lock:
            self._store[key] = CacheEntry(
                value=value, stored_at=now, expires_at=now + int(ttl_ms)
            )

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all entries and reset hit/miss counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Evict entries older than GRACE_FACTOR times their TTL."""
        now = self._clock()
        with self._lock:
            ancient = [
                key
                for key, entry in self._store.items()
                if entry.age(now) > entry.ttl * GRACE_FACTOR
            ]
            for key in ancient:
                del self._store[key]
            remaining = len(self._store)

        if ancient:
            logger.debug(
                "Cleanup removed %d ancient entries, %d remain",
                len(ancient),
                remaining,
            )
        return len(ancient)

    def get_stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            entries = [
                EntryInfo(key=key, is_stale=entry.is_stale(now), age_ms=entry.age(now))
                for key, entry in self._store.items()
            ]
            hits, misses = self._hits, self._misses

        total = hits + misses
        hit_rate = _format_hit_rate(hits, total) if total > 0 else "N/A"
        return CacheStats(
            size=len(entries),
            hits=hits,
            misses=misses,
            hit_rate=hit_rate,
            entries=entries,
        )

    # ------------------------------------------------------------------
    # Background cleanup
    # ------------------------------------------------------------------

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup_thread is not None and self._cleanup_thread.is_alive()

    def start(self) -> None:
        """Start the periodic cleanup thread (no-op if already running)."""
        if not self._cleanup_interval or self.cleanup_running:
            return
        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._run_cleanup,
            name="response-cache-cleanup",
            daemon=True,
        )
        self._cleanup_thread.start()

    def stop(self) -> None:
        """Stop the periodic cleanup thread. Safe to call more than once."""
        self._stop_event.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._cleanup_thread = None

    def _run_cleanup(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            self.cleanup()
