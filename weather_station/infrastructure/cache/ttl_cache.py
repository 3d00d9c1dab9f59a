"""
In-memory TTL cache shared by every service of the pipeline.

Features:
- Per-entry expiry (ttl=0 stores an entry that never expires)
- Lazy eviction on access + periodic background sweep
- Hit/miss statistics, bulk get/set/delete
- Max key guard (least-recently-set entry evicted when full)
- Listener hooks for expiry/eviction/flush
- Single-flight fetch: concurrent misses on one key share one fetch

Concurrency:
    All operations are synchronous and run inside one event loop step,
    so they are atomic with respect to other asyncio tasks. Sharing an
    instance across OS threads would need a lock around ``_store``.

Example:
    cache = TTLCache(default_ttl=3600)
    cache.set("points:33.1581,-96.5989", payload, ttl=86400)
    payload = cache.get("points:33.1581,-96.5989")
"""

import asyncio
import contextlib
import sys
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel

from weather_station.infrastructure.cache.cache_keys import CacheTTL


class _Missing:
    """Sentinel type: distinguishes "absent" from a stored ``None``."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CacheStats(BaseModel):
    """
    Cache statistics.

    Attributes:
        keys: Live (non-expired) key count
        hits: Cumulative hits since creation or last flush
        misses: Cumulative misses since creation or last flush
        ksize: Approximate size of all keys (bytes, advisory)
        vsize: Approximate size of all values (bytes, advisory)
    """

    keys: int = 0
    hits: int = 0
    misses: int = 0
    ksize: int = 0
    vsize: int = 0


class CacheListener:
    """Observer for cache lifecycle events. Override what you need."""

    def on_expired(self, key: str, value: Any) -> None:
        pass

    def on_evicted(self, key: str, value: Any) -> None:
        pass

    def on_flush(self) -> None:
        pass


class LoggingCacheListener(CacheListener):
    def on_expired(self, key: str, value: Any) -> None:
        logger.debug(f"[Cache] Expired: {key}")

    def on_evicted(self, key: str, value: Any) -> None:
        logger.warning(f"[Cache] Evicted (max keys reached): {key}")

    def on_flush(self) -> None:
        logger.info("[Cache] Cache flushed")


class TTLCache:
    """
    Keyed store with per-entry TTL.

    Args:
        default_ttl: TTL (seconds) used when ``set`` gets no ttl
        check_period: Seconds between background sweeps (0 disables)
        max_keys: Maximum number of entries (<= 0 means unbounded)
        timer: Clock returning seconds; injectable for tests
    """

    def __init__(
        self,
        default_ttl: float = CacheTTL.FORECASTS,
        check_period: float = 120,
        max_keys: int = 1000,
        timer: Callable[[], float] = time.monotonic,
    ):
        if default_ttl < 0:
            raise ValueError("default_ttl must be >= 0")
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.max_keys = max_keys
        self._timer = timer
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._listeners: list[CacheListener] = []
        self._inflight: dict[str, asyncio.Task] = {}
        self._sweep_task: asyncio.Task | None = None

    def __len__(self) -> int:
        # raw entry count, expired-but-unswept entries included
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __repr__(self) -> str:
        return (
            f"TTLCache(entries={len(self._store)}, "
            f"default_ttl={self.default_ttl}, max_keys={self.max_keys})"
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: CacheListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CacheListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_ttl(self, ttl: float | None) -> float:
        if ttl is None:
            return self.default_ttl
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        return ttl

    def _expires_at(self, now: float, ttl: float) -> float | None:
        return now + ttl if ttl > 0 else None

    def _expire(self, entry: CacheEntry) -> None:
        self._store.pop(entry.key, None)
        for listener in self._listeners:
            listener.on_expired(entry.key, entry.value)

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._timer()):
            self._expire(entry)
            return None
        return entry

    def _ensure_capacity(self) -> None:
        if self.max_keys <= 0 or len(self._store) < self.max_keys:
            return
        self.prune_expired()
        while len(self._store) >= self.max_keys:
            key, entry = self._store.popitem(last=False)
            for listener in self._listeners:
                listener.on_evicted(key, entry.value)

    @staticmethod
    def _approx_size(value: Any) -> int:
        if isinstance(value, str):
            return len(value.encode("utf-8"))
        return sys.getsizeof(value)

    # ------------------------------------------------------------------
    # Single-key operations
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value or ``default``; counts a hit or miss."""
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def peek(self, key: str, default: Any = None) -> Any:
        """Like ``get`` but leaves the statistics untouched."""
        entry = self._live_entry(key)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: Any payload (``None`` is stored as-is)
            ttl: Seconds to live. ``None`` -> default TTL,
                ``0`` -> never expires.

        Returns:
            True

        Raises:
            ValueError: If ttl is negative
        """
        ttl = self._resolve_ttl(ttl)
        now = self._timer()
        if key in self._store:
            # re-inserted at the tail: most recently set
            del self._store[key]
        else:
            self._ensure_capacity()
        self._store[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=self._expires_at(now, ttl),
        )
        return True

    def delete(self, key: str) -> int:
        """Remove a key. Returns 1 if a live entry was removed, else 0."""
        if self._live_entry(key) is None:
            return 0
        del self._store[key]
        return 1

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def get_ttl(self, key: str) -> float | None:
        """
        Remaining lifetime of a key in seconds.

        Returns:
            Remaining seconds, 0 if the entry never expires,
            None if the key is absent or expired.
        """
        entry = self._live_entry(key)
        if entry is None:
            return None
        if entry.expires_at is None:
            return 0
        return max(entry.expires_at - self._timer(), 0.0)

    def set_ttl(self, key: str, ttl: float | None = None) -> bool:
        """
        Restart the countdown of an existing key from now.

        ``ttl=0`` makes the entry permanent. Returns False if the key
        is absent or already expired.
        """
        entry = self._live_entry(key)
        if entry is None:
            return False
        ttl = self._resolve_ttl(ttl)
        now = self._timer()
        entry.created_at = now
        entry.expires_at = self._expires_at(now, ttl)
        self._store.move_to_end(key)
        return True

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def get_multiple(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return present keys only; missing keys are omitted."""
        result = {}
        for key in keys:
            value = self.get(key, MISSING)
            if value is not MISSING:
                result[key] = value
        return result

    def set_multiple(
        self, entries: Iterable[tuple | Mapping[str, Any]]
    ) -> bool:
        """
        Store several entries.

        Each entry is ``(key, value)``, ``(key, value, ttl)`` or a
        mapping with ``key``, ``value`` and optional ``ttl``. All
        entries are validated before anything is stored.
        """
        normalized = []
        for entry in entries:
            if isinstance(entry, Mapping):
                key, value = entry["key"], entry["value"]
                ttl = entry.get("ttl")
            elif len(entry) == 2:
                (key, value), ttl = entry, None
            else:
                key, value, ttl = entry
            normalized.append((key, value, self._resolve_ttl(ttl)))

        for key, value, ttl in normalized:
            self.set(key, value, ttl)
        return True

    def delete_multiple(self, keys: Iterable[str]) -> int:
        return sum(self.delete(key) for key in keys)

    def keys(self) -> list[str]:
        now = self._timer()
        return [k for k, e in self._store.items() if not e.is_expired(now)]

    def flush(self) -> None:
        """Remove every entry and reset statistics."""
        self._store.clear()
        self._hits = 0
        self._misses = 0
        for listener in self._listeners:
            listener.on_flush()

    def get_stats(self) -> CacheStats:
        now = self._timer()
        live = [e for e in self._store.values() if not e.is_expired(now)]
        return CacheStats(
            keys=len(live),
            hits=self._hits,
            misses=self._misses,
            ksize=sum(len(e.key) for e in live),
            vsize=sum(self._approx_size(e.value) for e in live),
        )

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def prune_expired(self) -> int:
        """Evict every expired entry now. Returns the number evicted."""
        now = self._timer()
        expired = [e for e in self._store.values() if e.is_expired(now)]
        for entry in expired:
            self._expire(entry)
        return len(expired)

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.is_sweeping or self.check_period <= 0:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="ttl-cache-sweep"
        )
        logger.debug(f"Cache sweep started (every {self.check_period}s)")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            try:
                removed = self.prune_expired()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")
                continue
            if removed:
                logger.debug(f"Cache sweep evicted {removed} expired keys")

    async def close(self) -> None:
        """Stop the sweep task. Entries are kept."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Cache sweep stopped")

    # ------------------------------------------------------------------
    # Single-flight
    # ------------------------------------------------------------------

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """
        Return the cached value or run ``fetch`` once and cache it.

        Concurrent callers missing the same key await the same fetch
        instead of issuing their own. The fetch runs as its own task and
        every caller awaits it through ``asyncio.shield``: cancelling one
        caller, including the one that started it, never cancels the
        shared fetch. A failed fetch is not cached; its exception is
        raised to every caller still waiting.
        """
        value = self.get(key, MISSING)
        if value is not MISSING:
            return value

        task = self._inflight.get(key)
        if task is not None:
            logger.debug(f"Cache miss coalesced with in-flight fetch: {key}")
        else:
            task = asyncio.get_running_loop().create_task(
                self._fetch_and_store(key, fetch, ttl),
                name=f"cache-fetch:{key}",
            )
            self._inflight[key] = task
            task.add_done_callback(
                lambda done, key=key: self._fetch_done(key, done)
            )
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: float | None,
    ) -> Any:
        value = await fetch()
        self.set(key, value, ttl)
        return value

    def _fetch_done(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every caller has gone away.
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                f"In-flight fetch failed for {key}: {task.exception()}"
            )

    @property
    def inflight_count(self) -> int:
        """Number of shared fetches currently running."""
        return len(self._inflight)
