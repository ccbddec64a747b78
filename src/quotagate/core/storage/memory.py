"""
Bounded in-process counter store.

Entries live in an insertion-ordered dictionary used as an LRU list:
every read or write moves the key to the most recent end and the least
recently used key is evicted once ``max_size`` is exceeded.

Expiry is checked on every read path, so correctness never depends on the
optional background sweep. The sweep only keeps dead entries from holding
capacity until they are touched again. It starts on the first store call
made from a running event loop, or explicitly via ``start_cleanup_task``.

WARNING: state is local to the process. Use RedisStore when several
workers must share counters.
"""

import asyncio
import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import structlog

from quotagate.core.duration import now_ms
from quotagate.core.errors import ConfigurationError
from quotagate.core.storage.base import CounterRecord, CounterStore, EvictionReason

logger = structlog.get_logger()

EvictionObserver = Callable[[str, CounterRecord, EvictionReason], None]


class MemoryStore(CounterStore):
    """
    In-memory implementation of CounterStore.

    Features:
    - Capacity bound with least-recently-used eviction
    - Passive expiry on read plus an optional periodic sweep
    - Optional observer notified of every eviction (diagnostics only)

    Example:
        >>> store = MemoryStore(max_size=2, cleanup_interval=0)
        >>> await store.increment("a", ttl=60_000)
        1

    Thread Safety:
        All mutations happen under a lock with no awaits inside the
        critical section, so the store is safe for concurrent tasks and
        threads alike.
    """

    def __init__(
        self,
        max_size: int = 1000,
        cleanup_interval: int = 5 * 60 * 1000,
        on_evict: EvictionObserver | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """
        Initialize an empty store.

        Args:
            max_size: Maximum number of distinct keys kept.
            cleanup_interval: Milliseconds between background sweeps.
                              Zero or less disables the sweep.
            on_evict: Called with (key, record, reason) when an entry is
                      dropped for capacity or expiry.
            clock: Millisecond clock, injectable for tests.
        """
        if max_size < 1:
            raise ConfigurationError(f"max_size must be at least 1, got {max_size}")

        self._entries: OrderedDict[str, CounterRecord] = OrderedDict()
        self._lock = threading.Lock()
        self._max_size = max_size
        self._cleanup_interval = cleanup_interval
        self._on_evict = on_evict
        self._clock = clock
        self._cleanup_task: asyncio.Task | None = None
        self._evictions = 0
        self._expirations = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def size(self) -> int:
        return len(self._entries)

    # =========================================================================
    # CounterStore interface
    # =========================================================================

    async def get(self, key: str) -> int | None:
        self._ensure_cleanup_task()
        dropped: list[tuple[str, CounterRecord, EvictionReason]] = []
        with self._lock:
            record = self._live_record(key, self._clock(), dropped)
            if record is not None:
                self._entries.move_to_end(key)
        self._notify(dropped)
        return record.value if record is not None else None

    async def set(self, key: str, value: int, ttl: int) -> None:
        self._ensure_cleanup_task()
        dropped: list[tuple[str, CounterRecord, EvictionReason]] = []
        with self._lock:
            if ttl <= 0:
                self._entries.pop(key, None)
            else:
                record = CounterRecord(value=value, expires_at=self._clock() + ttl)
                self._store(key, record, dropped)
        self._notify(dropped)

    async def increment(self, key: str, ttl: int) -> int:
        self._ensure_cleanup_task()
        dropped: list[tuple[str, CounterRecord, EvictionReason]] = []
        with self._lock:
            now = self._clock()
            record = self._live_record(key, now, dropped)
            value = (record.value if record is not None else 0) + 1
            if ttl <= 0:
                self._entries.pop(key, None)
            else:
                self._store(key, CounterRecord(value=value, expires_at=now + ttl), dropped)
        self._notify(dropped)
        return value

    # =========================================================================
    # Maintenance
    # =========================================================================

    def has(self, key: str) -> bool:
        """Check for a live key without refreshing its recency."""
        with self._lock:
            record = self._entries.get(key)
            return record is not None and not record.is_expired(self._clock())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def keys(self) -> list[str]:
        """Live keys, least recently used first."""
        now = self._clock()
        with self._lock:
            return [k for k, r in self._entries.items() if not r.is_expired(now)]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        dropped: list[tuple[str, CounterRecord, EvictionReason]] = []
        now = self._clock()
        with self._lock:
            expired = [k for k, r in self._entries.items() if r.is_expired(now)]
            for key in expired:
                dropped.append((key, self._entries.pop(key), EvictionReason.EXPIRED))
            self._expirations += len(expired)
        self._notify(dropped)

        if expired:
            logger.debug("store_cleanup", removed=len(expired), size=self.size)
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self._max_size,
            "cleanup_interval": self._cleanup_interval,
            "evictions": self._evictions,
            "expirations": self._expirations,
            "cleanup_running": self._cleanup_task is not None and not self._cleanup_task.done(),
        }

    async def start_cleanup_task(self) -> None:
        """Start the periodic sweep. No-op when disabled or already running."""
        self._ensure_cleanup_task()

    async def close(self) -> None:
        """Stop the sweep and drop all entries."""
        task, self._cleanup_task = self._cleanup_task, None
        # A task bound to another, already finished loop cannot be awaited here.
        if task is not None and task.get_loop() is asyncio.get_running_loop():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.clear()

    async def __aenter__(self) -> "MemoryStore":
        await self.start_cleanup_task()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_cleanup_task(self) -> None:
        """Start the sweep on the running loop unless it is already live there."""
        if self._cleanup_interval <= 0:
            return
        loop = asyncio.get_running_loop()
        task = self._cleanup_task
        if task is not None and not task.done() and task.get_loop() is loop:
            return
        self._cleanup_task = loop.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval / 1000)
            try:
                self.cleanup()
            except Exception:
                logger.exception("store_cleanup_failed")

    # =========================================================================
    # Internals (caller must hold the lock)
    # =========================================================================

    def _live_record(
        self,
        key: str,
        now: int,
        dropped: list[tuple[str, CounterRecord, EvictionReason]],
    ) -> CounterRecord | None:
        record = self._entries.get(key)
        if record is None:
            return None
        if record.is_expired(now):
            del self._entries[key]
            self._expirations += 1
            dropped.append((key, record, EvictionReason.EXPIRED))
            return None
        return record

    def _store(
        self,
        key: str,
        record: CounterRecord,
        dropped: list[tuple[str, CounterRecord, EvictionReason]],
    ) -> None:
        self._entries[key] = record
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            evicted_key, evicted = self._entries.popitem(last=False)
            self._evictions += 1
            dropped.append((evicted_key, evicted, EvictionReason.CAPACITY))

    def _notify(self, dropped: list[tuple[str, CounterRecord, EvictionReason]]) -> None:
        # Runs outside the lock so observers may call back into the store.
        for key, record, reason in dropped:
            logger.debug("store_evicted", key=key, value=record.value, reason=reason.value)
            if self._on_evict is None:
                continue
            try:
                self._on_evict(key, record, reason)
            except Exception:
                logger.exception("store_observer_failed", key=key, reason=reason.value)
