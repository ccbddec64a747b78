"""
Rate limiter orchestrator.

Binds one counter store, one strategy registry and an immutable options
value. ``RateLimiter.check`` is the only operation that talks to the store;
every convenience query is a projection of a full, quota-consuming check.
"""

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from quotagate.core.duration import parse_duration
from quotagate.core.errors import ConfigurationError
from quotagate.core.keys import scoped_key
from quotagate.core.storage.base import CounterStore
from quotagate.core.storage.memory import MemoryStore
from quotagate.core.storage.redis import RedisStore
from quotagate.core.strategies.base import RateLimitConfig, RateLimitResult, StrategyName
from quotagate.core.strategies.registry import StrategyRegistry, default_registry

logger = structlog.get_logger()

ResultHook = Callable[[RateLimitResult], Awaitable[None] | None]


@dataclass(frozen=True)
class RateLimiterOptions:
    """
    Immutable limiter configuration.

    Attributes:
        limit: Maximum number of requests per window.
        duration: Window length as an interval string ("30s", "1m").
        strategy: Registry name of the windowing strategy.
        burst: Reserved headroom, carried through to result metadata.
        prefix: Namespace applied to store keys.
        metadata: Merged into every result.
        on_limit: Called with the result of every denied check.
        on_success: Called with the result of every allowed check.
    """

    limit: int
    duration: str
    strategy: str = StrategyName.FIXED_WINDOW
    burst: int = 0
    prefix: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)
    on_limit: ResultHook | None = None
    on_success: ResultHook | None = None

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise ConfigurationError(f"limit must be >= 0, got {self.limit}")
        if self.burst < 0:
            raise ConfigurationError(f"burst must be >= 0, got {self.burst}")
        object.__setattr__(self, "metadata", dict(self.metadata))


class RateLimiter:
    """
    Admission control for arbitrary keys.

    Example:
        >>> limiter = RateLimiter(MemoryStore(), RateLimiterOptions(limit=3, duration="1m"))
        >>> result = await limiter.check("user:42")
        >>> result.allowed, result.remaining
        (True, 2)
    """

    def __init__(
        self,
        store: CounterStore,
        options: RateLimiterOptions,
        registry: StrategyRegistry | None = None,
    ):
        self._store = store
        self._options = options
        self._registry = registry if registry is not None else default_registry()

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def options(self) -> RateLimiterOptions:
        return self._options

    @property
    def registry(self) -> StrategyRegistry:
        return self._registry

    def get_options(self) -> RateLimiterOptions:
        return self._options

    async def check(self, key: str) -> RateLimitResult:
        """
        Count a request against ``key`` and decide whether it may proceed.

        The counter is always incremented first. When the request is denied
        the increment is compensated with a read followed by a write of
        ``value - 1``. That pair is not atomic with the increment, so
        concurrent denials on one key can leave the counter off by a few.

        Raises:
            ConfigurationError: Malformed duration or unknown strategy.
            StoreError: The store failed.
        """
        options = self._options
        ttl = parse_duration(options.duration)
        if ttl <= 0:
            raise ConfigurationError(f"duration must be longer than zero, got {options.duration!r}")

        store_key = scoped_key(options.prefix, key)
        current = await self._store.increment(store_key, ttl)

        strategy = self._registry.get(options.strategy)
        result = strategy.check(
            current,
            RateLimitConfig(
                key=key,
                limit=options.limit,
                duration=options.duration,
                strategy=options.strategy,
                burst=options.burst,
                prefix=options.prefix,
                metadata=options.metadata,
            ),
        )

        if result.allowed:
            await self._run_hook(options.on_success, result)
            return result

        stored = await self._store.get(store_key) or 0
        if stored > 0:
            await self._store.set(store_key, stored - 1, ttl)
            logger.debug("rate_limit_compensated", key=store_key, value=stored - 1)

        logger.info(
            "rate_limit_exceeded",
            key=key,
            limit=result.limit,
            strategy=str(options.strategy),
            reset_time=result.reset_time,
        )
        await self._run_hook(options.on_limit, result)
        return result

    async def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        await self._store.set(scoped_key(self._options.prefix, key), 0, 0)

    # =========================================================================
    # Derivation
    # =========================================================================

    def with_store(self, store: CounterStore) -> "RateLimiter":
        return RateLimiter(store, self._options, self._registry)

    def with_options(self, **changes: Any) -> "RateLimiter":
        return RateLimiter(self._store, replace(self._options, **changes), self._registry)

    def with_strategy(self, strategy: str) -> "RateLimiter":
        return self.with_options(strategy=strategy)

    def update_options(self, **changes: Any) -> None:
        """
        Replace this limiter's options in place.

        Not safe to call while checks are in flight on this instance;
        prefer ``with_options`` when the limiter is shared.
        """
        self._options = replace(self._options, **changes)

    # =========================================================================
    # Convenience queries (each one consumes quota)
    # =========================================================================

    async def is_allowed(self, key: str) -> bool:
        return (await self.check(key)).allowed

    async def get_remaining(self, key: str) -> int:
        return (await self.check(key)).remaining

    async def get_reset_time(self, key: str) -> int:
        return (await self.check(key)).reset_time

    async def get_info(self, key: str) -> dict[str, Any]:
        result = await self.check(key)
        return {
            "allowed": result.allowed,
            "remaining": result.remaining,
            "reset_time": result.reset_time,
            "limit": result.limit,
        }

    @staticmethod
    async def _run_hook(hook: ResultHook | None, result: RateLimitResult) -> None:
        if hook is None:
            return
        outcome = hook(result)
        if inspect.isawaitable(outcome):
            await outcome


def create_rate_limiter(store: CounterStore | None = None, **options: Any) -> RateLimiter:
    """Build a limiter with defaults of 100 requests per minute on a fresh MemoryStore."""
    options.setdefault("limit", 100)
    options.setdefault("duration", "1m")
    return RateLimiter(store if store is not None else MemoryStore(), RateLimiterOptions(**options))


def create_memory_rate_limiter(
    limit: int,
    duration: str,
    max_size: int = 1000,
    cleanup_interval: int = 5 * 60 * 1000,
    **options: Any,
) -> RateLimiter:
    store = MemoryStore(max_size=max_size, cleanup_interval=cleanup_interval)
    return RateLimiter(store, RateLimiterOptions(limit=limit, duration=duration, **options))


def create_redis_rate_limiter(
    url: str,
    limit: int,
    duration: str,
    redis_prefix: str = "ratelimit",
    **options: Any,
) -> RateLimiter:
    store = RedisStore.from_url(url, prefix=redis_prefix)
    return RateLimiter(store, RateLimiterOptions(limit=limit, duration=duration, **options))
