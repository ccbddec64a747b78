"""
Abstract base class for counter stores.

This module defines the contract every store backend must follow.
Separating storage from the decision algorithms allows:
- Testing with the in-process backend (no Redis needed)
- Swapping Redis for any service exposing an atomic increment
- Running locally without external dependencies
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class CounterRecord:
    """
    The unit stored per key.

    Attributes:
        value: Current counter value.
        expires_at: Absolute expiry time in epoch milliseconds.
    """

    value: int
    expires_at: int

    def is_expired(self, now: int) -> bool:
        """A record is logically absent once ``now`` reaches ``expires_at``."""
        return now >= self.expires_at


class EvictionReason(StrEnum):
    CAPACITY = "capacity"
    EXPIRED = "expired"


class CounterStore(ABC):
    """
    Abstract base class for rate limit counter storage.

    Implementations must handle:
    - Integer counters with a time-to-live per key
    - An atomic increment that never loses updates under concurrent callers

    Available implementations:
    - MemoryStore: bounded, in-process, LRU eviction
    - RedisStore: networked, relies on INCR for atomicity

    Example:
        >>> store = MemoryStore(max_size=10_000)
        >>> limiter = RateLimiter(store, RateLimiterOptions(limit=10, duration="1m"))
    """

    @abstractmethod
    async def get(self, key: str) -> int | None:
        """
        Read the current counter value.

        Args:
            key: The counter key.

        Returns:
            The value, or None if the key is absent or expired. An expired
            key is removed as a side effect of the read.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: int, ttl: int) -> None:
        """
        Unconditionally install a counter value.

        Args:
            key: The counter key.
            value: Value to store.
            ttl: Remaining lifetime in milliseconds. A ttl of zero or less
                 leaves the key reading as absent, which makes this call
                 double as a delete.
        """
        pass

    @abstractmethod
    async def increment(self, key: str, ttl: int) -> int:
        """
        Atomically add one to a counter.

        An absent or expired key counts as 0, so the first increment
        returns 1. Concurrent increments on the same key must serialize.

        Args:
            key: The counter key.
            ttl: Lifetime in milliseconds for the stored value.

        Returns:
            The value after the increment.

        Example:
            >>> await store.increment("ip:10.0.0.1", ttl=60_000)
            1
        """
        pass

    async def close(self) -> None:
        """Release connections or background tasks. No-op by default."""
        return None
