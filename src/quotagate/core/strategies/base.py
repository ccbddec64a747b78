"""
Abstract base classes for rate limiting strategies.

This module defines the contract that all windowing algorithms must follow.
A strategy never touches storage: it receives the counter value the store
returned for this request and turns it into a decision. Using the Strategy
Pattern allows swapping algorithms at runtime without changing the client code.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from quotagate.core.duration import now_ms, parse_duration
from quotagate.core.errors import ConfigurationError


class StrategyName(StrEnum):
    FIXED_WINDOW = "fixed-window"
    SLIDING_WINDOW = "sliding-window"
    APPROXIMATED_SLIDING_WINDOW = "approximated-sliding-window"


class RateLimitStatus(StrEnum):
    """Two-valued view of ``RateLimitResult.allowed``, as logged by the middleware."""

    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Everything a strategy needs to know about the limit being enforced.

    Attributes:
        key: Scope identifier, e.g. "user:123" or "ip:192.168.1.1".
        limit: Maximum number of requests allowed in the window.
        duration: Window length as an interval string ("30s", "1m").
        strategy: Name of the strategy being applied.
        burst: Reserved headroom, reported in metadata only.
        prefix: Namespace the key is stored under.
        metadata: Caller-supplied values merged into every result.
    """

    key: str
    limit: int
    duration: str
    strategy: str = StrategyName.FIXED_WINDOW
    burst: int = 0
    prefix: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RateLimitResult:
    """
    Immutable response from a rate limit check.

    This object contains all information needed to:
    1. Decide whether to allow/deny the request
    2. Populate rate limit headers in the HTTP response
    3. Tell the client when the window resets

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the window, never negative.
        reset_time: Window boundary in epoch milliseconds.
        limit: Maximum number of requests allowed in the window.
        key: The caller key the decision applies to.
        metadata: Strategy bookkeeping merged over caller metadata.
    """

    allowed: bool
    remaining: int
    reset_time: int
    limit: int
    key: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> RateLimitStatus:
        return RateLimitStatus.ALLOWED if self.allowed else RateLimitStatus.DENIED


class RateLimitStrategy(ABC):
    """
    Abstract base class for windowing algorithms.

    Every strategy shares the same arithmetic: a request is allowed while the
    counter is at or below the limit, so the request that brings the counter
    exactly to ``limit`` passes and ``limit + 1`` is the first denial.
    Strategies only differ in how they place the window in time.
    """

    name: str

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock

    @abstractmethod
    def check(self, current: int, config: RateLimitConfig) -> RateLimitResult:
        """
        Decide on a request given the post-increment counter value.

        Args:
            current: Counter value returned by the store for this request.
            config: The limit being enforced.

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            ConfigurationError: ``config.duration`` is malformed.
        """
        pass

    @abstractmethod
    def should_reset(self, current: int, config: RateLimitConfig) -> bool:
        """Whether a window boundary has been crossed. Informational only."""
        pass

    @staticmethod
    def _window_size(config: RateLimitConfig) -> int:
        window_size = parse_duration(config.duration)
        if window_size <= 0:
            raise ConfigurationError(f"Window must be longer than zero, got {config.duration!r}")
        return window_size

    def _decide(
        self,
        current: int,
        config: RateLimitConfig,
        reset_time: int,
        window: dict[str, Any],
    ) -> RateLimitResult:
        metadata = {
            **config.metadata,
            "strategy": self.name,
            "burst": config.burst,
            **window,
        }
        return RateLimitResult(
            allowed=current <= config.limit,
            remaining=max(0, config.limit - current),
            reset_time=reset_time,
            limit=config.limit,
            key=config.key,
            metadata=metadata,
        )
