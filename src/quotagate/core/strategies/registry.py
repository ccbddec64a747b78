"""
Strategy registry.

Each RateLimiter owns a registry instead of consulting process-wide state.
New strategies can be registered at runtime under any name.
"""

from collections.abc import Callable

from quotagate.core.duration import now_ms
from quotagate.core.errors import UnknownStrategyError
from quotagate.core.strategies.approximated_sliding_window import ApproximatedSlidingWindowStrategy
from quotagate.core.strategies.base import RateLimitStrategy
from quotagate.core.strategies.fixed_window import FixedWindowStrategy
from quotagate.core.strategies.sliding_window import SlidingWindowStrategy


class StrategyRegistry:
    def __init__(self, strategies: list[RateLimitStrategy] | None = None):
        self._strategies: dict[str, RateLimitStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: RateLimitStrategy, name: str | None = None) -> None:
        """Register ``strategy`` under ``name`` (defaults to ``strategy.name``), replacing any previous entry."""
        self._strategies[str(name or strategy.name)] = strategy

    def get(self, name: str) -> RateLimitStrategy:
        try:
            return self._strategies[str(name)]
        except KeyError:
            raise UnknownStrategyError(str(name), self.names()) from None

    def names(self) -> list[str]:
        return sorted(self._strategies)

    def __contains__(self, name: object) -> bool:
        return str(name) in self._strategies


def default_registry(clock: Callable[[], int] = now_ms) -> StrategyRegistry:
    """A fresh registry holding the three built-in strategies."""
    return StrategyRegistry(
        [
            FixedWindowStrategy(clock),
            SlidingWindowStrategy(clock),
            ApproximatedSlidingWindowStrategy(clock),
        ]
    )
