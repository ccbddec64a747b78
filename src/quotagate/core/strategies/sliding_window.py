from quotagate.core.strategies.base import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitStrategy,
    StrategyName,
)


class SlidingWindowStrategy(RateLimitStrategy):
    """
    Counter-based sliding window over [now - window, now].

    No timestamp log is kept. The store re-anchors the counter TTL on each
    increment, and that refreshed counter is taken as the number of
    requests in the trailing window.
    """

    name = StrategyName.SLIDING_WINDOW

    def check(self, current: int, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        window_size = self._window_size(config)

        return self._decide(
            current,
            config,
            reset_time=now,
            window={
                "window_start": now - window_size,
                "window_end": now,
                "window_size": window_size,
            },
        )

    def should_reset(self, current: int, config: RateLimitConfig) -> bool:
        return False
