import math

from quotagate.core.strategies.base import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitStrategy,
    StrategyName,
)


class ApproximatedSlidingWindowStrategy(RateLimitStrategy):
    """
    Sliding window approximated with sub-window buckets.

    The window is split into ``window_count`` equal sub-windows and the
    window is anchored at the start of the current sub-window. Finer than a
    fixed window, still O(1) storage per key.
    """

    name = StrategyName.APPROXIMATED_SLIDING_WINDOW
    window_count = 10

    def check(self, current: int, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        window_size = self._window_size(config)
        sub_window_size = window_size / self.window_count
        current_sub_window = math.floor(now / sub_window_size)
        window_start = math.floor(current_sub_window * sub_window_size)
        window_end = window_start + window_size

        return self._decide(
            current,
            config,
            reset_time=window_end,
            window={
                "window_start": window_start,
                "window_end": window_end,
                "sub_window_size": sub_window_size,
                "window_count": self.window_count,
                "current_sub_window": current_sub_window,
            },
        )

    def should_reset(self, current: int, config: RateLimitConfig) -> bool:
        now = self._clock()
        sub_window_size = self._window_size(config) / self.window_count
        return math.floor(now / sub_window_size) > math.floor((now - sub_window_size) / sub_window_size)
