from quotagate.core.strategies.base import (
    RateLimitConfig,
    RateLimitResult,
    RateLimitStrategy,
    StrategyName,
)


class FixedWindowStrategy(RateLimitStrategy):
    """
    Fixed Window counter.
    Windows are aligned to multiples of the window size and every request
    in the same window shares one counter. Up to 2x the limit can pass in
    a short span straddling a boundary.
    """

    name = StrategyName.FIXED_WINDOW

    def check(self, current: int, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        window_size = self._window_size(config)
        current_window = now // window_size
        window_start = current_window * window_size
        window_end = window_start + window_size

        return self._decide(
            current,
            config,
            reset_time=window_end,
            window={
                "window_start": window_start,
                "window_end": window_end,
                "current_window": current_window,
            },
        )

    def should_reset(self, current: int, config: RateLimitConfig) -> bool:
        # Compares against the window one full window ago, so this holds
        # on every call; kept as an informational flag.
        now = self._clock()
        window_size = self._window_size(config)
        return now // window_size > (now - window_size) // window_size
