"""
Exception hierarchy for the rate limiting core.

Configuration errors are raised synchronously and are never retried.
Store errors come from the pluggable counter store and propagate to the
caller of ``RateLimiter.check`` unchanged.
"""


class QuotaGateError(Exception):
    """Base class for every error raised by quotagate."""


class ConfigurationError(QuotaGateError, ValueError):
    """A limiter, store or strategy was configured with an invalid value."""


class InvalidDurationError(ConfigurationError):
    """Duration text is not an integer followed by a single unit letter."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid duration format: {value!r}. "
            'Expected format like "30s", "5m", "2h", "1d", "1w", "1y"'
        )


class UnknownDurationUnitError(ConfigurationError):
    """Duration text is well formed but uses a unit letter we do not know."""

    def __init__(self, value: str, unit: str):
        self.value = value
        self.unit = unit
        super().__init__(f"Unknown duration unit {unit!r} in {value!r}")


class UnknownStrategyError(ConfigurationError):
    """No strategy is registered under the requested name."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(
            f"Unknown strategy: {name}. Available strategies: {', '.join(available)}"
        )


class StoreError(QuotaGateError):
    """The counter store failed to complete an operation."""
