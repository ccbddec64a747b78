from enum import StrEnum
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quotagate.core.duration import parse_duration
from quotagate.core.strategies.base import StrategyName


class StoreType(StrEnum):
    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    app_name: str = "QuotaGate API"
    store_backend: StoreType = StoreType.MEMORY
    redis_url: str | None = None
    redis_prefix: str = "ratelimit"
    rate_limit_strategy: StrategyName = StrategyName.FIXED_WINDOW
    rate_limit_default: int = 100
    rate_limit_duration: str = "1m"
    rate_limit_prefix: str = ""
    memory_max_size: int = 1000
    memory_cleanup_interval: str = "5m"
    log_level: str = "INFO"
    json_logs: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("rate_limit_duration", "memory_cleanup_interval")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        # ConfigurationError is a ValueError, so pydantic reports it as a validation error.
        parse_duration(value)
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
