from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from quotagate.api.middleware import RateLimitMiddleware
from quotagate.api.routes import router
from quotagate.config import Settings, get_settings
from quotagate.core.limiter import RateLimiter, RateLimiterOptions
from quotagate.core.logging import setup_logging
from quotagate.core.storage.factory import create_store
from quotagate.core.storage.memory import MemoryStore

logger = structlog.get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.json_logs)

    # Nothing connects here; Redis clients connect lazily on first command.
    store = create_store(settings)
    limiter = RateLimiter(
        store,
        RateLimiterOptions(
            limit=settings.rate_limit_default,
            duration=settings.rate_limit_duration,
            strategy=settings.rate_limit_strategy,
            prefix=settings.rate_limit_prefix,
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifecycle manager.
        Starts the in-process sweep and closes the store on shutdown.
        """
        if isinstance(store, MemoryStore):
            await store.start_cleanup_task()

        logger.info(
            "service_started",
            strategy=settings.rate_limit_strategy.value,
            store=settings.store_backend.value,
        )
        yield

        await store.close()
        logger.info("service_stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.limiter = limiter
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.include_router(router)
    return app


app = create_app()
