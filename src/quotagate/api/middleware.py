import json
import math
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from quotagate.core.duration import now_ms
from quotagate.core.keys import client_key
from quotagate.core.limiter import RateLimiter
from quotagate.core.strategies.base import RateLimitResult

logger = structlog.get_logger()

KeyFunc = Callable[[Request], str]


def default_key(request: Request) -> str:
    """Identify the caller by X-API-Key, falling back to the client address."""
    host = request.client.host if request.client else None
    return client_key(request.headers.get("X-API-Key"), host)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Translates RateLimiter decisions into HTTP.

    Allowed requests get the rate limit headers added to the downstream
    response. Denied requests are answered directly with a JSON body and
    a ``Retry-After`` header.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        key_func: KeyFunc | None = None,
        header_prefix: str = "X-RateLimit",
        include_metadata: bool = False,
        status_code: int = 429,
        message: str = "Too Many Requests",
    ):
        super().__init__(app)
        self.limiter = limiter
        self.key_func = key_func or default_key
        self.header_prefix = header_prefix
        self.include_metadata = include_metadata
        self.status_code = status_code
        self.message = message

    def _headers(self, result: RateLimitResult) -> dict[str, str]:
        headers = {
            f"{self.header_prefix}-Limit": str(result.limit),
            f"{self.header_prefix}-Remaining": str(result.remaining),
            f"{self.header_prefix}-Reset": str(result.reset_time // 1000),
        }
        if self.include_metadata:
            headers[f"{self.header_prefix}-Metadata"] = json.dumps(result.metadata, default=str)
        return headers

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client_id = self.key_func(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            client_id=client_id,
            path=request.url.path,
            method=request.method,
        )

        result = await self.limiter.check(client_id)

        logger.info(
            "rate_limit_check",
            status=result.status.value,
            remaining=result.remaining,
            limit=result.limit,
        )

        headers = self._headers(result)

        if not result.allowed:
            retry_after = max(1, math.ceil((result.reset_time - now_ms()) / 1000))
            headers["Retry-After"] = str(retry_after)
            return JSONResponse(
                status_code=self.status_code,
                content={
                    "error": "rate_limit_exceeded",
                    "message": self.message,
                    "remaining": result.remaining,
                    "limit": result.limit,
                    "retry_after": _iso(result.reset_time),
                },
                headers=headers,
            )

        response = await call_next(request)

        for key, value in headers.items():
            response.headers[key] = value

        return response
