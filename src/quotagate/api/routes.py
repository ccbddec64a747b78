from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    strategy: str
    store: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    settings = request.app.state.settings
    return HealthResponse(
        status="healthy",
        strategy=settings.rate_limit_strategy.value,
        store=settings.store_backend.value,
    )


@router.get("/")
async def root(request: Request):
    settings = request.app.state.settings
    return {
        "service": settings.app_name,
        "message": "Rate limiting service is running",
        "rate_limit": {
            "limit": settings.rate_limit_default,
            "duration": settings.rate_limit_duration,
        },
    }
