"""Health check endpoints."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.config import APP_VERSION
from api.deps import SettingsDep

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status")
    model: str = Field(..., description="Model used for audits")
    has_api_key: bool = Field(..., description="Whether a generator API key is configured")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str = Field(..., description="API version")
    uptime_seconds: int = Field(..., description="Server uptime in seconds")


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """
    Basic health check endpoint.

    Reports whether audits can run; does not call the provider.
    """
    return HealthResponse(
        status="ok",
        model=settings.openai_model,
        has_api_key=settings.generator_enabled,
        timestamp=datetime.now(UTC).isoformat(),
        version=APP_VERSION,
        uptime_seconds=int(time.time() - _server_start_time),
    )
