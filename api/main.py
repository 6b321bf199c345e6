"""FastAPI application factory and main entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.config import APP_VERSION, Settings, get_settings
from api.exceptions import LiftError
from api.logging import setup_logging
from api.middleware import (
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    RequestSizeLimitMiddleware,
    SlidingWindowRateLimiter,
)
from worker.audit.history import HistoryStore, get_history_store

# Initialize logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info(
        "api_starting",
        env=settings.env,
        debug=settings.debug,
        version=APP_VERSION,
        model=settings.openai_model,
        history_backend=settings.history_backend,
    )

    yield

    logger.info("api_stopping")


def create_app(
    settings: Settings | None = None,
    history_store: HistoryStore | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="LIFT Audit API",
        description="Conversion rate optimization audits using the LIFT model",
        version=APP_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.history_store = history_store or get_history_store()

    # Middleware (order matters - first added = last executed)
    # CORS must be last (first to process)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    app.add_middleware(
        RateLimitMiddleware,
        limiter=rate_limiter
        or SlidingWindowRateLimiter(
            settings.rate_limit_requests,
            settings.rate_limit_window_seconds,
        ),
        enabled=settings.rate_limit_enabled,
    )

    # Request logging and tracing
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    from api.routers import audits, health

    app.include_router(health.router)
    app.include_router(audits.router)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(LiftError)
    async def lift_error_handler(request: Request, exc: LiftError) -> ORJSONResponse:
        """Handle application exceptions."""
        logger.warning(
            "application_error",
            error_code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    **({"details": exc.details} if exc.details else {}),
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle Pydantic validation errors."""
        errors = exc.errors()
        first_error = errors[0] if errors else {"msg": "Validation error"}

        # Extract field path
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        logger.warning("request_validation_error", path=request.url.path, errors=len(errors))
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "validation_error",
                    "message": first_error.get("msg", "Validation error"),
                    "field": field or None,
                }
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
        """Handle unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred",
                }
            },
        )


app = create_app()
