from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from guard.app.api.security import router as security_router
from guard.app.core.config import settings
from guard.app.core.logging import get_logger, setup_logging
from guard.app.exceptions import GuardException, RateLimitExceededError
from guard.app.middleware.rate_limit import ApiRateLimitMiddleware
from guard.app.services.guard_context import SecurityGuardContext

# Paths that never count against the API limiter
DEFAULT_EXEMPT_PATHS = ("/health", "/docs", "/openapi.json")


def create_app(
    guard: SecurityGuardContext,
    exempt_paths: tuple = DEFAULT_EXEMPT_PATHS,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        guard: Security guard context shared by middleware and routes
        exempt_paths: Paths the API rate limiter ignores

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the guard on startup and drain it on shutdown."""
        async with guard:
            logger.info(
                "Application startup complete",
                extra={
                    "status": guard.security_status.value,
                    "debug_mode": settings.debug,
                },
            )
            yield
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="FleetGuard",
        description="Session security guard with rate limiting and audit reporting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.guard = guard

    app.add_middleware(ApiRateLimitMiddleware, exempt_paths=exempt_paths)

    app.include_router(security_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "security_status": guard.security_status.value,
            "monitor_running": guard.monitor.running,
        }

    @app.exception_handler(GuardException)
    async def guard_exception_handler(request: Request, exc: GuardException) -> JSONResponse:
        """Render guard errors with their status code and error code."""
        headers = None
        if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
            headers = {"Retry-After": str(exc.to_response()["retry_after"])}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Never return raw tracebacks; log them server-side."""
        logger.exception(
            "Unhandled exception",
            extra={"exception_type": type(exc).__name__},
        )
        message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": message},
        )

    return app
