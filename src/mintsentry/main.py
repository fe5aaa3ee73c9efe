"""mintsentry - Main application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mintsentry.api.routes import criteria, detection, health, tokens
from mintsentry.config import get_settings
from mintsentry.config.logging import configure_logging
from mintsentry.core.exceptions import ValidationError
from mintsentry.services.detection.context import (
    init_detection_context,
    reset_detection_context,
)

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle.

    On startup: Configure logging and build the detection context.
    On shutdown: Retire watchers, settle purchases, close provider clients.
    """
    configure_logging()
    settings = get_settings()
    init_detection_context(settings)
    log.info(
        "startup_complete",
        version=settings.app_version,
        trading_mode=settings.trading_mode,
        candidate_source=settings.candidate_source,
    )

    yield

    await reset_detection_context()
    log.info("shutdown_complete")


async def _validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        description="New-token detection and per-user purchase triggering for Solana",
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.add_exception_handler(ValidationError, _validation_error_handler)

    # Register API routes
    application.include_router(health.router, prefix="/api")
    application.include_router(detection.router, prefix="/api")
    application.include_router(criteria.router, prefix="/api")
    application.include_router(tokens.router, prefix="/api")

    return application


# Create the app instance
app = create_app()


def main() -> None:
    """Run the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "mintsentry.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
