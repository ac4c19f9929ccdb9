"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool

from rollcall.adapters.repository.postgres import run_migrations
from rollcall.adapters.smtp.override import SendFunction
from rollcall.api.dependencies import (
    BillingAccessDenied,
    build_email_sender,
    build_payment_gateway,
)
from rollcall.api.models import BillingErrorResponse, ErrorResponse
from rollcall.api.v1 import billing_router
from rollcall.api.v1 import router as v1_router
from rollcall.config.settings import Settings, get_settings
from rollcall.domain.ports import PaymentGateway

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Email verification API v1 - Issue and verify codes for student accounts",
    },
    {
        "name": "billing",
        "description": "Organization billing - Status, checkout and payment provider webhooks",
    },
]


def configure_logging(level: str) -> None:
    """Set the root log level and format once at startup."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup
    - Runs migrations on startup
    - Closes connection pool on shutdown
    """
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=True,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    # Store pool in app state for dependency injection
    app.state.pool = pool

    logger.info(
        "Application startup complete (email sender: %s)",
        type(app.state.email_sender).__name__,
    )

    yield

    # Shutdown
    logger.info("Shutting down application...")
    pool.close()
    logger.info("Database connection pool closed")


async def billing_access_handler(request: Request, exc: BillingAccessDenied) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=BillingErrorResponse(error=exc.message).model_dump(),
    )


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and hide them behind a generic server_error."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="server_error").model_dump(by_alias=True, exclude_none=True),
    )


def create_app(
    settings: Settings | None = None,
    email_sender_override: SendFunction | None = None,
    clock: Callable[[], datetime] | None = None,
    payment_gateway: PaymentGateway | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; defaults to the cached environment settings
        email_sender_override: Optional ``(email, code)`` function replacing
            the default mail transport
        clock: Optional time source for the verification service
        payment_gateway: Optional payment provider replacing Stripe
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="rollcall",
        description="Email verification and billing API for the Rollcall attendance backend",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clock = clock
    app.state.email_sender = build_email_sender(settings, email_sender_override)
    app.state.payment_gateway = payment_gateway or build_payment_gateway(settings)

    app.add_exception_handler(BillingAccessDenied, billing_access_handler)
    app.add_exception_handler(Exception, server_error_handler)

    # Include v1 API routes
    app.include_router(v1_router, prefix="/v1")
    app.include_router(billing_router, prefix="/v1")

    @app.get("/health")
    def health_check(request: Request) -> dict[str, str]:
        """
        Health check endpoint with database validation.

        Returns 200 OK if application and database are healthy.
        Database failures surface as a generic server_error.
        """
        pool = request.app.state.pool
        with pool.connection() as conn:
            conn.execute("SELECT 1")

        return {"status": "healthy"}

    return app


app = create_app()
