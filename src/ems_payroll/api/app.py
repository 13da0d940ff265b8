"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ems_payroll.api.routes import (
    employee_router,
    health_router,
    notifications_router,
    salaries_router,
)
from ems_payroll.config import Settings, get_settings
from ems_payroll.database import dispose_db, init_db
from ems_payroll.services.relay_client import RelayClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    logger.info(
        "Payroll API started (relay %s)",
        app.state.settings.relay_url or "disabled",
    )
    yield
    # Shutdown
    relay: RelayClient | None = app.state.relay_client
    if relay is not None:
        await relay.aclose()
    await dispose_db()


def create_app(
    settings: Settings | None = None,
    relay_client: RelayClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    if relay_client is None:
        relay_client = RelayClient(
            settings.relay_url,
            api_key=settings.internal_api_key,
            timeout_seconds=settings.relay_timeout_seconds,
        )

    app = FastAPI(
        title="EMS Payroll API",
        description="Salary processing, corrections and notifications",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.relay_client = relay_client

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(salaries_router, prefix="/api/v1")
    app.include_router(employee_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
