"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vibetravels.api.routes.generations import router as generations_router
from vibetravels.api.routes.health import router as health_router
from vibetravels.api.routes.metrics import router as metrics_router
from vibetravels.bootstrap import Services, build_services
from vibetravels.config import get_settings
from vibetravels.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Create the API application.

    Args:
        services: Prebuilt components; when omitted they are built from
            settings at startup and closed at shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return

        settings = get_settings()
        configure_logging(settings.log_level)
        built = build_services(settings)
        app.state.services = built
        logger.info("API started")
        try:
            yield
        finally:
            await built.close()

    app = FastAPI(title="VibeTravels Generation API", version="0.1.0", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(generations_router, tags=["generations"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "VibeTravels Generation API", "version": "0.1.0"}

    return app
