"""
OneSearch Application Entry Point

This module defines the FastAPI application instance, registers the routers
for the configured site role, configures logging and global exception
handling, and provides a test-friendly application factory.

Design Goals
------------
- One code base, two roles: the governing site and brand sites serve
  different routers
- Typed errors answered with ``{success, code, message}``
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from .api import brand_routes, governing_routes, health_routes, search_routes
from .api.dependencies import get_app_settings, sql_resources
from .config import Settings, get_settings
from .core.errors import OneSearchError, onesearch_error_handler, unhandled_exception_handler
from .db import init_schema

logger = logging.getLogger("onesearch.app")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    app_settings : Optional[Settings]
        Settings to serve with; defaults to the environment. Given settings
        replace ``get_app_settings`` for every request.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    settings = app_settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="onesearch",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    if app_settings is not None:
        app.dependency_overrides[get_app_settings] = lambda: app_settings

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(OneSearchError, onesearch_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(search_routes.router)
    if settings.is_governing:
        app.include_router(governing_routes.router)
    else:
        app.include_router(brand_routes.router)

    # --------------------------------------------------------------
    # Startup / Shutdown
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info("Starting onesearch as %s site %s", settings.site_type, settings.site_url)
        if not settings.is_governing and not settings.governing_url:
            logger.warning("Brand site without ONESEARCH_GOVERNING_URL; federation is disabled")
        if settings.uses_default_encryption_key:
            logger.warning("ONESEARCH_ENCRYPTION_KEY is not set; stored secrets use the development key")
        if settings.database_url:
            engine, _ = sql_resources(settings.database_url)
            await init_schema(engine)
            logger.info("Config store schema ready")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if settings.database_url:
            engine, _ = sql_resources(settings.database_url)
            await engine.dispose()
        logger.info("Shutting down onesearch")

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
