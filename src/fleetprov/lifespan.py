"""
Application lifecycle management.

Handles startup and shutdown events for the FastAPI application.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from fleetprov.config import get_settings
from fleetprov.di import get_identity_store, get_secrets_repository
from fleetprov.services.certificate_authority import bootstrap_certificate_authority


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the shared repositories and makes sure a CA is available before
    the first enrollment arrives.

    Args:
        app: FastAPI application instance
    """
    settings = get_settings()

    # Startup
    logger.info(" Starting fleetprov backend...")
    logger.info(f"Application version: {app.version}")
    logger.info(f"Infrastructure provider: {settings.infrastructure_provider}")

    get_identity_store()
    await bootstrap_certificate_authority(get_secrets_repository(), settings)

    yield

    # Shutdown
    logger.info(" Shutting down fleetprov backend...")
