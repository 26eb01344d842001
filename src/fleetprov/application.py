"""
FastAPI application factory.

Creates and configures the FastAPI application with all middleware,
routers, and exception handlers.
"""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from fleetprov import __version__
from fleetprov.config import get_settings
from fleetprov.core.logging import logger
from fleetprov.domain.errors import ProvisioningError
from fleetprov.exception_handlers import (
    general_exception_handler,
    http_exception_handler,
    provisioning_exception_handler,
    validation_exception_handler,
)
from fleetprov.lifespan import lifespan
from fleetprov.middleware import TraceIDMiddleware
from fleetprov.openapi import configure_openapi
from fleetprov.routes import register_routes


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    # Configure docs URLs based on settings
    # Must be set BEFORE creating FastAPI instance
    docs_url = "/docs" if settings.enable_docs else None
    redoc_url = "/redoc" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title=settings.project_name,
        description=settings.project_description,
        version=__version__,
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
    )

    # Register exception handlers (RFC 7807 Problem Details)
    app.add_exception_handler(ProvisioningError, provisioning_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Add middleware
    app.add_middleware(TraceIDMiddleware)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins(),  # Use helper method to get list
        allow_credentials=True,
        allow_methods=settings.get_cors_allowed_methods(),
        allow_headers=settings.get_cors_allowed_headers(),
    )

    # Register routes
    register_routes(app)

    # Configure custom OpenAPI schema
    configure_openapi(app)

    logger.info(f" FastAPI application created (v{__version__})")
    logger.info(" Exception handlers registered (RFC 7807 Problem Details)")
    logger.info(f"CORS origins: {settings.get_allowed_origins()}")

    return app
