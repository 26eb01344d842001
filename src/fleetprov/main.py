"""
Main FastAPI application entry point.

This module creates the FastAPI application using the application factory
pattern for clean separation of concerns.
"""

from fleetprov.app_setup import add_root_endpoint
from fleetprov.application import create_app
from fleetprov.config import get_settings
from fleetprov.core.logging import intercept_standard_logging

# Intercept logs from uvicorn and other libraries
intercept_standard_logging()

# Create FastAPI application using factory
app = create_app()

# Add root endpoint
add_root_endpoint(app)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "fleetprov.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )
