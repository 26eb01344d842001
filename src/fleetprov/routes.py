"""
Routes registration for the FastAPI application.

Centralizes all router registrations for clean application setup.
"""

from fastapi import FastAPI

from fleetprov.api.v1.certificates.router import router as certificates_router
from fleetprov.api.v1.devices.router import router as devices_router
from fleetprov.api.v1.enrollment.router import router as enrollment_router
from fleetprov.api.v1.health.router import router as health_router


def register_routes(app: FastAPI) -> None:
    """
    Register all application routers.

    Args:
        app: FastAPI application instance
    """
    # Health check endpoints (no prefix, public)
    app.include_router(health_router)

    # Enrollment token endpoints (public and account-protected)
    app.include_router(enrollment_router)

    # Root CA download
    app.include_router(certificates_router)

    # Device registry and gateway hierarchy
    app.include_router(devices_router)
