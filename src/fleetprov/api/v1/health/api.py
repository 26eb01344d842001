"""
Health check endpoints.

Provides health check endpoints for monitoring service status.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from fleetprov import __version__
from fleetprov.api.v1.health.models import HealthResponse
from fleetprov.di import SecretsRepositoryDep

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns:
        Service status and version
    """
    return HealthResponse(
        status="ok", version=__version__, message="Service is healthy"
    )


@router.get(
    "/health/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def readiness_check(secrets_repo: SecretsRepositoryDep):
    """
    Readiness check: enrollment needs an installed CA.

    Returns:
        200 when CA credentials are available, 503 otherwise
    """
    if await secrets_repo.has_ca_credentials():
        return HealthResponse(status="ok", version=__version__, message="CA ready")

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=HealthResponse(
            status="unavailable",
            version=__version__,
            message="No CA credentials installed",
        ).model_dump(),
    )
