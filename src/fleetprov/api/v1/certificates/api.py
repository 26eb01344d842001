"""
Certificate Authority API endpoints.

Serves the root certificate devices install as their trust anchor.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from fleetprov.di import ProvisioningFacadeDep

PEM_MEDIA_TYPE = "application/x-pem-file"

router = APIRouter()


@router.get(
    "/ca",
    response_class=PlainTextResponse,
    summary="Get the root CA certificate",
    responses={200: {"content": {PEM_MEDIA_TYPE: {}}}},
)
async def get_ca_certificate(facade: ProvisioningFacadeDep) -> PlainTextResponse:
    """
    Get CA certificate in PEM format.

    Returns:
        PEM-encoded root certificate (502 if no CA is installed)
    """
    pem = await facade.fetch_root_certificate()
    return PlainTextResponse(
        content=pem,
        media_type=PEM_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="ca.crt"'},
    )
