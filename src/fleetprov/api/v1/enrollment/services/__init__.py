"""
Token service for the enrollment endpoints.

Translates request models into façade calls and façade results into
response models.
"""

from fleetprov.api.v1.enrollment.request import (
    GenerateTokenRequest,
    SubmitTokenRequest,
)
from fleetprov.api.v1.enrollment.response import (
    GenerateTokenResponse,
    SubmitTokenResponse,
)
from fleetprov.services.facade import ProvisioningFacade


class TokenService:
    """Service behind /token routes."""

    def __init__(self, facade: ProvisioningFacade):
        self.facade = facade

    async def generate(self, request: GenerateTokenRequest) -> GenerateTokenResponse:
        token = await self.facade.issue_token(request.time_in_minutes)
        return GenerateTokenResponse(
            token=token.id, expires_at=token.expires_at, uuid=token.subject_id
        )

    async def submit(
        self, request: SubmitTokenRequest, owner_id: str | None = None
    ) -> SubmitTokenResponse:
        result = await self.facade.submit_enrollment(
            request.token,
            request.device_type,
            request.chip,
            request.version,
            owner_id=owner_id,
        )
        return SubmitTokenResponse(
            uuid=result.subject_id,
            signed_cert=result.certificate.certificate_pem,
            private_key=result.certificate.private_key_pem,
            serial=result.certificate.serial,
            device_id=result.device.id if result.device else None,
        )
