"""Enrollment Token Response Models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class GenerateTokenResponse(BaseModel):
    """
    Issued enrollment token.

    Attributes:
        token: Opaque token string to hand to the device
        expires_at: Expiry instant (UTC)
        uuid: Subject identity the certificate will be bound to
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., description="Enrollment token")
    expires_at: datetime = Field(..., alias="expiresAt", description="Expiry (UTC)")
    uuid: str = Field(..., description="Subject identity (certificate CN)")


class SubmitTokenResponse(BaseModel):
    """
    Certificate issued for an enrollment token.

    Attributes:
        uuid: Subject identity
        signed_cert: PEM-encoded device certificate
        private_key: PEM-encoded private key generated for the device
        serial: Certificate serial number (hex)
        device_id: Registry id (protected submissions only)
    """

    model_config = ConfigDict(populate_by_name=True)

    uuid: str = Field(..., description="Subject identity")
    signed_cert: str = Field(..., alias="signedCert", description="PEM certificate")
    private_key: str = Field(..., alias="privateKey", description="PEM private key")
    serial: str = Field(..., description="Certificate serial number (hex)")
    device_id: str | None = Field(
        None, alias="deviceId", description="Registered device id (protected submit)"
    )


class PurgeTokensResponse(BaseModel):
    """Result of an expired-token purge."""

    purged: int = Field(..., description="Number of tokens removed")
