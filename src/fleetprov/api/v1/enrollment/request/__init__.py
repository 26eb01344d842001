"""Enrollment Token Request Models."""

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt


class GenerateTokenRequest(BaseModel):
    """
    Request to issue an enrollment token.

    Attributes:
        time_in_minutes: Token lifetime in minutes (wire name ``timeInMinutes``)
    """

    model_config = ConfigDict(populate_by_name=True)

    time_in_minutes: StrictInt | StrictFloat | None = Field(
        None,
        alias="timeInMinutes",
        description="Token lifetime in minutes (positive number)",
        json_schema_extra={"example": 30},
    )


class SubmitTokenRequest(BaseModel):
    """
    Device submission exchanging a token for a certificate.

    Wire names follow the provisioning firmware: ``Token``, ``Device type``,
    ``Chip`` and ``Version``. Presence is checked by the token manager so
    that a missing field is reported as invalid input (400).
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str | None = Field(None, alias="Token", description="Enrollment token")
    device_type: str | None = Field(
        None,
        alias="Device type",
        description="Declared device type",
        json_schema_extra={"example": "sensor"},
    )
    chip: str | None = Field(
        None, alias="Chip", description="Declared chip", json_schema_extra={"example": "esp32"}
    )
    version: str | None = Field(
        None,
        alias="Version",
        description="Declared firmware version",
        json_schema_extra={"example": "1.0"},
    )
