"""Device Registry Request Models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetprov.domain.models import DeviceRole


class CreateDeviceRequest(BaseModel):
    """
    Request to register a device.

    Attributes:
        uuid: Globally unique device identity
        device_type: Descriptive device type
        chip: Descriptive chip name
        version: Firmware version
        role: standalone, gateway or end_device
        parent_gateway_id: Gateway to attach an end device to (id or uuid)
    """

    model_config = ConfigDict(populate_by_name=True)

    uuid: str = Field(..., min_length=1, max_length=256, description="Device uuid")
    device_type: str = Field("", alias="deviceType", description="Device type")
    chip: str = Field("", description="Chip")
    version: str = Field("", description="Firmware version")
    role: DeviceRole = Field(DeviceRole.STANDALONE, description="Structural role")
    parent_gateway_id: str | None = Field(
        None, alias="parentGatewayId", description="Parent gateway (end devices only)"
    )

    @field_validator("uuid")
    @classmethod
    def strip_uuid(cls, v: str) -> str:
        """Reject blank uuids."""
        if not v.strip():
            raise ValueError("uuid must not be blank")
        return v.strip()


class UpdateDeviceRequest(BaseModel):
    """Partial device update; omitted fields are left unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str | None = Field(None, min_length=1, max_length=256)
    device_type: str | None = Field(None, alias="deviceType")
    chip: str | None = None
    version: str | None = None
    role: DeviceRole | None = None


class AttachEndDeviceRequest(BaseModel):
    """
    Attach (create or relocate) an end device under a gateway.

    Attributes:
        uuid: Existing device uuid to relocate, or the uuid for the new device
        version: Firmware version of a new device (default 1.0)
    """

    uuid: str | None = Field(None, min_length=1, max_length=256)
    version: str | None = None
