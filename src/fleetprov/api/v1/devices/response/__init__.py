"""Device Registry Response Models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fleetprov.domain.models import Device, DeviceRole, DeviceView, ReconciliationReport


class DeviceResponse(BaseModel):
    """Registered device."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Registry id")
    uuid: str = Field(..., description="Device uuid")
    device_type: str = Field(..., alias="deviceType")
    chip: str
    version: str = Field(..., description="Firmware version")
    role: DeviceRole
    owner: str = Field(..., description="Owning account id")
    parent_gateway_id: str | None = Field(None, alias="parentGatewayId")
    child_device_ids: list[str] = Field(default_factory=list, alias="childDeviceIds")
    created_at: datetime | None = Field(None, alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")

    @classmethod
    def from_device(cls, device: Device) -> "DeviceResponse":
        return cls(
            id=device.id,
            uuid=device.uuid,
            device_type=device.device_type,
            chip=device.chip,
            version=device.firmware_version,
            role=device.role,
            owner=device.owner_id,
            parent_gateway_id=device.parent_gateway_id,
            child_device_ids=list(device.child_device_ids),
            created_at=device.created_at,
            updated_at=device.updated_at,
        )


class DeviceDetailResponse(DeviceResponse):
    """Device with its attached devices resolved (gateways)."""

    children: list[DeviceResponse] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: DeviceView) -> "DeviceDetailResponse":
        base = DeviceResponse.from_device(view.device)
        return cls(
            **base.model_dump(),
            children=[DeviceResponse.from_device(child) for child in view.children],
        )


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class ReconciliationResponse(BaseModel):
    """Repairs applied by a reconciliation pass."""

    model_config = ConfigDict(populate_by_name=True)

    dangling_children_removed: int = Field(..., alias="danglingChildrenRemoved")
    parent_links_restored: int = Field(..., alias="parentLinksRestored")
    parent_links_cleared: int = Field(..., alias="parentLinksCleared")
    owner_links_added: int = Field(..., alias="ownerLinksAdded")
    owner_links_removed: int = Field(..., alias="ownerLinksRemoved")
    total: int

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconciliationResponse":
        return cls(
            dangling_children_removed=report.dangling_children_removed,
            parent_links_restored=report.parent_links_restored,
            parent_links_cleared=report.parent_links_cleared,
            owner_links_added=report.owner_links_added,
            owner_links_removed=report.owner_links_removed,
            total=report.total,
        )
