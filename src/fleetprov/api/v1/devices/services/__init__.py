"""
Device service for the registry endpoints.

Translates request models into façade calls and domain records into
response models.
"""

from fleetprov.api.v1.devices.request import (
    AttachEndDeviceRequest,
    CreateDeviceRequest,
    UpdateDeviceRequest,
)
from fleetprov.api.v1.devices.response import (
    DeviceDetailResponse,
    DeviceResponse,
    ReconciliationResponse,
)
from fleetprov.services.facade import ProvisioningFacade


class DeviceService:
    """Service behind /devices routes."""

    def __init__(self, facade: ProvisioningFacade):
        self.facade = facade

    async def create(self, owner_id: str, request: CreateDeviceRequest) -> DeviceResponse:
        device = await self.facade.create_device(
            owner_id,
            request.uuid,
            device_type=request.device_type,
            chip=request.chip,
            firmware_version=request.version,
            role=request.role,
            parent_gateway_id=request.parent_gateway_id,
        )
        return DeviceResponse.from_device(device)

    async def get(self, device_id: str) -> DeviceDetailResponse:
        return DeviceDetailResponse.from_view(await self.facade.get_device(device_id))

    async def list_all(self, owner_id: str | None = None) -> list[DeviceResponse]:
        devices = await self.facade.list_devices(owner_id)
        return [DeviceResponse.from_device(device) for device in devices]

    async def update(self, device_id: str, request: UpdateDeviceRequest) -> DeviceResponse:
        device = await self.facade.update_device(
            device_id,
            uuid=request.uuid,
            device_type=request.device_type,
            chip=request.chip,
            firmware_version=request.version,
            role=request.role,
        )
        return DeviceResponse.from_device(device)

    async def attach(
        self, gateway_id: str, owner_id: str, request: AttachEndDeviceRequest
    ) -> DeviceResponse:
        device = await self.facade.attach_end_device(
            gateway_id, owner_id, child_uuid=request.uuid, version=request.version
        )
        return DeviceResponse.from_device(device)

    async def children(
        self, gateway_id: str, device_type: str | None = None
    ) -> list[DeviceResponse]:
        devices = await self.facade.list_children_by_type(gateway_id, device_type)
        return [DeviceResponse.from_device(device) for device in devices]

    async def reconcile(self) -> ReconciliationResponse:
        return ReconciliationResponse.from_report(await self.facade.reconcile())
