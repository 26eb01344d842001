"""
Device registry API endpoints.

CRUD for devices plus the gateway hierarchy operations (attach, list and
detach Zigbee end devices). All routes require the caller's account id in
the ``X-Account-ID`` header.
"""

from typing import Annotated

from fastapi import APIRouter, Query, status

from fleetprov.api.v1.devices.request import (
    AttachEndDeviceRequest,
    CreateDeviceRequest,
    UpdateDeviceRequest,
)
from fleetprov.api.v1.devices.response import (
    DeviceDetailResponse,
    DeviceResponse,
    MessageResponse,
    ReconciliationResponse,
)
from fleetprov.api.v1.devices.services import DeviceService
from fleetprov.di import OwnerIdDep, ProvisioningFacadeDep
from fleetprov.services.device_registry import DEFAULT_END_DEVICE_TYPE

router = APIRouter()


@router.post(
    "",
    response_model=DeviceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a device",
    description="""
    Register a device owned by the calling account.

    An `end_device` with `parentGatewayId` is attached to that gateway in the
    same transaction. Duplicate `uuid` returns 409.
    """,
)
async def create_device(
    request: CreateDeviceRequest,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> DeviceResponse:
    return await DeviceService(facade).create(owner_id, request)


@router.get("", response_model=list[DeviceResponse], summary="List devices")
async def list_devices(
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
    owner: Annotated[
        str | None, Query(description="Only devices owned by this account")
    ] = None,
) -> list[DeviceResponse]:
    return await DeviceService(facade).list_all(owner)


@router.post(
    "/reconcile",
    response_model=ReconciliationResponse,
    summary="Repair hierarchy and ownership links",
)
async def reconcile(
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> ReconciliationResponse:
    return await DeviceService(facade).reconcile()


@router.get(
    "/{device_id}",
    response_model=DeviceDetailResponse,
    summary="Get a device",
    description="Gateways are returned with their attached devices resolved.",
)
async def get_device(
    device_id: str,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> DeviceDetailResponse:
    return await DeviceService(facade).get(device_id)


@router.put(
    "/{device_id}",
    response_model=DeviceResponse,
    summary="Update a device",
    description="""
    Partial update. A role change that would break the hierarchy (a gateway
    with attached devices, or an attached end device) returns 400.
    """,
)
async def update_device(
    device_id: str,
    request: UpdateDeviceRequest,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> DeviceResponse:
    return await DeviceService(facade).update(device_id, request)


@router.delete(
    "/{device_id}",
    response_model=MessageResponse,
    summary="Delete a device",
    description="""
    Delete a device and unlink it from its owner and gateway. A gateway with
    attached devices is rejected (400) unless `GATEWAY_DELETE_POLICY=cascade`.
    """,
)
async def delete_device(
    device_id: str,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> MessageResponse:
    await facade.delete_device(device_id)
    return MessageResponse(message="Device deleted successfully")


@router.post(
    "/{gateway_id}/zigbee",
    response_model=DeviceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a Zigbee end device to a gateway",
)
async def attach_zigbee_device(
    gateway_id: str,
    request: AttachEndDeviceRequest,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> DeviceResponse:
    return await DeviceService(facade).attach(gateway_id, owner_id, request)


@router.get(
    "/{gateway_id}/zigbee",
    response_model=list[DeviceResponse],
    summary="List a gateway's Zigbee end devices",
)
async def list_zigbee_devices(
    gateway_id: str,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> list[DeviceResponse]:
    return await DeviceService(facade).children(gateway_id, DEFAULT_END_DEVICE_TYPE)


@router.delete(
    "/{gateway_id}/zigbee/{child_id}",
    response_model=MessageResponse,
    summary="Detach and delete a Zigbee end device",
)
async def remove_zigbee_device(
    gateway_id: str,
    child_id: str,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> MessageResponse:
    await facade.detach_end_device(gateway_id, child_id)
    return MessageResponse(message="Zigbee device removed from gateway and deleted")


@router.get(
    "/{gateway_id}/children",
    response_model=list[DeviceResponse],
    summary="List a gateway's attached devices",
)
async def list_children(
    gateway_id: str,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
    device_type: Annotated[
        str | None, Query(description="Only children of this device type")
    ] = None,
) -> list[DeviceResponse]:
    return await DeviceService(facade).children(gateway_id, device_type)
