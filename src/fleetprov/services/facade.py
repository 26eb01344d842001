"""
Provisioning façade.

The single entry point the transport layer talks to. It composes the
enrollment token manager, the device registry and the CA, and knows
nothing about HTTP.
"""

from fleetprov.domain.models import (
    Device,
    DeviceRole,
    DeviceView,
    EnrollmentToken,
    ReconciliationReport,
)
from fleetprov.domain.services import CertificateAuthorityGateway
from fleetprov.services.device_registry import (
    DEFAULT_END_DEVICE_CHIP,
    DEFAULT_END_DEVICE_TYPE,
    DeviceRegistry,
)
from fleetprov.services.enrollment import EnrollmentResult, EnrollmentTokenManager


class ProvisioningFacade:
    """Enrollment and registry operations exposed to clients."""

    def __init__(
        self,
        tokens: EnrollmentTokenManager,
        registry: DeviceRegistry,
        ca: CertificateAuthorityGateway,
    ):
        self.tokens = tokens
        self.registry = registry
        self.ca = ca

    # Enrollment

    async def issue_token(self, ttl_minutes) -> EnrollmentToken:
        return await self.tokens.issue_token(ttl_minutes)

    async def submit_enrollment(
        self,
        token_id: str,
        device_type: str,
        chip: str,
        version: str,
        owner_id: str | None = None,
    ) -> EnrollmentResult:
        return await self.tokens.submit_enrollment(
            token_id, device_type, chip, version, owner_id=owner_id
        )

    async def fetch_root_certificate(self) -> str:
        return await self.ca.get_root_certificate_pem()

    async def purge_expired_tokens(self) -> int:
        return await self.tokens.purge_expired_tokens()

    # Registry

    async def create_device(
        self,
        owner_id: str,
        uuid: str,
        device_type: str = "",
        chip: str = "",
        firmware_version: str = "",
        role: DeviceRole | str = DeviceRole.STANDALONE,
        parent_gateway_id: str | None = None,
    ) -> Device:
        return await self.registry.create_device(
            owner_id,
            uuid,
            device_type=device_type,
            chip=chip,
            firmware_version=firmware_version,
            role=role,
            parent_gateway_id=parent_gateway_id,
        )

    async def get_device(self, device_id: str) -> DeviceView:
        return await self.registry.get_device(device_id)

    async def list_devices(self, owner_id: str | None = None) -> list[Device]:
        return await self.registry.list_devices(owner_id)

    async def update_device(self, device_id: str, **fields) -> Device:
        return await self.registry.update_device(device_id, **fields)

    async def delete_device(self, device_id: str) -> None:
        await self.registry.delete_device(device_id)

    async def attach_end_device(
        self,
        gateway_id: str,
        owner_id: str,
        child_uuid: str | None = None,
        version: str | None = None,
        device_type: str = DEFAULT_END_DEVICE_TYPE,
        chip: str = DEFAULT_END_DEVICE_CHIP,
    ) -> Device:
        return await self.registry.attach_end_device(
            gateway_id,
            owner_id,
            child_uuid=child_uuid,
            firmware_version=version,
            device_type=device_type,
            chip=chip,
        )

    async def detach_end_device(self, gateway_id: str, child_id: str) -> None:
        await self.registry.detach_end_device(gateway_id, child_id)

    async def list_children_by_type(
        self, gateway_id: str, device_type: str | None = None
    ) -> list[Device]:
        return await self.registry.list_children_by_type(gateway_id, device_type)

    async def reconcile(self) -> ReconciliationReport:
        return await self.registry.reconcile()
