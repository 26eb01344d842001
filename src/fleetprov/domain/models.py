"""
Domain records for enrollment tokens, devices and accounts.

These are plain dataclasses persisted by the identity store. Every record
carries a ``version`` counter used by the store for optimistic concurrency:
a write names the version it read, and the store rejects it if the record
has moved on since.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum


def utc_now() -> datetime:
    """Default clock for services; tests inject their own."""
    return datetime.now(UTC)


class TokenState(str, Enum):
    """Lifecycle state of an enrollment token."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"


class DeviceRole(str, Enum):
    """Structural role of a device in the hierarchy (mutually exclusive)."""

    STANDALONE = "standalone"
    GATEWAY = "gateway"
    END_DEVICE = "end_device"


@dataclass
class EnrollmentToken:
    """
    Short-lived, single-use enrollment credential.

    Attributes:
        id: Opaque unguessable token string
        subject_id: UUID the issued certificate is bound to
        issued_at: Issue instant (UTC)
        expires_at: Expiry instant (UTC), issued_at + ttl
        declared_type: Device type reported at submission
        declared_chip: Chip reported at submission
        declared_version: Firmware version reported at submission
        certificate_ref: Serial of the issued certificate, None until fulfilled
        fulfilled_at: Fulfillment instant
        version: Optimistic concurrency counter
    """

    id: str
    subject_id: str
    issued_at: datetime
    expires_at: datetime
    declared_type: str = ""
    declared_chip: str = ""
    declared_version: str = ""
    certificate_ref: str | None = None
    fulfilled_at: datetime | None = None
    version: int = 0

    def state(self, now: datetime) -> TokenState:
        """Derive the token state at instant ``now``."""
        if self.certificate_ref:
            return TokenState.FULFILLED
        if now >= self.expires_at:
            return TokenState.EXPIRED
        return TokenState.PENDING


@dataclass
class Device:
    """
    Registered device.

    ``parent_gateway_id`` is only set for an attached end device and
    ``child_device_ids`` is only non-empty for a gateway.
    """

    id: str
    uuid: str
    owner_id: str
    device_type: str = ""
    chip: str = ""
    firmware_version: str = ""
    role: DeviceRole = DeviceRole.STANDALONE
    parent_gateway_id: str | None = None
    child_device_ids: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def is_gateway(self) -> bool:
        return self.role is DeviceRole.GATEWAY

    @property
    def is_end_device(self) -> bool:
        return self.role is DeviceRole.END_DEVICE

    def copy(self) -> "Device":
        """Detached copy safe to mutate before committing."""
        return replace(self, child_device_ids=list(self.child_device_ids))


@dataclass
class Account:
    """Owning account, referenced by id; keeps the set of owned device ids."""

    id: str
    device_ids: list[str] = field(default_factory=list)
    version: int = 0

    def copy(self) -> "Account":
        return replace(self, device_ids=list(self.device_ids))


@dataclass
class SignedCertificate:
    """
    Output of a certificate signing operation.

    Attributes:
        subject_id: Identity the certificate was issued for (CN)
        serial: Certificate serial number (hex string)
        certificate_pem: PEM-encoded signed certificate
        private_key_pem: PEM-encoded private key generated for the subject
        issued_at: Start of validity (UTC)
        expires_at: End of validity (UTC)
    """

    subject_id: str
    serial: str
    certificate_pem: str
    private_key_pem: str
    issued_at: datetime
    expires_at: datetime


@dataclass
class DeviceView:
    """Device with its attached children resolved (gateways only)."""

    device: Device
    children: list[Device] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    """Repairs applied by a hierarchy reconciliation pass."""

    dangling_children_removed: int = 0
    parent_links_restored: int = 0
    parent_links_cleared: int = 0
    owner_links_added: int = 0
    owner_links_removed: int = 0

    @property
    def total(self) -> int:
        return (
            self.dangling_children_removed
            + self.parent_links_restored
            + self.parent_links_cleared
            + self.owner_links_added
            + self.owner_links_removed
        )
