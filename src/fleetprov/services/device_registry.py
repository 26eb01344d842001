"""
Device hierarchy registry.

Maintains devices, the gateway -> end device attachment sets and each
account's device set. Every operation that touches more than one record
(owner and device, gateway and child) is written as a single store commit,
so both sides of a relationship change together or not at all.

Concurrency is optimistic: an operation reads what it needs, validates,
and commits with the versions it read. If a record moved in between, the
operation starts over against the new state, up to ``store_max_retries``
times.
"""

import uuid as uuid_lib
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from loguru import logger

from fleetprov.config import Settings, get_settings
from fleetprov.domain.errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
)
from fleetprov.domain.models import (
    Account,
    Device,
    DeviceRole,
    DeviceView,
    ReconciliationReport,
    utc_now,
)
from fleetprov.infrastructure.repositories import (
    IdentityStore,
    PutAccount,
    PutDevice,
    RemoveDevice,
    WriteOperation,
)

T = TypeVar("T")

DEFAULT_END_DEVICE_TYPE = "ZigbeeDevice"
DEFAULT_END_DEVICE_CHIP = "Zigbee"
DEFAULT_END_DEVICE_VERSION = "1.0"

UPDATABLE_FIELDS = ("uuid", "device_type", "chip", "firmware_version", "role")


def _parse_role(role) -> DeviceRole:
    try:
        return DeviceRole(role)
    except ValueError as e:
        raise InvalidInputError(f"Unknown device role: {role}") from e


def _require_text(value, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{name} is required")
    return value


class DeviceRegistry:
    """CRUD and hierarchy operations over the identity store."""

    def __init__(
        self,
        store: IdentityStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _with_retries(self, action: str, attempt: Callable[[], Awaitable[T]]) -> T:
        """Run an optimistic read-validate-commit cycle until it sticks."""
        retries = self.settings.store_max_retries
        for number in range(retries + 1):
            try:
                return await attempt()
            except TransactionConflictError:
                logger.debug(f"{action}: concurrent update, retry {number + 1}/{retries}")
        raise ConflictError(f"{action} failed: records kept changing concurrently")

    async def _require_device(self, device_id: str) -> Device:
        device = await self._resolve(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        return device

    async def _resolve(self, reference: str) -> Device | None:
        """Look a device up by registry id, falling back to its uuid."""
        device = await self.store.get_device(reference)
        if device is None:
            device = await self.store.get_device_by_uuid(reference)
        return device

    async def _require_gateway(self, reference: str) -> Device:
        gateway = await self._resolve(reference)
        if gateway is None:
            raise NotFoundError(f"Gateway {reference} not found")
        if not gateway.is_gateway:
            raise InvalidStateError(f"Device {reference} is not a gateway")
        return gateway

    async def _account_update(
        self,
        owner_id: str,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> PutAccount | None:
        """Build the write that adds/removes ids in an owner's device set."""
        account = await self.store.get_account(owner_id)
        if account is None and not add:
            return None

        updated = account.copy() if account else Account(id=owner_id)
        for device_id in add or []:
            if device_id not in updated.device_ids:
                updated.device_ids.append(device_id)
        for device_id in remove or []:
            if device_id in updated.device_ids:
                updated.device_ids.remove(device_id)

        if account is not None and updated.device_ids == account.device_ids:
            return None
        return PutAccount(updated, account.version if account else None)

    def _touch(self, device: Device) -> Device:
        device.updated_at = self.clock()
        return device

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

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
        """
        Register a device and add it to its owner's device set.

        An end device created with ``parent_gateway_id`` is attached to that
        gateway in the same commit.

        Raises:
            InvalidInputError: Blank uuid/owner, unknown role, parent given for
                a role other than end device, or parent is not a gateway
            ConflictError: uuid already registered
        """
        _require_text(owner_id, "Owner identity")
        _require_text(uuid, "Device uuid")
        role = _parse_role(role)
        if parent_gateway_id is not None and role is not DeviceRole.END_DEVICE:
            raise InvalidInputError("Only end devices can be attached to a gateway")

        async def attempt() -> Device:
            if await self.store.get_device_by_uuid(uuid) is not None:
                raise ConflictError(f"Device with uuid {uuid} already exists")

            parent = None
            if parent_gateway_id is not None:
                parent = await self._resolve(parent_gateway_id)
                if parent is None or not parent.is_gateway:
                    raise InvalidInputError(
                        f"Parent {parent_gateway_id} does not exist or is not a gateway"
                    )

            now = self.clock()
            device = Device(
                id=uuid_lib.uuid4().hex,
                uuid=uuid,
                owner_id=owner_id,
                device_type=device_type,
                chip=chip,
                firmware_version=firmware_version,
                role=role,
                parent_gateway_id=parent.id if parent else None,
                created_at=now,
                updated_at=now,
            )

            operations: list[WriteOperation] = [PutDevice(device, None)]
            if parent is not None:
                updated_parent = self._touch(parent.copy())
                updated_parent.child_device_ids.append(device.id)
                operations.append(PutDevice(updated_parent, parent.version))
            operations.append(await self._account_update(owner_id, add=[device.id]))

            await self.store.commit(operations)
            return await self._require_device(device.id)

        device = await self._with_retries("Create device", attempt)
        logger.info(f"Created {device.role.value} device {device.id} (uuid={uuid}) for {owner_id}")
        return device

    async def get_device(self, device_id: str) -> DeviceView:
        """Get a device; gateways come with their children resolved."""
        device = await self._require_device(device_id)

        children = []
        if device.is_gateway:
            for child_id in device.child_device_ids:
                child = await self.store.get_device(child_id)
                if child is not None:
                    children.append(child)

        return DeviceView(device=device, children=children)

    async def list_devices(self, owner_id: str | None = None) -> list[Device]:
        return await self.store.list_devices(owner_id)

    async def update_device(self, device_id: str, **fields) -> Device:
        """
        Partially update a device.

        Accepted fields: uuid, device_type, chip, firmware_version, role.

        Raises:
            NotFoundError: Unknown device
            InvalidInputError: Unknown field, blank uuid, unknown role
            ConflictError: New uuid already registered
            InvalidStateError: Role change would break the hierarchy
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInputError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        changes = {name: value for name, value in fields.items() if value is not None}
        if "uuid" in changes:
            _require_text(changes["uuid"], "Device uuid")
        if "role" in changes:
            changes["role"] = _parse_role(changes["role"])

        async def attempt() -> Device:
            current = await self._require_device(device_id)

            new_uuid = changes.get("uuid", current.uuid)
            if new_uuid != current.uuid:
                if await self.store.get_device_by_uuid(new_uuid) is not None:
                    raise ConflictError(f"Device with uuid {new_uuid} already exists")

            new_role = changes.get("role", current.role)
            if new_role is not current.role:
                if current.is_gateway and current.child_device_ids:
                    raise InvalidStateError(
                        "Gateway still has attached devices; detach them first"
                    )
                if current.parent_gateway_id is not None:
                    raise InvalidStateError(
                        "Device is attached to a gateway; detach it first"
                    )

            updated = self._touch(current.copy())
            for name, value in changes.items():
                setattr(updated, name, value)

            await self.store.commit([PutDevice(updated, current.version)])
            return await self._require_device(current.id)

        device = await self._with_retries("Update device", attempt)
        logger.info(f"Updated device {device_id}: {', '.join(sorted(changes)) or 'no changes'}")
        return device

    async def delete_device(self, device_id: str) -> None:
        """
        Delete a device, unlinking it from its owner and gateway.

        A gateway with attached devices is handled according to
        ``gateway_delete_policy``: ``reject`` raises InvalidStateError,
        ``cascade`` deletes the children in the same commit.
        """

        async def attempt() -> int:
            device = await self._require_device(device_id)
            operations: list[WriteOperation] = [RemoveDevice(device.id, device.version)]
            removed_by_owner: dict[str, list[str]] = {device.owner_id: [device.id]}

            if device.is_gateway and device.child_device_ids:
                if self.settings.gateway_delete_policy == "reject":
                    raise InvalidStateError(
                        f"Gateway {device_id} has {len(device.child_device_ids)} "
                        "attached device(s); detach them first"
                    )
                for child_id in device.child_device_ids:
                    child = await self.store.get_device(child_id)
                    if child is None:
                        continue
                    operations.append(RemoveDevice(child.id, child.version))
                    removed_by_owner.setdefault(child.owner_id, []).append(child.id)

            if device.parent_gateway_id is not None:
                parent = await self.store.get_device(device.parent_gateway_id)
                if parent is not None and device.id in parent.child_device_ids:
                    updated_parent = self._touch(parent.copy())
                    updated_parent.child_device_ids.remove(device.id)
                    operations.append(PutDevice(updated_parent, parent.version))

            for owner_id, removed in removed_by_owner.items():
                account_update = await self._account_update(owner_id, remove=removed)
                if account_update is not None:
                    operations.append(account_update)

            await self.store.commit(operations)
            return sum(len(removed) for removed in removed_by_owner.values())

        count = await self._with_retries("Delete device", attempt)
        logger.info(f"Deleted device {device_id} ({count} record(s) removed)")

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    async def attach_end_device(
        self,
        gateway_id: str,
        owner_id: str,
        child_uuid: str | None = None,
        firmware_version: str | None = None,
        device_type: str = DEFAULT_END_DEVICE_TYPE,
        chip: str = DEFAULT_END_DEVICE_CHIP,
    ) -> Device:
        """
        Attach an end device beneath a gateway.

        Unknown (or absent) ``child_uuid`` creates a new end device owned by
        ``owner_id``. A known standalone or end device is relocated under
        this gateway, leaving any previous gateway.

        Raises:
            NotFoundError: Unknown gateway
            InvalidStateError: Target is not a gateway, or the child is a
                gateway (or the gateway itself)
        """
        _require_text(owner_id, "Owner identity")
        if child_uuid is not None:
            _require_text(child_uuid, "Device uuid")

        async def attempt() -> Device:
            gateway = await self._require_gateway(gateway_id)
            existing = (
                await self.store.get_device_by_uuid(child_uuid) if child_uuid else None
            )
            operations: list[WriteOperation] = []

            if existing is not None:
                if existing.id == gateway.id or existing.is_gateway:
                    raise InvalidStateError("A gateway cannot be attached to a gateway")
                if existing.parent_gateway_id == gateway.id:
                    return existing

                child = self._touch(existing.copy())
                child.role = DeviceRole.END_DEVICE
                child.parent_gateway_id = gateway.id
                if firmware_version:
                    child.firmware_version = firmware_version
                operations.append(PutDevice(child, existing.version))

                if existing.parent_gateway_id is not None:
                    previous = await self.store.get_device(existing.parent_gateway_id)
                    if previous is not None and existing.id in previous.child_device_ids:
                        updated_previous = self._touch(previous.copy())
                        updated_previous.child_device_ids.remove(existing.id)
                        operations.append(PutDevice(updated_previous, previous.version))
            else:
                now = self.clock()
                child = Device(
                    id=uuid_lib.uuid4().hex,
                    uuid=child_uuid or f"zigbee-{uuid_lib.uuid4().hex[:12]}",
                    owner_id=owner_id,
                    device_type=device_type,
                    chip=chip,
                    firmware_version=firmware_version or DEFAULT_END_DEVICE_VERSION,
                    role=DeviceRole.END_DEVICE,
                    parent_gateway_id=gateway.id,
                    created_at=now,
                    updated_at=now,
                )
                operations.append(PutDevice(child, None))
                operations.append(await self._account_update(owner_id, add=[child.id]))

            updated_gateway = self._touch(gateway.copy())
            updated_gateway.child_device_ids.append(child.id)
            operations.append(PutDevice(updated_gateway, gateway.version))

            await self.store.commit(operations)
            return await self._require_device(child.id)

        child = await self._with_retries("Attach end device", attempt)
        logger.info(f"Attached {child.uuid} ({child.id}) to gateway {gateway_id}")
        return child

    async def detach_end_device(self, gateway_id: str, child_id: str) -> None:
        """
        Remove an end device from a gateway and delete it.

        The child leaves the gateway's children, its record is deleted and
        it leaves its owner's device set, all in one commit.

        Raises:
            NotFoundError: Unknown gateway or child
            InvalidStateError: Target is not a gateway, or the child is not
                attached to it
        """

        async def attempt() -> None:
            gateway = await self._require_gateway(gateway_id)
            child = await self._resolve(child_id)
            if child is None:
                raise NotFoundError(f"Device {child_id} not found")
            if child.id not in gateway.child_device_ids:
                raise InvalidStateError(
                    f"Device {child_id} is not attached to gateway {gateway_id}"
                )

            updated_gateway = self._touch(gateway.copy())
            updated_gateway.child_device_ids.remove(child.id)
            operations: list[WriteOperation] = [
                PutDevice(updated_gateway, gateway.version),
                RemoveDevice(child.id, child.version),
            ]
            account_update = await self._account_update(child.owner_id, remove=[child.id])
            if account_update is not None:
                operations.append(account_update)

            await self.store.commit(operations)

        await self._with_retries("Detach end device", attempt)
        logger.info(f"Detached and removed {child_id} from gateway {gateway_id}")

    async def list_children_by_type(
        self, gateway_id: str, device_type: str | None = None
    ) -> list[Device]:
        """List a gateway's attached devices, optionally of one type only."""
        gateway = await self._require_gateway(gateway_id)

        children = []
        for child_id in gateway.child_device_ids:
            child = await self.store.get_device(child_id)
            if child is None:
                continue
            if device_type is None or child.device_type == device_type:
                children.append(child)
        return children

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    async def reconcile(self) -> ReconciliationReport:
        """
        Repair broken back-references left by partial writes or old data.

        - child ids pointing at missing devices, gateways, or devices
          claimed by another gateway are dropped,
        - an end device a gateway lists but that has lost its parent link
          gets it back, and a gateway misses a child that points at it gets
          the child id added,
        - parent links to missing devices or non-gateways are cleared,
        - account device sets are made to match device ownership.
        """

        async def attempt() -> ReconciliationReport:
            report = ReconciliationReport()
            originals = {device.id: device for device in await self.store.list_devices()}
            devices = {device_id: device.copy() for device_id, device in originals.items()}

            # Pass 1: the children lists
            for device in devices.values():
                kept: list[str] = []
                for child_id in device.child_device_ids:
                    child = devices.get(child_id)
                    valid = (
                        device.is_gateway
                        and child is not None
                        and not child.is_gateway
                        and child_id not in kept
                        and child.parent_gateway_id in (None, device.id)
                    )
                    if not valid:
                        report.dangling_children_removed += 1
                        continue
                    if child.parent_gateway_id is None:
                        child.parent_gateway_id = device.id
                        child.role = DeviceRole.END_DEVICE
                        report.parent_links_restored += 1
                    kept.append(child_id)
                device.child_device_ids = kept

            # Pass 2: the parent links
            for device in devices.values():
                if device.parent_gateway_id is None:
                    continue
                parent = devices.get(device.parent_gateway_id)
                if parent is None or not parent.is_gateway or device.is_gateway:
                    device.parent_gateway_id = None
                    report.parent_links_cleared += 1
                elif device.id not in parent.child_device_ids:
                    parent.child_device_ids.append(device.id)
                    report.parent_links_restored += 1

            operations: list[WriteOperation] = []
            for device_id, device in devices.items():
                original = originals[device_id]
                if (
                    device.child_device_ids != original.child_device_ids
                    or device.parent_gateway_id != original.parent_gateway_id
                    or device.role is not original.role
                ):
                    operations.append(PutDevice(self._touch(device), original.version))

            # Pass 3: account membership
            owned: dict[str, list[str]] = {}
            for device in devices.values():
                owned.setdefault(device.owner_id, []).append(device.id)

            accounts = {account.id: account for account in await self.store.list_accounts()}
            for account_id in set(accounts) | set(owned):
                account = accounts.get(account_id)
                current = account.device_ids if account else []
                expected = owned.get(account_id, [])
                kept = [device_id for device_id in current if device_id in expected]
                added = [device_id for device_id in expected if device_id not in kept]
                report.owner_links_removed += len(current) - len(kept)
                report.owner_links_added += len(added)
                if account is not None and not added and len(kept) == len(current):
                    continue
                operations.append(
                    PutAccount(
                        Account(id=account_id, device_ids=kept + added),
                        account.version if account else None,
                    )
                )

            if operations:
                await self.store.commit(operations)
            return report

        report = await self._with_retries("Reconcile", attempt)
        if report.total:
            logger.warning(f"Reconciliation repaired {report.total} link(s): {report}")
        else:
            logger.info("Reconciliation found no inconsistencies")
        return report
