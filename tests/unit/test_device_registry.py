"""Tests for the device hierarchy registry."""

import pytest

from fleetprov.config import Settings
from fleetprov.domain.errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
)
from fleetprov.domain.models import Account, Device, DeviceRole
from fleetprov.infrastructure.repositories import PutAccount, PutDevice
from fleetprov.services.device_registry import (
    DEFAULT_END_DEVICE_CHIP,
    DEFAULT_END_DEVICE_TYPE,
    DEFAULT_END_DEVICE_VERSION,
    DeviceRegistry,
)

OWNER = "acct-1"


@pytest.fixture
async def gateway(registry):
    return await registry.create_device(
        OWNER, "gw-1", device_type="Hub", chip="esp32", role="gateway"
    )


async def assert_consistent(store):
    """Every parent/child and owner/device link is mirrored on both sides."""
    devices = {device.id: device for device in await store.list_devices()}
    for device in devices.values():
        for child_id in device.child_device_ids:
            assert devices[child_id].parent_gateway_id == device.id
        if device.parent_gateway_id is not None:
            assert device.id in devices[device.parent_gateway_id].child_device_ids
        account = await store.get_account(device.owner_id)
        assert device.id in account.device_ids
    for account in await store.list_accounts():
        for device_id in account.device_ids:
            assert devices[device_id].owner_id == account.id


# ===========================
# CRUD
# ===========================


@pytest.mark.asyncio
async def test_create_device(registry, store, clock):
    """Test a new device is stored and added to its owner's set."""
    device = await registry.create_device(OWNER, "uuid-1", "sensor", "esp32", "1.0")

    assert device.role is DeviceRole.STANDALONE
    assert device.created_at == clock.now
    assert device.version == 1
    assert (await store.get_account(OWNER)).device_ids == [device.id]


@pytest.mark.asyncio
async def test_create_then_get_returns_same_record(registry, gateway, clock):
    """Test every supplied and defaulted field survives a create/get round trip."""
    created = await registry.create_device(
        OWNER,
        "zb-1",
        device_type="ZigbeeDevice",
        chip="Zigbee",
        firmware_version="2.1",
        role="end_device",
        parent_gateway_id=gateway.id,
    )

    fetched = (await registry.get_device(created.id)).device

    assert fetched == created
    assert fetched.uuid == "zb-1"
    assert fetched.device_type == "ZigbeeDevice"
    assert fetched.chip == "Zigbee"
    assert fetched.firmware_version == "2.1"
    assert fetched.role is DeviceRole.END_DEVICE
    assert fetched.owner_id == OWNER
    assert fetched.parent_gateway_id == gateway.id
    assert fetched.child_device_ids == []
    assert fetched.created_at == fetched.updated_at == clock.now


@pytest.mark.asyncio
async def test_create_duplicate_uuid(registry, store):
    """Test the same uuid cannot be registered twice, even by another owner."""
    await registry.create_device(OWNER, "uuid-1")

    with pytest.raises(ConflictError, match="uuid-1"):
        await registry.create_device("acct-2", "uuid-1")

    assert await store.get_account("acct-2") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"uuid": " "}, "Device uuid"),
        ({"owner_id": ""}, "Owner identity"),
        ({"role": "router"}, "Unknown device role"),
        ({"role": "standalone", "parent_gateway_id": "gw"}, "Only end devices"),
    ],
)
async def test_create_device_invalid_input(registry, kwargs, message):
    """Test malformed create requests are invalid input."""
    arguments = {"owner_id": OWNER, "uuid": "uuid-1"} | kwargs

    with pytest.raises(InvalidInputError, match=message):
        await registry.create_device(**arguments)


@pytest.mark.asyncio
async def test_create_end_device_under_gateway(registry, store, gateway):
    """Test an end device created with a parent is attached in the same commit."""
    child = await registry.create_device(
        OWNER, "zb-1", role=DeviceRole.END_DEVICE, parent_gateway_id="gw-1"
    )

    assert child.parent_gateway_id == gateway.id
    assert (await store.get_device(gateway.id)).child_device_ids == [child.id]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_create_end_device_under_non_gateway(registry):
    """Test the parent must be a gateway."""
    standalone = await registry.create_device(OWNER, "uuid-1")

    with pytest.raises(InvalidInputError, match="not a gateway"):
        await registry.create_device(
            OWNER, "zb-1", role="end_device", parent_gateway_id=standalone.id
        )


@pytest.mark.asyncio
async def test_get_device_resolves_children(registry, gateway):
    """Test a gateway is returned with its attached devices."""
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    view = await registry.get_device(gateway.id)

    assert view.device.id == gateway.id
    assert [c.id for c in view.children] == [child.id]


@pytest.mark.asyncio
async def test_get_device_by_uuid(registry, gateway):
    """Test a device can be addressed by its uuid as well as its id."""
    view = await registry.get_device("gw-1")

    assert view.device.id == gateway.id


@pytest.mark.asyncio
async def test_update_by_uuid_changing_uuid(registry, gateway):
    """Test a uuid-addressed update that renames the uuid returns the device."""
    updated = await registry.update_device("gw-1", uuid="gw-2")

    assert updated.id == gateway.id
    assert updated.uuid == "gw-2"


@pytest.mark.asyncio
async def test_get_unknown_device(registry):
    """Test unknown ids are not found."""
    with pytest.raises(NotFoundError):
        await registry.get_device("missing")


@pytest.mark.asyncio
async def test_list_devices_by_owner(registry):
    """Test listing filters by owner."""
    await registry.create_device(OWNER, "uuid-1")
    await registry.create_device("acct-2", "uuid-2")

    assert [d.uuid for d in await registry.list_devices("acct-2")] == ["uuid-2"]
    assert len(await registry.list_devices()) == 2


@pytest.mark.asyncio
async def test_update_device_fields(registry, clock):
    """Test descriptive fields are updated and the timestamp moves."""
    device = await registry.create_device(OWNER, "uuid-1", chip="esp32")
    clock.advance(minutes=1)

    updated = await registry.update_device(device.id, chip="nrf52", firmware_version="2.0")

    assert updated.chip == "nrf52"
    assert updated.firmware_version == "2.0"
    assert updated.uuid == "uuid-1"
    assert updated.updated_at == clock.now
    assert updated.version == device.version + 1


@pytest.mark.asyncio
async def test_update_uuid_conflict(registry):
    """Test a device cannot take another device's uuid."""
    await registry.create_device(OWNER, "uuid-1")
    second = await registry.create_device(OWNER, "uuid-2")

    with pytest.raises(ConflictError):
        await registry.update_device(second.id, uuid="uuid-1")


@pytest.mark.asyncio
async def test_update_unknown_field(registry):
    """Test only known fields can be updated."""
    device = await registry.create_device(OWNER, "uuid-1")

    with pytest.raises(InvalidInputError, match="owner_id"):
        await registry.update_device(device.id, owner_id="acct-2")


@pytest.mark.asyncio
async def test_update_role_of_gateway_with_children(registry, gateway):
    """Test a gateway with attached devices cannot change role."""
    await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    with pytest.raises(InvalidStateError):
        await registry.update_device(gateway.id, role="standalone")


@pytest.mark.asyncio
async def test_update_role_of_attached_end_device(registry, gateway):
    """Test an attached end device cannot change role."""
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    with pytest.raises(InvalidStateError):
        await registry.update_device(child.id, role="gateway")


@pytest.mark.asyncio
async def test_update_role_of_empty_gateway(registry, gateway):
    """Test a gateway without children may become standalone."""
    updated = await registry.update_device(gateway.id, role="standalone")

    assert updated.role is DeviceRole.STANDALONE


@pytest.mark.asyncio
async def test_delete_device(registry, store):
    """Test deletion removes the device and its owner link."""
    device = await registry.create_device(OWNER, "uuid-1")

    await registry.delete_device(device.id)

    assert await store.get_device(device.id) is None
    assert await store.get_device_by_uuid("uuid-1") is None
    assert (await store.get_account(OWNER)).device_ids == []


@pytest.mark.asyncio
async def test_delete_end_device_unlinks_gateway(registry, store, gateway):
    """Test deleting a child removes it from its gateway."""
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    await registry.delete_device(child.id)

    assert (await store.get_device(gateway.id)).child_device_ids == []
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_delete_gateway_with_children_rejected(registry, store, gateway):
    """Test the default policy refuses to orphan children."""
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    with pytest.raises(InvalidStateError):
        await registry.delete_device(gateway.id)

    assert await store.get_device(gateway.id) is not None
    assert (await store.get_device(child.id)).parent_gateway_id == gateway.id


@pytest.mark.asyncio
async def test_delete_gateway_cascade(store, clock):
    """Test the cascade policy deletes the children in the same commit."""
    registry = DeviceRegistry(
        store, Settings(gateway_delete_policy="cascade"), clock=clock
    )
    gateway = await registry.create_device(OWNER, "gw-1", role="gateway")
    first = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")
    second = await registry.attach_end_device(gateway.id, "acct-2", child_uuid="zb-2")

    await registry.delete_device(gateway.id)

    assert await store.list_devices() == []
    assert (await store.get_account(OWNER)).device_ids == []
    assert (await store.get_account("acct-2")).device_ids == []
    assert await store.get_device(first.id) is None
    assert await store.get_device(second.id) is None


@pytest.mark.asyncio
async def test_delete_unknown_device(registry):
    """Test deleting an unknown device is not found."""
    with pytest.raises(NotFoundError):
        await registry.delete_device("missing")


# ===========================
# Hierarchy
# ===========================


@pytest.mark.asyncio
async def test_attach_and_detach_by_uuid(registry, store, gateway):
    """Test a gateway referenced by uuid gains and loses a Zigbee child."""
    child = await registry.attach_end_device("gw-1", OWNER, child_uuid="zb-1")

    assert child.role is DeviceRole.END_DEVICE
    assert child.parent_gateway_id == gateway.id
    assert (await store.get_device(gateway.id)).child_device_ids == [child.id]
    zigbee = await registry.list_children_by_type("gw-1", DEFAULT_END_DEVICE_TYPE)
    assert [d.uuid for d in zigbee] == ["zb-1"]
    await assert_consistent(store)

    await registry.detach_end_device("gw-1", "zb-1")

    assert await store.get_device(child.id) is None
    assert (await store.get_device(gateway.id)).child_device_ids == []
    assert child.id not in (await store.get_account(OWNER)).device_ids
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_attach_new_device_defaults(registry, gateway):
    """Test a new end device gets generated uuid and Zigbee defaults."""
    child = await registry.attach_end_device(gateway.id, OWNER)

    assert child.uuid.startswith("zigbee-")
    assert child.device_type == DEFAULT_END_DEVICE_TYPE
    assert child.chip == DEFAULT_END_DEVICE_CHIP
    assert child.firmware_version == DEFAULT_END_DEVICE_VERSION


@pytest.mark.asyncio
async def test_attach_is_idempotent(registry, store, gateway):
    """Test re-attaching an attached device changes nothing."""
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    again = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    assert again.version == child.version
    assert (await store.get_device(gateway.id)).child_device_ids == [child.id]


@pytest.mark.asyncio
async def test_attach_relocates_between_gateways(registry, store, gateway):
    """Test attaching to a second gateway leaves the first."""
    other = await registry.create_device(OWNER, "gw-2", role="gateway")
    child = await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")

    moved = await registry.attach_end_device(other.id, OWNER, child_uuid="zb-1")

    assert moved.id == child.id
    assert moved.parent_gateway_id == other.id
    assert (await store.get_device(gateway.id)).child_device_ids == []
    assert (await store.get_device(other.id)).child_device_ids == [child.id]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_attach_standalone_device(registry, store, gateway):
    """Test an existing standalone device becomes an end device."""
    device = await registry.create_device(OWNER, "uuid-1")

    attached = await registry.attach_end_device(gateway.id, OWNER, child_uuid="uuid-1")

    assert attached.id == device.id
    assert attached.role is DeviceRole.END_DEVICE
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_attach_to_unknown_gateway(registry):
    """Test an unknown gateway is not found."""
    with pytest.raises(NotFoundError):
        await registry.attach_end_device("missing", OWNER, child_uuid="zb-1")


@pytest.mark.asyncio
async def test_attach_to_non_gateway(registry, store):
    """Test the target must be a gateway."""
    standalone = await registry.create_device(OWNER, "uuid-1")

    with pytest.raises(InvalidStateError, match="not a gateway"):
        await registry.attach_end_device(standalone.id, OWNER, child_uuid="zb-1")

    assert await store.get_device_by_uuid("zb-1") is None


@pytest.mark.asyncio
async def test_attach_gateway_to_gateway(registry, gateway):
    """Test gateways cannot be nested."""
    await registry.create_device(OWNER, "gw-2", role="gateway")

    with pytest.raises(InvalidStateError):
        await registry.attach_end_device(gateway.id, OWNER, child_uuid="gw-2")

    with pytest.raises(InvalidStateError):
        await registry.attach_end_device(gateway.id, OWNER, child_uuid="gw-1")


@pytest.mark.asyncio
async def test_detach_device_not_attached(registry, gateway):
    """Test detaching a device from a gateway it is not under."""
    await registry.create_device(OWNER, "uuid-1")

    with pytest.raises(InvalidStateError, match="not attached"):
        await registry.detach_end_device(gateway.id, "uuid-1")


@pytest.mark.asyncio
async def test_detach_unknown_child(registry, gateway):
    """Test detaching an unknown device is not found."""
    with pytest.raises(NotFoundError):
        await registry.detach_end_device(gateway.id, "missing")


@pytest.mark.asyncio
async def test_list_children_by_type(registry, gateway):
    """Test children are filtered by device type."""
    await registry.attach_end_device(gateway.id, OWNER, child_uuid="zb-1")
    await registry.attach_end_device(
        gateway.id, OWNER, child_uuid="ble-1", device_type="BleDevice", chip="nrf52"
    )

    assert len(await registry.list_children_by_type(gateway.id)) == 2
    ble = await registry.list_children_by_type(gateway.id, "BleDevice")
    assert [d.uuid for d in ble] == ["ble-1"]


# ===========================
# Concurrency
# ===========================


@pytest.mark.asyncio
async def test_retries_after_concurrent_update(registry, store, mocker):
    """Test a lost optimistic lock is retried against fresh state."""
    real_commit = store.commit
    attempts = []

    async def flaky(operations):
        attempts.append(operations)
        if len(attempts) == 1:
            raise TransactionConflictError("modified concurrently")
        await real_commit(operations)

    commit = mocker.patch.object(store, "commit", side_effect=flaky)

    device = await registry.create_device(OWNER, "uuid-1")

    assert commit.call_count == 2
    assert (await store.get_device(device.id)).uuid == "uuid-1"


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(registry, store, settings, mocker):
    """Test persistent conflicts surface as ConflictError."""
    commit = mocker.patch.object(
        store,
        "commit",
        side_effect=TransactionConflictError("modified concurrently"),
    )

    with pytest.raises(ConflictError, match="kept changing"):
        await registry.create_device(OWNER, "uuid-1")

    assert commit.call_count == settings.store_max_retries + 1


# ===========================
# Reconciliation
# ===========================


@pytest.mark.asyncio
async def test_reconcile_repairs_broken_links(registry, store):
    """Test one-sided links left by old data are repaired."""
    await store.commit(
        [
            PutDevice(
                Device(
                    id="gw",
                    uuid="gw-1",
                    owner_id=OWNER,
                    role=DeviceRole.GATEWAY,
                    child_device_ids=["ghost", "lost"],
                ),
                None,
            ),
            # listed by the gateway but without a parent link
            PutDevice(
                Device(id="lost", uuid="zb-1", owner_id=OWNER, role=DeviceRole.END_DEVICE),
                None,
            ),
            # points at the gateway but is not listed
            PutDevice(
                Device(
                    id="stray",
                    uuid="zb-2",
                    owner_id=OWNER,
                    role=DeviceRole.END_DEVICE,
                    parent_gateway_id="gw",
                ),
                None,
            ),
            # points at a device that is not a gateway
            PutDevice(
                Device(
                    id="orphan",
                    uuid="zb-3",
                    owner_id="acct-2",
                    role=DeviceRole.END_DEVICE,
                    parent_gateway_id="lost",
                ),
                None,
            ),
            PutAccount(Account(id=OWNER, device_ids=["gw", "deleted"]), None),
        ]
    )

    report = await registry.reconcile()

    assert report.dangling_children_removed == 1
    assert report.parent_links_restored == 2
    assert report.parent_links_cleared == 1
    assert report.owner_links_removed == 1
    assert report.owner_links_added == 3
    assert (await store.get_device("gw")).child_device_ids == ["lost", "stray"]
    assert (await store.get_device("orphan")).parent_gateway_id is None
    await assert_consistent(store)

    assert (await registry.reconcile()).total == 0
