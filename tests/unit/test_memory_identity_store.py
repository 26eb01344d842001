"""Tests for the in-memory identity store."""

from datetime import UTC, datetime, timedelta

import pytest

from fleetprov.domain.errors import (
    AlreadyFulfilledError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    TransactionConflictError,
)
from fleetprov.domain.models import Account, Device, DeviceRole, EnrollmentToken
from fleetprov.infrastructure.repositories import (
    CreateToken,
    FulfillToken,
    PutAccount,
    PutDevice,
    RemoveDevice,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_token(token_id: str = "tok-1", minutes: int = 10) -> EnrollmentToken:
    return EnrollmentToken(
        id=token_id,
        subject_id=f"subject-{token_id}",
        issued_at=NOW,
        expires_at=NOW + timedelta(minutes=minutes),
    )


def fulfill(token_id: str = "tok-1", serial: str = "0a", now: datetime = NOW):
    return FulfillToken(
        token_id=token_id,
        certificate_ref=serial,
        declared_type="sensor",
        declared_chip="esp32",
        declared_version="1.0",
        now=now,
    )


def make_device(device_id: str, uuid: str, owner: str = "acct-1", **kwargs) -> Device:
    return Device(id=device_id, uuid=uuid, owner_id=owner, **kwargs)


# ===========================
# Tokens
# ===========================


@pytest.mark.asyncio
async def test_create_and_get_token(store):
    """Test a created token is stored at version 1."""
    await store.commit([CreateToken(make_token())])

    token = await store.get_token("tok-1")

    assert token.subject_id == "subject-tok-1"
    assert token.version == 1
    assert token.certificate_ref is None


@pytest.mark.asyncio
async def test_create_duplicate_token_conflicts(store):
    """Test token ids are unique."""
    await store.commit([CreateToken(make_token())])

    with pytest.raises(ConflictError):
        await store.commit([CreateToken(make_token())])


@pytest.mark.asyncio
async def test_fulfill_token_records_certificate(store):
    """Test fulfillment stores the serial and declared metadata."""
    await store.commit([CreateToken(make_token())])

    token = await store.fulfill_token("tok-1", "0a", "sensor", "esp32", "1.0", NOW)

    assert token.certificate_ref == "0a"
    assert token.declared_chip == "esp32"
    assert token.fulfilled_at == NOW
    assert token.version == 2


@pytest.mark.asyncio
async def test_fulfill_token_only_once(store):
    """Test a second fulfillment is rejected and keeps the first serial."""
    await store.commit([CreateToken(make_token())])
    await store.commit([fulfill(serial="0a")])

    with pytest.raises(AlreadyFulfilledError):
        await store.commit([fulfill(serial="0b")])

    assert (await store.get_token("tok-1")).certificate_ref == "0a"


@pytest.mark.asyncio
async def test_fulfill_unknown_token(store):
    """Test fulfilling a missing token reports NotFound."""
    with pytest.raises(NotFoundError):
        await store.commit([fulfill("missing")])


@pytest.mark.asyncio
async def test_fulfill_expired_token(store):
    """Test a token at its expiry instant can no longer be fulfilled."""
    await store.commit([CreateToken(make_token(minutes=10))])

    with pytest.raises(ExpiredError):
        await store.commit([fulfill(now=NOW + timedelta(minutes=10))])


@pytest.mark.asyncio
async def test_expired_takes_precedence_over_fulfilled(store):
    """Test an expired, fulfilled token reports Expired."""
    await store.commit([CreateToken(make_token(minutes=10))])
    await store.commit([fulfill()])

    with pytest.raises(ExpiredError):
        await store.commit([fulfill(now=NOW + timedelta(hours=1))])


@pytest.mark.asyncio
async def test_purge_tokens(store):
    """Test only tokens expired before the cutoff are purged."""
    await store.commit([CreateToken(make_token("old", minutes=1))])
    await store.commit([CreateToken(make_token("new", minutes=60))])

    purged = await store.purge_tokens(NOW + timedelta(minutes=30))

    assert purged == 1
    assert await store.get_token("old") is None
    assert await store.get_token("new") is not None


# ===========================
# Devices and accounts
# ===========================


@pytest.mark.asyncio
async def test_put_device_and_lookup_by_uuid(store):
    """Test devices are reachable by id and uuid."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])

    assert (await store.get_device("d1")).uuid == "uuid-1"
    assert (await store.get_device_by_uuid("uuid-1")).id == "d1"
    assert await store.get_device_by_uuid("uuid-2") is None


@pytest.mark.asyncio
async def test_duplicate_uuid_conflicts(store):
    """Test two devices cannot share a uuid."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])

    with pytest.raises(ConflictError):
        await store.commit([PutDevice(make_device("d2", "uuid-1"), None)])

    assert await store.get_device("d2") is None


@pytest.mark.asyncio
async def test_duplicate_uuid_within_batch_conflicts(store):
    """Test uuid uniqueness is checked across the batch itself."""
    with pytest.raises(ConflictError):
        await store.commit(
            [
                PutDevice(make_device("d1", "uuid-1"), None),
                PutDevice(make_device("d2", "uuid-1"), None),
            ]
        )

    assert await store.list_devices() == []


@pytest.mark.asyncio
async def test_uuid_change_frees_old_uuid(store):
    """Test renaming a device releases its previous uuid."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])
    device = await store.get_device("d1")
    device.uuid = "uuid-9"

    await store.commit([PutDevice(device, device.version)])
    await store.commit([PutDevice(make_device("d2", "uuid-1"), None)])

    assert (await store.get_device_by_uuid("uuid-9")).id == "d1"
    assert (await store.get_device_by_uuid("uuid-1")).id == "d2"


@pytest.mark.asyncio
async def test_stale_version_is_rejected(store):
    """Test a write computed from an old version is refused."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])
    first = await store.get_device("d1")
    second = await store.get_device("d1")

    first.chip = "esp32"
    await store.commit([PutDevice(first, first.version)])

    second.chip = "nrf52"
    with pytest.raises(TransactionConflictError):
        await store.commit([PutDevice(second, second.version)])

    assert (await store.get_device("d1")).chip == "esp32"


@pytest.mark.asyncio
async def test_insert_over_existing_record_is_conflict(store):
    """Test expected_version=None requires the record to be absent."""
    await store.commit([PutAccount(Account(id="acct-1"), None)])

    with pytest.raises(TransactionConflictError):
        await store.commit([PutAccount(Account(id="acct-1"), None)])


@pytest.mark.asyncio
async def test_failed_batch_applies_nothing(store):
    """Test a batch with one failing write leaves every record untouched."""
    await store.commit(
        [
            PutDevice(make_device("gw", "uuid-gw", role=DeviceRole.GATEWAY), None),
            PutAccount(Account(id="acct-1", device_ids=["gw"]), None),
        ]
    )
    gateway = await store.get_device("gw")
    gateway.child_device_ids.append("child")

    with pytest.raises(TransactionConflictError):
        await store.commit(
            [
                PutDevice(gateway, gateway.version),
                PutDevice(make_device("child", "uuid-child"), None),
                PutAccount(Account(id="acct-1", device_ids=["gw", "child"]), 99),
            ]
        )

    assert (await store.get_device("gw")).child_device_ids == []
    assert await store.get_device("child") is None
    assert await store.get_device_by_uuid("uuid-child") is None
    assert (await store.get_account("acct-1")).device_ids == ["gw"]


@pytest.mark.asyncio
async def test_remove_device_frees_uuid(store):
    """Test removing a device drops it from the uuid index."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])

    await store.commit([RemoveDevice("d1", 1)])

    assert await store.get_device("d1") is None
    assert await store.get_device_by_uuid("uuid-1") is None


@pytest.mark.asyncio
async def test_list_devices_by_owner(store):
    """Test listing is filtered by owner."""
    await store.commit(
        [
            PutDevice(make_device("d1", "uuid-1", owner="acct-1"), None),
            PutDevice(make_device("d2", "uuid-2", owner="acct-2"), None),
        ]
    )

    owned = await store.list_devices("acct-2")

    assert [device.id for device in owned] == ["d2"]
    assert len(await store.list_devices()) == 2


@pytest.mark.asyncio
async def test_reads_return_copies(store):
    """Test mutating a returned record does not change the store."""
    await store.commit([PutDevice(make_device("d1", "uuid-1"), None)])

    device = await store.get_device("d1")
    device.child_device_ids.append("ghost")

    assert (await store.get_device("d1")).child_device_ids == []
