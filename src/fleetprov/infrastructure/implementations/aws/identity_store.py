"""
AWS DynamoDB implementation of the identity store using PynamoDB ORM.

Tables (all names share the configured prefix):
    {prefix}-tokens        enrollment tokens, partition key ``id``
    {prefix}-devices       devices, partition key ``id``, GSI on ``owner_id``
    {prefix}-device-uuids  uuid reservations, partition key ``uuid``
    {prefix}-accounts      account membership, partition key ``id``

``commit`` maps a batch onto a single DynamoDB ``TransactWriteItems`` call.
Version checks become condition expressions, and uuid uniqueness is kept by
reserving the uuid in its own table inside the same transaction.
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime

from pynamodb.attributes import (
    ListAttribute,
    NumberAttribute,
    UnicodeAttribute,
    UTCDateTimeAttribute,
)
from pynamodb.connection import Connection
from pynamodb.exceptions import DoesNotExist, PynamoDBException, TransactWriteError
from pynamodb.indexes import AllProjection, GlobalSecondaryIndex
from pynamodb.models import Model
from pynamodb.transactions import TransactWrite

from fleetprov.core.logging import logger
from fleetprov.domain.errors import (
    ConflictError,
    StoreFailureError,
    TransactionConflictError,
)
from fleetprov.domain.models import Account, Device, DeviceRole, EnrollmentToken
from fleetprov.infrastructure.repositories.identity_store import (
    CreateToken,
    FulfillToken,
    IdentityStore,
    PutAccount,
    PutDevice,
    RemoveDevice,
    WriteOperation,
    check_fulfillable,
)


class TokenModel(Model):
    """PynamoDB model for enrollment tokens."""

    class Meta:
        table_name = None
        region = None

    id = UnicodeAttribute(hash_key=True)
    subject_id = UnicodeAttribute()
    issued_at = UTCDateTimeAttribute()
    expires_at = UTCDateTimeAttribute()
    declared_type = UnicodeAttribute(default="")
    declared_chip = UnicodeAttribute(default="")
    declared_version = UnicodeAttribute(default="")
    certificate_ref = UnicodeAttribute(null=True)
    fulfilled_at = UTCDateTimeAttribute(null=True)
    version = NumberAttribute(default=0)


class OwnerIndex(GlobalSecondaryIndex):
    """GSI for listing an account's devices."""

    class Meta:
        index_name = "owner-index"
        projection = AllProjection()
        read_capacity_units = 5
        write_capacity_units = 5

    owner_id = UnicodeAttribute(hash_key=True)


class DeviceModel(Model):
    """PynamoDB model for devices."""

    class Meta:
        table_name = None
        region = None

    id = UnicodeAttribute(hash_key=True)
    uuid = UnicodeAttribute()
    owner_id = UnicodeAttribute()
    device_type = UnicodeAttribute(default="")
    chip = UnicodeAttribute(default="")
    firmware_version = UnicodeAttribute(default="")
    role = UnicodeAttribute(default=DeviceRole.STANDALONE.value)
    parent_gateway_id = UnicodeAttribute(null=True)
    child_device_ids = ListAttribute(of=UnicodeAttribute, default=list)
    created_at = UTCDateTimeAttribute(null=True)
    updated_at = UTCDateTimeAttribute(null=True)
    version = NumberAttribute(default=0)

    owner_index = OwnerIndex()


class DeviceUuidModel(Model):
    """Reservation record enforcing one device per uuid."""

    class Meta:
        table_name = None
        region = None

    uuid = UnicodeAttribute(hash_key=True)
    device_id = UnicodeAttribute()


class AccountModel(Model):
    """PynamoDB model for account device membership."""

    class Meta:
        table_name = None
        region = None

    id = UnicodeAttribute(hash_key=True)
    device_ids = ListAttribute(of=UnicodeAttribute, default=list)
    version = NumberAttribute(default=0)


def _model_to_token(model: TokenModel) -> EnrollmentToken:
    return EnrollmentToken(
        id=model.id,
        subject_id=model.subject_id,
        issued_at=model.issued_at,
        expires_at=model.expires_at,
        declared_type=model.declared_type or "",
        declared_chip=model.declared_chip or "",
        declared_version=model.declared_version or "",
        certificate_ref=model.certificate_ref,
        fulfilled_at=model.fulfilled_at,
        version=int(model.version or 0),
    )


def _model_to_device(model: DeviceModel) -> Device:
    return Device(
        id=model.id,
        uuid=model.uuid,
        owner_id=model.owner_id,
        device_type=model.device_type or "",
        chip=model.chip or "",
        firmware_version=model.firmware_version or "",
        role=DeviceRole(model.role),
        parent_gateway_id=model.parent_gateway_id,
        child_device_ids=list(model.child_device_ids or []),
        created_at=model.created_at,
        updated_at=model.updated_at,
        version=int(model.version or 0),
    )


def _model_to_account(model: AccountModel) -> Account:
    return Account(
        id=model.id,
        device_ids=list(model.device_ids or []),
        version=int(model.version or 0),
    )


def _device_to_model(device: Device, version: int) -> DeviceModel:
    return DeviceModel(
        id=device.id,
        uuid=device.uuid,
        owner_id=device.owner_id,
        device_type=device.device_type,
        chip=device.chip,
        firmware_version=device.firmware_version,
        role=device.role.value,
        parent_gateway_id=device.parent_gateway_id,
        child_device_ids=list(device.child_device_ids),
        created_at=device.created_at,
        updated_at=device.updated_at,
        version=version,
    )


# TransactWriteItems lists items grouped by kind, not in the order they were added
TRANSACT_ITEM_ORDER = ("condition_check", "delete", "put", "update")


class ItemCauses:
    """
    What each transaction item's failed condition means.

    DynamoDB reports cancellation reasons by item position, so causes are
    kept per item kind and joined in the order the request is sent.
    """

    def __init__(self):
        self._by_kind: dict[str, list[tuple[str, WriteOperation]]] = {
            kind: [] for kind in TRANSACT_ITEM_ORDER
        }

    def add(self, kind: str, cause: str, operation: WriteOperation) -> None:
        self._by_kind[kind].append((cause, operation))

    def ordered(self) -> list[tuple[str, WriteOperation]]:
        return [item for kind in TRANSACT_ITEM_ORDER for item in self._by_kind[kind]]


class AWSIdentityStore(IdentityStore):
    """
    DynamoDB identity store.

    PynamoDB is synchronous; every call is pushed to a worker thread so the
    event loop is never blocked on network I/O.
    """

    def __init__(
        self,
        table_prefix: str = "fleetprov",
        region_name: str = "eu-west-1",
        auto_create_tables: bool = False,
    ):
        """
        Initialize PynamoDB models.

        Args:
            table_prefix: Prefix shared by all identity tables
            region_name: AWS region
            auto_create_tables: If True, create tables that don't exist
        """
        if not table_prefix:
            raise ValueError("table_prefix cannot be empty")
        if not region_name:
            raise ValueError("region_name cannot be empty")

        self.table_prefix = table_prefix
        self.region_name = region_name

        for model, suffix in (
            (TokenModel, "tokens"),
            (DeviceModel, "devices"),
            (DeviceUuidModel, "device-uuids"),
            (AccountModel, "accounts"),
        ):
            model.Meta.table_name = f"{table_prefix}-{suffix}"
            model.Meta.region = region_name

            if auto_create_tables and not model.exists():
                logger.info(f"Creating DynamoDB table: {model.Meta.table_name}")
                model.create_table(
                    read_capacity_units=5, write_capacity_units=5, wait=True
                )

        self.connection = Connection(region=region_name)

        logger.info(
            f"Initialized AWSIdentityStore (PynamoDB) with prefix={table_prefix}, region={region_name}"
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def _fetch(model_class, key: str):
        try:
            return await asyncio.to_thread(model_class.get, key)
        except DoesNotExist:
            return None
        except PynamoDBException as e:
            logger.error(f"Failed to read {model_class.Meta.table_name}/{key}: {e}")
            raise StoreFailureError(f"Identity store read failed: {e}") from e

    @staticmethod
    async def _collect(iterator_factory, *args, **kwargs) -> list:
        try:
            return await asyncio.to_thread(
                lambda: list(iterator_factory(*args, **kwargs))
            )
        except PynamoDBException as e:
            logger.error(f"Failed to list records: {e}")
            raise StoreFailureError(f"Identity store read failed: {e}") from e

    async def get_token(self, token_id: str) -> EnrollmentToken | None:
        model = await self._fetch(TokenModel, token_id)
        return _model_to_token(model) if model else None

    async def get_device(self, device_id: str) -> Device | None:
        model = await self._fetch(DeviceModel, device_id)
        return _model_to_device(model) if model else None

    async def get_device_by_uuid(self, uuid: str) -> Device | None:
        reservation = await self._fetch(DeviceUuidModel, uuid)
        if reservation is None:
            return None
        return await self.get_device(reservation.device_id)

    async def list_devices(self, owner_id: str | None = None) -> list[Device]:
        if owner_id is None:
            models = await self._collect(DeviceModel.scan)
        else:
            models = await self._collect(DeviceModel.owner_index.query, owner_id)
        return [_model_to_device(model) for model in models]

    async def get_account(self, account_id: str) -> Account | None:
        model = await self._fetch(AccountModel, account_id)
        return _model_to_account(model) if model else None

    async def list_accounts(self) -> list[Account]:
        models = await self._collect(AccountModel.scan)
        return [_model_to_account(model) for model in models]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def commit(self, operations: Sequence[WriteOperation]) -> None:
        previous_uuids = await self._previous_uuids(operations)

        # Failure cause of every transaction item, by position in the request
        failures = ItemCauses()

        def run() -> None:
            with TransactWrite(connection=self.connection) as transaction:
                for operation in operations:
                    self._add_operation(transaction, operation, previous_uuids, failures)

        try:
            await asyncio.to_thread(run)
        except TransactWriteError as e:
            await self._raise_for_cancellation(e, failures)
        except PynamoDBException as e:
            logger.error(f"Identity store transaction failed: {e}")
            raise StoreFailureError(f"Identity store write failed: {e}") from e

        logger.debug(f"Committed {len(operations)} operation(s)")

    async def purge_tokens(self, expired_before: datetime) -> int:
        stale = await self._collect(
            TokenModel.scan, TokenModel.expires_at < expired_before
        )

        try:
            for model in stale:
                await asyncio.to_thread(model.delete)
        except PynamoDBException as e:
            logger.error(f"Failed to purge enrollment tokens: {e}")
            raise StoreFailureError(f"Identity store write failed: {e}") from e

        if stale:
            logger.info(f"Purged {len(stale)} enrollment token(s)")
        return len(stale)

    async def _previous_uuids(
        self, operations: Sequence[WriteOperation]
    ) -> dict[str, str]:
        """Current uuid of every device the batch replaces or removes."""
        uuids: dict[str, str] = {}
        for operation in operations:
            if isinstance(operation, PutDevice) and operation.expected_version is not None:
                device_id = operation.device.id
            elif isinstance(operation, RemoveDevice):
                device_id = operation.device_id
            else:
                continue
            current = await self.get_device(device_id)
            if current is not None:
                uuids[device_id] = current.uuid
        return uuids

    @staticmethod
    def _add_operation(
        transaction: TransactWrite,
        operation: WriteOperation,
        previous_uuids: dict[str, str],
        failures: ItemCauses,
    ) -> None:
        if isinstance(operation, CreateToken):
            token = operation.token
            transaction.save(
                TokenModel(
                    id=token.id,
                    subject_id=token.subject_id,
                    issued_at=token.issued_at,
                    expires_at=token.expires_at,
                    declared_type=token.declared_type,
                    declared_chip=token.declared_chip,
                    declared_version=token.declared_version,
                    certificate_ref=token.certificate_ref,
                    fulfilled_at=token.fulfilled_at,
                    version=1,
                ),
                condition=TokenModel.id.does_not_exist(),
            )
            failures.add("put", "token_exists", operation)

        elif isinstance(operation, FulfillToken):
            transaction.update(
                TokenModel(id=operation.token_id),
                actions=[
                    TokenModel.certificate_ref.set(operation.certificate_ref),
                    TokenModel.declared_type.set(operation.declared_type),
                    TokenModel.declared_chip.set(operation.declared_chip),
                    TokenModel.declared_version.set(operation.declared_version),
                    TokenModel.fulfilled_at.set(operation.now),
                    TokenModel.version.add(1),
                ],
                condition=(
                    TokenModel.id.exists()
                    & TokenModel.certificate_ref.does_not_exist()
                    & (TokenModel.expires_at > operation.now)
                ),
            )
            failures.add("update", "token_fulfill", operation)

        elif isinstance(operation, PutDevice):
            device = operation.device
            expected = operation.expected_version
            condition = (
                DeviceModel.id.does_not_exist()
                if expected is None
                else DeviceModel.version == expected
            )
            transaction.save(
                _device_to_model(device, (expected or 0) + 1), condition=condition
            )
            failures.add("put", "version", operation)

            previous_uuid = previous_uuids.get(device.id)
            if previous_uuid != device.uuid:
                transaction.save(
                    DeviceUuidModel(uuid=device.uuid, device_id=device.id),
                    condition=DeviceUuidModel.uuid.does_not_exist(),
                )
                failures.add("put", "uuid_taken", operation)
                if previous_uuid is not None:
                    transaction.delete(DeviceUuidModel(uuid=previous_uuid))
                    failures.add("delete", "version", operation)

        elif isinstance(operation, RemoveDevice):
            transaction.delete(
                DeviceModel(id=operation.device_id),
                condition=DeviceModel.version == operation.expected_version,
            )
            failures.add("delete", "version", operation)

            previous_uuid = previous_uuids.get(operation.device_id)
            if previous_uuid is not None:
                transaction.delete(DeviceUuidModel(uuid=previous_uuid))
                failures.add("delete", "version", operation)

        elif isinstance(operation, PutAccount):
            account = operation.account
            expected = operation.expected_version
            condition = (
                AccountModel.id.does_not_exist()
                if expected is None
                else AccountModel.version == expected
            )
            transaction.save(
                AccountModel(
                    id=account.id,
                    device_ids=list(account.device_ids),
                    version=(expected or 0) + 1,
                ),
                condition=condition,
            )
            failures.add("put", "version", operation)

        else:
            raise TypeError(f"Unsupported write operation: {operation!r}")

    async def _raise_for_cancellation(
        self,
        error: TransactWriteError,
        failures: ItemCauses,
    ) -> None:
        """Translate a cancelled transaction into the matching domain error."""
        reasons = getattr(error, "cancellation_reasons", None) or []
        causes = failures.ordered()

        for index, reason in enumerate(reasons):
            if reason is None or reason.code != "ConditionalCheckFailed":
                continue
            if index >= len(causes):
                break

            cause, operation = causes[index]
            if cause == "token_exists":
                raise ConflictError(
                    f"Enrollment token {operation.token.id} already exists"
                ) from error
            if cause == "uuid_taken":
                raise ConflictError(
                    f"Device with uuid {operation.device.uuid} already exists"
                ) from error
            if cause == "token_fulfill":
                # Re-read to report why the guard rejected the transition
                token = await self.get_token(operation.token_id)
                check_fulfillable(token, operation.token_id, operation.now)
            raise TransactionConflictError(
                "Record was modified concurrently"
            ) from error

        if any(reason is not None and reason.code == "TransactionConflict" for reason in reasons):
            raise TransactionConflictError(
                "Record was modified concurrently"
            ) from error

        logger.error(f"Identity store transaction cancelled: {error}")
        raise StoreFailureError(f"Identity store write failed: {error}") from error
