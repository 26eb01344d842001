"""
In-memory identity store.

Records live in dictionaries owned by the store; callers only ever receive
copies. ``commit`` stages every operation against the current state,
checks all conditions, and only then applies the batch, so a failing batch
leaves no trace. An ``asyncio.Lock`` serializes commits; it is held only
for the duration of a commit, never across calls into other services.
"""

import asyncio
import copy
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from loguru import logger

from fleetprov.domain.errors import ConflictError, TransactionConflictError
from fleetprov.domain.models import Account, Device, EnrollmentToken
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


@dataclass
class StagedBatch:
    """
    Result of validating a batch: the new value of every touched record.

    A value of ``None`` means the record is deleted.
    """

    tokens: dict[str, EnrollmentToken | None] = field(default_factory=dict)
    devices: dict[str, Device | None] = field(default_factory=dict)
    accounts: dict[str, Account | None] = field(default_factory=dict)
    uuid_index: dict[str, str] = field(default_factory=dict)


class InMemoryIdentityStore(IdentityStore):
    """
    Dictionary-backed identity store.

    Suitable for tests and single-process development. State is lost when
    the process exits; see LocalIdentityStore for a persistent variant.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, EnrollmentToken] = {}
        self._devices: dict[str, Device] = {}
        self._accounts: dict[str, Account] = {}
        self._uuid_index: dict[str, str] = {}
        self._lock = asyncio.Lock()

        logger.info(f"Initialized {type(self).__name__}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_token(self, token_id: str) -> EnrollmentToken | None:
        return copy.deepcopy(self._tokens.get(token_id))

    async def get_device(self, device_id: str) -> Device | None:
        return copy.deepcopy(self._devices.get(device_id))

    async def get_device_by_uuid(self, uuid: str) -> Device | None:
        device_id = self._uuid_index.get(uuid)
        if device_id is None:
            return None
        return await self.get_device(device_id)

    async def list_devices(self, owner_id: str | None = None) -> list[Device]:
        return [
            copy.deepcopy(device)
            for device in self._devices.values()
            if owner_id is None or device.owner_id == owner_id
        ]

    async def get_account(self, account_id: str) -> Account | None:
        return copy.deepcopy(self._accounts.get(account_id))

    async def list_accounts(self) -> list[Account]:
        return [copy.deepcopy(account) for account in self._accounts.values()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def commit(self, operations: Sequence[WriteOperation]) -> None:
        async with self._lock:
            batch = self._stage(operations)
            await self._persist(batch)
            self._apply(batch)

        logger.debug(f"Committed {len(operations)} operation(s)")

    async def purge_tokens(self, expired_before: datetime) -> int:
        async with self._lock:
            stale = [
                token_id
                for token_id, token in self._tokens.items()
                if token.expires_at < expired_before
            ]
            batch = StagedBatch(
                tokens={token_id: None for token_id in stale},
                uuid_index=dict(self._uuid_index),
            )
            await self._persist(batch)
            self._apply(batch)

        if stale:
            logger.info(f"Purged {len(stale)} enrollment token(s)")
        return len(stale)

    async def _persist(self, batch: StagedBatch) -> None:
        """Durably write a validated batch. Nothing to do in memory."""

    def _stage(self, operations: Sequence[WriteOperation]) -> StagedBatch:
        batch = StagedBatch()

        for operation in operations:
            if isinstance(operation, CreateToken):
                self._stage_create_token(batch, operation)
            elif isinstance(operation, FulfillToken):
                self._stage_fulfill_token(batch, operation)
            elif isinstance(operation, PutDevice):
                current = self._current(batch.devices, self._devices, operation.device.id)
                self._check_version("Device", operation.device.id, current, operation.expected_version)
                batch.devices[operation.device.id] = replace(
                    operation.device.copy(),
                    version=(current.version if current else 0) + 1,
                )
            elif isinstance(operation, RemoveDevice):
                current = self._current(batch.devices, self._devices, operation.device_id)
                self._check_version("Device", operation.device_id, current, operation.expected_version)
                batch.devices[operation.device_id] = None
            elif isinstance(operation, PutAccount):
                current = self._current(batch.accounts, self._accounts, operation.account.id)
                self._check_version("Account", operation.account.id, current, operation.expected_version)
                batch.accounts[operation.account.id] = replace(
                    operation.account.copy(),
                    version=(current.version if current else 0) + 1,
                )
            else:
                raise TypeError(f"Unsupported write operation: {operation!r}")

        batch.uuid_index = self._stage_uuid_index(batch.devices)
        return batch

    def _stage_create_token(self, batch: StagedBatch, operation: CreateToken) -> None:
        token_id = operation.token.id
        if self._current(batch.tokens, self._tokens, token_id) is not None:
            raise ConflictError(f"Enrollment token {token_id} already exists")
        batch.tokens[token_id] = replace(copy.deepcopy(operation.token), version=1)

    def _stage_fulfill_token(self, batch: StagedBatch, operation: FulfillToken) -> None:
        current = check_fulfillable(
            self._current(batch.tokens, self._tokens, operation.token_id),
            operation.token_id,
            operation.now,
        )
        batch.tokens[operation.token_id] = replace(
            current,
            certificate_ref=operation.certificate_ref,
            declared_type=operation.declared_type,
            declared_chip=operation.declared_chip,
            declared_version=operation.declared_version,
            fulfilled_at=operation.now,
            version=current.version + 1,
        )

    def _stage_uuid_index(self, staged: dict[str, Device | None]) -> dict[str, str]:
        index = dict(self._uuid_index)

        for device_id in staged:
            previous = self._devices.get(device_id)
            if previous is not None and index.get(previous.uuid) == device_id:
                del index[previous.uuid]

        for device_id, device in staged.items():
            if device is None:
                continue
            owner = index.get(device.uuid)
            if owner is not None and owner != device_id:
                raise ConflictError(f"Device with uuid {device.uuid} already exists")
            index[device.uuid] = device_id

        return index

    def _apply(self, batch: StagedBatch) -> None:
        for records, changes in (
            (self._tokens, batch.tokens),
            (self._devices, batch.devices),
            (self._accounts, batch.accounts),
        ):
            for record_id, record in changes.items():
                if record is None:
                    records.pop(record_id, None)
                else:
                    records[record_id] = record
        self._uuid_index = batch.uuid_index

    @staticmethod
    def _current(staged: dict, committed: dict, record_id: str):
        if record_id in staged:
            return staged[record_id]
        return committed.get(record_id)

    @staticmethod
    def _check_version(
        kind: str, record_id: str, current, expected_version: int | None
    ) -> None:
        if expected_version is None:
            if current is not None:
                raise TransactionConflictError(f"{kind} {record_id} already exists")
            return
        if current is None or current.version != expected_version:
            raise TransactionConflictError(
                f"{kind} {record_id} was modified concurrently"
            )
