"""
Abstract interface for the identity store.

The identity store holds enrollment tokens, devices and accounts. Reads are
plain lookups; every mutation goes through ``commit``, which applies a batch
of write operations atomically:

- all conditions of every operation are checked before anything is written,
- a write names the record version it was computed from
  (``expected_version``); ``None`` means the record must not exist yet,
- every successful write bumps the stored version by one,
- device ``uuid`` values are unique across the store.

This is the only concurrency control the services rely on. There are no
global locks; two-sided updates (owner/device, gateway/child) are always
committed as one batch.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from fleetprov.domain.errors import (
    AlreadyFulfilledError,
    ExpiredError,
    NotFoundError,
)
from fleetprov.domain.models import Account, Device, EnrollmentToken


@dataclass(frozen=True)
class CreateToken:
    """Insert a new token; fails with ConflictError if the id exists."""

    token: EnrollmentToken


@dataclass(frozen=True)
class FulfillToken:
    """
    Guarded Pending -> Fulfilled transition.

    Applies only if the token exists, ``now < expires_at`` and
    ``certificate_ref`` is still empty; otherwise the batch fails with
    NotFoundError, ExpiredError or AlreadyFulfilledError (in that order).
    """

    token_id: str
    certificate_ref: str
    declared_type: str
    declared_chip: str
    declared_version: str
    now: datetime


@dataclass(frozen=True)
class PutDevice:
    """Insert (expected_version=None) or replace a device."""

    device: Device
    expected_version: int | None


@dataclass(frozen=True)
class RemoveDevice:
    """Delete a device that is still at ``expected_version``."""

    device_id: str
    expected_version: int


@dataclass(frozen=True)
class PutAccount:
    """Insert (expected_version=None) or replace an account."""

    account: Account
    expected_version: int | None


WriteOperation = CreateToken | FulfillToken | PutDevice | RemoveDevice | PutAccount


def check_fulfillable(
    token: EnrollmentToken | None, token_id: str, now: datetime
) -> EnrollmentToken:
    """
    Evaluate the fulfillment guard for a token.

    Shared by store implementations so every backend reports the same
    error for the same condition.

    Raises:
        NotFoundError: Token does not exist
        ExpiredError: ``now`` is at or past ``expires_at``
        AlreadyFulfilledError: A certificate was already issued (``certificate_ref`` set)
    """
    if token is None:
        raise NotFoundError(f"Enrollment token {token_id} not found")
    if now >= token.expires_at:
        raise ExpiredError("Token has expired")
    if token.certificate_ref:
        raise AlreadyFulfilledError("Certificate already issued for this token")
    return token


class IdentityStore(ABC):
    """
    Abstract transactional store for tokens, devices and accounts.

    Implementations must make ``commit`` all-or-nothing and must serialize
    conflicting commits against the same record.
    """

    @abstractmethod
    async def get_token(self, token_id: str) -> EnrollmentToken | None:
        """
        Retrieve an enrollment token.

        Args:
            token_id: Opaque token string

        Returns:
            Token if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_device(self, device_id: str) -> Device | None:
        """Retrieve a device by registry id."""
        pass

    @abstractmethod
    async def get_device_by_uuid(self, uuid: str) -> Device | None:
        """Retrieve a device by its globally unique uuid."""
        pass

    @abstractmethod
    async def list_devices(self, owner_id: str | None = None) -> list[Device]:
        """
        List devices, optionally only those owned by ``owner_id``.

        Returns:
            Devices in no particular order
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Account | None:
        """Retrieve an account's device membership record."""
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """List all account membership records."""
        pass

    @abstractmethod
    async def commit(self, operations: Sequence[WriteOperation]) -> None:
        """
        Apply a batch of write operations atomically.

        Args:
            operations: Writes to apply; at most one per record

        Raises:
            ConflictError: Duplicate device uuid or token id
            TransactionConflictError: A record is not at its expected version
            NotFoundError: FulfillToken on a missing token
            ExpiredError: FulfillToken on an expired token
            AlreadyFulfilledError: FulfillToken on a fulfilled token
            StoreFailureError: Backend unavailable or write aborted
        """
        pass

    @abstractmethod
    async def purge_tokens(self, expired_before: datetime) -> int:
        """
        Delete tokens whose expiry instant is older than ``expired_before``.

        Returns:
            Number of tokens removed
        """
        pass

    async def fulfill_token(
        self,
        token_id: str,
        certificate_ref: str,
        declared_type: str,
        declared_chip: str,
        declared_version: str,
        now: datetime,
    ) -> EnrollmentToken:
        """
        Conditionally record a certificate on a pending token.

        Returns:
            The fulfilled token as stored
        """
        await self.commit(
            [
                FulfillToken(
                    token_id=token_id,
                    certificate_ref=certificate_ref,
                    declared_type=declared_type,
                    declared_chip=declared_chip,
                    declared_version=declared_version,
                    now=now,
                )
            ]
        )
        token = await self.get_token(token_id)
        if token is None:
            raise NotFoundError(f"Enrollment token {token_id} not found")
        return token
