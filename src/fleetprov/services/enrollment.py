"""
Enrollment token manager.

Issues short-lived enrollment tokens and exchanges them for device
certificates. A token moves from pending to fulfilled at most once: the
store's conditional ``FulfillToken`` write is the only gate, so two
concurrent submissions can both reach the CA but only one of them can
record its certificate. The loser's certificate is revoked.

Flow:
1. issue_token(ttl) -> pending token bound to a fresh subject UUID
2. submit_enrollment(token, metadata) -> CA signs for the subject UUID
3. Token is fulfilled with the certificate serial (and, for a protected
   submission, the device is registered to its owner in the same commit)
"""

import asyncio
import math
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from fleetprov.config import Settings, get_settings
from fleetprov.domain.errors import (
    CAFailureError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ProvisioningError,
    TransactionConflictError,
)
from fleetprov.domain.models import (
    Account,
    Device,
    DeviceRole,
    EnrollmentToken,
    SignedCertificate,
    utc_now,
)
from fleetprov.domain.services import CertificateAuthorityGateway
from fleetprov.infrastructure.repositories import (
    CreateToken,
    FulfillToken,
    IdentityStore,
    PutAccount,
    PutDevice,
)
from fleetprov.infrastructure.repositories.identity_store import check_fulfillable


@dataclass
class EnrollmentResult:
    """Outcome of a successful submission."""

    subject_id: str
    certificate: SignedCertificate
    device: Device | None = None


class EnrollmentTokenManager:
    """Issues, validates and consumes enrollment tokens."""

    def __init__(
        self,
        store: IdentityStore,
        ca: CertificateAuthorityGateway,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ca = ca
        self.settings = settings or get_settings()
        self.clock = clock

    async def issue_token(self, ttl_minutes) -> EnrollmentToken:
        """
        Issue a new pending enrollment token.

        Args:
            ttl_minutes: Lifetime in minutes; any positive number giving at
                least one microsecond and a representable expiry

        Returns:
            The stored token (id, subject_id, expires_at)

        Raises:
            InvalidInputError: If ttl_minutes is not a usable lifetime
        """
        if (
            isinstance(ttl_minutes, bool)
            or not isinstance(ttl_minutes, (int, float))
            or not math.isfinite(ttl_minutes)
            or ttl_minutes <= 0
        ):
            raise InvalidInputError("Invalid timeInMinutes value")

        now = self.clock()
        try:
            lifetime = timedelta(minutes=ttl_minutes)
            expires_at = now + lifetime
        except OverflowError as e:
            raise InvalidInputError("Invalid timeInMinutes value: too large") from e
        # Sub-microsecond lifetimes round to zero and would be born expired
        if lifetime <= timedelta(0):
            raise InvalidInputError("Invalid timeInMinutes value: too small")

        token = EnrollmentToken(
            id=secrets.token_urlsafe(32),
            subject_id=str(uuid.uuid4()),
            issued_at=now,
            expires_at=expires_at,
        )
        await self.store.commit([CreateToken(token)])

        logger.info(
            f"Issued enrollment token for subject {token.subject_id}, "
            f"expires {token.expires_at.isoformat()}"
        )
        return await self.get_token(token.id)

    async def get_token(self, token_id: str) -> EnrollmentToken:
        token = await self.store.get_token(token_id)
        if token is None:
            raise NotFoundError(f"Enrollment token {token_id} not found")
        return token

    async def submit_enrollment(
        self,
        token_id: str,
        declared_type: str,
        declared_chip: str,
        declared_version: str,
        owner_id: str | None = None,
    ) -> EnrollmentResult:
        """
        Exchange a pending token for a signed certificate.

        Validation order: fields present, token exists, token not expired,
        token not fulfilled. The CA is only called once all checks pass.

        Args:
            token_id: Token string returned by issue_token
            declared_type: Device type reported by the device
            declared_chip: Chip reported by the device
            declared_version: Firmware version reported by the device
            owner_id: When given, the device is also registered to this owner

        Returns:
            EnrollmentResult with the subject id and certificate

        Raises:
            InvalidInputError: Missing field
            NotFoundError: Unknown token
            ExpiredError: Token past its expiry
            AlreadyFulfilledError: Token already exchanged
            CAFailureError: Signing failed or timed out (token stays pending)
        """
        fields = (token_id, declared_type, declared_chip, declared_version)
        if not all(isinstance(value, str) and value.strip() for value in fields):
            raise InvalidInputError(
                "All fields (Token, Device type, Chip, Version) are required"
            )
        if owner_id is not None and not owner_id.strip():
            raise InvalidInputError("Owner identity is required")

        token = check_fulfillable(
            await self.store.get_token(token_id), token_id, self.clock()
        )

        certificate = await self._sign(token.subject_id)

        try:
            device = await self._fulfill(
                token, certificate, declared_type, declared_chip, declared_version, owner_id
            )
        except ProvisioningError as e:
            logger.warning(
                f"Token {token.subject_id} could not be fulfilled after signing "
                f"({e.kind}); revoking certificate {certificate.serial}"
            )
            await self._revoke_orphan(certificate)
            raise

        logger.info(
            f"Enrollment fulfilled for subject {token.subject_id}, "
            f"certificate serial {certificate.serial}"
        )
        return EnrollmentResult(
            subject_id=token.subject_id, certificate=certificate, device=device
        )

    async def purge_expired_tokens(self) -> int:
        """Delete tokens that expired longer ago than the retention window."""
        cutoff = self.clock() - timedelta(days=self.settings.token_retention_days)
        return await self.store.purge_tokens(cutoff)

    async def _sign(self, subject_id: str) -> SignedCertificate:
        timeout = self.settings.ca_signing_timeout_seconds
        try:
            return await asyncio.wait_for(self.ca.sign(subject_id), timeout=timeout)
        except TimeoutError as e:
            logger.error(f"Certificate signing for {subject_id} timed out after {timeout}s")
            raise CAFailureError(
                f"Certificate signing timed out after {timeout} seconds"
            ) from e

    async def _fulfill(
        self,
        token: EnrollmentToken,
        certificate: SignedCertificate,
        declared_type: str,
        declared_chip: str,
        declared_version: str,
        owner_id: str | None,
    ) -> Device | None:
        for attempt in range(self.settings.store_max_retries + 1):
            now = self.clock()
            operations = [
                FulfillToken(
                    token_id=token.id,
                    certificate_ref=certificate.serial,
                    declared_type=declared_type,
                    declared_chip=declared_chip,
                    declared_version=declared_version,
                    now=now,
                )
            ]

            device = None
            if owner_id is not None:
                device = Device(
                    id=uuid.uuid4().hex,
                    uuid=token.subject_id,
                    owner_id=owner_id,
                    device_type=declared_type,
                    chip=declared_chip,
                    firmware_version=declared_version,
                    role=DeviceRole.STANDALONE,
                    created_at=now,
                    updated_at=now,
                )
                account = await self.store.get_account(owner_id)
                updated = account.copy() if account else Account(id=owner_id)
                updated.device_ids.append(device.id)
                operations += [
                    PutDevice(device, expected_version=None),
                    PutAccount(updated, account.version if account else None),
                ]

            try:
                await self.store.commit(operations)
            except TransactionConflictError:
                logger.debug(
                    f"Owner {owner_id} changed during enrollment, retrying ({attempt + 1})"
                )
                continue

            if device is None:
                return None
            return await self.store.get_device(device.id)

        raise ConflictError(
            f"Could not register device for owner {owner_id}: concurrent updates"
        )

    async def _revoke_orphan(self, certificate: SignedCertificate) -> None:
        try:
            await self.ca.revoke(certificate.serial)
        except Exception as e:
            logger.error(f"Failed to revoke orphaned certificate {certificate.serial}: {e}")
