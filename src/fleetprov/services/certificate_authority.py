"""
Certificate Authority service for issuing device certificates.

Generates a fresh key pair for each enrolling device and signs a client
certificate for it with the CA private key. The subject common name is the
device's subject identity; the remaining subject fields come from settings.

Security notes:
- CA private key never leaves the server
- Each certificate has a unique random serial number
- Serials are recorded in the issued-certificate registry
"""

import asyncio
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from loguru import logger

from fleetprov.config import Settings, get_settings
from fleetprov.domain.errors import CAFailureError
from fleetprov.domain.models import SignedCertificate
from fleetprov.domain.services import CertificateAuthorityGateway
from fleetprov.infrastructure.repositories import (
    CertificateRepository,
    IssuedCertificate,
    SecretsRepository,
)


def _private_key_to_pem(private_key) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


class CertificateAuthority(CertificateAuthorityGateway):
    """
    Certificate Authority for signing device certificates.

    Loads CA private key and certificate from the secrets repository on
    first use, issues certificates, and tracks them in the certificate
    repository.
    """

    def __init__(
        self,
        secrets_repo: SecretsRepository,
        cert_repo: CertificateRepository,
        settings: Settings | None = None,
    ):
        """
        Initialize Certificate Authority.

        Args:
            secrets_repo: Source of the CA key and certificate
            cert_repo: Registry of issued certificates
            settings: Application settings (subject fields, validity, key size)
        """
        self.secrets_repo = secrets_repo
        self.cert_repo = cert_repo
        self.settings = settings or get_settings()

        self._ca_private_key = None
        self._ca_certificate = None

        logger.info("Initialized CertificateAuthority")

    async def _load_ca_credentials(self) -> None:
        """Load CA private key and certificate from repository."""
        if self._ca_private_key is None:
            ca_key_pem = await self.secrets_repo.get_ca_private_key()
            self._ca_private_key = serialization.load_pem_private_key(
                ca_key_pem.encode(), password=None
            )
            logger.info("Loaded CA private key")

        if self._ca_certificate is None:
            ca_cert_pem = await self.secrets_repo.get_ca_certificate()
            self._ca_certificate = x509.load_pem_x509_certificate(ca_cert_pem.encode())
            logger.info("Loaded CA certificate")

    def _subject_name(self, subject_id: str) -> x509.Name:
        return x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, self.settings.certificate_country),
                x509.NameAttribute(
                    NameOID.STATE_OR_PROVINCE_NAME, self.settings.certificate_state
                ),
                x509.NameAttribute(NameOID.LOCALITY_NAME, self.settings.certificate_locality),
                x509.NameAttribute(
                    NameOID.ORGANIZATION_NAME, self.settings.certificate_organization
                ),
                x509.NameAttribute(
                    NameOID.ORGANIZATIONAL_UNIT_NAME,
                    self.settings.certificate_organizational_unit,
                ),
                x509.NameAttribute(NameOID.COMMON_NAME, subject_id),
            ]
        )

    def _issue(self, subject_id: str) -> SignedCertificate:
        """Generate a device key and sign its certificate (CPU bound)."""
        private_key = rsa.generate_private_key(
            public_exponent=65537, key_size=self.settings.device_key_size
        )
        public_key = private_key.public_key()

        serial = x509.random_serial_number()
        now = datetime.now(UTC)
        not_after = now + timedelta(days=self.settings.certificate_validity_days)

        cert_builder = (
            x509.CertificateBuilder()
            .subject_name(self._subject_name(subject_id))
            .issuer_name(self._ca_certificate.subject)
            .public_key(public_key)
            .serial_number(serial)
            .not_valid_before(now)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=True,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(
                    self._ca_certificate.public_key()
                ),
                critical=False,
            )
        )

        certificate = cert_builder.sign(
            private_key=self._ca_private_key, algorithm=hashes.SHA256()
        )

        return SignedCertificate(
            subject_id=subject_id,
            serial=format(serial, "x"),
            certificate_pem=certificate.public_bytes(
                encoding=serialization.Encoding.PEM
            ).decode(),
            private_key_pem=_private_key_to_pem(private_key),
            issued_at=now,
            expires_at=not_after,
        )

    async def sign(self, subject_id: str) -> SignedCertificate:
        """
        Issue a certificate and key pair for a subject identity.

        Args:
            subject_id: Identity placed in the certificate CN

        Returns:
            SignedCertificate with PEM certificate and private key

        Raises:
            CAFailureError: If CA material is missing or signing fails
        """
        try:
            await self._load_ca_credentials()
            # Key generation is CPU bound; keep it off the event loop
            signed = await asyncio.to_thread(self._issue, subject_id)

            await self.cert_repo.save_certificate(
                IssuedCertificate(
                    serial=signed.serial,
                    subject_id=subject_id,
                    issued_at=signed.issued_at,
                    expires_at=signed.expires_at,
                    certificate_pem=signed.certificate_pem,
                )
            )
        except CAFailureError:
            raise
        except Exception as e:
            logger.error(f"Certificate signing failed for {subject_id}: {e}")
            raise CAFailureError(f"Certificate signing failed: {e}") from e

        logger.info(
            f"Certificate signed for {subject_id}: "
            f"serial={signed.serial}, expires={signed.expires_at.isoformat()}"
        )
        return signed

    async def get_root_certificate_pem(self) -> str:
        """
        Get CA certificate in PEM format.

        Returns:
            PEM-encoded CA certificate (for device truststore)

        Raises:
            CAFailureError: If no CA certificate is installed
        """
        try:
            return await self.secrets_repo.get_ca_certificate()
        except LookupError as e:
            raise CAFailureError(str(e)) from e

    async def revoke(self, serial: str) -> bool:
        """
        Revoke a device certificate.

        Args:
            serial: Certificate serial number (hex)

        Returns:
            True if certificate was revoked, False if not found
        """
        revoked = await self.cert_repo.revoke_certificate(serial)

        if revoked:
            logger.warning(f"Certificate revoked: serial={serial}")
        else:
            logger.warning(f"No certificate found with serial {serial}")

        return revoked


def generate_root_certificate(
    common_name: str,
    validity_days: int,
    key_size: int = 4096,
    organization: str = "Organization",
    country: str = "US",
) -> tuple[str, str]:
    """
    Create a self-signed root CA.

    Returns:
        (private_key_pem, certificate_pem)
    """
    ca_private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    ca_subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, country),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )

    now = datetime.now(UTC)
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_subject)
        .issuer_name(ca_subject)
        .public_key(ca_private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                key_encipherment=False,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(ca_private_key.public_key()),
            critical=False,
        )
        .sign(ca_private_key, hashes.SHA256())
    )

    return (
        _private_key_to_pem(ca_private_key),
        ca_cert.public_bytes(serialization.Encoding.PEM).decode(),
    )


async def bootstrap_certificate_authority(
    secrets_repo: SecretsRepository, settings: Settings | None = None
) -> bool:
    """
    Make sure CA material exists before the service accepts enrollments.

    Generates and stores a self-signed root CA when none is installed and
    ``ca_auto_generate`` is enabled.

    Returns:
        True if a new CA was generated, False otherwise
    """
    settings = settings or get_settings()

    if await secrets_repo.has_ca_credentials():
        logger.info("CA credentials found")
        return False

    if not settings.ca_auto_generate:
        logger.warning(
            "No CA credentials installed and CA_AUTO_GENERATE is disabled; "
            "enrollment submissions will fail until a CA is provided"
        )
        return False

    logger.warning("Generating self-signed root CA (development only)")
    private_key_pem, certificate_pem = await asyncio.to_thread(
        generate_root_certificate,
        settings.ca_common_name,
        settings.ca_validity_days,
        key_size=settings.ca_key_size,
        organization=settings.certificate_organization,
        country=settings.certificate_country,
    )
    await secrets_repo.store_ca_private_key(private_key_pem)
    await secrets_repo.store_ca_certificate(certificate_pem)

    logger.info(f"Stored generated root CA: {settings.ca_common_name}")
    return True
