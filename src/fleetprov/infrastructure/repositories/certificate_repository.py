"""
Abstract interface for the issued-certificate registry.

Every certificate the CA signs is recorded here, keyed by serial number.
The serial is what an enrollment token stores as its ``certificate_ref``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class IssuedCertificate:
    """
    Issued device certificate metadata.

    Attributes:
        serial: Certificate serial number (hex string)
        subject_id: Subject identity the certificate was issued for
        issued_at: Certificate issue timestamp (UTC)
        expires_at: Certificate expiration timestamp (UTC)
        certificate_pem: PEM-encoded certificate
        revoked: Whether certificate has been revoked
    """

    serial: str
    subject_id: str
    issued_at: datetime
    expires_at: datetime
    certificate_pem: str
    revoked: bool = False


class CertificateRepository(ABC):
    """Abstract interface for issued certificate storage."""

    @abstractmethod
    async def save_certificate(self, certificate: IssuedCertificate) -> None:
        """
        Store an issued certificate.

        Args:
            certificate: Certificate metadata to store
        """
        pass

    @abstractmethod
    async def get_certificate(self, serial: str) -> IssuedCertificate | None:
        """
        Retrieve certificate by serial.

        Args:
            serial: Certificate serial number (hex string)

        Returns:
            Certificate metadata if found, None otherwise
        """
        pass

    @abstractmethod
    async def revoke_certificate(self, serial: str) -> bool:
        """
        Mark a certificate as revoked.

        Args:
            serial: Certificate serial number

        Returns:
            True if certificate was revoked, False if not found
        """
        pass

    @abstractmethod
    async def list_all_certificates(self) -> list[IssuedCertificate]:
        """List all stored certificates."""
        pass
