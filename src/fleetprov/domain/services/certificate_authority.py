"""
Abstract base class for the Certificate Authority gateway.

Enrollment treats certificate signing as a black box: a subject identity
goes in, a signed certificate and its key material come out, or the call
fails. This module defines that contract.
"""

from abc import ABC, abstractmethod

from fleetprov.domain.models import SignedCertificate


class CertificateAuthorityGateway(ABC):
    """
    Contract for a certificate signer.

    Implementations may be slow and may fail transiently. They must raise
    ``CAFailureError`` on any signing failure and must not retry on their own.
    """

    @abstractmethod
    async def sign(self, subject_id: str) -> SignedCertificate:
        """
        Issue a certificate for a subject identity.

        Args:
            subject_id: Identity placed in the certificate subject (CN)

        Returns:
            Signed certificate with freshly generated key material

        Raises:
            CAFailureError: If signing fails
        """
        pass

    @abstractmethod
    async def get_root_certificate_pem(self) -> str:
        """
        Get the root certificate devices use as trust anchor.

        Returns:
            PEM-encoded CA certificate
        """
        pass

    @abstractmethod
    async def revoke(self, serial: str) -> bool:
        """
        Revoke a previously issued certificate.

        Args:
            serial: Serial number (hex) of the certificate

        Returns:
            True if the certificate was revoked, False if unknown
        """
        pass
