"""
Abstract interface for secrets storage (CA private key and certificate).

The CA key never leaves the backend; the CA certificate is also served to
devices as their trust anchor.
"""

from abc import ABC, abstractmethod


class SecretsRepository(ABC):
    """
    Abstract interface for CA secrets management.

    Implementations must provide secure storage for:
    - CA private key (PEM format)
    - CA certificate (PEM format)
    """

    @abstractmethod
    async def get_ca_private_key(self) -> str:
        """
        Retrieve CA private key in PEM format.

        Returns:
            PEM-encoded CA private key

        Raises:
            LookupError: If key not found
        """
        pass

    @abstractmethod
    async def store_ca_private_key(self, private_key_pem: str) -> None:
        """
        Store CA private key securely.

        Args:
            private_key_pem: PEM-encoded CA private key
        """
        pass

    @abstractmethod
    async def get_ca_certificate(self) -> str:
        """
        Retrieve CA certificate in PEM format.

        Returns:
            PEM-encoded CA certificate

        Raises:
            LookupError: If certificate not found
        """
        pass

    @abstractmethod
    async def store_ca_certificate(self, certificate_pem: str) -> None:
        """
        Store CA certificate.

        Args:
            certificate_pem: PEM-encoded CA certificate
        """
        pass

    @abstractmethod
    async def has_ca_credentials(self) -> bool:
        """Whether both the CA key and certificate are present."""
        pass
