"""
Local file-based secrets repository implementation.

Stores the CA material as individual files in a local directory:
    {base_dir}/
        ca_private_key.pem
        ca_certificate.pem

WARNING: For development only. Not secure for production.
Production should use AWS Secrets Manager or similar.
"""

from pathlib import Path

from loguru import logger

from fleetprov.infrastructure.repositories.secrets_repository import SecretsRepository


class LocalSecretsRepository(SecretsRepository):
    """
    File-based secrets storage for local development.

    WARNING: Files are stored unencrypted. Use only for local development.
    """

    def __init__(self, base_dir: str = "./.local_infrastructure/secrets"):
        """
        Initialize local secrets repository.

        Args:
            base_dir: Directory holding the CA key and certificate
        """
        self.secrets_dir = Path(base_dir)
        self.secrets_dir.mkdir(parents=True, exist_ok=True)

        # Owner read/write only
        try:
            self.secrets_dir.chmod(0o700)
        except OSError as e:
            logger.warning(f"Could not set directory permissions: {e}")

        self.key_path = self.secrets_dir / "ca_private_key.pem"
        self.cert_path = self.secrets_dir / "ca_certificate.pem"

        logger.info(f"Initialized LocalSecretsRepository at {self.secrets_dir}")

    async def get_ca_private_key(self) -> str:
        """Retrieve CA private key."""
        if not self.key_path.exists():
            raise LookupError(
                f"CA private key not found at {self.key_path}. "
                "Enable CA_AUTO_GENERATE or install a CA key."
            )

        return self.key_path.read_text()

    async def store_ca_private_key(self, private_key_pem: str) -> None:
        """Store CA private key."""
        self.key_path.write_text(private_key_pem)

        try:
            self.key_path.chmod(0o600)
        except OSError as e:
            logger.warning(f"Could not set file permissions: {e}")

        logger.info("Stored CA private key")

    async def get_ca_certificate(self) -> str:
        """Retrieve CA certificate."""
        if not self.cert_path.exists():
            raise LookupError(
                f"CA certificate not found at {self.cert_path}. "
                "Enable CA_AUTO_GENERATE or install a CA certificate."
            )

        return self.cert_path.read_text()

    async def store_ca_certificate(self, certificate_pem: str) -> None:
        """Store CA certificate."""
        self.cert_path.write_text(certificate_pem)

        logger.info("Stored CA certificate")

    async def has_ca_credentials(self) -> bool:
        return self.key_path.exists() and self.cert_path.exists()
