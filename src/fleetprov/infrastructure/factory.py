"""
Infrastructure factory for provider selection.

Selects appropriate repository implementations based on configuration:
- memory: Process-local dictionaries (tests, throwaway runs)
- local: File-based storage for development
- aws: DynamoDB, Secrets Manager

Usage:
    from fleetprov.infrastructure import InfrastructureFactory
    from fleetprov.config import get_settings

    # Option 1: From settings
    settings = get_settings()
    factory = InfrastructureFactory.from_settings(settings)

    # Option 2: Manual configuration
    factory = InfrastructureFactory(provider="local", base_dir="/tmp/fleet")

    # Get repositories
    store = factory.get_identity_store()
    cert_repo = factory.get_certificate_repository()
    secrets_repo = factory.get_secrets_repository()
"""

from pathlib import Path
from typing import TYPE_CHECKING, Literal

from loguru import logger

from fleetprov.infrastructure.repositories import (
    CertificateRepository,
    IdentityStore,
    SecretsRepository,
)

if TYPE_CHECKING:
    from fleetprov.config import Settings

InfrastructureProvider = Literal["memory", "local", "aws"]

DEFAULT_BASE_DIR = "./.local_infrastructure"
DEFAULT_REGION = "eu-west-1"
DEFAULT_PREFIX = "fleetprov"


class InfrastructureFactory:
    """
    Factory for creating infrastructure repository instances.

    Every ``get_*`` call builds a new instance; callers that need a shared
    instance (the DI layer) cache it themselves.
    """

    def __init__(self, provider: InfrastructureProvider | None = None, **config):
        """
        Initialize infrastructure factory.

        Args:
            provider: Infrastructure provider ("memory", "local", "aws").
                     If None, uses "local" as default.
            **config: Provider-specific configuration options
                     (base_dir, aws_region, table_prefix, secrets_prefix,
                     auto_create_resources)

        Raises:
            ValueError: If provider is not supported
        """
        if provider is None:
            provider = "local"

        if provider not in ("memory", "local", "aws"):
            raise ValueError(f"Unsupported provider: {provider}")

        self.provider = provider
        self.config = config

        logger.info(f"Initialized InfrastructureFactory with provider: {provider}")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "InfrastructureFactory":
        """
        Create factory from Settings object.

        Args:
            settings: Application settings from config.py

        Returns:
            InfrastructureFactory configured from settings
        """
        config = {
            "base_dir": settings.infrastructure_base_dir,
            "aws_region": settings.aws_region,
            "table_prefix": settings.aws_table_prefix,
            "secrets_prefix": settings.aws_secrets_prefix,
            "auto_create_resources": settings.auto_create_resources,
        }

        return cls(provider=settings.infrastructure_provider, **config)

    @property
    def base_dir(self) -> Path:
        return Path(self.config.get("base_dir", DEFAULT_BASE_DIR))

    def get_identity_store(self) -> IdentityStore:
        """
        Get identity store for configured provider.

        Returns:
            IdentityStore implementation
        """
        if self.provider == "memory":
            from fleetprov.infrastructure.implementations.memory import (
                InMemoryIdentityStore,
            )

            return InMemoryIdentityStore()

        if self.provider == "local":
            from fleetprov.infrastructure.implementations.local import (
                LocalIdentityStore,
            )

            return LocalIdentityStore(base_dir=str(self.base_dir))

        from fleetprov.infrastructure.implementations.aws import AWSIdentityStore

        return AWSIdentityStore(
            table_prefix=self.config.get("table_prefix", DEFAULT_PREFIX),
            region_name=self.config.get("aws_region", DEFAULT_REGION),
            auto_create_tables=self.config.get("auto_create_resources", False),
        )

    def get_certificate_repository(self) -> CertificateRepository:
        """
        Get issued-certificate repository for configured provider.

        Returns:
            CertificateRepository implementation
        """
        if self.provider == "memory":
            from fleetprov.infrastructure.implementations.memory import (
                InMemoryCertificateRepository,
            )

            return InMemoryCertificateRepository()

        if self.provider == "local":
            from fleetprov.infrastructure.implementations.local import (
                LocalCertificateRepository,
            )

            return LocalCertificateRepository(base_dir=str(self.base_dir))

        from fleetprov.infrastructure.implementations.aws import (
            AWSCertificateRepository,
        )

        prefix = self.config.get("table_prefix", DEFAULT_PREFIX)
        return AWSCertificateRepository(
            table_name=f"{prefix}-certificates",
            region_name=self.config.get("aws_region", DEFAULT_REGION),
            auto_create_table=self.config.get("auto_create_resources", False),
        )

    def get_secrets_repository(self) -> SecretsRepository:
        """
        Get CA secrets repository for configured provider.

        Returns:
            SecretsRepository implementation
        """
        if self.provider == "memory":
            from fleetprov.infrastructure.implementations.memory import (
                InMemorySecretsRepository,
            )

            return InMemorySecretsRepository()

        if self.provider == "local":
            from fleetprov.infrastructure.implementations.local import (
                LocalSecretsRepository,
            )

            return LocalSecretsRepository(base_dir=str(self.base_dir / "secrets"))

        from fleetprov.infrastructure.implementations.aws import AWSSecretsRepository

        return AWSSecretsRepository(
            region_name=self.config.get("aws_region", DEFAULT_REGION),
            prefix=self.config.get("secrets_prefix", DEFAULT_PREFIX),
        )
