"""Tests for infrastructure factory."""

from unittest.mock import patch

import pytest

from fleetprov.config import Settings, get_settings
from fleetprov.infrastructure import InfrastructureFactory
from fleetprov.infrastructure.implementations.local import (
    LocalCertificateRepository,
    LocalIdentityStore,
    LocalSecretsRepository,
)
from fleetprov.infrastructure.implementations.memory import (
    InMemoryCertificateRepository,
    InMemoryIdentityStore,
    InMemorySecretsRepository,
)


def test_factory_creates_memory_repositories():
    """Test factory creates in-memory implementations under test settings."""
    factory = InfrastructureFactory.from_settings(get_settings())

    assert factory.provider == "memory"
    assert isinstance(factory.get_identity_store(), InMemoryIdentityStore)
    assert isinstance(factory.get_certificate_repository(), InMemoryCertificateRepository)
    assert isinstance(factory.get_secrets_repository(), InMemorySecretsRepository)


def test_factory_creates_local_repositories(tmp_path):
    """Test the local provider lays its files out under base_dir."""
    factory = InfrastructureFactory(provider="local", base_dir=str(tmp_path))

    store = factory.get_identity_store()
    cert_repo = factory.get_certificate_repository()
    secrets_repo = factory.get_secrets_repository()

    assert isinstance(store, LocalIdentityStore)
    assert isinstance(cert_repo, LocalCertificateRepository)
    assert isinstance(secrets_repo, LocalSecretsRepository)
    assert store.store_dir == tmp_path / "store"
    assert secrets_repo.secrets_dir == tmp_path / "secrets"


def test_factory_defaults_to_local():
    """Test factory uses the local provider when none is given."""
    assert InfrastructureFactory().provider == "local"


def test_factory_provider_validation():
    """Test factory rejects unknown providers."""
    with pytest.raises(ValueError, match="Unsupported provider: azure"):
        InfrastructureFactory(provider="azure")


def test_factory_from_settings_maps_config():
    """Test settings are mapped onto provider configuration."""
    settings = Settings(
        infrastructure_provider="aws",
        aws_region="us-east-1",
        aws_table_prefix="fleet-test",
        aws_secrets_prefix="fleet/test",
        auto_create_resources=True,
    )

    factory = InfrastructureFactory.from_settings(settings)

    assert factory.provider == "aws"
    assert factory.config["aws_region"] == "us-east-1"
    assert factory.config["table_prefix"] == "fleet-test"
    assert factory.config["secrets_prefix"] == "fleet/test"
    assert factory.config["auto_create_resources"] is True


def test_factory_creates_aws_repositories():
    """Test the AWS provider builds DynamoDB and Secrets Manager repositories."""
    factory = InfrastructureFactory(
        provider="aws", aws_region="us-east-1", table_prefix="fleet-test"
    )

    with (
        patch(
            "fleetprov.infrastructure.implementations.aws.AWSIdentityStore"
        ) as mock_store,
        patch(
            "fleetprov.infrastructure.implementations.aws.AWSCertificateRepository"
        ) as mock_certs,
        patch(
            "fleetprov.infrastructure.implementations.aws.AWSSecretsRepository"
        ) as mock_secrets,
    ):
        factory.get_identity_store()
        factory.get_certificate_repository()
        factory.get_secrets_repository()

    mock_store.assert_called_once_with(
        table_prefix="fleet-test", region_name="us-east-1", auto_create_tables=False
    )
    mock_certs.assert_called_once_with(
        table_name="fleet-test-certificates",
        region_name="us-east-1",
        auto_create_table=False,
    )
    mock_secrets.assert_called_once_with(region_name="us-east-1", prefix="fleetprov")
