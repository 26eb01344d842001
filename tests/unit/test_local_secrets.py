"""Tests for local secrets repository implementation."""

import pytest

from fleetprov.infrastructure.implementations.local.secrets_repository import (
    LocalSecretsRepository,
)


@pytest.fixture
def secrets_repo(tmp_path):
    """Create a local secrets repository instance."""
    return LocalSecretsRepository(base_dir=str(tmp_path / "secrets"))


@pytest.mark.asyncio
async def test_store_and_retrieve_ca_material(secrets_repo):
    """Test storing and retrieving the CA key and certificate."""
    await secrets_repo.store_ca_private_key("KEY PEM")
    await secrets_repo.store_ca_certificate("CERT PEM")

    assert await secrets_repo.get_ca_private_key() == "KEY PEM"
    assert await secrets_repo.get_ca_certificate() == "CERT PEM"
    assert await secrets_repo.has_ca_credentials() is True


@pytest.mark.asyncio
async def test_missing_ca_private_key(secrets_repo):
    """Test a missing CA key raises LookupError."""
    with pytest.raises(LookupError, match="CA private key not found"):
        await secrets_repo.get_ca_private_key()


@pytest.mark.asyncio
async def test_missing_ca_certificate(secrets_repo):
    """Test a missing CA certificate raises LookupError."""
    with pytest.raises(LookupError, match="CA certificate not found"):
        await secrets_repo.get_ca_certificate()


@pytest.mark.asyncio
async def test_has_ca_credentials_requires_both(secrets_repo):
    """Test a key without a certificate is not a usable CA."""
    await secrets_repo.store_ca_private_key("KEY PEM")

    assert await secrets_repo.has_ca_credentials() is False


@pytest.mark.asyncio
async def test_private_key_permissions(secrets_repo):
    """Test the CA key is only readable by its owner."""
    await secrets_repo.store_ca_private_key("KEY PEM")

    assert secrets_repo.key_path.stat().st_mode & 0o077 == 0
