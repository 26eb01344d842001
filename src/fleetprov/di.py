"""
Dependency injection container for fleetprov backend.

This module provides centralized dependency injection using FastAPI's Depends
with typing.Annotated for clean type hints throughout the application.

Repositories are process-wide singletons (cached) so that every request sees
the same identity store; services are cheap and built per request.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from fleetprov.config import Settings, get_settings
from fleetprov.infrastructure import InfrastructureFactory
from fleetprov.infrastructure.repositories import (
    CertificateRepository,
    IdentityStore,
    SecretsRepository,
)
from fleetprov.services.certificate_authority import CertificateAuthority
from fleetprov.services.device_registry import DeviceRegistry
from fleetprov.services.enrollment import EnrollmentTokenManager
from fleetprov.services.facade import ProvisioningFacade

# ============================================================================
# Settings Dependencies
# ============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings)]
"""Injected Settings instance (cached via lru_cache)."""


# ============================================================================
# Infrastructure Dependencies
# ============================================================================


def get_infrastructure_factory(
    settings: SettingsDep,
) -> InfrastructureFactory:
    """
    Get infrastructure factory from settings.

    Args:
        settings: Application settings (injected)

    Returns:
        Configured infrastructure factory
    """
    return InfrastructureFactory.from_settings(settings)


InfrastructureFactoryDep = Annotated[
    InfrastructureFactory, Depends(get_infrastructure_factory)
]
"""Injected InfrastructureFactory instance."""


@lru_cache
def get_identity_store() -> IdentityStore:
    """Process-wide identity store for the configured provider."""
    return InfrastructureFactory.from_settings(get_settings()).get_identity_store()


@lru_cache
def get_secrets_repository() -> SecretsRepository:
    """Process-wide CA secrets repository."""
    return InfrastructureFactory.from_settings(get_settings()).get_secrets_repository()


@lru_cache
def get_certificate_repository() -> CertificateRepository:
    """Process-wide issued-certificate registry."""
    return InfrastructureFactory.from_settings(
        get_settings()
    ).get_certificate_repository()


def reset_dependency_cache() -> None:
    """Drop cached repositories (tests, settings reload)."""
    get_identity_store.cache_clear()
    get_secrets_repository.cache_clear()
    get_certificate_repository.cache_clear()


IdentityStoreDep = Annotated[IdentityStore, Depends(get_identity_store)]
SecretsRepositoryDep = Annotated[SecretsRepository, Depends(get_secrets_repository)]
CertificateRepositoryDep = Annotated[
    CertificateRepository, Depends(get_certificate_repository)
]


# ============================================================================
# Service Dependencies
# ============================================================================


def get_certificate_authority(
    secrets_repo: SecretsRepositoryDep,
    cert_repo: CertificateRepositoryDep,
    settings: SettingsDep,
) -> CertificateAuthority:
    """
    Get Certificate Authority service.

    Args:
        secrets_repo: CA key and certificate storage (injected)
        cert_repo: Issued certificate registry (injected)
        settings: Application settings (injected)

    Returns:
        Certificate Authority service
    """
    return CertificateAuthority(secrets_repo, cert_repo, settings)


CertificateAuthorityDep = Annotated[
    CertificateAuthority, Depends(get_certificate_authority)
]
"""Injected CertificateAuthority service."""


def get_token_manager(
    store: IdentityStoreDep,
    ca: CertificateAuthorityDep,
    settings: SettingsDep,
) -> EnrollmentTokenManager:
    return EnrollmentTokenManager(store, ca, settings)


def get_device_registry(
    store: IdentityStoreDep,
    settings: SettingsDep,
) -> DeviceRegistry:
    return DeviceRegistry(store, settings)


def get_provisioning_facade(
    tokens: Annotated[EnrollmentTokenManager, Depends(get_token_manager)],
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
    ca: CertificateAuthorityDep,
) -> ProvisioningFacade:
    """
    Get the provisioning façade.

    Returns:
        ProvisioningFacade composing token manager, registry and CA
    """
    return ProvisioningFacade(tokens, registry, ca)


ProvisioningFacadeDep = Annotated[ProvisioningFacade, Depends(get_provisioning_facade)]
"""Injected ProvisioningFacade."""


# ============================================================================
# Caller Identity
# ============================================================================


def get_owner_id(
    x_account_id: Annotated[str | None, Header()] = None,
) -> str:
    """
    Owner identity set by the authentication layer in front of this service.

    Raises:
        HTTPException: 401 if the X-Account-ID header is missing
    """
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Account-ID header",
        )
    return x_account_id.strip()


OwnerIdDep = Annotated[str, Depends(get_owner_id)]
"""Authenticated owner (account) id."""
