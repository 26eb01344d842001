"""Abstract repository interfaces for infrastructure operations."""

from fleetprov.infrastructure.repositories.certificate_repository import (
    CertificateRepository,
    IssuedCertificate,
)
from fleetprov.infrastructure.repositories.identity_store import (
    CreateToken,
    FulfillToken,
    IdentityStore,
    PutAccount,
    PutDevice,
    RemoveDevice,
    WriteOperation,
)
from fleetprov.infrastructure.repositories.secrets_repository import SecretsRepository

__all__ = [
    "CertificateRepository",
    "IssuedCertificate",
    "IdentityStore",
    "CreateToken",
    "FulfillToken",
    "PutAccount",
    "PutDevice",
    "RemoveDevice",
    "WriteOperation",
    "SecretsRepository",
]
