"""Local file-based infrastructure implementations for development."""

from fleetprov.infrastructure.implementations.local.certificate_repository import (
    LocalCertificateRepository,
)
from fleetprov.infrastructure.implementations.local.identity_store import (
    LocalIdentityStore,
)
from fleetprov.infrastructure.implementations.local.secrets_repository import (
    LocalSecretsRepository,
)

__all__ = [
    "LocalCertificateRepository",
    "LocalIdentityStore",
    "LocalSecretsRepository",
]
