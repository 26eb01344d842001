"""In-memory infrastructure implementations for tests and ephemeral runs."""

from fleetprov.infrastructure.implementations.memory.identity_store import (
    InMemoryIdentityStore,
)
from fleetprov.infrastructure.implementations.memory.repositories import (
    InMemoryCertificateRepository,
    InMemorySecretsRepository,
)

__all__ = [
    "InMemoryCertificateRepository",
    "InMemoryIdentityStore",
    "InMemorySecretsRepository",
]
