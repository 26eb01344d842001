"""AWS infrastructure implementations package."""

from fleetprov.infrastructure.implementations.aws.certificate_repository import (
    AWSCertificateRepository,
)
from fleetprov.infrastructure.implementations.aws.identity_store import (
    AWSIdentityStore,
)
from fleetprov.infrastructure.implementations.aws.secrets_repository import (
    AWSSecretsRepository,
)

__all__ = [
    "AWSCertificateRepository",
    "AWSIdentityStore",
    "AWSSecretsRepository",
]
