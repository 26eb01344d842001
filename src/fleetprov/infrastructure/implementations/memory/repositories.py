"""In-memory CA secrets and issued-certificate repositories."""

from dataclasses import replace

from fleetprov.infrastructure.repositories.certificate_repository import (
    CertificateRepository,
    IssuedCertificate,
)
from fleetprov.infrastructure.repositories.secrets_repository import SecretsRepository


class InMemorySecretsRepository(SecretsRepository):
    def __init__(self) -> None:
        self._private_key: str | None = None
        self._certificate: str | None = None

    async def get_ca_private_key(self) -> str:
        if self._private_key is None:
            raise LookupError("CA private key not found in memory")
        return self._private_key

    async def store_ca_private_key(self, private_key_pem: str) -> None:
        self._private_key = private_key_pem

    async def get_ca_certificate(self) -> str:
        if self._certificate is None:
            raise LookupError("CA certificate not found in memory")
        return self._certificate

    async def store_ca_certificate(self, certificate_pem: str) -> None:
        self._certificate = certificate_pem

    async def has_ca_credentials(self) -> bool:
        return self._private_key is not None and self._certificate is not None


class InMemoryCertificateRepository(CertificateRepository):
    def __init__(self) -> None:
        self._certificates: dict[str, IssuedCertificate] = {}

    async def save_certificate(self, certificate: IssuedCertificate) -> None:
        self._certificates[certificate.serial] = replace(certificate)

    async def get_certificate(self, serial: str) -> IssuedCertificate | None:
        certificate = self._certificates.get(serial)
        return replace(certificate) if certificate else None

    async def revoke_certificate(self, serial: str) -> bool:
        certificate = self._certificates.get(serial)
        if certificate is None:
            return False
        certificate.revoked = True
        return True

    async def list_all_certificates(self) -> list[IssuedCertificate]:
        return [replace(certificate) for certificate in self._certificates.values()]
