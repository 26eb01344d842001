"""
Local file-based certificate repository implementation.

Stores issued certificates as JSON files in a local directory structure:
    {base_dir}/
        certificates/
            {serial}.json
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from fleetprov.infrastructure.repositories.certificate_repository import (
    CertificateRepository,
    IssuedCertificate,
)


class LocalCertificateRepository(CertificateRepository):
    """
    File-based certificate storage for local development.

    Thread-safe via file system atomic writes.
    """

    def __init__(self, base_dir: str = "./.local_infrastructure"):
        """
        Initialize local certificate repository.

        Args:
            base_dir: Base directory for certificate storage
        """
        self.base_dir = Path(base_dir)
        self.certs_dir = self.base_dir / "certificates"

        self.certs_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initialized LocalCertificateRepository at {self.base_dir}")

    def _cert_path(self, serial: str) -> Path:
        """Get path to certificate file."""
        return self.certs_dir / f"{serial}.json"

    def _cert_to_dict(self, cert: IssuedCertificate) -> dict[str, Any]:
        """Convert IssuedCertificate to JSON-serializable dict."""
        return {
            "serial": cert.serial,
            "subject_id": cert.subject_id,
            "issued_at": cert.issued_at.isoformat(),
            "expires_at": cert.expires_at.isoformat(),
            "certificate_pem": cert.certificate_pem,
            "revoked": cert.revoked,
        }

    def _dict_to_cert(self, data: dict[str, Any]) -> IssuedCertificate:
        """Convert dict to IssuedCertificate."""
        return IssuedCertificate(
            serial=data["serial"],
            subject_id=data["subject_id"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            certificate_pem=data["certificate_pem"],
            revoked=data.get("revoked", False),
        )

    async def save_certificate(self, certificate: IssuedCertificate) -> None:
        """Store certificate to file."""
        cert_path = self._cert_path(certificate.serial)
        cert_path.write_text(json.dumps(self._cert_to_dict(certificate), indent=2))

        logger.info(
            f"Saved certificate for subject {certificate.subject_id}, "
            f"serial {certificate.serial}"
        )

    async def get_certificate(self, serial: str) -> IssuedCertificate | None:
        """Retrieve certificate by serial."""
        cert_path = self._cert_path(serial)

        if not cert_path.exists():
            return None

        data = json.loads(cert_path.read_text())
        return self._dict_to_cert(data)

    async def revoke_certificate(self, serial: str) -> bool:
        """Revoke a certificate."""
        cert = await self.get_certificate(serial)

        if cert is None:
            return False

        cert.revoked = True
        await self.save_certificate(cert)

        logger.info(f"Revoked certificate {serial}")
        return True

    async def list_all_certificates(self) -> list[IssuedCertificate]:
        """List all stored certificates."""
        certificates = []

        for cert_file in self.certs_dir.glob("*.json"):
            data = json.loads(cert_file.read_text())
            certificates.append(self._dict_to_cert(data))

        return certificates
