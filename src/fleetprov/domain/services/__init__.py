"""
Domain services - contracts for external collaborators.

Contains the abstract Certificate Authority gateway used by enrollment.
"""

from fleetprov.domain.services.certificate_authority import (
    CertificateAuthorityGateway,
)

__all__ = ["CertificateAuthorityGateway"]
