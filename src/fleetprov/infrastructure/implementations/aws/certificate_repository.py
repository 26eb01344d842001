"""
AWS DynamoDB implementation for issued certificate storage using PynamoDB ORM.

This module provides the issued-certificate registry on AWS DynamoDB,
keyed by certificate serial number.
"""

from pynamodb.attributes import BooleanAttribute, UnicodeAttribute, UTCDateTimeAttribute
from pynamodb.exceptions import DoesNotExist
from pynamodb.models import Model

from fleetprov.core.logging import logger
from fleetprov.infrastructure.repositories.certificate_repository import (
    CertificateRepository,
    IssuedCertificate,
)


class CertificateModel(Model):
    """PynamoDB model for issued certificates.

    DynamoDB Table Schema:
    - Partition Key: serial_number (string)
    - Attributes: subject_id, issued_at, expires_at, certificate_pem, revoked

    Note: table_name and region are configured dynamically in AWSCertificateRepository.__init__
    """

    class Meta:
        table_name = None
        region = None

    serial_number = UnicodeAttribute(hash_key=True)
    subject_id = UnicodeAttribute()
    issued_at = UTCDateTimeAttribute()
    expires_at = UTCDateTimeAttribute()
    certificate_pem = UnicodeAttribute()
    revoked = BooleanAttribute(default=False)


class AWSCertificateRepository(CertificateRepository):
    """AWS DynamoDB implementation of CertificateRepository using PynamoDB."""

    def __init__(
        self,
        table_name: str = "fleetprov-certificates",
        region_name: str = "eu-west-1",
        auto_create_table: bool = False,
    ):
        """Initialize PynamoDB model.

        Args:
            table_name: DynamoDB table name
            region_name: AWS region
            auto_create_table: If True, create table if it doesn't exist
        """
        if not table_name:
            raise ValueError("table_name cannot be empty")
        if not region_name:
            raise ValueError("region_name cannot be empty")

        CertificateModel.Meta.table_name = table_name
        CertificateModel.Meta.region = region_name

        self.table_name = table_name
        self.region_name = region_name

        if auto_create_table and not CertificateModel.exists():
            logger.info(f"Creating DynamoDB table: {table_name}")
            CertificateModel.create_table(
                read_capacity_units=5, write_capacity_units=5, wait=True
            )

        logger.info(
            f"Initialized AWSCertificateRepository (PynamoDB) with table={table_name}, region={region_name}"
        )

    async def save_certificate(self, certificate: IssuedCertificate) -> None:
        try:
            CertificateModel(
                serial_number=certificate.serial,
                subject_id=certificate.subject_id,
                issued_at=certificate.issued_at,
                expires_at=certificate.expires_at,
                certificate_pem=certificate.certificate_pem,
                revoked=certificate.revoked,
            ).save()

            logger.debug(
                f"Saved certificate: subject={certificate.subject_id}, serial={certificate.serial}"
            )

        except Exception as e:
            logger.error(f"Failed to save certificate: {e}")
            raise

    async def get_certificate(self, serial: str) -> IssuedCertificate | None:
        try:
            return self._model_to_certificate(CertificateModel.get(serial))
        except DoesNotExist:
            return None

    async def revoke_certificate(self, serial: str) -> bool:
        try:
            cert_model = CertificateModel.get(serial)
        except DoesNotExist:
            logger.warning(f"Cannot revoke unknown certificate {serial}")
            return False

        cert_model.update(actions=[CertificateModel.revoked.set(True)])
        logger.info(f"Revoked certificate: serial={serial}")
        return True

    async def list_all_certificates(self) -> list[IssuedCertificate]:
        try:
            return [
                self._model_to_certificate(cert_model)
                for cert_model in CertificateModel.scan()
            ]
        except Exception as e:
            logger.error(f"Failed to list all certificates: {e}")
            raise

    def _model_to_certificate(self, model: CertificateModel) -> IssuedCertificate:
        """Convert PynamoDB model to IssuedCertificate object."""
        return IssuedCertificate(
            serial=model.serial_number,
            subject_id=model.subject_id,
            issued_at=model.issued_at,
            expires_at=model.expires_at,
            certificate_pem=model.certificate_pem,
            revoked=model.revoked,
        )
