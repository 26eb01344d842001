"""
AWS Secrets Manager implementation for secrets storage.

This module provides secure storage of the CA material using AWS Secrets
Manager. Secrets are encrypted at rest using AWS KMS.
"""

import boto3
from botocore.exceptions import ClientError

from fleetprov.core.logging import logger
from fleetprov.infrastructure.repositories.secrets_repository import (
    SecretsRepository,
)

CA_PRIVATE_KEY_SECRET = "ca-private-key"
CA_CERTIFICATE_SECRET = "ca-certificate"


class AWSSecretsRepository(SecretsRepository):
    """AWS Secrets Manager implementation of SecretsRepository.

    Environment Variables:
    - AWS_REGION: AWS region
    - AWS_ACCESS_KEY_ID: AWS access key (optional if using IAM role)
    - AWS_SECRET_ACCESS_KEY: AWS secret key (optional if using IAM role)
    """

    def __init__(
        self,
        region_name: str = "eu-west-1",
        prefix: str = "fleetprov",
    ):
        """Initialize AWS Secrets Manager client.

        Args:
            region_name: AWS region for Secrets Manager
            prefix: Prefix for all secret names (e.g., "fleetprov/dev")
        """
        self.region_name = region_name
        self.prefix = prefix
        self.client = boto3.client("secretsmanager", region_name=region_name)

        logger.info(
            f"Initialized AWSSecretsRepository with region={region_name}, prefix={prefix}"
        )

    def _get_secret_name(self, key: str) -> str:
        """Generate full secret name with prefix."""
        return f"{self.prefix}/{key}"

    async def _store_secret(self, key: str, value: str) -> None:
        secret_name = self._get_secret_name(key)

        try:
            self.client.create_secret(
                Name=secret_name,
                SecretString=value,
                Description=f"Fleet provisioning secret: {key}",
            )
            logger.info(f"Created secret: {secret_name}")

        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceExistsException":
                self.client.put_secret_value(
                    SecretId=secret_name,
                    SecretString=value,
                )
                logger.info(f"Updated secret: {secret_name}")
            else:
                logger.error(f"Failed to store secret {secret_name}: {e}")
                raise

    async def _get_secret(self, key: str) -> str | None:
        secret_name = self._get_secret_name(key)

        try:
            response = self.client.get_secret_value(SecretId=secret_name)
            logger.debug(f"Retrieved secret: {secret_name}")
            return response["SecretString"]

        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                logger.debug(f"Secret not found: {secret_name}")
                return None
            logger.error(f"Failed to get secret {secret_name}: {e}")
            raise

    async def get_ca_private_key(self) -> str:
        key = await self._get_secret(CA_PRIVATE_KEY_SECRET)
        if key is None:
            raise LookupError("CA private key not found in secrets storage")
        return key

    async def store_ca_private_key(self, private_key_pem: str) -> None:
        await self._store_secret(CA_PRIVATE_KEY_SECRET, private_key_pem)
        logger.info("CA private key stored successfully")

    async def get_ca_certificate(self) -> str:
        cert = await self._get_secret(CA_CERTIFICATE_SECRET)
        if cert is None:
            raise LookupError("CA certificate not found in secrets storage")
        return cert

    async def store_ca_certificate(self, certificate_pem: str) -> None:
        await self._store_secret(CA_CERTIFICATE_SECRET, certificate_pem)
        logger.info("CA certificate stored successfully")

    async def has_ca_credentials(self) -> bool:
        return (
            await self._get_secret(CA_PRIVATE_KEY_SECRET) is not None
            and await self._get_secret(CA_CERTIFICATE_SECRET) is not None
        )
