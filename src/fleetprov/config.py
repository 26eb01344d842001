"""
Application configuration and environment variables.

This module unifies configuration using pydantic-settings.
Variables can come from:
1. .env file
2. System environment variables (have priority)
3. Default values

Naming convention:
- In Python code: snake_case (ca_signing_timeout_seconds)
- In .env or ENV vars: UPPER_CASE (CA_SIGNING_TIMEOUT_SECONDS)
- Pydantic automatically converts between both
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Unified application configuration.

    All variables can be defined in:
    - .env file: VARIABLE_NAME=value
    - Environment variables: export VARIABLE_NAME=value

    Example:
        # In .env or as environment variable:
        INFRASTRUCTURE_PROVIDER=local
        GATEWAY_DELETE_POLICY=reject
        LOG_LEVEL=INFO
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allows using uppercase or lowercase
        extra="ignore",  # Ignores extra variables in .env
    )

    # ============================================================================
    # PROJECT SETTINGS
    # ============================================================================
    project_name: str = Field(
        default="Fleet Provisioning Backend", description="Project name"
    )
    project_description: str = Field(
        default="Device enrollment, certificate issuance and device registry",
        description="Project description",
    )

    # ============================================================================
    # SERVER SETTINGS
    # ============================================================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    enable_docs: bool = Field(
        default=False, description="Enable API documentation (Swagger/ReDoc)"
    )

    # ============================================================================
    # LOGGING SETTINGS
    # ============================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | trace_id={extra[trace_id]} account={extra[account_id]} | {name}:{function}:{line} - {message}",  # noqa: E501
        description="Log format",
    )
    logger_enqueue: bool = Field(
        default=False, description="Enqueue logs using multiprocessing"
    )

    # ============================================================================
    # CORS SETTINGS
    # ============================================================================
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Allowed origins for CORS (comma-separated)",
    )
    cors_allowed_methods: str = Field(
        default="GET,POST,PUT,DELETE,OPTIONS",
        description="Allowed HTTP methods for CORS",
    )
    cors_allowed_headers: str = Field(
        default="Content-Type,Authorization,X-Account-ID",
        description="Allowed headers for CORS",
    )

    # ============================================================================
    # INFRASTRUCTURE SETTINGS (identity store, CA secrets, issued certificates)
    # ============================================================================
    infrastructure_provider: Literal["memory", "local", "aws"] = Field(
        default="local",
        description="Infrastructure provider (memory, local, aws)",
    )
    infrastructure_base_dir: str = Field(
        default="./.credentials",
        description="Base directory for local infrastructure storage (store, CA keys, certificates)",
    )

    # AWS Infrastructure Configuration
    aws_region: str = Field(default="eu-west-1", description="AWS region")
    aws_table_prefix: str = Field(
        default="fleetprov",
        description="Prefix for DynamoDB tables (tokens, devices, accounts, certificates)",
    )
    aws_secrets_prefix: str = Field(
        default="fleetprov",
        description="Prefix for secrets in AWS Secrets Manager",
    )
    auto_create_resources: bool = Field(
        default=False,
        description="Auto-create AWS resources (DynamoDB tables) if missing",
    )

    # ============================================================================
    # CERTIFICATE AUTHORITY SETTINGS
    # ============================================================================
    ca_auto_generate: bool = Field(
        default=False,
        description="Generate a self-signed root CA on startup when none is stored (development only)",
    )
    ca_common_name: str = Field(
        default="Fleet Provisioning Root CA", description="Root CA common name"
    )
    ca_validity_days: int = Field(
        default=3650, description="Validity of an auto-generated root CA"
    )
    ca_key_size: int = Field(
        default=4096, description="RSA key size of an auto-generated root CA"
    )
    certificate_country: str = Field(default="US", description="Device cert C")
    certificate_state: str = Field(default="State", description="Device cert ST")
    certificate_locality: str = Field(default="City", description="Device cert L")
    certificate_organization: str = Field(
        default="Organization", description="Device cert O"
    )
    certificate_organizational_unit: str = Field(
        default="OrgUnit", description="Device cert OU"
    )
    certificate_validity_days: int = Field(
        default=365, description="Validity of issued device certificates"
    )
    device_key_size: int = Field(
        default=2048, description="RSA key size for generated device keys"
    )
    ca_signing_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single certificate signing operation",
    )

    # ============================================================================
    # ENROLLMENT & REGISTRY SETTINGS
    # ============================================================================
    token_retention_days: int = Field(
        default=30,
        description="Days an expired enrollment token is kept before purge",
    )
    gateway_delete_policy: Literal["reject", "cascade"] = Field(
        default="reject",
        description="Deleting a gateway with children: reject, or cascade-delete the children",
    )
    store_max_retries: int = Field(
        default=3,
        description="Re-validation attempts after an optimistic concurrency conflict",
    )

    # ============================================================================
    # HELPER METHODS
    # ============================================================================

    def get_allowed_origins(self) -> list[str]:
        """
        Get list of allowed origins for CORS.

        Returns:
            list[str]: List of allowed origin URLs.
        """
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    def get_cors_allowed_methods(self) -> list[str]:
        """
        Get list of allowed HTTP methods for CORS.

        Returns:
            list[str]: List of allowed HTTP methods. Returns ["*"] if all methods are allowed.
        """
        if self.cors_allowed_methods == "*":
            return ["*"]
        return [method.strip() for method in self.cors_allowed_methods.split(",")]

    def get_cors_allowed_headers(self) -> list[str]:
        """
        Get list of allowed headers for CORS.

        Returns:
            list[str]: List of allowed headers. Returns ["*"] if all headers are allowed.
        """
        if self.cors_allowed_headers == "*":
            return ["*"]
        return [header.strip() for header in self.cors_allowed_headers.split(",")]


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings (LRU cached).

    This function is cached, so the .env file is only read once.
    To refresh the configuration, clear the cache:
        get_settings.cache_clear()

    Returns:
        Settings: Application configuration instance.
    """
    return Settings()


# Global instance for use outside FastAPI
settings = get_settings()
