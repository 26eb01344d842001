"""
API v1 endpoints.

Route prefix constants for consistent API versioning.
"""

# Base API prefix
API_V1_PREFIX: str = "/api"

# Module-specific prefixes
TOKEN_PREFIX: str = f"{API_V1_PREFIX}/token"
CERT_PREFIX: str = f"{API_V1_PREFIX}/cert"
DEVICES_PREFIX: str = f"{API_V1_PREFIX}/devices"

__all__ = [
    "API_V1_PREFIX",
    "TOKEN_PREFIX",
    "CERT_PREFIX",
    "DEVICES_PREFIX",
]
