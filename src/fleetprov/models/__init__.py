"""
Models package.

Contains shared Pydantic models used across multiple modules.
Module-specific models are located in their respective module directories.
"""

# Import error models (RFC 7807)
from fleetprov.models.errors import ProblemDetail, ValidationErrorDetail

__all__ = [
    "ProblemDetail",
    "ValidationErrorDetail",
]
