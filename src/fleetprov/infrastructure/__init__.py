"""
Infrastructure abstraction layer for cloud-agnostic operations.

This module provides repository interfaces and implementations for:
- The identity store (enrollment tokens, devices, accounts)
- Secret storage (CA private key and certificate)
- The issued-certificate registry

Supports multiple providers via factory pattern:
- memory: Process-local dictionaries for tests
- local: File-based storage for development
- aws: DynamoDB, Secrets Manager
"""

from fleetprov.infrastructure.factory import InfrastructureFactory

__all__ = ["InfrastructureFactory"]
