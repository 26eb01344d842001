"""
Domain layer - records, errors and collaborator contracts.

This package contains:
- Models: enrollment tokens, devices, accounts, signed certificates
- Errors: the provisioning error taxonomy
- Services: abstract interfaces for external collaborators
"""
