"""
Domain error taxonomy.

Every failure surfaced by the enrollment and registry services is one of
these exceptions. Each kind has a stable identifier (``kind``) and the HTTP
status the API layer renders it with, so callers always receive a distinct
error kind and a human-readable message.
"""


class ProvisioningError(Exception):
    """
    Base class for enrollment and registry failures.

    Attributes:
        kind: Stable machine-readable error kind
        status_code: HTTP status used by the API layer
        title: Short human-readable summary of the error kind
        message: Human-readable explanation of this occurrence
    """

    kind: str = "provisioning_error"
    status_code: int = 500
    title: str = "Provisioning Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(ProvisioningError):
    """Malformed or missing caller-supplied fields."""

    kind = "invalid_input"
    status_code = 400
    title = "Invalid Input"


class NotFoundError(ProvisioningError):
    """Referenced token, device or owner does not exist."""

    kind = "not_found"
    status_code = 404
    title = "Not Found"


class ConflictError(ProvisioningError):
    """Duplicate unique key (device uuid, token id)."""

    kind = "conflict"
    status_code = 409
    title = "Conflict"


class TransactionConflictError(ConflictError):
    """A record changed between read and commit (optimistic lock lost)."""

    kind = "conflict"


class ExpiredError(ProvisioningError):
    """Enrollment token is past its expiry instant."""

    kind = "expired"
    status_code = 410
    title = "Token Expired"


class AlreadyFulfilledError(ProvisioningError):
    """Enrollment token has already been exchanged for a certificate."""

    kind = "already_fulfilled"
    status_code = 409
    title = "Token Already Fulfilled"


class InvalidStateError(ProvisioningError):
    """Operation would violate a device hierarchy invariant."""

    kind = "invalid_state"
    status_code = 400
    title = "Invalid State"


class CAFailureError(ProvisioningError):
    """Certificate signing failed or timed out."""

    kind = "ca_failure"
    status_code = 502
    title = "Certificate Authority Failure"


class StoreFailureError(ProvisioningError):
    """Identity store unavailable or transaction aborted."""

    kind = "store_failure"
    status_code = 503
    title = "Store Failure"


__all__ = [
    "ProvisioningError",
    "InvalidInputError",
    "NotFoundError",
    "ConflictError",
    "TransactionConflictError",
    "ExpiredError",
    "AlreadyFulfilledError",
    "InvalidStateError",
    "CAFailureError",
    "StoreFailureError",
]
