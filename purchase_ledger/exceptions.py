"""
Typed exceptions for the purchase ledger.

Services raise these instead of bare ValueError so callers can
catch by type and the API layer can map each one to a stable
machine-readable code and HTTP status.

    PurchaseLedgerError
    +-- ValidationError     VALIDATION_ERROR  400
    +-- NotFoundError       NOT_FOUND         404
    +-- ForbiddenError      FORBIDDEN         403
    +-- ConflictError       CONFLICT          409
    +-- InvalidStateError   INVALID_STATE     409
"""

from typing import Any


class PurchaseLedgerError(Exception):
    """Base class for all domain errors."""

    code: str = "PURCHASE_LEDGER_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PurchaseLedgerError):
    """Malformed or missing input. ``details`` maps field -> problem."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, field: str | None = None):
        details = {field: message} if field else {}
        super().__init__(message, details)
        self.field = field


class NotFoundError(PurchaseLedgerError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with ID {resource_id} not found",
            {"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ForbiddenError(PurchaseLedgerError):
    """
    Authorization filter rejection.

    The message is fixed and carries no details so that a
    rejected caller cannot tell whether the target exists.
    """

    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class ConflictError(PurchaseLedgerError):
    """Uniqueness or referential constraint violation."""

    code = "CONFLICT"
    http_status = 409


class InvalidStateError(PurchaseLedgerError):
    """Operation not allowed in the current lifecycle state."""

    code = "INVALID_STATE"
    http_status = 409
