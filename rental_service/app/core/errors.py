"""Domain errors for the rental lifecycle and clearance workflow.

Synchronous commands raise these directly; ``rental_service.app.main`` maps
each ``ErrorCode`` onto an HTTP status for ``shared.exception_handler``.
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    RENTAL_NOT_FOUND = "RENTAL_NOT_FOUND"
    CLEARANCE_NOT_FOUND = "CLEARANCE_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    STAGE_CONFLICT = "STAGE_CONFLICT"
    DATA_INTEGRITY = "DATA_INTEGRITY"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"


class RentalDomainError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.PRECONDITION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class RentalNotFoundError(RentalDomainError):
    code = ErrorCode.RENTAL_NOT_FOUND

    def __init__(self, rental_id) -> None:
        super().__init__("Rental not found")
        self.rental_id = rental_id


class ClearanceNotFoundError(RentalDomainError):
    code = ErrorCode.CLEARANCE_NOT_FOUND

    def __init__(self, ref) -> None:
        super().__init__("Clearance not found")
        self.ref = ref


class PaymentNotFoundError(RentalDomainError):
    code = ErrorCode.PAYMENT_NOT_FOUND

    def __init__(self, ref) -> None:
        super().__init__("Payment not found")
        self.ref = ref


class AuthorizationError(RentalDomainError):
    """Caller profile is not allowed to perform the action."""

    code = ErrorCode.UNAUTHORIZED


class PreconditionError(RentalDomainError):
    """A command was issued before the state it depends on exists."""

    code = ErrorCode.PRECONDITION_FAILED


class StageConflictError(PreconditionError):
    """The clearance was not in the stage the transition starts from."""

    code = ErrorCode.STAGE_CONFLICT

    def __init__(self, expected: str, actual: str | None) -> None:
        super().__init__(
            f"Clearance must be in stage '{expected}' (current: '{actual}')")
        self.expected = expected
        self.actual = actual


class DataIntegrityError(RentalDomainError):
    """Stored data cannot support the computation (missing product, rate...)."""

    code = ErrorCode.DATA_INTEGRITY


class ExternalServiceError(RentalDomainError):
    code = ErrorCode.EXTERNAL_SERVICE
