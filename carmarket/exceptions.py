"""
Custom exception classes for the car marketplace backend.

Services raise these; the application error handler turns them into a JSON
envelope ``{"error": {"kind": ..., "message": ...}}`` with the matching HTTP
status, so controllers never have to catch them.
"""


class MarketError(Exception):
    """Base class for every expected, user-facing failure."""

    kind = "Error"
    status = 400

    def __init__(self, message: str = "Error: request failed") -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class UnauthenticatedError(MarketError):
    """Raised when a protected operation is called without an identity."""

    kind = "Unauthenticated"
    status = 401

    def __init__(self, message: str = "Error: authentication required") -> None:
        super().__init__(message)


class InvalidInputError(MarketError):
    """Raised for malformed dates, phone numbers or missing required fields."""

    kind = "InvalidInput"
    status = 400

    def __init__(self, message: str = "Error: invalid input") -> None:
        super().__init__(message)


class InvalidDateRangeError(InvalidInputError):
    """Raised when start date is after end date or a date cannot be parsed."""

    def __init__(self, message: str = "Error: invalid rental dates") -> None:
        super().__init__(message)


class NotFoundError(MarketError):
    """Raised when an identifier does not resolve to a record."""

    kind = "NotFound"
    status = 404

    def __init__(self, message: str = "Error: not found") -> None:
        super().__init__(message)


class CarNotFoundError(NotFoundError):
    def __init__(self, message: str = "Error: car not found") -> None:
        super().__init__(message)


class RentalNotFoundError(NotFoundError):
    def __init__(self, message: str = "Error: rental not found") -> None:
        super().__init__(message)


class SaleNotFoundError(NotFoundError):
    def __init__(self, message: str = "Error: sale not found") -> None:
        super().__init__(message)


class ApprovalNotFoundError(NotFoundError):
    def __init__(self, message: str = "Error: approval request not found") -> None:
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "Error: user not found") -> None:
        super().__init__(message)


class ForbiddenError(MarketError):
    """Raised when the caller's role or ownership does not allow the action."""

    kind = "Forbidden"
    status = 403

    def __init__(self, message: str = "Error: not allowed") -> None:
        super().__init__(message)


class ConflictError(MarketError):
    """Raised when an availability or approval invariant would be violated."""

    kind = "Conflict"
    status = 409

    def __init__(self, message: str = "Error: conflicting request") -> None:
        super().__init__(message)


class InvalidStateError(MarketError):
    """Raised when a record is not in a state that permits the action."""

    kind = "InvalidState"
    status = 422

    def __init__(self, message: str = "Error: action not allowed in current state") -> None:
        super().__init__(message)
