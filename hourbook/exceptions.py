"""Domain exceptions raised by the timer and invoice services."""


class HourbookError(Exception):
    """Base class for service-level errors."""


class NotFoundError(HourbookError, LookupError):
    """Raised when a referenced entry, invoice or catalog record does not exist."""


class InvariantViolationError(HourbookError):
    """Raised when an operation would break a data invariant (e.g. mixed clients on one invoice)."""


class InvalidInputError(HourbookError, ValueError):
    """Raised for malformed input, before any repository call is made."""
