"""
Booking error taxonomy.

Every error carries a human message, a stable ``code`` and optional
``details``; ``status_code`` is what the HTTP layer answers with.
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code, "details": self.details}


class NotFound(BookingError):
    """Booking absent, or owned by someone else."""

    status_code = 404


class InvalidState(BookingError):
    """Transition not allowed from the booking's current status."""

    status_code = 409


class ValidationError(BookingError):
    status_code = 400


class DependencyFailure(BookingError):
    """The store failed; the unit of work was rolled back."""

    status_code = 503


class NotificationFailure(BookingError):
    # Recorded on the outcome, never raised to the caller
    status_code = 502
