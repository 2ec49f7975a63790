"""
Booking error taxonomy.

Every failure the engine surfaces to a caller is one of these classes; the
HTTP layer renders them with `to_dict()` and the matching `status_code`.
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all booking engine errors."""

    status_code: int = 400
    code: str = "BOOKING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return {"error": payload}


class NotFoundError(BookingError):
    """Referenced interval, request or reservation does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(BookingError):
    """Operation attempted outside the entity's legal source state."""

    status_code = 409
    code = "INVALID_STATE"


class TooLateError(BookingError):
    """Cancellation attempted on or after the cutoff date."""

    status_code = 400
    code = "TOO_LATE_TO_CANCEL"


class ConflictError(BookingError):
    """Concurrent modification on an accommodation's calendar, retries exhausted."""

    status_code = 409
    code = "CONFLICT"


class OverlapError(BookingError):
    """A host-defined interval would overlap an existing one."""

    status_code = 409
    code = "INTERVAL_OVERLAP"


class NotificationError(BookingError):
    """A change event could not be handed to the publisher."""

    status_code = 500
    code = "NOTIFICATION_FAILED"


class PolicyLookupError(BookingError):
    """The accommodation service could not answer a lookup."""

    status_code = 502
    code = "ACCOMMODATION_SERVICE_UNAVAILABLE"
