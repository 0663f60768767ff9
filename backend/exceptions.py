# lesson-booking-backend/exceptions.py
"""
Domain errors raised by the booking core.

Each error carries the HTTP status the transport layer should answer
with, so the API only needs one exception handler for the whole family.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class BookingError(Exception):
    """Base class for all booking core errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationError(BookingError):
    """Malformed input: bad date, bad duration, missing field."""

    status_code = HTTP_422_UNPROCESSABLE


class InvalidDuration(ValidationError):
    def __init__(self, duration: Any, allowed) -> None:
        super().__init__(
            f"Duration must be one of {sorted(allowed)} minutes",
            details={"duration": duration, "allowed": sorted(allowed)},
        )


class PastDateError(ValidationError):
    def __init__(self, slot_date) -> None:
        super().__init__(
            "Slot date must not be in the past",
            details={"date": slot_date.isoformat()},
        )


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None) -> None:
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = identifier
        super().__init__(f"{resource} not found", details=details)


class ConflictError(BookingError):
    """The request is well formed but clashes with the current booking state."""

    status_code = HTTP_422_UNPROCESSABLE


class OverlapError(ConflictError):
    def __init__(self, conflicting_slot_id: Optional[int] = None) -> None:
        details = {}
        if conflicting_slot_id is not None:
            details["conflicting_slot_id"] = conflicting_slot_id
        super().__init__("This time range is already registered", details=details)


class HasReservationError(ConflictError):
    def __init__(self, slot_id: int) -> None:
        super().__init__(
            "This slot has a reservation and cannot be changed or deleted",
            details={"slot_id": slot_id},
        )


class SlotUnavailableError(ConflictError):
    def __init__(self, slot_id: int) -> None:
        super().__init__("This slot is no longer available", details={"slot_id": slot_id})


class ServiceError(BookingError):
    """Unexpected persistence failure; the unit of work has already rolled back."""


class LockTimeoutError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, key: str) -> None:
        super().__init__("The resource is busy, please retry", details={"lock": key})
