"""
Business errors raised by the booking engine.

Every error is an HTTPException carrying a stable machine-readable `code`
next to a message meant for direct display. Services raise them; the
exception handler in main.py renders them as {"detail": ..., "code": ...}.
"""

from typing import Optional

from fastapi import HTTPException, status


class BookingError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BOOKING_ERROR"
    default_detail: str = "Booking request could not be processed"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_detail = "Resource not found"


class TourNotFound(NotFound):
    code = "TOUR_NOT_FOUND"
    default_detail = "Tour not found"


class BookingNotFound(NotFound):
    code = "BOOKING_NOT_FOUND"
    default_detail = "Booking not found"


class Unauthorized(BookingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_detail = "You must be logged in to perform this action"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_detail = "You do not have permission to perform this action"


class CapacityExceeded(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_EXCEEDED"
    default_detail = "Not enough seats left on this tour"


class TourCancelled(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOUR_CANCELLED"
    default_detail = "This tour has been cancelled"


class TourEnded(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOUR_ENDED"
    default_detail = "This tour has already started"


class AlreadyProcessed(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_PROCESSED"
    default_detail = "This booking has already been processed"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"
    default_detail = "This action is not allowed in the booking's current state"


class AlreadyExpired(BookingError):
    status_code = status.HTTP_410_GONE
    code = "ALREADY_EXPIRED"
    default_detail = "Your reservation has expired. Please book again"


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_detail = "Invalid request"


class TourHasPendingBookings(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOUR_HAS_PENDING_BOOKINGS"
    default_detail = "Resolve all pending payments before cancelling this tour"


class TourHasActiveBookings(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOUR_HAS_ACTIVE_BOOKINGS"
    default_detail = "This tour still has active bookings"


class InvalidRedemption(BookingError):
    status_code = 422
    code = "INVALID_REDEMPTION"
    default_detail = "Invalid ticket"


class AlreadyRedeemed(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_REDEEMED"
    default_detail = "This ticket has already been used"


class PaymentUnavailable(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "PAYMENT_UNAVAILABLE"
    default_detail = "Card payments are not available right now"
