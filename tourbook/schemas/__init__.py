from tourbook.schemas.user import UserSync, UserResponse
from tourbook.schemas.tour import TourCreate, TourUpdate, TourResponse, TourListResponse, TourAnalytics
from tourbook.schemas.booking import (
    ReservationCreate, BookingConfirm, BookingResponse, AdminBookingResponse,
    BookingCancelResponse, PaymentDecision, RefundRequest, TicketScanRequest, TicketScanResponse,
    CardCheckoutRequest, CheckoutResponse,
)

__all__ = [
    "UserSync", "UserResponse",
    "TourCreate", "TourUpdate", "TourResponse", "TourListResponse", "TourAnalytics",
    "ReservationCreate", "BookingConfirm", "BookingResponse", "AdminBookingResponse",
    "BookingCancelResponse", "PaymentDecision", "RefundRequest", "TicketScanRequest",
    "TicketScanResponse", "CardCheckoutRequest", "CheckoutResponse",
]
