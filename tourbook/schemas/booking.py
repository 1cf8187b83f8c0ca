"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from tourbook.domain.booking_state import BookingStatus, PaymentMethod, PaymentStatus


class ReservationCreate(BaseModel):
    tour_id: int
    ticket_count: int = Field(default=1, gt=0)


class BookingConfirm(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    contact_number: str = Field(..., max_length=50)
    proof_ref: Optional[str] = Field(None, max_length=255)
    refund_details: Optional[str] = Field(None, max_length=1000)


class CardCheckoutRequest(BaseModel):
    contact_number: str = Field(..., max_length=50)


class CheckoutResponse(BaseModel):
    booking_id: str
    redirect_url: str


class BookingResponse(BaseModel):
    id: str
    tour_id: Optional[int]
    user_id: int
    ticket_count: int
    tour_title: str
    tour_date: datetime
    tour_price: int
    user_name: str
    user_email: str
    status: BookingStatus
    payment_method: Optional[PaymentMethod]
    payment_status: PaymentStatus
    expires_at: Optional[datetime]
    contact_number: Optional[str]
    redeemed_tickets: list[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminBookingResponse(BookingResponse):
    proof_image_id: Optional[str]
    proof_url: Optional[str] = None
    refund_details: Optional[str]
    admin_refund_proof_id: Optional[str]


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: str
    status: BookingStatus


class PaymentDecision(BaseModel):
    decision: Literal["approve", "reject"]


class RefundRequest(BaseModel):
    proof_ref: str = Field(..., min_length=1, max_length=255)


class TicketScanRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=100)


class TicketScanResponse(BaseModel):
    valid: bool
    message: str
    already_redeemed: bool = False
    ticket_number: Optional[int] = None
    booking: Optional[BookingResponse] = None
