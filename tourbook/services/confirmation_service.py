"""
Confirmation service: turns a hold into a booking awaiting payment review.

Seats stay debited from the reservation step; confirming only moves the
booking to `pending`, attaches the customer's payment evidence and clears
the hold deadline, since the booking now waits on a human decision.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AlreadyExpired, AlreadyProcessed, Forbidden, TourCancelled, ValidationError
from tourbook.core.logging import get_logger
from tourbook.db.base import utcnow
from tourbook.domain.booking_state import BookingStatus, PaymentMethod, PaymentStatus
from tourbook.models.booking import Booking
from tourbook.models.user import User
from tourbook.services.lifecycle import apply_transition, get_booking
from tourbook.services.tour_service import lock_tour

logger = get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def confirm_booking(
    db: AsyncSession,
    booking_id: str,
    user: User,
    payment_method: PaymentMethod,
    contact_number: Optional[str],
    proof_ref: Optional[str] = None,
    refund_details: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Submit payment details for a hold.

    Bank transfers need a proof-of-payment reference and the customer's
    refund details; every method needs a contact number. A booking with
    proof attached goes to the admin review queue (`reviewing`).
    """
    now = now or utcnow()
    booking = await get_booking(db, booking_id)

    if booking.user_id != user.id:
        raise Forbidden("You cannot confirm this booking")

    status = BookingStatus(booking.status)
    if status == BookingStatus.EXPIRED:
        raise AlreadyExpired()
    if status != BookingStatus.HOLDING:
        raise AlreadyProcessed(f"Booking is already {status.value}")
    if booking.expires_at is not None and booking.expires_at <= now:
        raise AlreadyExpired()

    tour = await lock_tour(db, booking.tour_id) if booking.tour_id is not None else None
    if tour is None or tour.cancelled:
        raise TourCancelled(f"Tour '{booking.tour_title}' has been cancelled")

    contact_number = _clean(contact_number)
    proof_ref = _clean(proof_ref)
    refund_details = _clean(refund_details)

    if not contact_number:
        raise ValidationError("Contact number is required")
    if payment_method == PaymentMethod.TRANSFER:
        if not proof_ref:
            raise ValidationError("Please upload your proof of payment")
        if not refund_details:
            raise ValidationError("Refund details are required for bank transfers")

    try:
        booking = await apply_transition(
            db,
            booking,
            BookingStatus.PENDING,
            payment_method=payment_method,
            payment_status=PaymentStatus.REVIEWING if proof_ref else PaymentStatus.PENDING,
            proof_image_id=proof_ref,
            refund_details=refund_details,
            contact_number=contact_number,
            expires_at=None,
        )
    except AlreadyProcessed:
        # The sweeper released the hold after we read it
        if BookingStatus(booking.status) == BookingStatus.EXPIRED:
            raise AlreadyExpired()
        raise

    logger.info(
        "booking_confirmed_by_user",
        booking_id=booking.id,
        user_id=user.id,
        payment_method=PaymentMethod(payment_method).value,
        payment_status=PaymentStatus(booking.payment_status).value,
    )
    return booking
