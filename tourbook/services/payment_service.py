"""
Card payments.

A card booking walks the same state machine as a bank transfer: checkout
moves the hold to pending with payment method "card", and the provider's
webhook stands in for the admin's decision.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AlreadyProcessed, BookingNotFound, InvalidTransition
from tourbook.core.logging import get_logger
from tourbook.domain.booking_state import BookingStatus, PaymentMethod
from tourbook.models.booking import Booking
from tourbook.models.user import User
from tourbook.services.admin_service import verify_payment
from tourbook.services.confirmation_service import confirm_booking
from tourbook.services.interfaces.checkout import (
    CHECKOUT_COMPLETED,
    CHECKOUT_FAILED,
    CheckoutEvent,
    CheckoutGateway,
)
from tourbook.services.lifecycle import get_booking

logger = get_logger(__name__)


async def start_card_checkout(
    db: AsyncSession,
    booking_id: str,
    user: User,
    contact_number: str,
    gateway: CheckoutGateway,
) -> tuple[Booking, str]:
    """
    Confirm a hold for card payment and open a hosted checkout page.

    Returns the pending booking and the URL to send the customer to. If the
    gateway fails the caller's transaction rolls back and the hold stands.
    """
    booking = await confirm_booking(
        db,
        booking_id,
        user,
        payment_method=PaymentMethod.CARD,
        contact_number=contact_number,
    )
    redirect_url = await gateway.create_checkout_session(
        booking_id=booking.id,
        title=booking.tour_title,
        unit_amount=booking.tour_price,
        quantity=booking.ticket_count,
    )
    logger.info("card_checkout_started", booking_id=booking.id, tickets=booking.ticket_count)
    return booking, redirect_url


async def handle_checkout_event(db: AsyncSession, event: CheckoutEvent) -> Optional[Booking]:
    """
    Apply a verified provider callback to its booking.

    Providers redeliver events, so a booking that was already decided is
    logged and left alone rather than reported as an error.
    """
    if event.outcome not in (CHECKOUT_COMPLETED, CHECKOUT_FAILED):
        logger.info("checkout_event_ignored", event_id=event.event_id, event_type=event.event_type)
        return None

    if not event.booking_id:
        logger.warning("checkout_event_without_booking", event_id=event.event_id, event_type=event.event_type)
        return None

    try:
        booking = await get_booking(db, event.booking_id)
    except BookingNotFound:
        logger.warning("checkout_event_unknown_booking", event_id=event.event_id, booking_id=event.booking_id)
        return None

    if BookingStatus(booking.status) != BookingStatus.PENDING:
        logger.info(
            "checkout_event_stale",
            event_id=event.event_id,
            booking_id=booking.id,
            status=booking.status,
        )
        return None

    try:
        return await verify_payment(db, booking.id, approve=event.outcome == CHECKOUT_COMPLETED)
    except (AlreadyProcessed, InvalidTransition) as e:
        logger.info("checkout_event_already_applied", event_id=event.event_id, booking_id=booking.id, reason=e.detail)
        return None
