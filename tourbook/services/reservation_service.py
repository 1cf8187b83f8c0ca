"""
Reservation service: time-boxed seat holds.

A hold debits inventory the moment it is created (pessimistic reservation
by eager debit) and carries an `expires_at` deadline. The hold is a soft
lock: nothing in the database is held open, and if the customer never
comes back the expiry sweeper hands the seats back.

Holds are resumable. A customer who reloads the page gets their current
hold back rather than a second debit; the partial unique index on
(user_id, tour_id) WHERE status = 'holding' backs this up when two tabs
race each other.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.config import get_settings
from tourbook.core.exceptions import (
    AlreadyProcessed,
    BookingError,
    CapacityExceeded,
    Forbidden,
    InvalidTransition,
    TourCancelled,
    TourEnded,
    ValidationError,
)
from tourbook.core.logging import get_logger
from tourbook.core.metrics import record_reservation, reservation_latency
from tourbook.db.base import utcnow
from tourbook.domain.booking_state import BookingStatus, PaymentStatus, is_terminal
from tourbook.models.booking import Booking
from tourbook.models.tour import Tour
from tourbook.models.user import User
from tourbook.services import inventory
from tourbook.services.lifecycle import apply_transition, get_booking, release_hold
from tourbook.services.tour_service import get_tour

logger = get_logger(__name__)


def ensure_tour_bookable(tour: Tour, now: datetime) -> None:
    if tour.cancelled:
        raise TourCancelled(f"Tour '{tour.title}' has been cancelled")
    if tour.is_completed or tour.start_date <= now:
        raise TourEnded(f"Tour '{tour.title}' has already started")


async def get_active_hold(
    db: AsyncSession,
    user_id: int,
    tour_id: int,
    now: Optional[datetime] = None,
) -> Optional[Booking]:
    """The caller's live hold on a tour, if any."""
    now = now or utcnow()
    result = await db.execute(
        select(Booking)
        .where(
            Booking.user_id == user_id,
            Booking.tour_id == tour_id,
            Booking.status == BookingStatus.HOLDING,
            Booking.expires_at > now,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _release_stale_holds(db: AsyncSession, user_id: int, tour_id: int, now: datetime) -> None:
    result = await db.execute(
        select(Booking.id, Booking.ticket_count).where(
            Booking.user_id == user_id,
            Booking.tour_id == tour_id,
            Booking.status == BookingStatus.HOLDING,
            Booking.expires_at <= now,
        )
    )
    for row in result.all():
        # expired_before is exclusive, so nudge it to cover expires_at == now
        await release_hold(
            db, row.id, tour_id, row.ticket_count,
            expired_before=now + timedelta(microseconds=1),
        )


async def reserve(
    db: AsyncSession,
    user: User,
    tour_id: int,
    ticket_count: int,
    now: Optional[datetime] = None,
) -> tuple[Booking, bool]:
    """
    Hold `ticket_count` seats on a tour for HOLD_DURATION_MINUTES.

    Returns (booking, created). When the user already holds seats on this
    tour the existing hold is returned with created=False and nothing is
    debited.
    """
    settings = get_settings()
    now = now or utcnow()
    user_id = user.id

    if ticket_count < 1 or ticket_count > settings.MAX_TICKETS_PER_BOOKING:
        record_reservation("rejected")
        raise ValidationError(
            f"You can book between 1 and {settings.MAX_TICKETS_PER_BOOKING} tickets"
        )

    with reservation_latency.time():
        tour = await get_tour(db, tour_id)
        try:
            ensure_tour_bookable(tour, now)
        except BookingError:
            record_reservation("rejected")
            raise

        existing = await get_active_hold(db, user_id, tour_id, now)
        if existing:
            record_reservation("resumed")
            logger.info("hold_resumed", booking_id=existing.id, tour_id=tour_id, user_id=user_id)
            return existing, False

        await _release_stale_holds(db, user_id, tour_id, now)

        try:
            await inventory.debit(db, tour_id, ticket_count, now)
        except CapacityExceeded:
            record_reservation("capacity_exceeded")
            raise
        except (TourCancelled, TourEnded):
            record_reservation("rejected")
            raise

        booking = Booking(
            tour_id=tour.id,
            user_id=user_id,
            ticket_count=ticket_count,
            tour_title=tour.title,
            tour_date=tour.start_date,
            tour_price=tour.price,
            user_name=user.display_name,
            user_email=user.email,
            status=BookingStatus.HOLDING,
            payment_status=PaymentStatus.PENDING,
            expires_at=now + timedelta(minutes=settings.HOLD_DURATION_MINUTES),
            redeemed_tickets=[],
        )
        db.add(booking)
        try:
            await db.flush()
        except IntegrityError:
            # Another request from the same user created the hold first;
            # our debit rolls back with the failed insert.
            await db.rollback()
            existing = await get_active_hold(db, user_id, tour_id, now)
            if existing is None:
                raise
            record_reservation("resumed")
            logger.info("hold_resumed_after_race", booking_id=existing.id, tour_id=tour_id, user_id=user_id)
            return existing, False

    record_reservation("created")
    logger.info(
        "hold_created",
        booking_id=booking.id,
        tour_id=tour_id,
        user_id=user_id,
        seats=ticket_count,
        expires_at=booking.expires_at.isoformat(),
    )
    return booking, True


async def cancel_booking(
    db: AsyncSession,
    booking_id: str,
    actor: User,
) -> Booking:
    """
    Cancel a booking on behalf of its owner (or an admin) and release its
    seats.

    A hold becomes `expired`, a booking awaiting payment review becomes
    `cancelled`. Confirmed bookings can only be cancelled by an admin,
    unless ALLOW_CONFIRMED_SELF_CANCEL is switched on. Self-cancellation
    never triggers a refund.
    """
    booking = await get_booking(db, booking_id)

    if booking.user_id != actor.id and not actor.is_admin:
        raise Forbidden("You cannot cancel this booking")

    status = BookingStatus(booking.status)
    if is_terminal(status):
        raise AlreadyProcessed(f"Booking is already {status.value}")

    if status == BookingStatus.HOLDING:
        booking = await apply_transition(
            db, booking, BookingStatus.EXPIRED,
            payment_status=PaymentStatus.CANCELLED,
            expires_at=None,
        )
    elif status == BookingStatus.CONFIRMED:
        if not (actor.is_admin or get_settings().ALLOW_CONFIRMED_SELF_CANCEL):
            raise InvalidTransition(
                "Confirmed bookings cannot be cancelled online. Please contact support"
            )
        booking = await apply_transition(db, booking, BookingStatus.CANCELLED)
    else:
        booking = await apply_transition(db, booking, BookingStatus.CANCELLED)

    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        actor_id=actor.id,
        by_admin=actor.is_admin and actor.id != booking.user_id,
        status=BookingStatus(booking.status).value,
        seats_restored=booking.ticket_count,
    )
    return booking


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings for a user."""
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())
