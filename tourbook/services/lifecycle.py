"""
Booking state transitions persisted as compare-and-set updates.

Every status change is written as

    UPDATE bookings SET status = :target, ...
    WHERE id = :id AND status = :expected

so a booking that moved on between our read and our write (admin approved
it while the sweeper was expiring it, two admins clicked "approve") makes
the update hit zero rows instead of silently overwriting the winner. The
inventory credit that goes with a seat-releasing transition runs in the
same transaction, so the ledger and the booking never disagree.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AlreadyProcessed, BookingNotFound
from tourbook.core.logging import get_logger
from tourbook.core.metrics import record_transition, transition_conflicts
from tourbook.domain.booking_state import (
    PAYMENT_STATUS_ON_ENTRY,
    BookingStatus,
    assert_booking_transition,
    releases_seats,
)
from tourbook.models.booking import Booking
from tourbook.services import inventory

logger = get_logger(__name__)


async def get_booking(db: AsyncSession, booking_id: str) -> Booking:
    """Load a booking, always re-reading the row from the database."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


async def _compare_and_set(
    db: AsyncSession,
    booking_id: str,
    expected: BookingStatus,
    target: BookingStatus,
    conditions: tuple = (),
    **values,
) -> bool:
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == expected, *conditions)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def apply_transition(
    db: AsyncSession,
    booking: Booking,
    target: BookingStatus,
    **values,
) -> Booking:
    """
    Move `booking` to `target`, crediting inventory when the move releases
    seats. Raises AlreadyProcessed if a concurrent writer got there first.
    """
    current = BookingStatus(booking.status)
    assert_booking_transition(current, target)

    if "payment_status" not in values and target in PAYMENT_STATUS_ON_ENTRY:
        values["payment_status"] = PAYMENT_STATUS_ON_ENTRY[target]

    if not await _compare_and_set(db, booking.id, current, target, **values):
        transition_conflicts.inc()
        await db.refresh(booking)
        logger.info(
            "booking_transition_conflict",
            booking_id=booking.id,
            expected=current.value,
            actual=BookingStatus(booking.status).value,
            target=target.value,
        )
        raise AlreadyProcessed(f"Booking is already {BookingStatus(booking.status).value}")

    if releases_seats(current, target):
        await inventory.credit(db, booking.tour_id, booking.ticket_count)

    await db.refresh(booking)
    record_transition(current.value, target.value)
    logger.info(
        "booking_transitioned",
        booking_id=booking.id,
        tour_id=booking.tour_id,
        from_status=current.value,
        to_status=target.value,
        seats_released=booking.ticket_count if releases_seats(current, target) else 0,
    )
    return booking


async def release_hold(
    db: AsyncSession,
    booking_id: str,
    tour_id: Optional[int],
    ticket_count: int,
    *,
    expired_before: Optional[datetime] = None,
) -> bool:
    """
    Expire a holding booking and hand its seats back.

    With `expired_before`, the hold's deadline is re-checked inside the
    update, so a booking confirmed a moment earlier is left alone. Returns
    False when the booking was no longer an eligible hold.
    """
    conditions = ()
    if expired_before is not None:
        conditions = (Booking.expires_at < expired_before,)

    released = await _compare_and_set(
        db,
        booking_id,
        BookingStatus.HOLDING,
        BookingStatus.EXPIRED,
        conditions,
        payment_status=PAYMENT_STATUS_ON_ENTRY[BookingStatus.EXPIRED],
        expires_at=None,
    )
    if not released:
        return False

    await inventory.credit(db, tour_id, ticket_count)
    record_transition(BookingStatus.HOLDING.value, BookingStatus.EXPIRED.value)
    logger.info("hold_released", booking_id=booking_id, tour_id=tour_id, seats=ticket_count)
    return True
