"""
Admin adjudication: payment decisions, tour cancellation and deletion,
refunds and venue ticket scanning.

Every operation here is guarded by `require_admin` at the route layer.
"""

from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import (
    AlreadyProcessed,
    AlreadyRedeemed,
    BookingNotFound,
    InvalidRedemption,
    InvalidTransition,
    TourHasActiveBookings,
    TourHasPendingBookings,
    TourNotFound,
    ValidationError,
)
from tourbook.core.logging import get_logger
from tourbook.core.metrics import record_ticket_scan
from tourbook.domain.booking_state import (
    ACTIVE_STATUSES,
    SETTLED_PAYMENT_STATUSES,
    BookingStatus,
    PaymentStatus,
)
from tourbook.models.booking import Booking
from tourbook.models.tour import Tour
from tourbook.services.lifecycle import apply_transition, get_booking, release_hold
from tourbook.services.tour_service import get_tour, lock_tour

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


async def verify_payment(db: AsyncSession, booking_id: str, approve: bool) -> Booking:
    """
    Approve or reject a booking's payment. A second decision on the same
    booking fails with AlreadyProcessed whichever way the first one went.
    """
    booking = await get_booking(db, booking_id)

    payment_status = PaymentStatus(booking.payment_status)
    if payment_status in SETTLED_PAYMENT_STATUSES:
        raise AlreadyProcessed(f"Payment was already marked {payment_status.value}")

    if approve:
        booking = await apply_transition(db, booking, BookingStatus.CONFIRMED)
        logger.info("payment_approved", booking_id=booking.id, tour_id=booking.tour_id)
    else:
        booking = await apply_transition(db, booking, BookingStatus.REJECTED)
        logger.info(
            "payment_rejected",
            booking_id=booking.id,
            tour_id=booking.tour_id,
            seats_restored=booking.ticket_count,
        )
    return booking


async def _count_bookings(db: AsyncSession, tour_id: int, statuses) -> int:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.tour_id == tour_id,
            Booking.status.in_(list(statuses)),
        )
    )
    return result.scalar() or 0


async def cancel_tour(db: AsyncSession, tour_id: int) -> Tour:
    """
    Cancel a tour. Refused while any booking still awaits a payment
    decision. Confirmed bookings stay confirmed until a refund is
    processed for each one; outstanding holds are released right away.
    """
    tour = await lock_tour(db, tour_id)
    if tour is None:
        raise TourNotFound(f"Tour {tour_id} not found")
    if tour.cancelled:
        raise AlreadyProcessed("Tour is already cancelled")

    pending = (
        select(Booking.id)
        .where(Booking.tour_id == tour_id, Booking.status == BookingStatus.PENDING)
        .exists()
    )
    result = await db.execute(
        update(Tour)
        .where(Tour.id == tour_id, Tour.cancelled.is_(False), ~pending)
        .values(cancelled=True, version=Tour.version + 1)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        pending_count = await _count_bookings(db, tour_id, [BookingStatus.PENDING])
        if pending_count:
            logger.warning("tour_cancel_blocked", tour_id=tour_id, pending=pending_count)
            raise TourHasPendingBookings(
                f"{pending_count} booking(s) are awaiting a payment decision. "
                "Approve or reject them before cancelling this tour"
            )
        raise AlreadyProcessed("Tour is already cancelled")

    holds = await db.execute(
        select(Booking.id, Booking.ticket_count).where(
            Booking.tour_id == tour_id,
            Booking.status == BookingStatus.HOLDING,
        )
    )
    released = 0
    for row in holds.all():
        if await release_hold(db, row.id, tour_id, row.ticket_count):
            released += 1

    tour = await get_tour(db, tour_id)
    logger.info("tour_cancelled", tour_id=tour_id, holds_released=released, booked_count=tour.booked_count)
    return tour


async def process_refund(db: AsyncSession, booking_id: str, proof_ref: str) -> Booking:
    """Mark a confirmed booking on a cancelled tour as refunded."""
    proof_ref = (proof_ref or "").strip()
    if not proof_ref:
        raise ValidationError("Please upload the refund receipt")

    booking = await get_booking(db, booking_id)
    tour = await db.get(Tour, booking.tour_id, populate_existing=True) if booking.tour_id is not None else None
    if BookingStatus(booking.status) != BookingStatus.REFUNDED and (tour is None or not tour.cancelled):
        raise InvalidTransition("Refunds can only be processed for cancelled tours")

    booking = await apply_transition(
        db,
        booking,
        BookingStatus.REFUNDED,
        admin_refund_proof_id=proof_ref,
    )
    logger.info("refund_processed", booking_id=booking.id, tour_id=booking.tour_id, amount=booking.tour_price * booking.ticket_count)
    return booking


async def delete_tour(db: AsyncSession, tour_id: int) -> list[str]:
    """
    Delete a tour that no longer has active bookings.

    Bookings are kept for the audit trail and detached from the tour; their
    snapshot fields keep them readable. Returns the tour's image references
    so the caller can release them once the transaction has committed.
    """
    tour = await get_tour(db, tour_id)
    image_refs = tour.image_ids

    active = (
        select(Booking.id)
        .where(Booking.tour_id == tour_id, Booking.status.in_(list(ACTIVE_STATUSES)))
        .exists()
    )
    result = await db.execute(
        delete(Tour)
        .where(Tour.id == tour_id, ~active)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        active_count = await _count_bookings(db, tour_id, ACTIVE_STATUSES)
        logger.warning("tour_delete_blocked", tour_id=tour_id, active=active_count)
        raise TourHasActiveBookings(
            f"Cannot delete a tour with {active_count} active booking(s). "
            "Cancel the tour and settle every booking first"
        )

    await db.execute(
        update(Booking)
        .where(Booking.tour_id == tour_id)
        .values(tour_id=None)
        .execution_options(synchronize_session=False)
    )
    db.expunge(tour)

    logger.info("tour_deleted", tour_id=tour_id, images_released=len(image_refs))
    return image_refs


def parse_ticket_code(code: str) -> tuple[str, int]:
    """
    Split a scanned "<bookingId>-<ticketNumber>" payload.

    Booking ids are UUIDs and contain hyphens themselves, so only the last
    hyphen separates the ticket number.
    """
    code = (code or "").strip()
    index = code.rfind("-")
    if index <= 0 or index == len(code) - 1:
        raise InvalidRedemption("Invalid QR format")

    booking_id, number = code[:index], code[index + 1:]
    if not number.isdigit():
        raise InvalidRedemption("Unreadable QR data")
    return booking_id, int(number)


async def validate_ticket(db: AsyncSession, booking_id: str, ticket_number: int) -> Booking:
    """
    Redeem one ticket of a confirmed booking at the venue.

    The append to `redeemed_tickets` is an optimistic compare-and-set on the
    booking's version, so two scanners reading the same QR code at the same
    moment cannot both let the holder in: the loser retries, sees the
    ticket already redeemed and gets AlreadyRedeemed.
    """
    try:
        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            try:
                booking = await get_booking(db, booking_id)
            except BookingNotFound:
                raise InvalidRedemption("Ticket not found. Not a system ticket") from None

            status = BookingStatus(booking.status)
            if status != BookingStatus.CONFIRMED:
                raise InvalidRedemption(f"Booking is {status.value}, not confirmed")
            if not 1 <= ticket_number <= booking.ticket_count:
                raise InvalidRedemption(
                    f"Ticket {ticket_number} is not part of this booking ({booking.ticket_count} ticket(s))"
                )

            redeemed = list(booking.redeemed_tickets or [])
            if ticket_number in redeemed:
                raise AlreadyRedeemed(f"Ticket {ticket_number} has already been used")

            current_version = booking.version
            result = await db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.version == current_version,
                    Booking.status == BookingStatus.CONFIRMED,
                )
                .values(
                    redeemed_tickets=sorted(redeemed + [ticket_number]),
                    version=Booking.version + 1,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 1:
                await db.refresh(booking)
                record_ticket_scan("valid")
                logger.info("ticket_redeemed", booking_id=booking_id, ticket_number=ticket_number, attempt=attempt)
                return booking

            logger.info("ticket_redeem_retry", booking_id=booking_id, attempt=attempt, reason="version_conflict")

        raise InvalidRedemption("The scan could not be recorded. Please scan again")
    except AlreadyRedeemed:
        record_ticket_scan("already_redeemed")
        logger.warning("ticket_already_redeemed", booking_id=booking_id, ticket_number=ticket_number)
        raise
    except InvalidRedemption as e:
        record_ticket_scan("invalid")
        logger.warning("ticket_invalid", booking_id=booking_id, ticket_number=ticket_number, reason=e.detail)
        raise


async def list_bookings(
    db: AsyncSession,
    status: Optional[BookingStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    tour_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Booking]:
    """All bookings, newest first, filtered for the admin review queue."""
    query = select(Booking)
    if status is not None:
        query = query.where(Booking.status == status)
    if payment_status is not None:
        query = query.where(Booking.payment_status == payment_status)
    if tour_id is not None:
        query = query.where(Booking.tour_id == tour_id)

    result = await db.execute(
        query.order_by(Booking.created_at.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().all())


async def scan_ticket(db: AsyncSession, code: str) -> tuple[Booking, int]:
    """Parse a scanned QR payload and redeem the ticket it names."""
    try:
        booking_id, ticket_number = parse_ticket_code(code)
    except InvalidRedemption as e:
        record_ticket_scan("invalid")
        logger.warning("ticket_unreadable", reason=e.detail)
        raise

    booking = await validate_ticket(db, booking_id, ticket_number)
    return booking, ticket_number
