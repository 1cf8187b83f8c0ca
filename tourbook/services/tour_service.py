"""
Tour catalogue: creation, edits, listing, analytics and completion marking.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AlreadyProcessed, InvalidTransition, TourNotFound, ValidationError
from tourbook.core.logging import get_logger
from tourbook.db.base import utcnow
from tourbook.domain.booking_state import BookingStatus
from tourbook.models.booking import Booking
from tourbook.models.tour import Tour
from tourbook.schemas.tour import TourAnalytics, TourCreate, TourUpdate

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


async def get_tour(db: AsyncSession, tour_id: int) -> Tour:
    """Get a single tour by ID, always re-reading the row."""
    result = await db.execute(
        select(Tour)
        .where(Tour.id == tour_id)
        .execution_options(populate_existing=True)
    )
    tour = result.scalar_one_or_none()

    if not tour:
        raise TourNotFound(f"Tour {tour_id} not found")
    return tour


async def lock_tour(db: AsyncSession, tour_id: int) -> Optional[Tour]:
    """
    Read a tour with SELECT ... FOR UPDATE.

    Confirmation and tour cancellation both take this lock first, so a
    cancellation never judges "no pending bookings" while a confirmation
    is still in flight.
    """
    result = await db.execute(
        select(Tour)
        .where(Tour.id == tour_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_tour(db: AsyncSession, tour_data: TourCreate) -> Tour:
    """Create a new tour with full seat availability."""
    if tour_data.start_date.tzinfo is None:
        raise ValidationError("Tour start date must include a timezone")
    if tour_data.start_date <= utcnow():
        raise ValidationError("Tour start date must be in the future")

    tour = Tour(
        title=tour_data.title,
        description=tour_data.description,
        price=tour_data.price,
        start_date=tour_data.start_date,
        capacity=tour_data.capacity,
        booked_count=0,
        cover_image_id=tour_data.cover_image_id,
        gallery_image_ids=list(tour_data.gallery_image_ids),
    )
    db.add(tour)
    await db.flush()
    await db.refresh(tour)

    logger.info("tour_created", tour_id=tour.id, title=tour.title, capacity=tour.capacity)
    return tour


async def update_tour(db: AsyncSession, tour_id: int, tour_data: TourUpdate) -> Tour:
    """
    Edit a tour with optimistic locking.

    Reservations bump `version` on every debit and credit, so an edit that
    raced a booking is retried against the fresh row. This matters for
    capacity: it must never drop below the seats already taken.
    """
    changes = {
        field: value
        for field, value in tour_data.model_dump(exclude_unset=True).items()
        if value is not None or field == "cover_image_id"
    }
    if "start_date" in changes:
        if changes["start_date"].tzinfo is None:
            raise ValidationError("Tour start date must include a timezone")
        if changes["start_date"] <= utcnow():
            raise ValidationError("Tour start date must be in the future")

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        tour = await get_tour(db, tour_id)

        if tour.cancelled:
            raise InvalidTransition("Cancelled tours cannot be edited")
        if tour.is_completed:
            raise InvalidTransition("Completed tours are closed for modifications")
        if "capacity" in changes and changes["capacity"] < tour.booked_count:
            raise ValidationError(
                f"Capacity cannot be lower than the {tour.booked_count} seats already booked"
            )
        if not changes:
            return tour

        current_version = tour.version
        result = await db.execute(
            update(Tour)
            .where(Tour.id == tour_id, Tour.version == current_version)
            .values(**changes, version=Tour.version + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.info("tour_update_retry", tour_id=tour_id, attempt=attempt, reason="version_conflict")
            continue

        tour = await get_tour(db, tour_id)
        logger.info("tour_updated", tour_id=tour_id, fields=sorted(changes))
        return tour

    raise AlreadyProcessed("The tour changed while you were editing it. Please try again")


async def list_tours(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Tour], int]:
    """List tours with pagination, soonest first."""
    query = select(Tour)

    if upcoming_only:
        query = query.where(
            Tour.start_date >= utcnow(),
            Tour.cancelled.is_(False),
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    tours_query = (
        query
        .order_by(Tour.start_date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(tours_query)
    tours = list(result.scalars().all())

    return tours, total


async def list_tour_bookings(db: AsyncSession, tour_id: int) -> list[Booking]:
    await get_tour(db, tour_id)
    result = await db.execute(
        select(Booking)
        .where(Booking.tour_id == tour_id)
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())


async def get_tour_analytics(db: AsyncSession, tour_id: int) -> TourAnalytics:
    """Revenue, head count and occupancy for the admin dashboard."""
    tour = await get_tour(db, tour_id)

    def count_status(status: BookingStatus):
        return func.coalesce(func.sum(case((Booking.status == status, 1), else_=0)), 0)

    confirmed = Booking.status == BookingStatus.CONFIRMED
    row = (
        await db.execute(
            select(
                func.coalesce(
                    func.sum(case((confirmed, Booking.tour_price * Booking.ticket_count), else_=0)), 0
                ).label("revenue"),
                func.coalesce(func.sum(case((confirmed, Booking.ticket_count), else_=0)), 0).label("tickets"),
                count_status(BookingStatus.CONFIRMED).label("confirmed"),
                count_status(BookingStatus.PENDING).label("pending"),
                count_status(BookingStatus.REFUNDED).label("refunded"),
            ).where(Booking.tour_id == tour_id)
        )
    ).one()

    occupancy = round(tour.booked_count / tour.capacity * 100) if tour.capacity > 0 else 0
    return TourAnalytics(
        tour_id=tour.id,
        total_revenue=int(row.revenue),
        confirmed_bookings=int(row.confirmed),
        confirmed_tickets=int(row.tickets),
        pending_bookings=int(row.pending),
        refunded_bookings=int(row.refunded),
        occupancy_percent=occupancy,
    )


async def mark_completed_tours(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flag every tour whose start date has passed as completed."""
    now = now or utcnow()
    result = await db.execute(
        update(Tour)
        .where(Tour.start_date <= now, Tour.is_completed.is_(False))
        .values(is_completed=True, version=Tour.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("tours_marked_completed", count=result.rowcount)
    return result.rowcount
