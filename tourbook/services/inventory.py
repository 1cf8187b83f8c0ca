"""
Inventory ledger: the per-tour `booked_count` counter.

CONCURRENCY STRATEGY: conditional UPDATE
========================================

Problem:
  Two customers try to take the last seat at the same time.
  Both read booked_count=9 of capacity=10, both write 10, both succeed.
  Result: Overselling.

Solution:
  The capacity check lives inside the write, together with the tour's
  own bookability:

    UPDATE tours SET booked_count = booked_count + :n, version = version + 1
    WHERE id = :tour_id AND booked_count + :n <= capacity
      AND NOT cancelled AND NOT is_completed AND start_date > :now

  The database evaluates the WHERE clause against the row it is about to
  modify while holding that row's write lock, so the check and the act
  cannot be split by a concurrent debit or a tour cancellation. If
  rowcount == 0 nothing was written and the row is re-read to say why.

  Credits floor at zero inside the same statement, so a double credit can
  never drive the counter negative. The CHECK constraints on the tours
  table remain the final safety net.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import CapacityExceeded, TourCancelled, TourEnded, TourNotFound
from tourbook.core.logging import get_logger
from tourbook.db.base import utcnow
from tourbook.models.tour import Tour

logger = get_logger(__name__)


async def debit(
    db: AsyncSession,
    tour_id: int,
    seats: int,
    now: Optional[datetime] = None,
) -> None:
    """
    Take `seats` from the tour's inventory.

    Raises TourCancelled or TourEnded if the tour stopped taking bookings,
    CapacityExceeded if the seats are not there.
    """
    now = now or utcnow()
    result = await db.execute(
        update(Tour)
        .where(
            Tour.id == tour_id,
            Tour.booked_count + seats <= Tour.capacity,
            Tour.cancelled.is_(False),
            Tour.is_completed.is_(False),
            Tour.start_date > now,
        )
        .values(
            booked_count=Tour.booked_count + seats,
            version=Tour.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        row = (
            await db.execute(
                select(
                    Tour.title,
                    Tour.capacity,
                    Tour.booked_count,
                    Tour.cancelled,
                    Tour.is_completed,
                    Tour.start_date,
                ).where(Tour.id == tour_id)
            )
        ).one_or_none()
        if row is None:
            raise TourNotFound(f"Tour {tour_id} not found")
        if row.cancelled:
            logger.warning("inventory_debit_rejected", tour_id=tour_id, reason="cancelled")
            raise TourCancelled(f"Tour '{row.title}' has been cancelled")
        if row.is_completed or row.start_date <= now:
            logger.warning("inventory_debit_rejected", tour_id=tour_id, reason="ended")
            raise TourEnded(f"Tour '{row.title}' has already started")

        available = max(row.capacity - row.booked_count, 0)
        logger.warning(
            "inventory_debit_rejected",
            tour_id=tour_id,
            requested=seats,
            available=available,
        )
        raise CapacityExceeded(
            f"Not enough seats. Requested: {seats}, Available: {available}"
        )

    logger.debug("inventory_debited", tour_id=tour_id, seats=seats)


async def credit(db: AsyncSession, tour_id: Optional[int], seats: int) -> None:
    """Return `seats` to the tour's inventory, floored at zero."""
    if tour_id is None:
        # Tour was deleted; nothing left to credit
        return

    await db.execute(
        update(Tour)
        .where(Tour.id == tour_id)
        .values(
            booked_count=case(
                (Tour.booked_count > seats, Tour.booked_count - seats),
                else_=0,
            ),
            version=Tour.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    logger.debug("inventory_credited", tour_id=tour_id, seats=seats)
