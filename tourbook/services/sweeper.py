"""
Expiry sweeper and the periodic-task runner behind it.

The 15-minute hold is enforced here, not by the client: a browser that
never comes back must not keep seats locked. Every SWEEP_INTERVAL_SECONDS
the sweeper expires holds whose deadline has passed and hands their seats
back to the tour.

Each booking is expired in its own transaction, through the same
compare-and-set that guards every other transition (status still
'holding' AND expires_at still in the past). A hold the customer confirmed
between our scan and our update is left alone, and one bad row is logged
and skipped instead of aborting the sweep.

Runs never overlap: an asyncio.Lock covers one worker, and a Redis lease
covers a fleet of workers when Redis is available.
"""

import asyncio
import time
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourbook.core.config import get_settings
from tourbook.core.logging import get_logger
from tourbook.core.metrics import active_holds, holds_expired, periodic_task_skipped, sweep_duration, sweep_failures
from tourbook.db.base import utcnow
from tourbook.domain.booking_state import BookingStatus
from tourbook.models.booking import Booking
from tourbook.services.cache_service import acquire_lease, invalidate_tour_cache
from tourbook.services.lifecycle import release_hold
from tourbook.services.tour_service import mark_completed_tours

logger = get_logger(__name__)


async def sweep_expired_holds(
    session_factory: async_sessionmaker[AsyncSession],
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> int:
    """Expire every overdue hold. Returns how many were expired."""
    now = now or utcnow()
    batch_size = batch_size or get_settings().SWEEP_BATCH_SIZE

    async with session_factory() as db:
        result = await db.execute(
            select(Booking.id, Booking.tour_id, Booking.ticket_count)
            .where(
                Booking.status == BookingStatus.HOLDING,
                Booking.expires_at < now,
            )
            .order_by(Booking.expires_at.asc())
            .limit(batch_size)
        )
        overdue = result.all()

    expired = 0
    for row in overdue:
        async with session_factory() as db:
            try:
                if await release_hold(db, row.id, row.tour_id, row.ticket_count, expired_before=now):
                    expired += 1
                await db.commit()
            except Exception:
                await db.rollback()
                sweep_failures.inc()
                logger.exception("sweep_booking_failed", booking_id=row.id, tour_id=row.tour_id)

    async with session_factory() as db:
        remaining = (
            await db.execute(
                select(func.count(Booking.id)).where(Booking.status == BookingStatus.HOLDING)
            )
        ).scalar() or 0
    active_holds.set(remaining)

    if expired:
        holds_expired.inc(expired)
        await invalidate_tour_cache()
    logger.info("sweep_completed", scanned=len(overdue), expired=expired, holds_remaining=remaining)
    return expired


async def complete_started_tours(
    session_factory: async_sessionmaker[AsyncSession],
    now: Optional[datetime] = None,
) -> int:
    async with session_factory() as db:
        count = await mark_completed_tours(db, now)
        await db.commit()
    if count:
        await invalidate_tour_cache()
    return count


class PeriodicTask:
    """
    Runs `job` every `interval` seconds with single-flight execution.

    A run that is still going when the next tick arrives makes that tick a
    no-op rather than starting a second copy.
    """

    def __init__(self, name: str, interval: float, job: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self.job = job
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._owner = uuid.uuid4().hex

    async def run_once(self) -> bool:
        """Run the job unless another run holds the lock or lease. Returns True if it ran."""
        if self._lock.locked():
            periodic_task_skipped.labels(task=self.name).inc()
            logger.info("periodic_task_skipped", task=self.name, reason="already_running")
            return False

        async with self._lock:
            # Lease expires just before the next tick so exactly one worker
            # gets each interval.
            if not await acquire_lease(self.name, self._owner, int(self.interval) - 1):
                periodic_task_skipped.labels(task=self.name).inc()
                logger.debug("periodic_task_skipped", task=self.name, reason="lease_held")
                return False

            start = time.perf_counter()
            try:
                await self.job()
            except Exception:
                logger.exception("periodic_task_failed", task=self.name)
            finally:
                sweep_duration.labels(task=self.name).observe(time.perf_counter() - start)
            return True

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
            logger.info("periodic_task_started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic_task_stopped", task=self.name)


def build_background_tasks(session_factory: async_sessionmaker[AsyncSession]) -> list[PeriodicTask]:
    settings = get_settings()
    return [
        PeriodicTask(
            "cleanup-expired-bookings",
            settings.SWEEP_INTERVAL_SECONDS,
            lambda: sweep_expired_holds(session_factory),
        ),
        PeriodicTask(
            "mark-tours-completed",
            settings.COMPLETION_CHECK_INTERVAL_SECONDS,
            lambda: complete_started_tours(session_factory),
        ),
    ]
