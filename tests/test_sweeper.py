"""
Tests for the expiry sweeper and single-flight periodic tasks.
"""

import asyncio
from datetime import timedelta

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.db.base import utcnow
from tourbook.domain.booking_state import BookingStatus, PaymentStatus
from tourbook.models.booking import Booking
from tourbook.services import sweeper
from tourbook.services.reservation_service import reserve
from tourbook.services.sweeper import PeriodicTask, complete_started_tours, sweep_expired_holds

from conftest import make_tour


@pytest.mark.asyncio
async def test_sweep_expires_overdue_holds(session_factory, db_session: AsyncSession, test_user, test_tour):
    now = utcnow()
    booking, _ = await reserve(db_session, test_user, test_tour.id, 4, now=now)
    await db_session.commit()

    expired = await sweep_expired_holds(session_factory, now=now + timedelta(minutes=16))
    assert expired == 1

    fresh = await db_session.get(Booking, booking.id, populate_existing=True)
    assert fresh.status == BookingStatus.EXPIRED
    assert fresh.payment_status == PaymentStatus.EXPIRED
    assert fresh.expires_at is None
    await db_session.refresh(test_tour)
    assert test_tour.booked_count == 0


@pytest.mark.asyncio
async def test_sweep_leaves_live_holds(session_factory, db_session: AsyncSession, test_user, test_tour):
    now = utcnow()
    await reserve(db_session, test_user, test_tour.id, 2, now=now)
    await db_session.commit()

    expired = await sweep_expired_holds(session_factory, now=now + timedelta(minutes=14))
    assert expired == 0
    await db_session.refresh(test_tour)
    assert test_tour.booked_count == 2


@pytest.mark.asyncio
async def test_sweep_is_idempotent(session_factory, db_session: AsyncSession, test_user, other_user, test_tour):
    now = utcnow()
    await reserve(db_session, test_user, test_tour.id, 2, now=now)
    await reserve(db_session, other_user, test_tour.id, 3, now=now)
    await db_session.commit()

    later = now + timedelta(minutes=20)
    assert await sweep_expired_holds(session_factory, now=later) == 2
    assert await sweep_expired_holds(session_factory, now=later) == 0

    await db_session.refresh(test_tour)
    assert test_tour.booked_count == 0


@pytest.mark.asyncio
async def test_sweep_of_deleted_tour_hold(session_factory, db_session: AsyncSession, test_user, test_tour):
    now = utcnow()
    booking, _ = await reserve(db_session, test_user, test_tour.id, 1, now=now)
    booking.tour_id = None
    await db_session.commit()

    assert await sweep_expired_holds(session_factory, now=now + timedelta(minutes=16)) == 1


@pytest.mark.asyncio
async def test_sweep_skips_a_failing_booking(
    session_factory, db_session: AsyncSession, test_user, other_user, test_tour, monkeypatch
):
    now = utcnow()
    broken, _ = await reserve(db_session, test_user, test_tour.id, 2, now=now)
    healthy, _ = await reserve(db_session, other_user, test_tour.id, 3, now=now)
    await db_session.commit()
    broken_id = broken.id

    release = sweeper.release_hold

    async def flaky_release(db, booking_id, *args, **kwargs):
        if booking_id == broken_id:
            raise RuntimeError("database hiccup")
        return await release(db, booking_id, *args, **kwargs)

    monkeypatch.setattr(sweeper, "release_hold", flaky_release)
    failures_before = REGISTRY.get_sample_value("sweep_failures_total") or 0

    expired = await sweep_expired_holds(session_factory, now=now + timedelta(minutes=16))

    assert expired == 1
    assert REGISTRY.get_sample_value("sweep_failures_total") == failures_before + 1
    await db_session.refresh(healthy)
    assert healthy.status == BookingStatus.EXPIRED
    await db_session.refresh(broken)
    assert broken.status == BookingStatus.HOLDING
    await db_session.refresh(test_tour)
    assert test_tour.booked_count == 2


@pytest.mark.asyncio
async def test_complete_started_tours(session_factory, db_session: AsyncSession):
    started = await make_tour(db_session, start_date=utcnow() - timedelta(hours=2))
    upcoming = await make_tour(db_session, start_date=utcnow() + timedelta(days=2))

    assert await complete_started_tours(session_factory) == 1

    await db_session.refresh(started)
    await db_session.refresh(upcoming)
    assert started.is_completed is True
    assert upcoming.is_completed is False


@pytest.mark.asyncio
async def test_periodic_task_runs_are_single_flight():
    release = asyncio.Event()
    calls = 0

    async def slow_job():
        nonlocal calls
        calls += 1
        await release.wait()

    task = PeriodicTask("test-single-flight", 60, slow_job)

    first = asyncio.create_task(task.run_once())
    await asyncio.sleep(0)
    assert await task.run_once() is False

    release.set()
    assert await first is True
    assert calls == 1


@pytest.mark.asyncio
async def test_periodic_task_survives_job_failure():
    async def broken_job():
        raise RuntimeError("boom")

    task = PeriodicTask("test-failing", 60, broken_job)
    assert await task.run_once() is True
    assert await task.run_once() is True


@pytest.mark.asyncio
async def test_periodic_task_start_and_stop():
    ran = asyncio.Event()

    async def job():
        ran.set()

    task = PeriodicTask("test-loop", 3600, job)
    task.start()
    await asyncio.wait_for(ran.wait(), timeout=5)
    await task.stop()
    assert task._task is None
