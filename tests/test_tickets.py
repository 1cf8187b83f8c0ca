"""
Tests for venue ticket redemption.
"""

import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AlreadyRedeemed, InvalidRedemption
from tourbook.services import admin_service

from conftest import confirmed_booking, pending_booking


def test_parse_ticket_code_splits_on_last_hyphen():
    booking_id = "3f2b8c1e-1b2a-4c3d-9e8f-0a1b2c3d4e5f"
    assert admin_service.parse_ticket_code(f"{booking_id}-2") == (booking_id, 2)


@pytest.mark.parametrize("code", ["", "no-number-", "-3", "abc", "booking-x1"])
def test_parse_ticket_code_rejects_garbage(code):
    with pytest.raises(InvalidRedemption):
        admin_service.parse_ticket_code(code)


@pytest.mark.asyncio
async def test_ticket_redeems_once(db_session: AsyncSession, test_user, test_tour):
    booking = await confirmed_booking(db_session, test_user, test_tour, tickets=2)

    redeemed = await admin_service.validate_ticket(db_session, booking.id, 1)
    await db_session.commit()
    assert redeemed.redeemed_tickets == [1]

    with pytest.raises(AlreadyRedeemed):
        await admin_service.validate_ticket(db_session, booking.id, 1)

    redeemed = await admin_service.validate_ticket(db_session, booking.id, 2)
    await db_session.commit()
    assert redeemed.redeemed_tickets == [1, 2]


@pytest.mark.asyncio
async def test_ticket_number_outside_booking(db_session: AsyncSession, test_user, test_tour):
    booking = await confirmed_booking(db_session, test_user, test_tour, tickets=2)

    with pytest.raises(InvalidRedemption):
        await admin_service.validate_ticket(db_session, booking.id, 3)
    with pytest.raises(InvalidRedemption):
        await admin_service.validate_ticket(db_session, booking.id, 0)


@pytest.mark.asyncio
async def test_ticket_of_unconfirmed_booking(db_session: AsyncSession, test_user, test_tour):
    booking = await pending_booking(db_session, test_user, test_tour)

    with pytest.raises(InvalidRedemption):
        await admin_service.validate_ticket(db_session, booking.id, 1)


@pytest.mark.asyncio
async def test_unknown_ticket(db_session: AsyncSession):
    with pytest.raises(InvalidRedemption):
        await admin_service.validate_ticket(db_session, "not-a-booking", 1)


@pytest.mark.asyncio
async def test_simultaneous_scans_admit_once(session_factory, db_session: AsyncSession, test_user, test_tour):
    booking = await confirmed_booking(db_session, test_user, test_tour, tickets=1)

    async def scan():
        async with session_factory() as session:
            try:
                await admin_service.validate_ticket(session, booking.id, 1)
                await session.commit()
                return True
            except AlreadyRedeemed:
                await session.rollback()
                return False

    results = await asyncio.gather(scan(), scan())
    assert sorted(results) == [False, True]


@pytest.mark.asyncio
async def test_scan_endpoint(client: AsyncClient, admin_headers, db_session, test_user, test_tour):
    booking = await confirmed_booking(db_session, test_user, test_tour, tickets=2)

    first = await client.post(
        "/api/v1/admin/tickets/scan", json={"code": f"{booking.id}-1"}, headers=admin_headers,
    )
    assert first.status_code == 200
    assert first.json()["valid"] is True
    assert first.json()["ticket_number"] == 1

    again = await client.post(
        "/api/v1/admin/tickets/scan", json={"code": f"{booking.id}-1"}, headers=admin_headers,
    )
    assert again.status_code == 200
    assert again.json()["valid"] is False
    assert again.json()["already_redeemed"] is True

    foreign = await client.post(
        "/api/v1/admin/tickets/scan", json={"code": f"{booking.id}-3"}, headers=admin_headers,
    )
    assert foreign.status_code == 200
    assert foreign.json()["valid"] is False
    assert foreign.json()["already_redeemed"] is False


@pytest.mark.asyncio
async def test_scan_endpoint_requires_admin(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/admin/tickets/scan", json={"code": "abc-1"}, headers=auth_headers)
    assert response.status_code == 403
