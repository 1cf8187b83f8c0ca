"""
Tests for card checkout and the payment webhook.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.domain.booking_state import BookingStatus, PaymentMethod, PaymentStatus
from tourbook.models.booking import Booking
from tourbook.services.interfaces.checkout import (
    CHECKOUT_COMPLETED,
    CHECKOUT_FAILED,
    CHECKOUT_IGNORED,
    CheckoutEvent,
)
from tourbook.services.payment_service import handle_checkout_event


async def start_checkout(client: AsyncClient, headers: dict, tour_id: int, tickets: int = 2) -> str:
    created = await client.post(
        "/api/v1/bookings/", json={"tour_id": tour_id, "ticket_count": tickets}, headers=headers,
    )
    booking_id = created.json()["id"]
    response = await client.post(
        f"/api/v1/bookings/{booking_id}/checkout",
        json={"contact_number": "+966500000000"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["redirect_url"] == f"https://checkout.test/{booking_id}"
    return booking_id


async def send_webhook(client: AsyncClient, gateway, event: CheckoutEvent, signature: str = "valid"):
    gateway.next_event = event
    return await client.post(
        "/api/v1/payments/webhook",
        content=b'{"id": "evt"}',
        headers={"stripe-signature": signature},
    )


@pytest.mark.asyncio
async def test_checkout_moves_hold_to_pending(client: AsyncClient, auth_headers, gateway, db_session, test_tour):
    booking_id = await start_checkout(client, auth_headers, test_tour.id, tickets=3)

    assert gateway.sessions == [
        {"booking_id": booking_id, "title": test_tour.title, "unit_amount": test_tour.price, "quantity": 3}
    ]
    booking = await db_session.get(Booking, booking_id)
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_method == PaymentMethod.CARD
    assert booking.payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_completed_event_confirms_booking(client: AsyncClient, auth_headers, gateway, db_session, test_tour):
    booking_id = await start_checkout(client, auth_headers, test_tour.id)

    response = await send_webhook(
        client, gateway, CheckoutEvent("evt_1", CHECKOUT_COMPLETED, booking_id, "checkout.session.completed"),
    )
    assert response.status_code == 200

    booking = await db_session.get(Booking, booking_id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_failed_event_releases_seats(client: AsyncClient, auth_headers, gateway, test_tour):
    booking_id = await start_checkout(client, auth_headers, test_tour.id, tickets=4)

    response = await send_webhook(
        client, gateway, CheckoutEvent("evt_2", CHECKOUT_FAILED, booking_id, "checkout.session.expired"),
    )
    assert response.status_code == 200

    booking = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert booking.json()["status"] == "rejected"
    tour = await client.get(f"/api/v1/tours/{test_tour.id}")
    assert tour.json()["available_seats"] == 10


@pytest.mark.asyncio
async def test_redelivered_event_is_acknowledged(client: AsyncClient, auth_headers, gateway, test_tour):
    booking_id = await start_checkout(client, auth_headers, test_tour.id)
    event = CheckoutEvent("evt_3", CHECKOUT_COMPLETED, booking_id, "checkout.session.completed")

    first = await send_webhook(client, gateway, event)
    second = await send_webhook(client, gateway, event)

    assert first.status_code == 200
    assert second.status_code == 200
    booking = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert booking.json()["status"] == "confirmed"


@pytest.mark.asyncio
async def test_bad_signature(client: AsyncClient, gateway):
    response = await send_webhook(
        client, gateway, CheckoutEvent("evt_4", CHECKOUT_COMPLETED, "x", ""), signature="forged",
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_ignored_and_orphan_events(db_session: AsyncSession):
    assert await handle_checkout_event(db_session, CheckoutEvent("evt_5", CHECKOUT_IGNORED, None, "x")) is None
    assert await handle_checkout_event(db_session, CheckoutEvent("evt_6", CHECKOUT_COMPLETED, None, "x")) is None
    assert await handle_checkout_event(
        db_session, CheckoutEvent("evt_7", CHECKOUT_COMPLETED, "missing-booking", "x"),
    ) is None


@pytest.mark.asyncio
async def test_checkout_of_someone_elses_hold(client: AsyncClient, auth_headers, other_headers, gateway, test_tour):
    created = await client.post(
        "/api/v1/bookings/", json={"tour_id": test_tour.id, "ticket_count": 1}, headers=auth_headers,
    )
    response = await client.post(
        f"/api/v1/bookings/{created.json()['id']}/checkout",
        json={"contact_number": "+966500000000"},
        headers=other_headers,
    )
    assert response.status_code == 403
    assert gateway.sessions == []
