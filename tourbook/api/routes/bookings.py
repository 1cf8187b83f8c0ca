"""
Booking endpoints: seat holds, confirmation and self-service cancellation.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import get_checkout_gateway
from tourbook.core.exceptions import Forbidden
from tourbook.core.logging import get_logger
from tourbook.core.security import get_current_user
from tourbook.db.session import get_db
from tourbook.models.user import User
from tourbook.schemas.booking import (
    BookingCancelResponse,
    BookingConfirm,
    BookingResponse,
    CardCheckoutRequest,
    CheckoutResponse,
    ReservationCreate,
)
from tourbook.services.cache_service import invalidate_tour_cache
from tourbook.services.confirmation_service import confirm_booking
from tourbook.services.interfaces import CheckoutGateway
from tourbook.services.lifecycle import get_booking
from tourbook.services.payment_service import start_card_checkout
from tourbook.services.reservation_service import cancel_booking, get_user_bookings, reserve

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation: ReservationCreate,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Hold seats on a tour for 15 minutes.

    Seats are debited straight away. Calling again while a hold is live
    returns that hold (200) instead of debiting twice.
    """
    booking, created = await reserve(db, user, reservation.tour_id, reservation.ticket_count)
    if created:
        await invalidate_tour_cache()
    else:
        response.status_code = status.HTTP_200_OK
    return booking


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await get_user_bookings(db, user.id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking(db, booking_id)
    if booking.user_id != user.id and not user.is_admin:
        raise Forbidden("You cannot view this booking")
    return booking


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: str,
    confirmation: BookingConfirm,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit payment details for a hold; the booking then awaits review."""
    return await confirm_booking(
        db,
        booking_id,
        user,
        payment_method=confirmation.payment_method,
        contact_number=confirmation.contact_number,
        proof_ref=confirmation.proof_ref,
        refund_details=confirmation.refund_details,
    )


@router.post("/{booking_id}/checkout", response_model=CheckoutResponse)
async def card_checkout_endpoint(
    booking_id: str,
    checkout: CardCheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
):
    booking, redirect_url = await start_card_checkout(
        db, booking_id, user, checkout.contact_number, gateway,
    )
    return CheckoutResponse(booking_id=booking.id, redirect_url=redirect_url)


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and release seats back to the tour."""
    booking = await cancel_booking(db, booking_id, user)
    await invalidate_tour_cache()
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )
