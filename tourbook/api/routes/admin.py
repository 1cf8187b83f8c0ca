"""
Admin endpoints: payment review queue, refunds and venue ticket scanning.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import get_storage
from tourbook.core.exceptions import AlreadyRedeemed, InvalidRedemption
from tourbook.core.logging import get_logger
from tourbook.core.security import require_admin
from tourbook.db.session import get_db
from tourbook.domain.booking_state import BookingStatus, PaymentStatus
from tourbook.models.booking import Booking
from tourbook.models.user import User
from tourbook.schemas.booking import (
    AdminBookingResponse,
    BookingResponse,
    PaymentDecision,
    RefundRequest,
    TicketScanRequest,
    TicketScanResponse,
)
from tourbook.services import admin_service
from tourbook.services.cache_service import invalidate_tour_cache
from tourbook.services.interfaces import ObjectStorage

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


def to_admin_booking_response(booking: Booking, storage: ObjectStorage) -> AdminBookingResponse:
    response = AdminBookingResponse.model_validate(booking)
    response.proof_url = storage.get_url(booking.proof_image_id)
    return response


@router.get("/bookings", response_model=list[AdminBookingResponse])
async def list_bookings_endpoint(
    status: Optional[BookingStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    tour_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """All bookings, newest first. Filter by payment_status=reviewing for the review queue."""
    bookings = await admin_service.list_bookings(db, status, payment_status, tour_id, limit, offset)
    return [to_admin_booking_response(b, storage) for b in bookings]


@router.post("/bookings/{booking_id}/verify", response_model=AdminBookingResponse)
async def verify_payment_endpoint(
    booking_id: str,
    decision: PaymentDecision,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """Approve or reject a submitted payment. Rejection returns the seats."""
    booking = await admin_service.verify_payment(db, booking_id, approve=decision.decision == "approve")
    if decision.decision == "reject":
        await invalidate_tour_cache()
    logger.info("payment_decided", booking_id=booking_id, admin_id=admin.id, decision=decision.decision)
    return to_admin_booking_response(booking, storage)


@router.post("/bookings/{booking_id}/refund", response_model=AdminBookingResponse)
async def refund_endpoint(
    booking_id: str,
    refund: RefundRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    booking = await admin_service.process_refund(db, booking_id, refund.proof_ref)
    return to_admin_booking_response(booking, storage)


@router.post("/tickets/scan", response_model=TicketScanResponse)
async def scan_ticket_endpoint(
    scan: TicketScanRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Redeem a scanned ticket.

    Rejected scans still answer 200 so the scanner can tell a reused
    ticket apart from a foreign one.
    """
    try:
        booking, ticket_number = await admin_service.scan_ticket(db, scan.code)
    except AlreadyRedeemed as e:
        return TicketScanResponse(valid=False, already_redeemed=True, message=e.detail)
    except InvalidRedemption as e:
        return TicketScanResponse(valid=False, message=e.detail)

    return TicketScanResponse(
        valid=True,
        message=f"Ticket {ticket_number} of {booking.ticket_count} admitted for {booking.tour_title}",
        ticket_number=ticket_number,
        booking=BookingResponse.model_validate(booking),
    )
