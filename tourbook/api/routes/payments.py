"""
Payment provider callbacks.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import get_checkout_gateway
from tourbook.core.exceptions import ValidationError
from tourbook.core.logging import get_logger
from tourbook.db.session import get_db
from tourbook.services.cache_service import (
    forget_webhook_event,
    invalidate_tour_cache,
    remember_webhook_event,
)
from tourbook.services.interfaces import CheckoutGateway
from tourbook.services.payment_service import handle_checkout_event

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/webhook")
async def checkout_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
):
    """
    Handle checkout events from the card provider.

    The signature is verified against the raw body, and event ids are
    remembered for 24 hours so redeliveries are acknowledged without
    being applied twice.
    """
    payload = await request.body()
    try:
        event = gateway.parse_webhook(payload, request.headers.get("stripe-signature"))
    except ValueError as e:
        logger.warning("webhook_rejected", reason=str(e))
        raise ValidationError("Invalid webhook payload or signature") from None

    if not await remember_webhook_event(event.event_id):
        logger.info("webhook_duplicate", event_id=event.event_id, event_type=event.event_type)
        return {"received": True, "duplicate": True}

    try:
        booking = await handle_checkout_event(db, event)
        await db.commit()
    except Exception:
        await forget_webhook_event(event.event_id)
        raise

    if booking is not None:
        await invalidate_tour_cache()
    logger.info("webhook_processed", event_id=event.event_id, event_type=event.event_type)
    return {"received": True}
