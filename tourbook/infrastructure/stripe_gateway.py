"""
Stripe Checkout implementation of the card payment gateway.
"""

import asyncio
from typing import Optional

import stripe

from tourbook.core.exceptions import PaymentUnavailable
from tourbook.core.logging import get_logger
from tourbook.services.interfaces.checkout import (
    CHECKOUT_COMPLETED,
    CHECKOUT_FAILED,
    CHECKOUT_IGNORED,
    CheckoutEvent,
    CheckoutGateway,
)

logger = get_logger(__name__)

COMPLETED_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILED_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class StripeCheckoutGateway(CheckoutGateway):
    """
    Hosted Stripe Checkout.

    The booking id travels in the session's metadata and comes back in
    the webhook, which is how the callback finds its booking.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        currency: str,
        app_url: str,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.app_url = app_url.rstrip("/")

    async def create_checkout_session(
        self,
        booking_id: str,
        title: str,
        unit_amount: int,
        quantity: int,
    ) -> str:
        if not self.secret_key:
            raise PaymentUnavailable("Card payments are not configured")

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.secret_key,
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": title},
                        "unit_amount": unit_amount,
                    },
                    "quantity": quantity,
                }],
                success_url=f"{self.app_url}/my-bookings?success=true",
                cancel_url=f"{self.app_url}/tours",
                client_reference_id=booking_id,
                metadata={"bookingId": booking_id},
            )
        except stripe.error.StripeError as e:
            logger.error("checkout_session_failed", booking_id=booking_id, error=str(e))
            raise PaymentUnavailable("Could not start card payment. Please try again") from e

        logger.info("checkout_session_created", booking_id=booking_id, session_id=session.id)
        return session.url

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> CheckoutEvent:
        if not self.webhook_secret:
            raise ValueError("Webhook secret is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.error.SignatureVerificationError as e:
            raise ValueError("Invalid signature") from e

        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        booking_id = metadata.get("bookingId") or session.get("client_reference_id")

        outcome = CHECKOUT_IGNORED
        if event["type"] in COMPLETED_EVENTS and session.get("payment_status") == "paid":
            outcome = CHECKOUT_COMPLETED
        elif event["type"] in FAILED_EVENTS:
            outcome = CHECKOUT_FAILED

        return CheckoutEvent(
            event_id=event["id"],
            outcome=outcome,
            booking_id=booking_id,
            event_type=event["type"],
        )
