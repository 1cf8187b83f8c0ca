"""
Card checkout gateway interface.
The booking engine only needs "give me a payment page for this booking"
and "tell me what happened to it"; the wire protocol stays behind here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

CHECKOUT_COMPLETED = "completed"
CHECKOUT_FAILED = "failed"
CHECKOUT_IGNORED = "ignored"


@dataclass
class CheckoutEvent:
    event_id: str
    outcome: str  # completed, failed, ignored
    booking_id: Optional[str] = None
    event_type: str = ""


class CheckoutGateway(ABC):
    """
    Interface for card payment providers.

    Implementations:
    - StripeCheckoutGateway: Stripe Checkout sessions + signed webhooks
    """

    @abstractmethod
    async def create_checkout_session(
        self,
        booking_id: str,
        title: str,
        unit_amount: int,
        quantity: int,
    ) -> str:
        """
        Create a hosted payment page.

        Args:
            booking_id: Booking the payment settles
            title: Line item name shown to the customer
            unit_amount: Price per ticket in minor currency units
            quantity: Number of tickets

        Returns:
            URL to redirect the customer to
        """
        pass

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> CheckoutEvent:
        """
        Verify and decode a provider callback.

        Raises:
            ValueError: if the payload or its signature is invalid
        """
        pass
