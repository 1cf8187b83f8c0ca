"""
Shared route dependencies for external collaborators.
Tests override these through app.dependency_overrides.
"""

from functools import lru_cache

from tourbook.core.config import get_settings
from tourbook.core.exceptions import PaymentUnavailable
from tourbook.infrastructure.object_storage import HttpObjectStorage
from tourbook.infrastructure.stripe_gateway import StripeCheckoutGateway
from tourbook.services.interfaces import CheckoutGateway, ObjectStorage


@lru_cache()
def get_storage() -> ObjectStorage:
    settings = get_settings()
    return HttpObjectStorage(settings.STORAGE_BASE_URL, settings.STORAGE_API_TOKEN)


def get_checkout_gateway() -> CheckoutGateway:
    settings = get_settings()
    if not settings.STRIPE_SECRET_KEY or not settings.STRIPE_WEBHOOK_SECRET:
        raise PaymentUnavailable("Card payments are not configured")
    return StripeCheckoutGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        currency=settings.CHECKOUT_CURRENCY,
        app_url=settings.APP_URL,
    )
