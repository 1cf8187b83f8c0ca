"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .checkout import CheckoutEvent, CheckoutGateway
from .storage import ObjectStorage

__all__ = ['CheckoutEvent', 'CheckoutGateway', 'ObjectStorage']
