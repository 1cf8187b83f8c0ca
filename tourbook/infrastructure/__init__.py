"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .object_storage import HttpObjectStorage
from .redis_client import RedisClient, close_redis, get_redis
from .stripe_gateway import StripeCheckoutGateway

__all__ = ['get_redis', 'close_redis', 'RedisClient', 'HttpObjectStorage', 'StripeCheckoutGateway']
