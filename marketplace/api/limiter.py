"""
Shared slowapi rate limiter keyed by client address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from marketplace.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def order_create_limit() -> str:
    """Rate limit for order creation, read from settings at request time."""
    return get_settings().order_create_rate_limit
