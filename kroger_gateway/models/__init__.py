"""Database models for the Kroger gateway."""

from .base import Base, TimestampMixin, normalize_search_term
from .user_token import UserToken
from .cart_session import CartSession, CartSessionStatus
from .user_store import UserStore
from .product_cache import ProductCacheEntry

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "normalize_search_term",
    # Models
    "UserToken",
    "CartSession",
    "CartSessionStatus",
    "UserStore",
    "ProductCacheEntry",
]
