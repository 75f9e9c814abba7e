"""Cart package: models, transitions, storage, and the store facade."""
from .models import (
    CartLineItem,
    CartResult,
    CartSnapshot,
    CartState,
    CartStatus,
    CartTotals,
    CartWarning,
    LoadStatus,
    compute_totals,
)
from .service import CartStore, create_cart_store
from .storage import KeyValueStore, RedisCartStorage

__all__ = [
    "CartLineItem",
    "CartResult",
    "CartSnapshot",
    "CartState",
    "CartStatus",
    "CartTotals",
    "CartWarning",
    "LoadStatus",
    "compute_totals",
    "CartStore",
    "create_cart_store",
    "KeyValueStore",
    "RedisCartStorage",
]
