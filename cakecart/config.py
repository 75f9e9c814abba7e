"""
Cart configuration.

Values come from environment variables and are read when load_settings()
is called, so tests can patch os.environ.

Quantity limits are off unless configured. The storefront runs with
CART_MAX_QUANTITY_PER_ITEM=99 and CART_MAX_TOTAL_ITEMS=500.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from cakecart.services.money import parse_decimal, to_decimal

DEFAULT_STORAGE_KEY = "@CakeCrafter_Cart_v1.0"
DEFAULT_TAX_RATE = "0.05"  # Qatar VAT
DEFAULT_CURRENCY = "QAR"
DEFAULT_TTL_SECONDS = 30 * 24 * 3600


@dataclass(frozen=True)
class CartSettings:
    """Static cart configuration (not cart state)."""
    tax_rate: Decimal = Decimal(DEFAULT_TAX_RATE)
    currency: str = DEFAULT_CURRENCY
    storage_key: str = DEFAULT_STORAGE_KEY
    max_quantity_per_item: Optional[int] = None  # None = unlimited
    max_total_items: Optional[int] = None
    ttl_seconds: int = DEFAULT_TTL_SECONDS

    def __post_init__(self):
        object.__setattr__(self, "tax_rate", to_decimal(self.tax_rate))
        if self.tax_rate < 0:
            raise ValueError("tax_rate must be non-negative")
        for limit in (self.max_quantity_per_item, self.max_total_items):
            if limit is not None and limit < 1:
                raise ValueError("cart limits must be positive")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, "") or default
    value = parse_decimal(raw)
    if value is None:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    return value


def load_settings() -> CartSettings:
    """Build CartSettings from CART_* environment variables."""
    return CartSettings(
        tax_rate=_env_decimal("CART_TAX_RATE", DEFAULT_TAX_RATE),
        currency=os.environ.get("CART_CURRENCY", DEFAULT_CURRENCY),
        storage_key=os.environ.get("CART_STORAGE_KEY", DEFAULT_STORAGE_KEY),
        max_quantity_per_item=_env_int("CART_MAX_QUANTITY_PER_ITEM", None),
        max_total_items=_env_int("CART_MAX_TOTAL_ITEMS", None),
        ttl_seconds=_env_int("CART_TTL_SECONDS", DEFAULT_TTL_SECONDS),
    )
