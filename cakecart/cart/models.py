"""Cart models with Decimal-based pricing."""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple, Union

from cakecart.services.money import round_money, to_decimal, to_float

ProductId = Union[str, int]


def new_line_id() -> str:
    """Generate an opaque id for a new cart line."""
    return f"line_{uuid.uuid4().hex}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CartLineItem:
    """One product + options combination and its quantity."""
    line_id: str
    product_id: ProductId
    unit_price: Decimal  # snapshotted at add time
    quantity: int
    selected_options: Mapping[str, object] = field(default_factory=dict)
    added_at: str = ""
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        # Read-only copy so snapshots can't be edited behind the store's back
        object.__setattr__(self, "selected_options", MappingProxyType(dict(self.selected_options or {})))
        if not self.added_at:
            object.__setattr__(self, "added_at", utc_now_iso())

    @property
    def line_total(self) -> Decimal:
        """unit_price * quantity at full precision."""
        return self.unit_price * self.quantity

    @property
    def display_name(self) -> str:
        return self.name or str(self.product_id)

    def matches(self, product_id: ProductId, selected_options: Optional[Mapping[str, object]]) -> bool:
        """True if this line is the same product with the same options."""
        return self.product_id == product_id and dict(self.selected_options) == dict(selected_options or {})

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "selected_options": dict(self.selected_options),
            "added_at": self.added_at,
            "name": self.name,
        }


@dataclass(frozen=True)
class CartTotals:
    """Derived values; always recomputed from items and discount."""
    item_count: int
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    grand_total: Decimal

    def to_dict(self) -> dict:
        """Totals rounded to minor units for presentation."""
        return {
            "item_count": self.item_count,
            "subtotal": to_float(round_money(self.subtotal)),
            "tax": to_float(round_money(self.tax)),
            "discount": to_float(round_money(self.discount)),
            "grand_total": to_float(round_money(self.grand_total)),
        }


def compute_totals(items: Iterable[CartLineItem], discount: Decimal, tax_rate: Decimal) -> CartTotals:
    """
    Compute derived totals.

    1. item_count = sum of quantities
    2. subtotal = sum of unit_price * quantity (no rounding)
    3. tax = subtotal * tax_rate
    4. grand_total = max(0, subtotal + tax - discount)
    """
    items = tuple(items)
    discount = to_decimal(discount)
    item_count = sum(item.quantity for item in items)
    subtotal = sum((item.line_total for item in items), Decimal("0"))
    tax = subtotal * to_decimal(tax_rate)
    grand_total = max(Decimal("0"), subtotal + tax - discount)
    return CartTotals(
        item_count=item_count,
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        grand_total=grand_total,
    )


@dataclass(frozen=True)
class CartState:
    """Canonical cart contents. Replaced, never edited, on every mutation."""
    items: Tuple[CartLineItem, ...] = ()
    discount: Decimal = Decimal("0")
    saved_for_later: Tuple[CartLineItem, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "saved_for_later", tuple(self.saved_for_later))
        object.__setattr__(self, "discount", to_decimal(self.discount))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_line(self, line_id: str) -> Optional[CartLineItem]:
        return next((item for item in self.items if item.line_id == line_id), None)

    def find_saved(self, line_id: str) -> Optional[CartLineItem]:
        return next((item for item in self.saved_for_later if item.line_id == line_id), None)

    def find_match(self, product_id: ProductId, selected_options) -> Optional[CartLineItem]:
        return next((item for item in self.items if item.matches(product_id, selected_options)), None)

    def with_line(self, line: CartLineItem) -> "CartState":
        """Replace the line with the same line_id, keeping its position."""
        items = tuple(line if item.line_id == line.line_id else item for item in self.items)
        return replace(self, items=items)

    def totals(self, tax_rate: Decimal) -> CartTotals:
        return compute_totals(self.items, self.discount, tax_rate)

    def to_dict(self) -> dict:
        """Persistable fields only; totals are never stored."""
        return {
            "items": [item.to_dict() for item in self.items],
            "discount": str(self.discount),
            "saved_for_later": [item.to_dict() for item in self.saved_for_later],
        }


@dataclass(frozen=True)
class CartSnapshot:
    """Read-only view handed to screens: state plus freshly computed totals."""
    items: Tuple[CartLineItem, ...]
    discount: Decimal
    saved_for_later: Tuple[CartLineItem, ...]
    totals: CartTotals

    @classmethod
    def of(cls, state: CartState, tax_rate: Decimal) -> "CartSnapshot":
        return cls(
            items=state.items,
            discount=state.discount,
            saved_for_later=state.saved_for_later,
            totals=state.totals(tax_rate),
        )

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_line(self, line_id: str) -> Optional[CartLineItem]:
        return next((item for item in self.items if item.line_id == line_id), None)


class CartStatus(str, Enum):
    """Outcome of a cart command."""
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"


class CartWarning(str, Enum):
    """Non-fatal condition attached to an otherwise applied command."""
    PERSISTENCE_SYNC_FAILED = "persistence_sync_failed"


class LoadStatus(str, Enum):
    """How the cart was initialized from the durable store."""
    EMPTY = "empty"  # nothing stored
    RESTORED = "restored"
    CORRUPTED = "corrupted"  # bad payload discarded, started empty


@dataclass(frozen=True)
class CartResult:
    """
    Discriminated result of a cart command.

    status tells whether the command was applied. warning is set when the
    command was applied in memory but the durable write failed.
    """
    status: CartStatus
    snapshot: CartSnapshot
    error: Optional[str] = None
    warning: Optional[CartWarning] = None
    warning_detail: Optional[str] = None
    lines: Tuple[CartLineItem, ...] = ()
    merged: bool = False  # add landed on an existing line

    @property
    def ok(self) -> bool:
        return self.status is CartStatus.OK

    @property
    def synced(self) -> bool:
        return self.warning is None

    @property
    def line(self) -> Optional[CartLineItem]:
        """The (first) line affected by the command, if any."""
        return self.lines[0] if self.lines else None
