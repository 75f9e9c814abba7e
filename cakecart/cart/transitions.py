"""
Pure cart transitions.

Each function takes the current CartState and returns a Transition holding
the next state. Nothing here touches storage or notifications, so every
rule can be tested without a store. Rejected commands raise
InvalidCartInputError or LineNotFoundError and leave the input state as is.
"""
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Tuple

from cakecart.config import CartSettings
from cakecart.errors import (
    ERROR_EMPTY_BATCH,
    ERROR_INVALID_BATCH,
    ERROR_INVALID_DISCOUNT,
    ERROR_INVALID_LINE_ID,
    ERROR_INVALID_NEW_QUANTITY,
    ERROR_INVALID_OPTIONS,
    ERROR_INVALID_PRODUCT_ID,
    ERROR_INVALID_QUANTITY,
    ERROR_INVALID_UNIT_PRICE,
    ERROR_QUANTITY_LIMIT,
    ERROR_SAVED_LINE_NOT_FOUND,
    ERROR_TOTAL_ITEMS_LIMIT,
    InvalidCartInputError,
    LineNotFoundError,
)
from cakecart.services.money import parse_decimal
from .models import CartLineItem, CartState, ProductId, new_line_id


@dataclass(frozen=True)
class Transition:
    """Next state plus the lines the command touched."""
    state: CartState
    lines: Tuple[CartLineItem, ...] = ()
    merged: bool = False  # add landed on an existing line


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_product_id(product_id) -> ProductId:
    if _is_int(product_id):
        return product_id
    if isinstance(product_id, str) and product_id:
        return product_id
    raise InvalidCartInputError(ERROR_INVALID_PRODUCT_ID)


def _validate_unit_price(unit_price) -> Decimal:
    price = parse_decimal(unit_price)
    if price is None or price < 0:
        raise InvalidCartInputError(ERROR_INVALID_UNIT_PRICE)
    return price


def _validate_quantity(quantity) -> int:
    if not _is_int(quantity) or quantity < 1:
        raise InvalidCartInputError(ERROR_INVALID_QUANTITY)
    return quantity


def _is_option_value(value) -> bool:
    # Values must come back from the JSON payload equal to what was stored
    if value is None or isinstance(value, (str, bool, int)):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _validate_options(selected_options) -> dict:
    if selected_options is None:
        return {}
    if not isinstance(selected_options, Mapping):
        raise InvalidCartInputError(ERROR_INVALID_OPTIONS)
    for key, value in selected_options.items():
        if not isinstance(key, str) or not _is_option_value(value):
            raise InvalidCartInputError(ERROR_INVALID_OPTIONS)
    return dict(selected_options)


def _as_batch(values) -> list:
    if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
        raise InvalidCartInputError(ERROR_INVALID_BATCH)
    batch = list(values)
    if not batch:
        raise InvalidCartInputError(ERROR_EMPTY_BATCH)
    return batch


def _check_line_limit(quantity: int, settings: CartSettings) -> None:
    limit = settings.max_quantity_per_item
    if limit is not None and quantity > limit:
        raise InvalidCartInputError(ERROR_QUANTITY_LIMIT.format(limit=limit))


def _check_cart_limit(state: CartState, settings: CartSettings) -> None:
    limit = settings.max_total_items
    if limit is not None and state.total_quantity > limit:
        raise InvalidCartInputError(ERROR_TOTAL_ITEMS_LIMIT.format(limit=limit))


def _require_line(state: CartState, line_id: str) -> CartLineItem:
    line = state.find_line(line_id)
    if line is None:
        raise LineNotFoundError(line_id)
    return line


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def add_item(
    state: CartState,
    product_id: ProductId,
    unit_price,
    quantity: int = 1,
    selected_options: Optional[Mapping] = None,
    name: Optional[str] = None,
    *,
    settings: CartSettings,
) -> Transition:
    """Merge into the line with the same product and options, or append a new line."""
    product_id = _validate_product_id(product_id)
    price = _validate_unit_price(unit_price)
    quantity = _validate_quantity(quantity)
    options = _validate_options(selected_options)

    existing = state.find_match(product_id, options)
    if existing:
        # Merged lines keep their original price snapshot
        new_quantity = existing.quantity + quantity
        _check_line_limit(new_quantity, settings)
        line = replace(existing, quantity=new_quantity)
        next_state = state.with_line(line)
    else:
        _check_line_limit(quantity, settings)
        line = CartLineItem(
            line_id=new_line_id(),
            product_id=product_id,
            unit_price=price,
            quantity=quantity,
            selected_options=options,
            name=name,
        )
        next_state = replace(state, items=state.items + (line,))

    _check_cart_limit(next_state, settings)
    return Transition(state=next_state, lines=(line,), merged=existing is not None)


def add_items(state: CartState, entries: Iterable[Mapping], *, settings: CartSettings) -> Transition:
    """
    Add several products as one transition.

    Each entry is a mapping with add_item's keyword arguments. If any entry
    is rejected none of them is applied.
    """
    entries = _as_batch(entries)

    touched = []
    for entry in entries:
        if not isinstance(entry, Mapping) or "product_id" not in entry or "unit_price" not in entry:
            raise InvalidCartInputError(ERROR_INVALID_PRODUCT_ID)
        change = add_item(
            state,
            entry["product_id"],
            entry["unit_price"],
            entry.get("quantity", 1),
            entry.get("selected_options"),
            entry.get("name"),
            settings=settings,
        )
        state = change.state
        touched = [line for line in touched if line.line_id != change.lines[0].line_id]
        touched.append(change.lines[0])

    return Transition(state=state, lines=tuple(touched))


def remove_item(state: CartState, line_id: str) -> Transition:
    """Delete a line entirely."""
    line = _require_line(state, line_id)
    items = tuple(item for item in state.items if item.line_id != line_id)
    return Transition(state=replace(state, items=items), lines=(line,))


def remove_items(state: CartState, line_ids: Iterable[str]) -> Transition:
    """Delete every listed line; unknown ids are skipped unless none match."""
    ids = _as_batch(line_ids)
    if not all(isinstance(line_id, str) for line_id in ids):
        raise InvalidCartInputError(ERROR_INVALID_LINE_ID)

    wanted = set(ids)
    removed = tuple(item for item in state.items if item.line_id in wanted)
    if not removed:
        raise LineNotFoundError(ids[0])

    items = tuple(item for item in state.items if item.line_id not in wanted)
    return Transition(state=replace(state, items=items), lines=removed)


def update_quantity(state: CartState, line_id: str, new_quantity: int, *, settings: CartSettings) -> Transition:
    """Set a line's quantity; zero or less removes the line."""
    if not _is_int(new_quantity):
        raise InvalidCartInputError(ERROR_INVALID_NEW_QUANTITY)

    line = _require_line(state, line_id)
    if new_quantity <= 0:
        return remove_item(state, line_id)

    _check_line_limit(new_quantity, settings)
    updated = replace(line, quantity=new_quantity)
    next_state = state.with_line(updated)
    _check_cart_limit(next_state, settings)
    return Transition(state=next_state, lines=(updated,))


def apply_discount(state: CartState, amount) -> Transition:
    """Set the cart-level discount amount."""
    discount = parse_decimal(amount)
    if discount is None or discount < 0:
        raise InvalidCartInputError(ERROR_INVALID_DISCOUNT)
    return Transition(state=replace(state, discount=discount))


def clear_cart(state: CartState) -> Transition:
    """Empty the cart and reset the discount. Saved-for-later items stay."""
    return Transition(state=replace(state, items=(), discount=Decimal("0")), lines=state.items)


def save_for_later(state: CartState, line_id: str) -> Transition:
    """Move a line out of the cart into the saved list."""
    line = _require_line(state, line_id)
    items = tuple(item for item in state.items if item.line_id != line_id)
    return Transition(
        state=replace(state, items=items, saved_for_later=state.saved_for_later + (line,)),
        lines=(line,),
    )


def move_to_cart(state: CartState, line_id: str, *, settings: CartSettings) -> Transition:
    """Bring a saved line back, merging with a matching cart line if there is one."""
    saved = state.find_saved(line_id)
    if saved is None:
        raise LineNotFoundError(line_id, ERROR_SAVED_LINE_NOT_FOUND)

    remaining = tuple(item for item in state.saved_for_later if item.line_id != line_id)
    existing = state.find_match(saved.product_id, saved.selected_options)
    if existing:
        line = replace(existing, quantity=existing.quantity + saved.quantity)
        _check_line_limit(line.quantity, settings)
        next_state = replace(state.with_line(line), saved_for_later=remaining)
    else:
        line = saved
        next_state = replace(state, items=state.items + (saved,), saved_for_later=remaining)

    _check_cart_limit(next_state, settings)
    return Transition(state=next_state, lines=(line,), merged=existing is not None)
