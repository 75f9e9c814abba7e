"""
Persisted cart payload.

The payload written under the cart key is JSON:

    {
        "version": "1.0",
        "items": [{"line_id": ..., "product_id": ..., "unit_price": "100", ...}],
        "discount": "0",
        "saved_for_later": [...],
        "last_sync_time": "2026-01-01T00:00:00+00:00"
    }

Derived totals are never part of it. Decoding validates the payload with
pydantic and then checks cart invariants; anything off is reported as
CorruptedCartPayloadError.
"""
import json
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, ValidationError

from cakecart.errors import ERROR_CORRUPTED_PAYLOAD, CorruptedCartPayloadError
from .models import CartLineItem, CartState, utc_now_iso

PAYLOAD_VERSION = "1.0"

OptionValue = Optional[Union[StrictStr, StrictBool, StrictInt, StrictFloat]]


class LineItemPayload(BaseModel):
    """Stored form of a CartLineItem."""
    model_config = ConfigDict(extra="ignore")

    line_id: str = Field(min_length=1)
    product_id: Union[StrictStr, StrictInt]
    unit_price: Decimal = Field(ge=0, allow_inf_nan=False)
    quantity: int = Field(ge=1, strict=True)
    selected_options: dict[str, OptionValue] = Field(default_factory=dict)
    added_at: str = ""
    name: Optional[str] = None

    def to_line(self) -> CartLineItem:
        return CartLineItem(
            line_id=self.line_id,
            product_id=self.product_id,
            unit_price=self.unit_price,
            quantity=self.quantity,
            selected_options=self.selected_options,
            added_at=self.added_at,
            name=self.name,
        )


class CartPayload(BaseModel):
    """Stored form of a CartState."""
    model_config = ConfigDict(extra="ignore")

    version: Literal["1.0"]
    items: list[LineItemPayload]
    discount: Decimal = Field(default=Decimal("0"), ge=0, allow_inf_nan=False)
    saved_for_later: list[LineItemPayload] = Field(default_factory=list)
    last_sync_time: Optional[str] = None


def encode_cart_payload(state: CartState, synced_at: Optional[str] = None) -> str:
    """Serialize the persistable part of a cart state to JSON."""
    data = {"version": PAYLOAD_VERSION, **state.to_dict(), "last_sync_time": synced_at or utc_now_iso()}
    return json.dumps(data, ensure_ascii=False)


def _check_invariants(state: CartState) -> None:
    seen_ids = set()
    for line in state.items + state.saved_for_later:
        if line.line_id in seen_ids:
            raise CorruptedCartPayloadError(f"{ERROR_CORRUPTED_PAYLOAD}: duplicate line_id")
        seen_ids.add(line.line_id)

    for index, line in enumerate(state.items):
        if any(other.matches(line.product_id, line.selected_options) for other in state.items[:index]):
            raise CorruptedCartPayloadError(f"{ERROR_CORRUPTED_PAYLOAD}: duplicate product/options line")


def decode_cart_payload(raw: Union[str, bytes]) -> CartState:
    """
    Rebuild a CartState from a stored payload.

    Raises:
        CorruptedCartPayloadError: malformed JSON, schema mismatch or broken invariants
    """
    if not isinstance(raw, (str, bytes, bytearray)):
        raise CorruptedCartPayloadError(f"{ERROR_CORRUPTED_PAYLOAD}: unexpected type {type(raw).__name__}")

    try:
        payload = CartPayload.model_validate_json(raw)
    except ValidationError as e:
        raise CorruptedCartPayloadError(f"{ERROR_CORRUPTED_PAYLOAD}: {e.error_count()} validation error(s)") from e

    state = CartState(
        items=tuple(item.to_line() for item in payload.items),
        discount=payload.discount,
        saved_for_later=tuple(item.to_line() for item in payload.saved_for_later),
    )
    _check_invariants(state)
    return state
