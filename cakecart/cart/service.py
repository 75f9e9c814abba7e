"""Cart store: serialized, persisted cart state."""
import asyncio
from typing import Iterable, Mapping, Optional

from cakecart.config import CartSettings, load_settings
from cakecart.errors import (
    ERROR_SYNC_FAILED,
    CartUnavailableError,
    CorruptedCartPayloadError,
    InvalidCartInputError,
    LineNotFoundError,
    StorageError,
)
from cakecart.logging import get_logger, sanitize_id_for_logging
from cakecart.services.money import format_money, round_money, to_float
from cakecart.services.notifications import NotificationSink
from . import transitions
from .models import (
    CartLineItem,
    CartResult,
    CartSnapshot,
    CartState,
    CartStatus,
    CartWarning,
    LoadStatus,
    ProductId,
)
from .schema import decode_cart_payload, encode_cart_payload
from .storage import KeyValueStore, RedisCartStorage

logger = get_logger(__name__)


class CartStore:
    """
    Single owner of the cart state.

    Features:
    - Commands run one at a time in the order they were issued (asyncio.Lock is FIFO)
    - Every applied command is written to the durable store before it becomes visible
    - A failed write keeps the in-memory change and is reported as a warning
    - Totals are recomputed on every read

    Usage:
        store = CartStore(storage, notifier=sink)
        await store.load()
        result = await store.add_item("cake1", 100, quantity=2)
        snapshot = store.get_state()
    """

    def __init__(
        self,
        storage: KeyValueStore,
        notifier: Optional[NotificationSink] = None,
        settings: Optional[CartSettings] = None,
    ):
        self._storage = storage
        self._notifier = notifier
        self.settings = settings or load_settings()
        self._state = CartState()
        self._lock = asyncio.Lock()
        self._last_added: Optional[CartLineItem] = None
        self._pending_notifications: set[asyncio.Task] = set()
        self.load_status: Optional[LoadStatus] = None

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def get_state(self) -> CartSnapshot:
        """Current contents with freshly computed totals."""
        return CartSnapshot.of(self._state, self.settings.tax_rate)

    def get_summary(self) -> dict:
        """Presentation summary for cart drawer / summary widgets."""
        snapshot = self.get_state()
        totals = snapshot.totals
        currency = self.settings.currency

        average = totals.subtotal / totals.item_count if totals.item_count else 0

        return {
            "is_empty": snapshot.is_empty,
            "total_items": totals.item_count,
            "items_text": "item" if totals.item_count == 1 else "items",
            "unique_items": len(snapshot.items),
            "items": [
                {
                    "line_id": item.line_id,
                    "product_id": item.product_id,
                    "name": item.display_name,
                    "quantity": item.quantity,
                    "selected_options": dict(item.selected_options),
                    "unit_price": to_float(round_money(item.unit_price)),
                    "total": to_float(round_money(item.line_total)),
                }
                for item in snapshot.items
            ],
            **totals.to_dict(),
            "formatted_subtotal": format_money(totals.subtotal, currency),
            "formatted_tax": format_money(totals.tax, currency),
            "formatted_total": format_money(totals.grand_total, currency),
            "average_item_price": to_float(round_money(average)),
            "saved_items_count": len(snapshot.saved_for_later),
            "last_added_item_name": self._last_added.display_name if self._last_added else None,
            "currency": currency,
        }

    # -------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------

    async def load(self) -> LoadStatus:
        """
        Restore the cart from the durable store.

        A missing key or a corrupted payload (an empty string included) both
        start an empty cart; only a storage failure raises.

        Raises:
            CartUnavailableError: If the store could not be read
        """
        key = self.settings.storage_key
        async with self._lock:
            try:
                raw = await self._storage.read(key)
            except Exception as e:
                logger.error(f"Failed to read cart from storage: {e}")
                raise CartUnavailableError() from e

            self._last_added = None

            if raw is None:
                logger.info("No saved cart found, starting fresh")
                self._state = CartState()
                self.load_status = LoadStatus.EMPTY
                return self.load_status

            try:
                self._state = decode_cart_payload(raw)
            except CorruptedCartPayloadError as e:
                logger.warning(f"Discarding corrupted cart payload: {e}")
                self._state = CartState()
                self.load_status = LoadStatus.CORRUPTED
                return self.load_status

            self.load_status = LoadStatus.RESTORED
            logger.info(f"Cart restored: {len(self._state.items)} lines, {self._state.total_quantity} items")
            return self.load_status

    # -------------------------------------------------------------------
    # Core mutation path
    # -------------------------------------------------------------------

    async def _persist(self, state: CartState) -> Optional[str]:
        """Write state; returns a warning detail if the write failed recoverably."""
        payload = encode_cart_payload(state)
        try:
            await self._storage.write(self.settings.storage_key, payload)
        except StorageError as e:
            logger.warning(f"Cart sync failed, keeping in-memory changes: {e}")
            return f"{ERROR_SYNC_FAILED}: {e}"
        except Exception as e:
            logger.error(f"Unexpected storage failure while saving cart: {e}", exc_info=True)
            raise CartUnavailableError() from e
        return None

    async def _apply(self, operation: str, transition, *args, **kwargs) -> CartResult:
        """
        Run one transition under the lock and persist its result.

        The new state is published only after the write resolves. Expected
        rejections come back as results; unexpected storage failures leave the
        state untouched and raise CartUnavailableError.
        """
        async with self._lock:
            try:
                change = transition(self._state, *args, **kwargs)
            except LineNotFoundError as e:
                logger.info(f"{operation}: line {sanitize_id_for_logging(e.line_id)} not found")
                return CartResult(status=CartStatus.NOT_FOUND, snapshot=self.get_state(), error=str(e))
            except InvalidCartInputError as e:
                logger.info(f"{operation}: rejected input: {e}")
                return CartResult(status=CartStatus.INVALID_INPUT, snapshot=self.get_state(), error=str(e))

            sync_detail = await self._persist(change.state)
            self._state = change.state

            return CartResult(
                status=CartStatus.OK,
                snapshot=self.get_state(),
                warning=CartWarning.PERSISTENCE_SYNC_FAILED if sync_detail else None,
                warning_detail=sync_detail,
                lines=change.lines,
                merged=change.merged,
            )

    def _notify(self, message: str) -> None:
        """Dispatch a notification without waiting for it."""
        if self._notifier is None:
            return
        task = asyncio.create_task(self._deliver(message))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _deliver(self, message: str) -> None:
        try:
            await self._notifier.notify(message)
        except Exception as e:
            logger.warning(f"Cart notification failed: {type(e).__name__}: {e}")

    async def drain_notifications(self) -> None:
        """Wait for notifications already dispatched (shutdown, tests)."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications))

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------

    async def add_item(
        self,
        product_id: ProductId,
        unit_price,
        quantity: int = 1,
        selected_options: Optional[Mapping] = None,
        name: Optional[str] = None,
    ) -> CartResult:
        """
        Add a product to the cart.

        A line with the same product and options gets its quantity increased;
        otherwise a new line is appended.

        Args:
            product_id: Catalog product id
            unit_price: Price per unit at add time (>= 0)
            quantity: Units to add (>= 1)
            selected_options: Option name -> value (size, flavor, ...)
            name: Display name for notifications
        """
        result = await self._apply(
            "add_item",
            transitions.add_item,
            product_id,
            unit_price,
            quantity,
            selected_options,
            name,
            settings=self.settings,
        )
        if result.ok:
            line = self._last_added = result.line
            if result.merged:
                self._notify(f"Updated {line.display_name} quantity to {line.quantity}")
            else:
                self._notify(f"Added {line.display_name} to cart")
        return result

    async def add_items(self, entries: Iterable[Mapping]) -> CartResult:
        """Add several products in one command (all or nothing)."""
        result = await self._apply("add_items", transitions.add_items, entries, settings=self.settings)
        if result.ok:
            self._last_added = result.lines[-1]
            self._notify(f"Added {len(result.lines)} items to cart")
        return result

    async def remove_item(self, line_id: str) -> CartResult:
        """Remove a line entirely."""
        result = await self._apply("remove_item", transitions.remove_item, line_id)
        if result.ok:
            self._notify(f"Removed {result.line.display_name} from cart")
        return result

    async def remove_items(self, line_ids: Iterable[str]) -> CartResult:
        """Remove several lines in one command."""
        result = await self._apply("remove_items", transitions.remove_items, line_ids)
        if result.ok:
            self._notify(f"Removed {len(result.lines)} items from cart")
        return result

    async def update_quantity(self, line_id: str, new_quantity: int) -> CartResult:
        """Set a line's quantity; 0 or less removes the line."""
        return await self._apply(
            "update_quantity", transitions.update_quantity, line_id, new_quantity, settings=self.settings
        )

    async def apply_discount(self, amount) -> CartResult:
        """Set the cart-level discount amount (not a percentage)."""
        return await self._apply("apply_discount", transitions.apply_discount, amount)

    async def clear_cart(self) -> CartResult:
        """Empty the cart (checkout completed or user cleared it)."""
        result = await self._apply("clear_cart", transitions.clear_cart)
        if result.ok:
            self._last_added = None
        return result

    async def save_for_later(self, line_id: str) -> CartResult:
        """Park a line in the saved-for-later list."""
        result = await self._apply("save_for_later", transitions.save_for_later, line_id)
        if result.ok:
            self._notify(f"Saved {result.line.display_name} for later")
        return result

    async def move_to_cart(self, line_id: str) -> CartResult:
        """Move a saved line back into the cart."""
        result = await self._apply("move_to_cart", transitions.move_to_cart, line_id, settings=self.settings)
        if result.ok:
            self._notify(f"Moved {result.line.display_name} back to cart")
        return result


async def create_cart_store(
    storage: Optional[KeyValueStore] = None,
    notifier: Optional[NotificationSink] = None,
    settings: Optional[CartSettings] = None,
) -> CartStore:
    """
    Build a CartStore for an app session and restore it from storage.

    Defaults to Upstash Redis storage configured from the environment.
    """
    settings = settings or load_settings()
    if storage is None:
        storage = RedisCartStorage(ttl_seconds=settings.ttl_seconds)
    store = CartStore(storage, notifier=notifier, settings=settings)
    await store.load()
    return store
