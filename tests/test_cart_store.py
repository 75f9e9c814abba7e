"""
Tests for CartStore
"""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from cakecart.cart import CartStatus, CartStore, CartWarning, LoadStatus
from cakecart.config import CartSettings
from cakecart.errors import CartUnavailableError, StorageError


def stored_payload(storage, settings):
    return json.loads(storage.data[settings.storage_key])


@pytest.mark.asyncio
async def test_add_merge_then_zero_quantity_scenario(store):
    """cake1 added twice merges into one line; quantity 0 empties the cart"""
    result = await store.add_item("cake1", 100, 1, {})
    assert result.ok
    assert len(result.snapshot.items) == 1
    assert result.snapshot.totals.subtotal == 100
    line_id = result.line.line_id

    result = await store.add_item("cake1", 100, 2, {})
    assert len(result.snapshot.items) == 1
    assert result.snapshot.items[0].quantity == 3
    assert result.snapshot.totals.subtotal == 300
    assert result.merged is True

    result = await store.update_quantity(line_id, 0)
    assert result.ok
    assert result.snapshot.items == ()
    assert result.snapshot.totals.subtotal == 0
    assert result.snapshot.totals.item_count == 0


@pytest.mark.asyncio
async def test_discount_and_tax_scenario(store):
    """A(50) + 2xB(30) with discount 20 and 5% tax"""
    await store.add_item("A", 50, 1)
    await store.add_item("B", 30, 2)
    await store.apply_discount(20)

    totals = store.get_state().totals

    assert totals.subtotal == Decimal("110")
    assert totals.tax == Decimal("5.5")
    assert totals.grand_total == Decimal("95.5")


@pytest.mark.asyncio
async def test_remove_item(store):
    """Removing a line leaves the others and recomputes totals"""
    first = (await store.add_item("A", 50, 1)).line
    await store.add_item("B", 30, 2)

    result = await store.remove_item(first.line_id)

    assert result.ok
    assert [i.product_id for i in result.snapshot.items] == ["B"]
    assert result.snapshot.totals.subtotal == Decimal("60")
    assert result.snapshot.totals.item_count == 2


@pytest.mark.asyncio
async def test_remove_unknown_line_reports_not_found(store, storage):
    """NotFound is a result, not an exception, and nothing is written"""
    await store.add_item("A", 50, 1)
    writes_before = len(storage.writes)

    result = await store.remove_item("line_missing")

    assert result.status is CartStatus.NOT_FOUND
    assert not result.ok
    assert result.error
    assert len(result.snapshot.items) == 1
    assert len(storage.writes) == writes_before


@pytest.mark.asyncio
async def test_update_unknown_line_reports_not_found(store):
    result = await store.update_quantity("line_missing", 3)

    assert result.status is CartStatus.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.add_item("A", -5, 1),
        lambda s: s.add_item("A", 5, 0),
        lambda s: s.apply_discount(-1),
    ],
)
async def test_invalid_input_reports_without_mutation(store, storage, call):
    await store.add_item("A", 50, 1)
    before = store.get_state()
    writes_before = len(storage.writes)

    result = await call(store)

    assert result.status is CartStatus.INVALID_INPUT
    assert store.get_state() == before
    assert len(storage.writes) == writes_before


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.add_items(None),
        lambda s: s.add_items("AB"),
        lambda s: s.remove_items(None),
        lambda s: s.remove_items("line_abc"),
        lambda s: s.remove_items([["line_abc"]]),
    ],
)
async def test_malformed_bulk_arguments_report_invalid_input(store, storage, call):
    await store.add_item("A", 50, 1)
    writes_before = len(storage.writes)

    result = await call(store)

    assert result.status is CartStatus.INVALID_INPUT
    assert len(store.get_state().items) == 1
    assert len(storage.writes) == writes_before


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [Decimal("1.5"), ("nuts", "berries")])
async def test_option_values_that_cannot_be_stored_are_rejected(store, storage, value):
    result = await store.add_item("cake1", 100, 1, {"topping": value})

    assert result.status is CartStatus.INVALID_INPUT
    assert store.get_state().is_empty
    assert storage.writes == []


@pytest.mark.asyncio
async def test_add_after_reload_merges_with_restored_line(storage, settings):
    options = {"toppings": "nuts,berries", "tiers": 2, "weight_kg": 1.5, "candles": True}
    first = CartStore(storage, settings=settings)
    await first.add_item("cake1", 100, 1, options)

    reloaded = CartStore(storage, settings=settings)
    await reloaded.load()
    result = await reloaded.add_item("cake1", 100, 2, dict(options))

    assert result.merged is True
    assert len(result.snapshot.items) == 1
    assert result.snapshot.items[0].quantity == 3

    again = CartStore(storage, settings=settings)
    assert await again.load() is LoadStatus.RESTORED


@pytest.mark.asyncio
async def test_merge_quantity_is_not_capped_by_default(store):
    await store.add_item("cake1", 100, 60)

    result = await store.add_item("cake1", 100, 50)

    assert result.ok
    assert result.snapshot.items[0].quantity == 110
    assert result.snapshot.totals.subtotal == Decimal("11000")


@pytest.mark.asyncio
async def test_storefront_quantity_limits(storage):
    store = CartStore(storage, settings=CartSettings(max_quantity_per_item=99, max_total_items=500))
    await store.add_item("cake1", 100, 60)

    result = await store.add_item("cake1", 100, 50)

    assert result.status is CartStatus.INVALID_INPUT
    assert result.error == "Quantity must be between 1 and 99"
    assert store.get_state().items[0].quantity == 60

    for product_id in ("a", "b", "c", "d", "e"):
        await store.add_item(product_id, 10, 88)
    result = await store.add_item("f", 10, 1)

    assert result.status is CartStatus.INVALID_INPUT
    assert "500 total items" in result.error

@pytest.mark.asyncio
async def test_clear_cart(store, storage, settings):
    await store.add_item("A", 50, 3)
    await store.apply_discount(10)

    result = await store.clear_cart()

    assert result.ok
    assert result.snapshot.items == ()
    assert result.snapshot.discount == 0
    assert result.snapshot.totals.grand_total == 0
    assert stored_payload(storage, settings)["items"] == []
    assert store.get_summary()["last_added_item_name"] is None


@pytest.mark.asyncio
async def test_every_mutation_is_persisted_without_totals(store, storage, settings):
    await store.add_item("A", 50, 1, {"size": "M"}, name="Mango Cake")
    await store.apply_discount("7.5")

    payload = stored_payload(storage, settings)

    assert len(storage.writes) == 2
    assert payload["version"] == "1.0"
    assert payload["discount"] == "7.5"
    assert payload["items"][0]["product_id"] == "A"
    assert payload["items"][0]["unit_price"] == "50"
    assert payload["items"][0]["selected_options"] == {"size": "M"}
    assert "subtotal" not in payload
    assert "grand_total" not in payload


@pytest.mark.asyncio
async def test_get_state_returns_immutable_snapshot(store):
    await store.add_item("A", 50, 1)
    snapshot = store.get_state()

    with pytest.raises(AttributeError):
        snapshot.items[0].quantity = 10

    await store.add_item("A", 50, 1)
    assert snapshot.items[0].quantity == 1
    assert store.get_state().items[0].quantity == 2


@pytest.mark.asyncio
async def test_bulk_operations(store):
    result = await store.add_items(
        [
            {"product_id": "A", "unit_price": 50},
            {"product_id": "B", "unit_price": 30, "quantity": 2},
        ]
    )
    assert result.ok
    assert store.get_state().totals.item_count == 3

    ids = [line.line_id for line in result.lines]
    result = await store.remove_items(ids)
    assert result.ok
    assert store.get_state().items == ()


@pytest.mark.asyncio
async def test_save_for_later_and_move_back(store):
    line = (await store.add_item("A", 50, 2, name="Saffron Cake")).line
    await store.add_item("B", 30, 1)

    result = await store.save_for_later(line.line_id)
    assert result.snapshot.totals.subtotal == Decimal("30")
    assert store.get_summary()["saved_items_count"] == 1

    result = await store.move_to_cart(line.line_id)
    assert result.ok
    assert result.snapshot.totals.subtotal == Decimal("130")
    assert result.snapshot.saved_for_later == ()

    result = await store.move_to_cart(line.line_id)
    assert result.status is CartStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_get_summary(store):
    await store.add_item("A", 50, 1, name="Karak Cake")
    await store.add_item("B", "30.25", 2, name="Date Cake")
    await store.apply_discount(10)

    summary = store.get_summary()

    assert summary["is_empty"] is False
    assert summary["total_items"] == 3
    assert summary["items_text"] == "items"
    assert summary["unique_items"] == 2
    assert summary["subtotal"] == 110.5
    assert summary["tax"] == 5.53
    assert summary["grand_total"] == 106.03
    assert summary["formatted_total"] == "QAR 106.03"
    assert summary["average_item_price"] == 36.83
    assert summary["last_added_item_name"] == "Date Cake"
    assert summary["items"][1]["total"] == 60.5


def test_empty_summary(store):
    summary = store.get_summary()

    assert summary["is_empty"] is True
    assert summary["total_items"] == 0
    assert summary["formatted_total"] == "QAR 0.00"
    assert summary["average_item_price"] == 0.0


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_notifications_after_add_and_remove(store, notifier):
    line = (await store.add_item("A", 50, 1, name="Luqaimat Cake")).line
    await store.add_item("A", 50, 2)
    await store.update_quantity(line.line_id, 5)
    await store.remove_item(line.line_id)
    await store.drain_notifications()

    messages = [call.args[0] for call in notifier.notify.await_args_list]
    assert messages == [
        "Added Luqaimat Cake to cart",
        "Updated Luqaimat Cake quantity to 3",
        "Removed Luqaimat Cake from cart",
    ]


@pytest.mark.asyncio
async def test_no_notification_for_rejected_commands(store, notifier):
    await store.remove_item("line_missing")
    await store.add_item("A", -1)
    await store.drain_notifications()

    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_notification_failure_does_not_affect_cart(storage, settings):
    sink = Mock()
    sink.notify = AsyncMock(side_effect=RuntimeError("toast service down"))
    store = CartStore(storage, notifier=sink, settings=settings)

    result = await store.add_item("A", 50, 1)
    await store.drain_notifications()

    assert result.ok
    assert len(store.get_state().items) == 1
    sink.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_store_without_notifier(storage, settings):
    store = CartStore(storage, settings=settings)

    result = await store.add_item("A", 50, 1)

    assert result.ok


# ---------------------------------------------------------------------------
# Persistence failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sync_failure_keeps_in_memory_change(store, storage, settings):
    await store.add_item("A", 50, 1)
    storage.fail_writes = True

    result = await store.add_item("B", 30, 1)

    assert result.ok
    assert result.warning is CartWarning.PERSISTENCE_SYNC_FAILED
    assert not result.synced
    assert "disk quota exceeded" in result.warning_detail
    assert len(store.get_state().items) == 2
    assert len(stored_payload(storage, settings)["items"]) == 1

    # Next successful write carries the full current state
    storage.fail_writes = False
    result = await store.add_item("C", 10, 1)

    assert result.synced
    assert [i["product_id"] for i in stored_payload(storage, settings)["items"]] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_unexpected_storage_failure_raises_and_rolls_back(settings):
    storage = Mock()
    storage.write = AsyncMock(side_effect=OSError("device not mounted"))
    store = CartStore(storage, settings=settings)

    with pytest.raises(CartUnavailableError) as exc_info:
        await store.add_item("A", 50, 1)

    assert isinstance(exc_info.value.__cause__, OSError)
    assert store.get_state().items == ()


@pytest.mark.asyncio
async def test_storage_error_is_recoverable_not_raised(settings):
    storage = Mock()
    storage.write = AsyncMock(side_effect=StorageError("timeout"))
    store = CartStore(storage, settings=settings)

    result = await store.apply_discount(5)

    assert result.ok
    assert result.warning is CartWarning.PERSISTENCE_SYNC_FAILED
    assert store.get_state().discount == Decimal("5")


# ---------------------------------------------------------------------------
# Serialized updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_adds_do_not_lose_updates(store, storage, settings):
    """Gallery button and drawer stepper hitting the same line at once"""
    await asyncio.gather(*(store.add_item("cake1", 100, 1) for _ in range(20)))

    snapshot = store.get_state()
    assert len(snapshot.items) == 1
    assert snapshot.items[0].quantity == 20
    assert snapshot.totals.subtotal == Decimal("2000")

    quantities = [json.loads(value)["items"][0]["quantity"] for _, value in storage.writes]
    assert quantities == list(range(1, 21))


@pytest.mark.asyncio
async def test_commands_apply_in_issue_order(store):
    line = (await store.add_item("cake1", 100, 1)).line

    await asyncio.gather(
        store.update_quantity(line.line_id, 7),
        store.add_item("cake1", 100, 2),
        store.update_quantity(line.line_id, 4),
    )

    assert store.get_state().items[0].quantity == 4


@pytest.mark.asyncio
async def test_interleaved_remove_and_update(store):
    line = (await store.add_item("cake1", 100, 1)).line

    removed, updated = await asyncio.gather(
        store.remove_item(line.line_id),
        store.update_quantity(line.line_id, 5),
    )

    assert removed.ok
    assert updated.status is CartStatus.NOT_FOUND
    assert store.get_state().items == ()


@pytest.mark.asyncio
async def test_mutation_visible_only_after_write_resolves(store, storage):
    storage.write_gate = asyncio.Event()

    task = asyncio.create_task(store.add_item("cake1", 100, 1))
    await storage.write_started.wait()

    assert store.get_state().is_empty

    storage.write_gate.set()
    result = await task

    assert result.ok
    assert len(store.get_state().items) == 1
