"""Pytest configuration and fixtures"""
import asyncio
import os
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Keep tests independent of the developer's shell
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")
os.environ.setdefault("TELEGRAM_TOKEN", "test_token")

from cakecart.cart import CartStore  # noqa: E402
from cakecart.config import CartSettings  # noqa: E402
from cakecart.errors import StorageError  # noqa: E402


class FakeStorage:
    """In-memory KeyValueStore with switches for failure and slow writes."""

    def __init__(self, data: Optional[dict] = None):
        self.data = dict(data or {})
        self.writes: list[tuple[str, str]] = []
        self.fail_writes = False
        self.write_gate: Optional[asyncio.Event] = None
        self.write_started = asyncio.Event()

    async def read(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self.data.get(key)

    async def write(self, key: str, value: str) -> None:
        self.write_started.set()
        if self.write_gate is not None:
            await self.write_gate.wait()
        await asyncio.sleep(0)
        if self.fail_writes:
            raise StorageError("disk quota exceeded")
        self.data[key] = value
        self.writes.append((key, value))


@pytest.fixture
def settings():
    """Cart settings with the 5% tax rate used across tests"""
    return CartSettings(tax_rate=Decimal("0.05"))


@pytest.fixture
def make_storage():
    """Factory for in-memory storage pre-filled with payloads"""
    return FakeStorage


@pytest.fixture
def storage():
    """Empty in-memory cart storage"""
    return FakeStorage()


@pytest.fixture
def notifier():
    """Mock notification sink"""
    sink = Mock()
    sink.notify = AsyncMock()
    return sink


@pytest.fixture
def store(storage, notifier, settings):
    """Cart store over in-memory storage"""
    return CartStore(storage, notifier=notifier, settings=settings)


@pytest.fixture
def sample_cake():
    """Sample catalog entry as a screen would pass it to add_item"""
    return {
        "product_id": "cake-123",
        "unit_price": 199,
        "quantity": 1,
        "selected_options": {"size": "large", "flavor": "pistachio"},
        "name": "Pistachio Rose Cake",
    }
