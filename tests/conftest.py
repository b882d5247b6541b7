from decimal import Decimal

import pytest
import pytest_asyncio
from tortoise import Tortoise

from orderledger.core.db import init_db
from orderledger.core.store import LedgerStore
from orderledger.models.catalog import MenuCategory, MenuItem, Restaurant
from orderledger.models.inventory import InventoryItem


class RecordingNotifier:
    """Collects kitchen signals instead of writing them to the outbox."""

    def __init__(self):
        self.sent = []

    async def notify(self, order_id, event_type, payload):
        self.sent.append((order_id, event_type, payload))
        return True

    def of_type(self, event_type):
        return [s for s in self.sent if s[1] == event_type]


@pytest_asyncio.fixture
async def db():
    """A fresh in-memory database per test."""
    await init_db("sqlite://:memory:")
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def store(db):
    return LedgerStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def restaurant(db):
    return await Restaurant.create(name="Casa Test", tax_rate=Decimal("0.16"))


@pytest_asyncio.fixture
async def category(restaurant):
    return await MenuCategory.create(restaurant=restaurant, name="Mains")


@pytest_asyncio.fixture
async def stock_item(restaurant):
    return await InventoryItem.create(
        restaurant=restaurant,
        name="Tomato",
        category="Produce",
        unit="kg",
        current_stock=Decimal("10"),
        minimum_stock=Decimal("2"),
        average_cost=Decimal("10"),
    )


@pytest_asyncio.fixture
async def menu_item(restaurant, category):
    return await MenuItem.create(restaurant=restaurant, name="Burger", price=Decimal("100.00"), category=category)


@pytest_asyncio.fixture
async def side_item(restaurant, category):
    return await MenuItem.create(restaurant=restaurant, name="Fries", price=Decimal("50.00"), category=category)
