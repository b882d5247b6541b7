from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as SchemaError

from orderledger.core.errors import NotFound
from orderledger.models.catalog import MenuItem, MenuItemStatus, Recipe
from orderledger.schemas.catalog import MenuItemUpdate
from orderledger.schemas.order import MAIN_SUB_ACCOUNT_ID
from orderledger.services.catalog_service import CatalogService
from orderledger.services.order_service import OrderService


@pytest.fixture
def catalog():
    return CatalogService()


@pytest.fixture
def orders(store, notifier):
    return OrderService(store, notifier=notifier)


class TestMenuItemEdits:
    @pytest.mark.asyncio
    async def test_new_price_applies_only_to_new_lines(self, catalog, orders, restaurant, menu_item):
        before = await orders.create_order(restaurant.id)
        await orders.add_item(restaurant.id, before.id, menu_item.id)

        record = await catalog.update_menu_item(restaurant.id, menu_item.id, MenuItemUpdate(price=Decimal("120.00")))
        assert record.price == Decimal("120.00")

        after = await orders.create_order(restaurant.id)
        after = await orders.add_item(restaurant.id, after.id, menu_item.id)
        assert after.subtotal == Decimal("120.00")

        before = await orders.add_item(restaurant.id, before.id, menu_item.id)
        line = before.find_line(menu_item.id, MAIN_SUB_ACCOUNT_ID)
        assert line.price == Decimal("100.00")
        assert before.subtotal == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_deactivated_item_cannot_be_ordered(self, catalog, orders, restaurant, menu_item):
        await catalog.update_menu_item(restaurant.id, menu_item.id, MenuItemUpdate(status=MenuItemStatus.INACTIVE))

        doc = await orders.create_order(restaurant.id)
        with pytest.raises(NotFound):
            await orders.add_item(restaurant.id, doc.id, menu_item.id)

    @pytest.mark.asyncio
    async def test_choosing_a_recipe_drops_the_inventory_item(self, catalog, restaurant, stock_item):
        bottled = await MenuItem.create(
            restaurant=restaurant, name="Juice", price=Decimal("30.00"), inventory_item=stock_item
        )
        recipe = await Recipe.create(restaurant=restaurant, name="Fresh juice", ingredients=[], cost=Decimal("7"))

        record = await catalog.update_menu_item(restaurant.id, bottled.id, MenuItemUpdate(recipe_id=recipe.id))

        assert record.recipe_id == recipe.id
        assert record.inventory_item_id is None
        assert record.cost == Decimal("7")

    @pytest.mark.asyncio
    async def test_explicit_null_clears_the_category(self, catalog, restaurant, menu_item):
        update = MenuItemUpdate.model_validate({"category_id": None})
        record = await catalog.update_menu_item(restaurant.id, menu_item.id, update)

        assert record.category_id is None
        assert record.name == "Burger"

    @pytest.mark.asyncio
    async def test_references_must_exist(self, catalog, restaurant, menu_item):
        with pytest.raises(NotFound):
            await catalog.update_menu_item(restaurant.id, menu_item.id, MenuItemUpdate(category_id=uuid4()))

    def test_both_cost_sources_are_rejected(self):
        with pytest.raises(SchemaError):
            MenuItemUpdate(recipe_id=uuid4(), inventory_item_id=uuid4())

    @pytest.mark.asyncio
    async def test_delete_keeps_order_lines(self, catalog, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        await orders.add_item(restaurant.id, doc.id, menu_item.id)

        deleted = await catalog.delete_menu_item(restaurant.id, menu_item.id)

        assert deleted.name == "Burger"
        assert not await MenuItem.filter(id=menu_item.id).exists()
        stored = await orders.get_order(restaurant.id, doc.id)
        assert stored.items[0].name == "Burger"
        assert stored.subtotal == Decimal("100.00")
        with pytest.raises(NotFound):
            await catalog.get_menu_item(restaurant.id, menu_item.id)
