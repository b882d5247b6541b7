import asyncio
from uuid import uuid4

import pytest

from orderledger.core.errors import NotFound
from orderledger.models.inventory import InventoryItem
from orderledger.schemas.inventory import InventoryItemRequest, InventoryItemUpdate, SupplierRequest, SupplierUpdate
from orderledger.services.inventory_service import InventoryService
from orderledger.services.supplier_service import SupplierService


@pytest.fixture
def suppliers(store):
    return SupplierService(store)


@pytest.fixture
def inventory(store):
    return InventoryService(store)


async def _produce_co(suppliers, restaurant):
    return await suppliers.create_supplier(
        restaurant.id, SupplierRequest(name="Produce Co", contact_name="Ana", payment_terms="Net 30")
    )


class TestSuppliers:
    @pytest.mark.asyncio
    async def test_create_update_and_list(self, suppliers, restaurant):
        supplier = await _produce_co(suppliers, restaurant)
        await suppliers.create_supplier(restaurant.id, SupplierRequest(name="Dairy Ltd"))

        updated = await suppliers.update_supplier(restaurant.id, supplier.id, SupplierUpdate(phone="555-0101"))

        assert updated.phone == "555-0101"
        assert updated.contact_name == "Ana"
        assert [s.name for s in await suppliers.list_suppliers(restaurant.id)] == ["Dairy Ltd", "Produce Co"]

    @pytest.mark.asyncio
    async def test_item_names_its_main_supplier(self, suppliers, inventory, restaurant):
        supplier = await _produce_co(suppliers, restaurant)

        item = await inventory.create_item(
            restaurant.id, InventoryItemRequest(name="Onion", unit="kg", supplier_id=supplier.id)
        )
        assert item.supplier_id == supplier.id

        item = await inventory.update_item(
            restaurant.id, item.id, InventoryItemUpdate.model_validate({"supplier_id": None})
        )
        assert item.supplier_id is None

    @pytest.mark.asyncio
    async def test_unknown_supplier_is_rejected(self, inventory, restaurant, stock_item):
        with pytest.raises(NotFound):
            await inventory.update_item(restaurant.id, stock_item.id, InventoryItemUpdate(supplier_id=uuid4()))

    @pytest.mark.asyncio
    async def test_delete_keeps_items_and_drops_the_link(self, suppliers, inventory, restaurant, stock_item):
        supplier = await _produce_co(suppliers, restaurant)
        await inventory.update_item(restaurant.id, stock_item.id, InventoryItemUpdate(supplier_id=supplier.id))

        async with inventory.watch_items(restaurant.id) as updates:
            await updates.__anext__()
            await suppliers.delete_supplier(restaurant.id, supplier.id)
            [item] = await asyncio.wait_for(updates.__anext__(), timeout=1)

        assert item.supplier_id is None
        assert await InventoryItem.filter(id=stock_item.id).exists()
        with pytest.raises(NotFound):
            await suppliers.get_supplier(restaurant.id, supplier.id)
