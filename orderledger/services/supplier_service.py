import logging
from typing import List, Optional
from uuid import UUID

from orderledger.core.changefeed import inventory_topic
from orderledger.core.errors import NotFound
from orderledger.core.store import LedgerStore
from orderledger.models.catalog import Restaurant
from orderledger.models.inventory import InventoryItem, Supplier
from orderledger.schemas.inventory import SupplierRecord, SupplierRequest, SupplierUpdate

log = logging.getLogger("orderledger.suppliers")


async def ensure_supplier(restaurant_id: UUID, supplier_id: Optional[UUID]) -> None:
    """Items may only name a supplier of their own restaurant."""
    if supplier_id and not await Supplier.filter(id=supplier_id, restaurant_id=restaurant_id).exists():
        raise NotFound("Supplier", supplier_id)


class SupplierService:
    """Supplier directory. Inventory items point at one of these as their main supplier."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def create_supplier(self, restaurant_id: UUID, data: SupplierRequest) -> SupplierRecord:
        if not await Restaurant.filter(id=restaurant_id).exists():
            raise NotFound("Restaurant", restaurant_id)
        supplier = await Supplier.create(restaurant_id=restaurant_id, **data.model_dump())
        log.info(f"Supplier '{supplier.name}' created ({supplier.id}).")
        return SupplierRecord.model_validate(supplier)

    async def get_supplier(self, restaurant_id: UUID, supplier_id: UUID) -> SupplierRecord:
        supplier = await Supplier.get_or_none(id=supplier_id, restaurant_id=restaurant_id)
        if not supplier:
            raise NotFound("Supplier", supplier_id)
        return SupplierRecord.model_validate(supplier)

    async def list_suppliers(self, restaurant_id: UUID) -> List[SupplierRecord]:
        suppliers = await Supplier.filter(restaurant_id=restaurant_id).order_by("name")
        return [SupplierRecord.model_validate(s) for s in suppliers]

    async def update_supplier(
        self, restaurant_id: UUID, supplier_id: UUID, data: SupplierUpdate
    ) -> SupplierRecord:
        supplier = await Supplier.get_or_none(id=supplier_id, restaurant_id=restaurant_id)
        if not supplier:
            raise NotFound("Supplier", supplier_id)
        changes = data.model_dump(exclude_none=True)
        if changes:
            for field, value in changes.items():
                setattr(supplier, field, value)
            await supplier.save(update_fields=[*changes.keys(), "updated_at"])
        return SupplierRecord.model_validate(supplier)

    async def delete_supplier(self, restaurant_id: UUID, supplier_id: UUID) -> SupplierRecord:
        """Deletes the supplier. Its items stay and lose their main supplier link."""

        async def work(conn):
            supplier = await (
                Supplier.filter(id=supplier_id, restaurant_id=restaurant_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not supplier:
                raise NotFound("Supplier", supplier_id)
            unlinked = await (
                InventoryItem.filter(restaurant_id=restaurant_id, supplier_id=supplier_id)
                .using_db(conn)
                .update(supplier_id=None)
            )
            await supplier.delete(using_db=conn)
            return SupplierRecord.model_validate(supplier), unlinked

        record, unlinked = await self.store.run(
            work, topics=(inventory_topic(restaurant_id),), label=f"deletion of supplier {supplier_id}"
        )
        log.info(f"Supplier {supplier_id} deleted; {unlinked} item(s) unlinked.")
        return record
