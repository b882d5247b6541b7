import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import UUID

from orderledger.core.changefeed import inventory_topic
from orderledger.core.errors import InsufficientStock, NotFound, ValidationError
from orderledger.core.store import LedgerStore
from orderledger.events.outbox_utility import create_outbox_event
from orderledger.models.catalog import Restaurant
from orderledger.models.inventory import InventoryItem, InventoryMovement, MovementType
from orderledger.schemas.actor import Actor
from orderledger.schemas.inventory import (
    InventoryItemRecord,
    InventoryItemRequest,
    InventoryItemUpdate,
    InventorySummary,
    MovementRecord,
    MovementResult,
)
from orderledger.services.supplier_service import ensure_supplier

log = logging.getLogger("orderledger.inventory")


def _as_decimal(value, field: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}.", {"field": field})


def next_stock(item: InventoryItem, movement_type: MovementType, quantity: Decimal) -> Decimal:
    """Stock after applying a movement; raises InsufficientStock instead of going negative."""
    previous = item.current_stock
    if movement_type == MovementType.ENTRY:
        return previous + quantity
    if movement_type == MovementType.EXIT:
        new_stock = previous - quantity
        if new_stock < 0:
            raise InsufficientStock(item.id, item.name, previous, quantity)
        return new_stock
    return quantity


async def check_for_low_stock(item: InventoryItem, movement: InventoryMovement, conn) -> None:
    """Emits a low stock alert in the movement's transaction when stock falls under the minimum."""
    if item.current_stock < item.minimum_stock:
        log.warning(f"ALERT: Low stock for {item.name} ({item.id}): {item.current_stock} {item.unit}")
        await create_outbox_event(
            aggregate_type="inventory_item",
            aggregate_id=item.id,
            event_type="inventory.low_stock_alert.v1",
            payload={
                "restaurant_id": str(item.restaurant_id),
                "item_id": str(item.id),
                "item_name": item.name,
                "current_stock": str(item.current_stock),
                "minimum_stock": str(item.minimum_stock),
                "triggered_by_movement_id": str(movement.id),
            },
            conn=conn,
        )


class InventoryService:
    """Stock entries, exits and adjustments, each one atomic transaction with its movement record."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def apply_movement(
        self,
        restaurant_id: UUID,
        item_id: UUID,
        movement_type,
        quantity,
        cost=None,
        actor: Optional[Actor] = None,
        reference: Optional[str] = None,
    ) -> MovementResult:
        """
        Applies one stock movement and appends exactly one InventoryMovement.

        entry adds ``quantity``, exit subtracts it (rejected if stock would go
        negative), adjustment sets the stock to ``quantity``. With a
        ``reference``, a movement that was already applied is returned as-is.
        """
        try:
            movement_type = MovementType(movement_type)
        except ValueError:
            raise ValidationError(f"Unknown movement type {movement_type!r}.", {"field": "type"})
        quantity = _as_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError(
                f"Quantity must be greater than zero, got {quantity}.",
                {"field": "quantity", "item_id": str(item_id)},
            )
        entry_cost = Decimal("0")
        if movement_type == MovementType.ENTRY and cost is not None:
            entry_cost = _as_decimal(cost, "cost")
            if entry_cost < 0:
                raise ValidationError(f"Cost cannot be negative, got {entry_cost}.", {"field": "cost"})
        actor = actor or Actor()

        async def work(conn) -> MovementResult:
            if reference:
                existing = await InventoryMovement.get_or_none(reference=reference).using_db(conn)
                if existing:
                    return _result(existing)

            item = await (
                InventoryItem.filter(id=item_id, restaurant_id=restaurant_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not item:
                raise NotFound("Inventory item", item_id)

            previous_stock = item.current_stock
            item.current_stock = next_stock(item, movement_type, quantity)
            await item.save(update_fields=["current_stock", "updated_at"], using_db=conn)

            movement = await InventoryMovement.create(
                restaurant_id=restaurant_id,
                item_id=item.id,
                item_name=item.name,
                type=movement_type,
                quantity=quantity,
                cost=entry_cost,
                previous_stock=previous_stock,
                new_stock=item.current_stock,
                actor_id=actor.id,
                actor_email=actor.email,
                reference=reference,
                using_db=conn,
            )
            await check_for_low_stock(item, movement, conn)
            return _result(movement)

        # A concurrent caller with the same reference makes our insert fail; the
        # store re-runs the unit, which then returns that caller's movement.
        result = await self.store.run(
            work,
            topics=(inventory_topic(restaurant_id),),
            label=f"{movement_type.value} of {quantity} on item {item_id}",
        )

        log.info(
            f"Movement {movement_type.value} on item {item_id}: "
            f"{result.previous_stock} -> {result.new_stock} by {actor.id}"
        )
        return result

    # ----------- Item administration -----------

    async def create_item(
        self, restaurant_id: UUID, data: InventoryItemRequest, actor: Optional[Actor] = None
    ) -> InventoryItemRecord:
        if not await Restaurant.filter(id=restaurant_id).exists():
            raise NotFound("Restaurant", restaurant_id)
        await ensure_supplier(restaurant_id, data.supplier_id)
        item = await InventoryItem.create(
            restaurant_id=restaurant_id,
            name=data.name,
            category=data.category,
            unit=data.unit,
            current_stock=Decimal("0"),
            minimum_stock=data.minimum_stock,
            average_cost=data.average_cost,
            supplier_id=data.supplier_id,
        )
        # Opening stock goes through the ledger so it has an audit record.
        if data.initial_stock > 0:
            await self.apply_movement(
                restaurant_id, item.id, MovementType.ADJUSTMENT, data.initial_stock, actor=actor
            )
        else:
            self.store.feed.publish(inventory_topic(restaurant_id))
        return await self.get_item(restaurant_id, item.id)

    async def update_item(
        self, restaurant_id: UUID, item_id: UUID, data: InventoryItemUpdate
    ) -> InventoryItemRecord:
        """Edits item metadata. Recipes keep the cost they were saved with."""
        changes = data.model_dump(exclude_none=True)
        if "supplier_id" in data.model_fields_set:
            changes["supplier_id"] = data.supplier_id
            await ensure_supplier(restaurant_id, data.supplier_id)

        async def work(conn) -> InventoryItem:
            item = await (
                InventoryItem.filter(id=item_id, restaurant_id=restaurant_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not item:
                raise NotFound("Inventory item", item_id)
            if changes:
                for field, value in changes.items():
                    setattr(item, field, value)
                await item.save(update_fields=[*changes.keys(), "updated_at"], using_db=conn)
            return item

        item = await self.store.run(
            work, topics=(inventory_topic(restaurant_id),), label=f"update of item {item_id}"
        )
        return InventoryItemRecord.model_validate(item)

    async def get_item(self, restaurant_id: UUID, item_id: UUID) -> InventoryItemRecord:
        item = await InventoryItem.get_or_none(id=item_id, restaurant_id=restaurant_id)
        if not item:
            raise NotFound("Inventory item", item_id)
        return InventoryItemRecord.model_validate(item)

    async def list_items(self, restaurant_id: UUID) -> List[InventoryItemRecord]:
        items = await InventoryItem.filter(restaurant_id=restaurant_id).order_by("name")
        return [InventoryItemRecord.model_validate(item) for item in items]

    async def list_movements(
        self, restaurant_id: UUID, item_id: Optional[UUID] = None, limit: int = 100
    ) -> List[MovementRecord]:
        query = InventoryMovement.filter(restaurant_id=restaurant_id)
        if item_id:
            query = query.filter(item_id=item_id)
        movements = await query.order_by("-created_at").limit(limit)
        return [MovementRecord.model_validate(m) for m in movements]

    async def inventory_summary(self, restaurant_id: UUID) -> InventorySummary:
        items = await self.list_items(restaurant_id)
        return summarize(items)

    def watch_items(self, restaurant_id: UUID):
        """Scoped subscription delivering the full item list on every stock change."""
        return self.store.feed.subscribe(
            [inventory_topic(restaurant_id)], lambda: self.list_items(restaurant_id)
        )


def summarize(items: List[InventoryItemRecord]) -> InventorySummary:
    return InventorySummary(
        item_count=len(items),
        low_stock_items=sum(1 for item in items if item.is_low_stock),
        inventory_value=sum((item.current_stock * item.average_cost for item in items), Decimal("0")),
    )


def _result(movement: InventoryMovement) -> MovementResult:
    return MovementResult(
        previous_stock=movement.previous_stock,
        new_stock=movement.new_stock,
        movement=MovementRecord.model_validate(movement),
    )
