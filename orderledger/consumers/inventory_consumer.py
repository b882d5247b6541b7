import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from orderledger.core.errors import InsufficientStock, NotFound
from orderledger.events.outbox_utility import create_outbox_event
from orderledger.models.catalog import MenuItem, Recipe
from orderledger.models.inventory import MovementType
from orderledger.models.processed_event import ProcessedEvent
from orderledger.schemas.actor import SYSTEM_ACTOR
from orderledger.schemas.catalog import RecipeIngredient
from orderledger.services.inventory_service import InventoryService

log = logging.getLogger("inventory_consumer")

DEDUCTION_SHORTFALL = "inventory.deduction_shortfall.v1"


def deduction_reference(order_id, item_id) -> str:
    """One exit per inventory item per order; the reference makes redelivery a no-op."""
    return f"order:{order_id}:{item_id}"


async def required_stock(restaurant_id: UUID, items: List[Dict[str, Any]]) -> Dict[str, Decimal]:
    """
    Inventory item id -> quantity consumed by the sold lines. Recipe items use
    their saved ingredients, items sold as-is consume one unit each.
    """
    menu_ids = [UUID(str(item["menu_item_id"])) for item in items]
    menu_items = {
        str(m.id): m for m in await MenuItem.filter(id__in=menu_ids, restaurant_id=restaurant_id)
    }
    recipe_ids = [m.recipe_id for m in menu_items.values() if m.recipe_id]
    recipes = {str(r.id): r for r in await Recipe.filter(id__in=recipe_ids)} if recipe_ids else {}

    needs: Dict[str, Decimal] = OrderedDict()
    for item in items:
        quantity = Decimal(item["quantity"])
        menu = menu_items.get(str(item["menu_item_id"]))
        if not menu:
            log.warning(f"Menu item {item['menu_item_id']} no longer exists; nothing to deduct.")
            continue
        recipe = recipes.get(str(menu.recipe_id)) if menu.recipe_id else None
        if recipe:
            for ing in (RecipeIngredient.model_validate(i) for i in recipe.ingredients or []):
                key = str(ing.item_id)
                needs[key] = needs.get(key, Decimal("0")) + ing.quantity * quantity
        elif menu.inventory_item_id:
            key = str(menu.inventory_item_id)
            needs[key] = needs.get(key, Decimal("0")) + quantity
    return needs


async def handle_order_paid(event_payload: Dict[str, Any], event_id: UUID, inventory: InventoryService):
    """
    Consumer logic for 'order.paid.v1'. Deducts the sold ingredients from stock.

    Stock never goes negative here: a shortfall is logged and reported as an
    'inventory.deduction_shortfall.v1' event for a person to reconcile.
    """
    order_id = UUID(str(event_payload.get("order_id")))
    restaurant_id = UUID(str(event_payload.get("restaurant_id")))
    event_id_str = str(event_id)

    if await ProcessedEvent.filter(event_id=event_id_str).exists():
        log.info(f"Idempotency: Event {event_id_str} already processed.")
        return

    log.info(f"--- Worker: DEDUCTING stock for paid Order {order_id} ---")
    needs = await required_stock(restaurant_id, event_payload.get("items", []))

    shortfalls = []
    for item_id, quantity in needs.items():
        if quantity <= 0:
            continue
        try:
            await inventory.apply_movement(
                restaurant_id,
                UUID(item_id),
                MovementType.EXIT,
                quantity,
                actor=SYSTEM_ACTOR,
                reference=deduction_reference(order_id, item_id),
            )
        except (InsufficientStock, NotFound) as e:
            log.warning(f"Deduction for Order {order_id} skipped item {item_id}: {e}")
            shortfalls.append({**e.to_dict(), "item_id": item_id, "requested": str(quantity)})

    if shortfalls:
        await create_outbox_event(
            aggregate_type="order",
            aggregate_id=order_id,
            event_type=DEDUCTION_SHORTFALL,
            payload={
                "order_id": str(order_id),
                "restaurant_id": str(restaurant_id),
                "shortfalls": shortfalls,
            },
        )

    await ProcessedEvent.create(event_id=event_id_str)
    log.info(
        f"Deduction for Order {order_id} finished: "
        f"{len(needs) - len(shortfalls)} item(s) deducted, {len(shortfalls)} shortfall(s)."
    )
