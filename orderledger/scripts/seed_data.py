# python -m orderledger.scripts.seed_data
import asyncio
import logging
from decimal import Decimal

from orderledger.core.config import LOG_FORMAT
from orderledger.core.db import close_db, init_db
from orderledger.core.store import LedgerStore
from orderledger.models.catalog import MenuCategory, MenuItem, Restaurant
from orderledger.models.inventory import InventoryItem
from orderledger.schemas.catalog import IngredientInput, RecipeRequest
from orderledger.schemas.inventory import InventoryItemRequest
from orderledger.services.inventory_service import InventoryService
from orderledger.services.recipe_costing import RecipeService

log = logging.getLogger("seed")


async def stock_item(inventory: InventoryService, restaurant: Restaurant, **fields) -> InventoryItem:
    item = await InventoryItem.get_or_none(restaurant=restaurant, name=fields["name"])
    if item:
        return item
    record = await inventory.create_item(restaurant.id, InventoryItemRequest(**fields))
    return await InventoryItem.get(id=record.id)


async def seed():
    store = LedgerStore()
    inventory = InventoryService(store)
    recipes = RecipeService(store)

    rest, _ = await Restaurant.get_or_create(name="Demo Restaurant", defaults={"tax_rate": Decimal("0.16")})
    log.info(f"Restaurant: {rest.id}")

    mains, _ = await MenuCategory.get_or_create(restaurant=rest, name="Mains")
    drinks, _ = await MenuCategory.get_or_create(restaurant=rest, name="Drinks")

    tortilla = await stock_item(inventory, rest, name="Tortilla", unit="pcs", category="Bakery",
                                initial_stock=Decimal("200"), minimum_stock=Decimal("40"), average_cost=Decimal("1.50"))
    beef = await stock_item(inventory, rest, name="Beef", unit="kg", category="Meat",
                            initial_stock=Decimal("12"), minimum_stock=Decimal("3"), average_cost=Decimal("180.00"))
    soda = await stock_item(inventory, rest, name="Soda can", unit="pcs", category="Beverages",
                            initial_stock=Decimal("48"), minimum_stock=Decimal("12"), average_cost=Decimal("9.00"))

    taco_recipe = await recipes.save_recipe(
        rest.id,
        RecipeRequest(
            name="Beef taco",
            ingredients=[
                IngredientInput(item_id=tortilla.id, quantity=Decimal("2")),
                IngredientInput(item_id=beef.id, quantity=Decimal("0.08")),
            ],
        ),
    )
    log.info(f"Recipe '{taco_recipe.name}' cost: {taco_recipe.cost}")

    taco, _ = await MenuItem.get_or_create(
        restaurant=rest, name="Beef taco",
        defaults={"price": Decimal("35.00"), "category": mains, "recipe_id": taco_recipe.id},
    )
    cola, _ = await MenuItem.get_or_create(
        restaurant=rest, name="Cola",
        defaults={"price": Decimal("25.00"), "category": drinks, "inventory_item": soda},
    )
    log.info(f"Menu items: {taco.id} {cola.id}")


async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    asyncio.run(main())
