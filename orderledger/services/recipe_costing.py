"""Recipe costing.

A recipe's cost is computed from current average ingredient costs at the
moment it is saved and cached on the recipe. That value is a snapshot: later
changes to ingredient costs do not touch saved recipes. Historical reports
rely on the snapshot; ``RecipeService.current_cost`` recomputes from today's
costs when that is what is wanted.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from orderledger.core.errors import NotFound, ValidationError
from orderledger.core.store import LedgerStore
from orderledger.models.catalog import Recipe, Restaurant
from orderledger.models.inventory import InventoryItem
from orderledger.schemas.catalog import IngredientInput, RecipeIngredient, RecipeRecord, RecipeRequest
from orderledger.schemas.refs import SnapshotCost, SnapshotName, SnapshotUnit

log = logging.getLogger("orderledger.recipes")


def compute_cost(ingredients: Iterable, items_by_id: Mapping[str, InventoryItem]) -> Decimal:
    """Σ quantity × current average cost of the referenced item. Unknown items cost 0."""
    total = Decimal("0")
    for ingredient in ingredients:
        item = items_by_id.get(str(ingredient.item_id))
        unit_cost = item.average_cost if item else Decimal("0")
        total += Decimal(ingredient.quantity) * unit_cost
    return total


def snapshot_ingredients(
    inputs: Iterable[IngredientInput], items_by_id: Mapping[str, InventoryItem]
) -> List[RecipeIngredient]:
    """Copies name, unit and unit cost of each item into the ingredient; drops empty rows."""
    ingredients = []
    for ing in inputs:
        if ing.quantity <= 0:
            continue
        item = items_by_id.get(str(ing.item_id))
        if not item:
            raise NotFound("Inventory item", ing.item_id)
        ingredients.append(
            RecipeIngredient(
                item_id=ing.item_id,
                item_name=SnapshotName(item.name),
                quantity=ing.quantity,
                unit=SnapshotUnit(item.unit),
                cost=SnapshotCost(item.average_cost),
            )
        )
    return ingredients


def to_record(recipe: Recipe) -> RecipeRecord:
    return RecipeRecord(
        id=recipe.id,
        name=recipe.name,
        ingredients=recipe.ingredients or [],
        cost=recipe.cost,
    )


async def load_items(restaurant_id: UUID, item_ids: Iterable) -> Dict[str, InventoryItem]:
    ids = {str(i) for i in item_ids}
    if not ids:
        return {}
    items = await InventoryItem.filter(restaurant_id=restaurant_id, id__in=list(ids))
    return {str(item.id): item for item in items}


class RecipeService:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def save_recipe(
        self, restaurant_id: UUID, data: RecipeRequest, recipe_id: Optional[UUID] = None
    ) -> RecipeRecord:
        """Creates or replaces a recipe, caching its cost as of now."""
        if not data.name.strip():
            raise ValidationError("Recipe name cannot be empty.", {"field": "name"})
        if not await Restaurant.filter(id=restaurant_id).exists():
            raise NotFound("Restaurant", restaurant_id)

        items_by_id = await load_items(restaurant_id, (ing.item_id for ing in data.ingredients))
        ingredients = snapshot_ingredients(data.ingredients, items_by_id)
        cost = compute_cost(ingredients, items_by_id)
        stored = [ing.model_dump(mode="json") for ing in ingredients]

        async def work(conn) -> Recipe:
            if recipe_id is None:
                return await Recipe.create(
                    restaurant_id=restaurant_id,
                    name=data.name,
                    ingredients=stored,
                    cost=cost,
                    using_db=conn,
                )
            recipe = await (
                Recipe.filter(id=recipe_id, restaurant_id=restaurant_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not recipe:
                raise NotFound("Recipe", recipe_id)
            recipe.name = data.name
            recipe.ingredients = stored
            recipe.cost = cost
            await recipe.save(update_fields=["name", "ingredients", "cost", "updated_at"], using_db=conn)
            return recipe

        recipe = await self.store.run(work, label=f"save of recipe {data.name!r}")
        log.info(f"Recipe {recipe.id} saved with cost snapshot {cost}")
        return to_record(recipe)

    async def get_recipe(self, restaurant_id: UUID, recipe_id: UUID) -> RecipeRecord:
        recipe = await Recipe.get_or_none(id=recipe_id, restaurant_id=restaurant_id)
        if not recipe:
            raise NotFound("Recipe", recipe_id)
        return to_record(recipe)

    async def list_recipes(self, restaurant_id: UUID) -> List[RecipeRecord]:
        recipes = await Recipe.filter(restaurant_id=restaurant_id).order_by("name")
        return [to_record(r) for r in recipes]

    async def current_cost(self, restaurant_id: UUID, recipe_id: UUID) -> Decimal:
        """The recipe's cost at today's average ingredient costs (not the cached snapshot)."""
        recipe = await self.get_recipe(restaurant_id, recipe_id)
        items_by_id = await load_items(restaurant_id, (ing.item_id for ing in recipe.ingredients))
        return compute_cost(recipe.ingredients, items_by_id)
