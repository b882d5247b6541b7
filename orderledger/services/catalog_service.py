import logging
from decimal import Decimal
from typing import List
from uuid import UUID

from orderledger.core.errors import NotFound
from orderledger.models.catalog import MenuCategory, MenuItem, Recipe, Restaurant
from orderledger.models.inventory import InventoryItem
from orderledger.schemas.catalog import (
    CategoryRecord,
    CategoryRequest,
    MenuItemRecord,
    MenuItemRequest,
    MenuItemUpdate,
    RestaurantRecord,
    RestaurantRequest,
)

log = logging.getLogger("orderledger.catalog")


class CatalogService:
    """Restaurants, menu categories and menu items (plain CRUD, no ledger semantics)."""

    async def create_restaurant(self, data: RestaurantRequest) -> RestaurantRecord:
        restaurant = await Restaurant.create(
            name=data.name, is_active=data.is_active, tax_rate=data.tax_rate
        )
        log.info(f"Restaurant '{restaurant.name}' created ({restaurant.id}).")
        return RestaurantRecord.model_validate(restaurant)

    async def get_restaurant(self, restaurant_id: UUID) -> RestaurantRecord:
        restaurant = await Restaurant.get_or_none(id=restaurant_id)
        if not restaurant:
            raise NotFound("Restaurant", restaurant_id)
        return RestaurantRecord.model_validate(restaurant)

    async def create_category(self, restaurant_id: UUID, data: CategoryRequest) -> CategoryRecord:
        await self.get_restaurant(restaurant_id)
        category = await MenuCategory.create(restaurant_id=restaurant_id, name=data.name)
        return CategoryRecord.model_validate(category)

    async def list_categories(self, restaurant_id: UUID) -> List[CategoryRecord]:
        categories = await MenuCategory.filter(restaurant_id=restaurant_id).order_by("name")
        return [CategoryRecord.model_validate(c) for c in categories]

    async def _check_references(
        self, restaurant_id: UUID, category_id=None, recipe_id=None, inventory_item_id=None
    ) -> None:
        """References must belong to the same restaurant."""
        if category_id and not await MenuCategory.filter(id=category_id, restaurant_id=restaurant_id).exists():
            raise NotFound("Menu category", category_id)
        if recipe_id and not await Recipe.filter(id=recipe_id, restaurant_id=restaurant_id).exists():
            raise NotFound("Recipe", recipe_id)
        if inventory_item_id and not await InventoryItem.filter(
            id=inventory_item_id, restaurant_id=restaurant_id
        ).exists():
            raise NotFound("Inventory item", inventory_item_id)

    async def get_menu_item(self, restaurant_id: UUID, menu_item_id: UUID) -> MenuItemRecord:
        record = next((i for i in await self.list_menu_items(restaurant_id) if i.id == menu_item_id), None)
        if record is None:
            raise NotFound("Menu item", menu_item_id)
        return record

    async def create_menu_item(self, restaurant_id: UUID, data: MenuItemRequest) -> MenuItemRecord:
        await self.get_restaurant(restaurant_id)
        await self._check_references(restaurant_id, data.category_id, data.recipe_id, data.inventory_item_id)

        menu_item = await MenuItem.create(
            restaurant_id=restaurant_id,
            name=data.name,
            price=data.price,
            category_id=data.category_id,
            recipe_id=data.recipe_id,
            inventory_item_id=data.inventory_item_id,
            status=data.status,
        )
        return await self.get_menu_item(restaurant_id, menu_item.id)

    async def update_menu_item(
        self, restaurant_id: UUID, menu_item_id: UUID, data: MenuItemUpdate
    ) -> MenuItemRecord:
        """
        Edits a menu item. A new price applies to items added from now on;
        lines already on orders keep the price they were added with. Setting a
        recipe drops the inventory item and vice versa.
        """
        menu_item = await MenuItem.get_or_none(id=menu_item_id, restaurant_id=restaurant_id)
        if not menu_item:
            raise NotFound("Menu item", menu_item_id)

        changes = data.model_dump(exclude_unset=True)
        for field in ("name", "price", "status"):
            if field in changes and changes[field] is None:
                del changes[field]
        await self._check_references(
            restaurant_id, changes.get("category_id"), changes.get("recipe_id"), changes.get("inventory_item_id")
        )
        if changes.get("recipe_id"):
            changes["inventory_item_id"] = None
        elif changes.get("inventory_item_id"):
            changes["recipe_id"] = None

        if changes:
            for field, value in changes.items():
                setattr(menu_item, field, value)
            await menu_item.save(update_fields=list(changes))
            log.info(f"Menu item {menu_item_id} updated: {', '.join(sorted(changes))}.")
        return await self.get_menu_item(restaurant_id, menu_item_id)

    async def delete_menu_item(self, restaurant_id: UUID, menu_item_id: UUID) -> MenuItemRecord:
        """Removes the item from the menu. Orders keep their lines with the name and price they had."""
        record = await self.get_menu_item(restaurant_id, menu_item_id)
        await MenuItem.filter(id=menu_item_id, restaurant_id=restaurant_id).delete()
        log.info(f"Menu item '{record.name}' ({menu_item_id}) deleted.")
        return record

    async def list_menu_items(self, restaurant_id: UUID) -> List[MenuItemRecord]:
        """Menu items with their current unit cost (recipe snapshot, or the item's average cost)."""
        menu_items = await MenuItem.filter(restaurant_id=restaurant_id).order_by("name")
        recipes = {
            str(r.id): r for r in await Recipe.filter(restaurant_id=restaurant_id)
        }
        stock_items = {
            str(i.id): i for i in await InventoryItem.filter(restaurant_id=restaurant_id)
        }
        records = []
        for m in menu_items:
            cost = Decimal("0")
            if m.recipe_id and str(m.recipe_id) in recipes:
                cost = recipes[str(m.recipe_id)].cost
            elif m.inventory_item_id and str(m.inventory_item_id) in stock_items:
                cost = stock_items[str(m.inventory_item_id)].average_cost
            records.append(
                MenuItemRecord(
                    id=m.id,
                    name=m.name,
                    price=m.price,
                    category_id=m.category_id,
                    recipe_id=m.recipe_id,
                    inventory_item_id=m.inventory_item_id,
                    status=m.status,
                    cost=cost,
                )
            )
        return records
