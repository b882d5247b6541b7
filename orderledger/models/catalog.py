from enum import Enum
from tortoise import fields, models
import uuid


class MenuItemStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Restaurant(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    is_active = fields.BooleanField(default=True)
    # Null means "use the configured default"
    tax_rate = fields.DecimalField(max_digits=5, decimal_places=4, null=True)

    class Meta:
        table = "restaurants"
        indexes = [
            ("is_active",),  # For filtering active restaurants
        ]


class MenuCategory(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="menu_categories")
    name = fields.CharField(max_length=255)

    class Meta:
        table = "menu_categories"
        indexes = [
            ("restaurant_id",),
        ]


class Recipe(models.Model):
    """
    A recipe document. ``ingredients`` is an embedded list of
    ``RecipeIngredient`` dicts and ``cost`` is the snapshot computed when the
    recipe was saved; neither is recomputed when ingredient costs change.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="recipes")
    name = fields.CharField(max_length=255)
    ingredients = fields.JSONField(default=list)
    cost = fields.DecimalField(max_digits=14, decimal_places=4, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "recipes"
        indexes = [
            ("restaurant_id",),
        ]


class MenuItem(models.Model):
    """A dish. Its cost comes from ``recipe`` or, for items sold as-is, from ``inventory_item``."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="menu_items")
    name = fields.CharField(max_length=255)
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    category = fields.ForeignKeyField(
        "models.MenuCategory", related_name="menu_items", null=True, on_delete=fields.SET_NULL
    )
    recipe = fields.ForeignKeyField(
        "models.Recipe", related_name="menu_items", null=True, on_delete=fields.SET_NULL
    )
    inventory_item = fields.ForeignKeyField(
        "models.InventoryItem", related_name="menu_items", null=True, on_delete=fields.SET_NULL
    )
    status = fields.CharEnumField(MenuItemStatus, default=MenuItemStatus.ACTIVE)

    class Meta:
        table = "menu_items"
        indexes = [
            ("restaurant_id",),  # Fast restaurant menu queries
            ("status",),         # Filter active items
            ("restaurant_id", "status"),  # Composite: restaurant's active items
        ]


class DailyCounter(models.Model):
    """Consecutive per-day counter; ``id`` is ``<restaurant_id>:<YYYYMMDD>``."""
    id = fields.CharField(primary_key=True, max_length=64)
    count = fields.IntField(default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "daily_counters"
