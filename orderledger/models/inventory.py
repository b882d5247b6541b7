from enum import Enum
from tortoise import fields, models
import uuid


class MovementType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"
    ADJUSTMENT = "adjustment"  # Absolute set, used for physical counts


class Supplier(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="suppliers")
    name = fields.CharField(max_length=255)
    contact_name = fields.CharField(max_length=255, default="")
    phone = fields.CharField(max_length=64, default="")
    email = fields.CharField(max_length=255, default="")
    address = fields.TextField(default="")
    payment_terms = fields.CharField(max_length=255, default="") # e.g. "Net 30"
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "suppliers"
        indexes = [
            ("restaurant_id",),
        ]


class InventoryItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="inventory_items")
    name = fields.CharField(max_length=255)
    category = fields.CharField(max_length=128, default="")
    unit = fields.CharField(max_length=32)
    # Only ever written by the movement engine; never negative
    current_stock = fields.DecimalField(max_digits=14, decimal_places=4, default=0)
    minimum_stock = fields.DecimalField(max_digits=14, decimal_places=4, default=0) # For low stock alert
    average_cost = fields.DecimalField(max_digits=14, decimal_places=4, default=0)
    # Main supplier; deleting the supplier only drops the link
    supplier = fields.ForeignKeyField(
        "models.Supplier", related_name="items", null=True, on_delete=fields.SET_NULL
    )
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory_items"
        indexes = [
            ("restaurant_id",),
        ]


class InventoryMovement(models.Model):
    """
    Append-only stock ledger. One row per successful movement; rows are never
    updated or deleted. ``item_name`` is the name as it was when the movement
    was written.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="inventory_movements")
    item = fields.ForeignKeyField(
        "models.InventoryItem", related_name="movements", on_delete=fields.RESTRICT
    )
    item_name = fields.CharField(max_length=255)
    type = fields.CharEnumField(MovementType)
    quantity = fields.DecimalField(max_digits=14, decimal_places=4)
    cost = fields.DecimalField(max_digits=14, decimal_places=4, default=0) # Only meaningful for entries
    previous_stock = fields.DecimalField(max_digits=14, decimal_places=4)
    new_stock = fields.DecimalField(max_digits=14, decimal_places=4)
    actor_id = fields.CharField(max_length=128, default="unknown")
    actor_email = fields.CharField(max_length=255, default="unknown")
    # Set for system-generated movements so they are applied at most once
    reference = fields.CharField(max_length=255, null=True, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_movements"
        indexes = [
            ("restaurant_id", "created_at"),
            ("item_id", "created_at"),
        ]
