from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    OPEN = "open"            # Taking the order
    PREPARING = "preparing"  # Sent to the kitchen
    READY_FOR_PICKUP = "ready_for_pickup"  # Kitchen board state, still in progress
    SERVED = "served"        # Delivered to the table, bill not yet paid
    PAID = "paid"            # Terminal
    # There is no CANCELLED status: cancelling deletes the order document.


class Order(models.Model):
    """
    One order document. Lines and sub-accounts are embedded so that every
    item or sub-account edit is a single-row transaction.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="orders")
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.OPEN)
    items = fields.JSONField(default=list)
    subaccounts = fields.JSONField(default=list)
    subtotal = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    table_name = fields.CharField(max_length=64, null=True)
    takeout_id = fields.CharField(max_length=32, null=True)
    created_at = fields.DatetimeField()
    sent_to_kitchen_at = fields.DatetimeField(null=True)
    pickup_acknowledged_at = fields.DatetimeField(null=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("restaurant_id",),          # Restaurant order queries
            ("status",),                 # Status-based filtering
            ("created_at",),             # Time-based queries
            ("restaurant_id", "created_at"),  # Composite: tenant range reports
        ]
