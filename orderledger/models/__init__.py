# orderledger/models/__init__.py
from .catalog import DailyCounter, MenuCategory, MenuItem, MenuItemStatus, Recipe, Restaurant
from .inventory import InventoryItem, InventoryMovement, MovementType, Supplier
from .order import Order, OrderStatus
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent

# Export all models
__all__ = [
    "DailyCounter",
    "InventoryItem",
    "InventoryMovement",
    "MenuCategory",
    "MenuItem",
    "MenuItemStatus",
    "MovementType",
    "Order",
    "OrderStatus",
    "OutboxEvent",
    "ProcessedEvent",
    "Recipe",
    "Restaurant",
    "Supplier",
]
