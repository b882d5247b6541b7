"""Stand-in for the kitchen display and the alerting system: both only log."""
import logging
from typing import Any, Dict

from orderledger.events import kitchen

log = logging.getLogger("notification_consumer")

KITCHEN_MESSAGES = {
    kitchen.SENT_TO_KITCHEN: "New order on the board",
    kitchen.ITEM_REMOVED: "Item removed from an order in preparation",
    kitchen.ORDER_CANCELLED: "Order cancelled after reaching the kitchen",
}


def handle_kitchen_signal(event_type: str, payload: Dict[str, Any]) -> None:
    message = KITCHEN_MESSAGES.get(event_type, event_type)
    details = {k: v for k, v in payload.items() if k != "order_id"}
    log.info(f"KITCHEN: {message}: Order {payload.get('order_id')} {details}")


def handle_low_stock_alert(payload: Dict[str, Any]) -> None:
    log.warning(
        f"!!! SYSTEM ALERT !!! {payload.get('item_name')} ({payload.get('item_id')}) is low on stock: "
        f"{payload.get('current_stock')} remaining, minimum {payload.get('minimum_stock')}."
    )


def handle_deduction_shortfall(payload: Dict[str, Any]) -> None:
    for shortfall in payload.get("shortfalls", []):
        log.error(
            f"RECONCILE: Order {payload.get('order_id')} could not deduct item "
            f"{shortfall.get('item_id')}: {shortfall.get('message')}"
        )
