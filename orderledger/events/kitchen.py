"""Best-effort signals to the kitchen.

These are written after the order transaction has committed, in their own
write. A failure here is logged and never undoes the order change.
"""
import logging
from typing import Any, Dict
from uuid import UUID

from orderledger.events.outbox_utility import create_outbox_event

log = logging.getLogger("orderledger.kitchen")

ITEM_REMOVED = "order.item_removed.v1"
ORDER_CANCELLED = "order.cancelled.v1"
SENT_TO_KITCHEN = "order.sent_to_kitchen.v1"


class KitchenNotifier:
    async def notify(self, order_id: UUID, event_type: str, payload: Dict[str, Any]) -> bool:
        """Returns False when the signal could not be queued."""
        try:
            await create_outbox_event(
                aggregate_type="order",
                aggregate_id=order_id,
                event_type=event_type,
                payload={"order_id": str(order_id), **payload},
            )
        except Exception:
            log.exception(f"Kitchen signal {event_type} for order {order_id} was not delivered.")
            return False
        log.info(f"Kitchen signal {event_type} queued for order {order_id}.")
        return True
