import asyncio
import logging

from orderledger.consumers.inventory_consumer import DEDUCTION_SHORTFALL, handle_order_paid
from orderledger.consumers.notification_consumer import (
    KITCHEN_MESSAGES,
    handle_deduction_shortfall,
    handle_kitchen_signal,
    handle_low_stock_alert,
)
from orderledger.core.config import BATCH_SIZE, LOG_FORMAT, LOG_LEVEL, MAX_ATTEMPTS, POLLING_INTERVAL
from orderledger.core.db import close_db, init_db
from orderledger.core.relay import start_change_relay
from orderledger.core.store import LedgerStore
from orderledger.models.outbox import OutboxEvent
from orderledger.services.inventory_service import InventoryService

log = logging.getLogger("outbox_poller")


async def dispatch_event(event: OutboxEvent, inventory: InventoryService):
    """
    Routes an OutboxEvent to the correct handler.
    This stands in for a message broker dispatcher.
    """
    event_type = event.event_type
    payload = event.payload

    log.info(f"Poller DISPATCHING: {event_type} (ID: {event.id.hex[:8]}...)")

    if event_type == "order.paid.v1":
        # Stock deduction for the sold lines
        await handle_order_paid(payload, event.id, inventory)

    elif event_type in KITCHEN_MESSAGES:
        handle_kitchen_signal(event_type, payload)

    elif event_type == "inventory.low_stock_alert.v1":
        handle_low_stock_alert(payload)

    elif event_type == DEDUCTION_SHORTFALL:
        handle_deduction_shortfall(payload)

    else:
        log.warning(f"No handler found for event type: {event_type}")


async def poll_outbox_for_new_events(inventory: InventoryService) -> int:
    """
    Dispatches one batch of unpublished events. Returns how many were published.
    """
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).limit(BATCH_SIZE).order_by('created_at')

    published = 0
    for event in events:
        try:
            await dispatch_event(event, inventory)
        except Exception:
            # Left unpublished; retried until MAX_ATTEMPTS
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception(f"Handler for {event.event_type} ({event.id}) failed, attempt {event.attempts}/{MAX_ATTEMPTS}.")
            continue
        event.published = True
        await event.save(update_fields=['published'])
        published += 1
    return published


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    store = LedgerStore()
    # Stock deducted here must reach inventory watchers in the API processes
    relay = await start_change_relay(store.feed)
    inventory = InventoryService(store)
    log.info("--- Outbox Poller Service Started ---")

    try:
        while True:
            try:
                await poll_outbox_for_new_events(inventory)
            except Exception as e:
                log.error(f"Poller encountered a critical DB error: {e}.")

            await asyncio.sleep(POLLING_INTERVAL)
    finally:
        if relay is not None:
            await relay.stop()
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
