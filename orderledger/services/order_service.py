import logging
import re
import uuid
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from uuid import UUID

from orderledger.core.changefeed import order_topic, orders_topic
from orderledger.core.clock import day_key, now_utc
from orderledger.core.config import (
    ALLOW_EMPTY_ORDER_CLOSE,
    AUTO_DEDUCT_INVENTORY_ON_PAID,
    DEFAULT_TAX_RATE,
)
from orderledger.core.errors import (
    InvalidTransition,
    NotFound,
    SubAccountNotEmpty,
    ValidationError,
)
from orderledger.core.store import LedgerStore
from orderledger.events import kitchen
from orderledger.events.kitchen import KitchenNotifier
from orderledger.events.outbox_utility import create_outbox_event
from orderledger.models.catalog import DailyCounter, MenuItem, MenuItemStatus, Restaurant
from orderledger.models.order import Order, OrderStatus
from orderledger.schemas.order import (
    CENTS,
    MAIN_SUB_ACCOUNT_ID,
    Bill,
    LineStatus,
    OrderDocument,
    OrderLine,
    SubAccount,
    SubAccountBill,
    compute_subtotal,
    default_sub_accounts,
    dump_lines,
    dump_sub_accounts,
)

log = logging.getLogger("orderledger.orders")

# Statuses in which the kitchen has the order
DISPATCHED = (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP, OrderStatus.SERVED)
KITCHEN_BOARD = (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP)

DINER_NAME = re.compile(r"Diner (\d+)")

Mutation = Callable[[Any, Order, OrderDocument], Awaitable[Any]]


def _ensure_not_paid(doc: OrderDocument, action: str) -> None:
    if doc.status == OrderStatus.PAID:
        raise InvalidTransition(doc.id, doc.status.value, action)


def _ensure_sub_account(doc: OrderDocument, sub_account_id: str) -> None:
    if not any(sa.id == sub_account_id for sa in doc.subaccounts):
        raise ValidationError(
            f"Sub-account '{sub_account_id}' does not exist on order {doc.id}.",
            {"order_id": str(doc.id), "sub_account_id": sub_account_id},
        )


def next_diner_name(sub_accounts: List[SubAccount]) -> str:
    """One past the highest "Diner N" on the order; General counts as diner 1."""
    numbers = [1]
    for sa in sub_accounts:
        match = DINER_NAME.fullmatch(sa.name)
        if match:
            numbers.append(int(match.group(1)))
    return f"Diner {max(numbers) + 1}"


def _write_lines(order: Order, lines: List[OrderLine]) -> List[str]:
    """Stores the lines and the subtotal recomputed from them; returns the fields to save."""
    order.items = dump_lines(lines)
    order.subtotal = compute_subtotal(lines)
    return ["items", "subtotal", "updated_at"]


class OrderService:
    """
    Owns the order lifecycle (open -> preparing -> paid, or deletion on
    cancel). Every mutation is one transaction on the single order row: read,
    recompute, write back items and subtotal together.
    """

    def __init__(
        self,
        store: LedgerStore,
        notifier: Optional[KitchenNotifier] = None,
        default_tax_rate: Decimal = DEFAULT_TAX_RATE,
        allow_empty_close: bool = ALLOW_EMPTY_ORDER_CLOSE,
        deduct_inventory_on_paid: bool = AUTO_DEDUCT_INVENTORY_ON_PAID,
    ):
        self.store = store
        self.notifier = notifier or KitchenNotifier()
        self.default_tax_rate = default_tax_rate
        self.allow_empty_close = allow_empty_close
        self.deduct_inventory_on_paid = deduct_inventory_on_paid

    # ----------- Internals -----------

    async def _mutate(self, restaurant_id: UUID, order_id: UUID, label: str, mutation: Mutation):
        async def work(conn):
            order = await (
                Order.filter(id=order_id, restaurant_id=restaurant_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not order:
                raise NotFound("Order", order_id)
            return await mutation(conn, order, OrderDocument.from_model(order))

        return await self.store.run(
            work,
            topics=(order_topic(order_id), orders_topic(restaurant_id)),
            label=f"{label} on order {order_id}",
        )

    async def _next_takeout_id(self, restaurant_id: UUID) -> str:
        """Consecutive takeout number for the local day, formatted NNNNN-YYYYMMDD."""
        day = day_key()
        key = f"{restaurant_id}:{day}"

        async def work(conn) -> int:
            counter = await DailyCounter.filter(id=key).select_for_update().using_db(conn).first()
            if not counter:
                await DailyCounter.create(id=key, count=1, using_db=conn)
                return 1
            counter.count += 1
            await counter.save(update_fields=["count", "updated_at"], using_db=conn)
            return counter.count

        # Two first-of-day orders can both miss the row; the loser's insert fails and
        # the store re-runs it against the winner's committed counter.
        count = await self.store.run(work, label=f"takeout counter {key}")
        return f"{count:05d}-{day}"

    # ----------- Reads -----------

    async def get_order(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        order = await Order.get_or_none(id=order_id, restaurant_id=restaurant_id)
        if not order:
            raise NotFound("Order", order_id)
        return OrderDocument.from_model(order)

    async def find_order(self, restaurant_id: UUID, order_id: UUID) -> Optional[OrderDocument]:
        """Like get_order, but a missing (cancelled) order is None."""
        order = await Order.get_or_none(id=order_id, restaurant_id=restaurant_id)
        return OrderDocument.from_model(order) if order else None

    async def kitchen_board(self, restaurant_id: UUID) -> List[OrderDocument]:
        """Orders the kitchen is working on, oldest dispatch first."""
        orders = await Order.filter(
            restaurant_id=restaurant_id, status__in=list(KITCHEN_BOARD)
        ).order_by("sent_to_kitchen_at", "created_at")
        return [OrderDocument.from_model(o) for o in orders]

    def watch_order(self, restaurant_id: UUID, order_id: UUID):
        """Scoped subscription to one order; a delivery of None means it was cancelled."""
        return self.store.feed.subscribe(
            [order_topic(order_id)], lambda: self.find_order(restaurant_id, order_id)
        )

    def watch_kitchen_board(self, restaurant_id: UUID):
        return self.store.feed.subscribe(
            [orders_topic(restaurant_id)], lambda: self.kitchen_board(restaurant_id)
        )

    async def compute_bill(self, restaurant_id: UUID, order_id: UUID) -> Bill:
        """Totals with tax at the restaurant's rate. Tax is presentation only; it is never stored."""
        doc = await self.get_order(restaurant_id, order_id)
        restaurant = await Restaurant.get_or_none(id=restaurant_id)
        rate = restaurant.tax_rate if restaurant and restaurant.tax_rate is not None else self.default_tax_rate

        def taxed(subtotal: Decimal) -> Tuple[Decimal, Decimal]:
            tax = (subtotal * rate).quantize(CENTS)
            return tax, subtotal + tax

        parts = []
        for sa in doc.subaccounts:
            subtotal = compute_subtotal(doc.lines_in(sa.id))
            tax, total = taxed(subtotal)
            parts.append(
                SubAccountBill(sub_account_id=sa.id, name=sa.name, subtotal=subtotal, tax=tax, total=total)
            )
        tax, total = taxed(doc.subtotal)
        return Bill(
            order_id=doc.id, subtotal=doc.subtotal, tax_rate=rate, tax=tax, total=total, sub_accounts=parts
        )

    # ----------- Lifecycle -----------

    async def create_order(
        self, restaurant_id: UUID, table_name: Optional[str] = None, takeout: bool = False
    ) -> OrderDocument:
        restaurant = await Restaurant.get_or_none(id=restaurant_id)
        if not restaurant or not restaurant.is_active:
            raise NotFound("Restaurant", restaurant_id)

        takeout_id = await self._next_takeout_id(restaurant_id) if takeout else None

        async def work(conn) -> Order:
            return await Order.create(
                restaurant_id=restaurant_id,
                status=OrderStatus.OPEN,
                items=[],
                subaccounts=dump_sub_accounts(default_sub_accounts()),
                subtotal=Decimal("0"),
                table_name=table_name,
                takeout_id=takeout_id,
                created_at=now_utc(),
                using_db=conn,
            )

        order = await self.store.run(
            work, topics=(orders_topic(restaurant_id),), label=f"creation of order for {restaurant_id}"
        )
        log.info(f"Order {order.id} opened (table={table_name}, takeout={takeout_id}).")
        return OrderDocument.from_model(order)

    async def send_to_kitchen(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        """open -> preparing. Orders the kitchen already has are returned unchanged."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "send to the kitchen")
            if doc.status in DISPATCHED:
                return doc, False
            if not doc.items:
                raise ValidationError(
                    f"Order {doc.id} has no items to send to the kitchen.", {"order_id": str(doc.id)}
                )
            lines = [line.model_copy(update={"status": LineStatus.PENDING}) for line in doc.items]
            fields = _write_lines(order, lines)
            order.status = OrderStatus.PREPARING
            order.sent_to_kitchen_at = now_utc()
            await order.save(update_fields=[*fields, "status", "sent_to_kitchen_at"], using_db=conn)
            return OrderDocument.from_model(order), True

        doc, dispatched = await self._mutate(restaurant_id, order_id, "send to kitchen", mutation)
        if dispatched:
            await self.notifier.notify(
                doc.id,
                kitchen.SENT_TO_KITCHEN,
                {
                    "table_name": doc.table_name,
                    "takeout_id": doc.takeout_id,
                    "items": [{"name": l.name, "quantity": l.quantity} for l in doc.items],
                },
            )
        return doc

    async def mark_ready(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        """preparing -> ready_for_pickup (kitchen board)."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            if doc.status == OrderStatus.READY_FOR_PICKUP:
                return doc
            if doc.status != OrderStatus.PREPARING:
                raise InvalidTransition(doc.id, doc.status.value, "mark ready")
            order.status = OrderStatus.READY_FOR_PICKUP
            await order.save(update_fields=["status", "updated_at"], using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, "mark ready", mutation)

    async def acknowledge_pickup(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        """preparing|ready_for_pickup -> served."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            if doc.status == OrderStatus.SERVED:
                return doc
            if doc.status not in KITCHEN_BOARD:
                raise InvalidTransition(doc.id, doc.status.value, "serve")
            order.status = OrderStatus.SERVED
            order.pickup_acknowledged_at = now_utc()
            await order.save(update_fields=["status", "pickup_acknowledged_at", "updated_at"], using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, "acknowledge pickup", mutation)

    async def close_order(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        """Any in-progress state -> paid (terminal)."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "close")
            if not doc.items and not self.allow_empty_close:
                raise ValidationError(
                    f"Order {doc.id} has no items and cannot be closed.", {"order_id": str(doc.id)}
                )
            order.status = OrderStatus.PAID
            await order.save(update_fields=["status", "updated_at"], using_db=conn)
            if self.deduct_inventory_on_paid and doc.items:
                # Consumed by the inventory worker; commits with the status change.
                await create_outbox_event(
                    aggregate_type="order",
                    aggregate_id=doc.id,
                    event_type="order.paid.v1",
                    payload={
                        "order_id": str(doc.id),
                        "restaurant_id": str(restaurant_id),
                        "items": [
                            {"menu_item_id": str(l.id), "quantity": l.quantity} for l in doc.items
                        ],
                    },
                    conn=conn,
                )
            return OrderDocument.from_model(order)

        doc = await self._mutate(restaurant_id, order_id, "close", mutation)
        log.info(f"Order {order_id} closed with subtotal {doc.subtotal}.")
        return doc

    async def cancel_order(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        """Deletes the order. Returns the last state it had."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "cancel")
            await order.delete(using_db=conn)
            return doc

        doc = await self._mutate(restaurant_id, order_id, "cancel", mutation)
        log.info(f"Order {order_id} cancelled and removed.")
        if doc.status in DISPATCHED:
            await self.notifier.notify(
                doc.id,
                kitchen.ORDER_CANCELLED,
                {"table_name": doc.table_name, "takeout_id": doc.takeout_id},
            )
        return doc

    # ----------- Lines -----------

    async def add_item(
        self,
        restaurant_id: UUID,
        order_id: UUID,
        menu_item_id: UUID,
        sub_account_id: str = MAIN_SUB_ACCOUNT_ID,
    ) -> OrderDocument:
        """Adds one unit: increments the (item, sub-account) line or appends a new one."""
        menu = await MenuItem.get_or_none(id=menu_item_id, restaurant_id=restaurant_id)
        if not menu or menu.status != MenuItemStatus.ACTIVE:
            raise NotFound("Menu item", menu_item_id)

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "add items to")
            _ensure_sub_account(doc, sub_account_id)

            lines = list(doc.items)
            existing = doc.find_line(menu.id, sub_account_id)
            if existing:
                index = lines.index(existing)
                lines[index] = existing.model_copy(update={"quantity": existing.quantity + 1})
            else:
                lines.append(
                    OrderLine(
                        id=menu.id,
                        name=menu.name,
                        price=menu.price,
                        quantity=1,
                        sub_account_id=sub_account_id,
                        category_id=menu.category_id,
                        status=LineStatus.PENDING if doc.status in DISPATCHED else None,
                    )
                )
            fields = _write_lines(order, lines)
            if doc.status == OrderStatus.SERVED:
                # New items on a served order go back to the kitchen.
                order.status = OrderStatus.PREPARING
                order.sent_to_kitchen_at = now_utc()
                order.pickup_acknowledged_at = None
                fields += ["status", "sent_to_kitchen_at", "pickup_acknowledged_at"]
            await order.save(update_fields=fields, using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, f"add of {menu_item_id}", mutation)

    async def remove_item(
        self,
        restaurant_id: UUID,
        order_id: UUID,
        menu_item_id: UUID,
        sub_account_id: str = MAIN_SUB_ACCOUNT_ID,
    ) -> OrderDocument:
        """Removes one unit of the (item, sub-account) line; the last unit removes the line."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "remove items from")
            existing = doc.find_line(menu_item_id, sub_account_id)
            if not existing:
                raise NotFound(
                    "Order line", menu_item_id, {"order_id": str(doc.id), "sub_account_id": sub_account_id}
                )
            lines = list(doc.items)
            index = lines.index(existing)
            if existing.quantity > 1:
                lines[index] = existing.model_copy(update={"quantity": existing.quantity - 1})
            else:
                del lines[index]
            fields = _write_lines(order, lines)
            await order.save(update_fields=fields, using_db=conn)
            return OrderDocument.from_model(order), doc.status, existing.name

        doc, previous_status, name = await self._mutate(
            restaurant_id, order_id, f"removal of {menu_item_id}", mutation
        )
        if previous_status == OrderStatus.PREPARING:
            await self.notifier.notify(
                doc.id,
                kitchen.ITEM_REMOVED,
                {
                    "menu_item_id": str(menu_item_id),
                    "item_name": name,
                    "sub_account_id": sub_account_id,
                    "table_name": doc.table_name,
                },
            )
        return doc

    async def set_line_status(
        self,
        restaurant_id: UUID,
        order_id: UUID,
        menu_item_id: UUID,
        sub_account_id: str,
        status: LineStatus,
    ) -> OrderDocument:
        """Kitchen progress on one line; only while the kitchen has the order."""

        async def mutation(conn, order: Order, doc: OrderDocument):
            if doc.status not in KITCHEN_BOARD:
                raise InvalidTransition(doc.id, doc.status.value, "update line status of")
            existing = doc.find_line(menu_item_id, sub_account_id)
            if not existing:
                raise NotFound("Order line", menu_item_id, {"order_id": str(doc.id)})
            lines = [
                line.model_copy(update={"status": LineStatus(status)}) if line is existing else line
                for line in doc.items
            ]
            fields = _write_lines(order, lines)
            await order.save(update_fields=fields, using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, "line status update", mutation)

    # ----------- Sub-accounts -----------

    async def add_sub_account(self, restaurant_id: UUID, order_id: UUID) -> OrderDocument:
        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "add a sub-account to")
            sub_accounts = list(doc.subaccounts)
            sub_accounts.append(
                SubAccount(id=f"sub_{uuid.uuid4().hex[:12]}", name=next_diner_name(sub_accounts))
            )
            order.subaccounts = dump_sub_accounts(sub_accounts)
            await order.save(update_fields=["subaccounts", "updated_at"], using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, "sub-account add", mutation)

    async def remove_sub_account(
        self, restaurant_id: UUID, order_id: UUID, sub_account_id: str
    ) -> OrderDocument:
        """Removes an empty sub-account. The General sub-account always stays."""
        if sub_account_id == MAIN_SUB_ACCOUNT_ID:
            raise ValidationError(
                "The General sub-account cannot be removed.",
                {"order_id": str(order_id), "sub_account_id": sub_account_id},
            )

        async def mutation(conn, order: Order, doc: OrderDocument):
            _ensure_not_paid(doc, "remove a sub-account from")
            if not any(sa.id == sub_account_id for sa in doc.subaccounts):
                raise NotFound("Sub-account", sub_account_id, {"order_id": str(doc.id)})
            lines = doc.lines_in(sub_account_id)
            if lines:
                raise SubAccountNotEmpty(doc.id, sub_account_id, len(lines))
            order.subaccounts = dump_sub_accounts(sa for sa in doc.subaccounts if sa.id != sub_account_id)
            await order.save(update_fields=["subaccounts", "updated_at"], using_db=conn)
            return OrderDocument.from_model(order)

        return await self._mutate(restaurant_id, order_id, "sub-account removal", mutation)
