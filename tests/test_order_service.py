import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from tortoise.exceptions import IntegrityError, OperationalError

from orderledger.core.errors import InvalidTransition, NotFound, SubAccountNotEmpty, ValidationError
from orderledger.events import kitchen
from orderledger.events.kitchen import KitchenNotifier
from orderledger.models.catalog import DailyCounter, MenuItemStatus
from orderledger.models.order import Order, OrderStatus
from orderledger.models.outbox import OutboxEvent
from orderledger.schemas.order import MAIN_SUB_ACCOUNT_ID, LineStatus, OrderDocument, SubAccount
from orderledger.services.order_service import OrderService, next_diner_name


@pytest.fixture
def orders(store, notifier):
    return OrderService(store, notifier=notifier)


async def _order_with(orders, restaurant, *menu_items, sub_account_id=MAIN_SUB_ACCOUNT_ID):
    doc = await orders.create_order(restaurant.id, table_name="T1")
    for menu_item in menu_items:
        doc = await orders.add_item(restaurant.id, doc.id, menu_item.id, sub_account_id)
    return doc


class TestLines:
    @pytest.mark.asyncio
    async def test_new_order_is_open_with_general_sub_account(self, orders, restaurant):
        doc = await orders.create_order(restaurant.id, table_name="T4")

        assert doc.status == OrderStatus.OPEN
        assert doc.items == []
        assert doc.subtotal == Decimal("0")
        assert [(sa.id, sa.name) for sa in doc.subaccounts] == [("main", "General")]

    @pytest.mark.asyncio
    async def test_add_and_remove_keep_subtotal_in_step(self, orders, restaurant, menu_item, side_item):
        doc = await _order_with(orders, restaurant, menu_item, menu_item, side_item)

        assert doc.subtotal == Decimal("250.00")
        burger = doc.find_line(menu_item.id, MAIN_SUB_ACCOUNT_ID)
        assert burger.quantity == 2
        assert burger.name == "Burger"
        assert len(doc.items) == 2

        doc = await orders.remove_item(restaurant.id, doc.id, menu_item.id)
        assert doc.subtotal == Decimal("150.00")
        assert doc.find_line(menu_item.id, MAIN_SUB_ACCOUNT_ID).quantity == 1

        stored = await orders.get_order(restaurant.id, doc.id)
        assert stored.subtotal == Decimal("150.00")
        assert stored.items == doc.items

    @pytest.mark.asyncio
    async def test_removing_last_unit_deletes_the_line(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        doc = await orders.remove_item(restaurant.id, doc.id, menu_item.id)

        assert doc.items == []
        assert doc.subtotal == Decimal("0")

    @pytest.mark.asyncio
    async def test_removing_a_missing_line(self, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        with pytest.raises(NotFound):
            await orders.remove_item(restaurant.id, doc.id, menu_item.id)

    @pytest.mark.asyncio
    async def test_price_is_copied_at_add_time(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        menu_item.price = Decimal("999.00")
        await menu_item.save()

        stored = await orders.get_order(restaurant.id, doc.id)
        assert stored.items[0].price == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_inactive_menu_item_cannot_be_added(self, orders, restaurant, menu_item):
        menu_item.status = MenuItemStatus.INACTIVE
        await menu_item.save()
        doc = await orders.create_order(restaurant.id)

        with pytest.raises(NotFound):
            await orders.add_item(restaurant.id, doc.id, menu_item.id)

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_all_counted(self, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        await asyncio.gather(*(orders.add_item(restaurant.id, doc.id, menu_item.id) for _ in range(5)))

        stored = await orders.get_order(restaurant.id, doc.id)
        assert stored.items[0].quantity == 5
        assert stored.subtotal == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_unknown_order(self, orders, restaurant):
        with pytest.raises(NotFound):
            await orders.get_order(restaurant.id, uuid4())


class TestSubAccounts:
    @pytest.mark.asyncio
    async def test_non_empty_sub_account_cannot_be_removed(self, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        doc = await orders.add_sub_account(restaurant.id, doc.id)
        diner = doc.subaccounts[-1]
        assert diner.name == "Diner 2"

        doc = await orders.add_item(restaurant.id, doc.id, menu_item.id, diner.id)
        with pytest.raises(SubAccountNotEmpty) as exc_info:
            await orders.remove_sub_account(restaurant.id, doc.id, diner.id)
        assert exc_info.value.line_count == 1

        unchanged = await orders.get_order(restaurant.id, doc.id)
        assert any(sa.id == diner.id for sa in unchanged.subaccounts)

        await orders.remove_item(restaurant.id, doc.id, menu_item.id, diner.id)
        doc = await orders.remove_sub_account(restaurant.id, doc.id, diner.id)
        assert [sa.id for sa in doc.subaccounts] == [MAIN_SUB_ACCOUNT_ID]

    @pytest.mark.asyncio
    async def test_general_sub_account_is_permanent(self, orders, restaurant):
        doc = await orders.create_order(restaurant.id)
        with pytest.raises(ValidationError):
            await orders.remove_sub_account(restaurant.id, doc.id, MAIN_SUB_ACCOUNT_ID)

    @pytest.mark.asyncio
    async def test_items_need_an_existing_sub_account(self, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        with pytest.raises(ValidationError):
            await orders.add_item(restaurant.id, doc.id, menu_item.id, "sub_nope")

    @pytest.mark.asyncio
    async def test_same_item_in_two_sub_accounts_is_two_lines(self, orders, restaurant, menu_item):
        doc = await orders.create_order(restaurant.id)
        doc = await orders.add_sub_account(restaurant.id, doc.id)
        diner = doc.subaccounts[-1]
        await orders.add_item(restaurant.id, doc.id, menu_item.id)
        doc = await orders.add_item(restaurant.id, doc.id, menu_item.id, diner.id)

        assert len(doc.items) == 2
        bill = await orders.compute_bill(restaurant.id, doc.id)
        assert [part.subtotal for part in bill.sub_accounts] == [Decimal("100.00"), Decimal("100.00")]

    def test_legacy_order_without_sub_accounts_gets_general(self):
        doc = OrderDocument(
            id=uuid4(),
            restaurant_id=uuid4(),
            status=OrderStatus.OPEN,
            items=[{"id": str(uuid4()), "name": "Soup", "price": "40.00", "quantity": 2}],
            subaccounts=[],
            created_at="2024-05-01T12:00:00+00:00",
        )
        assert doc.subaccounts[0].id == MAIN_SUB_ACCOUNT_ID
        assert doc.items[0].sub_account_id == MAIN_SUB_ACCOUNT_ID
        assert doc.subtotal == Decimal("80.00")


class TestKitchenFlow:
    @pytest.mark.asyncio
    async def test_send_to_kitchen_is_idempotent(self, orders, notifier, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)

        await orders.send_to_kitchen(restaurant.id, doc.id)
        first = await orders.get_order(restaurant.id, doc.id)
        await orders.send_to_kitchen(restaurant.id, doc.id)
        second = await orders.get_order(restaurant.id, doc.id)

        assert first.status == OrderStatus.PREPARING
        assert first.items[0].status == LineStatus.PENDING
        assert second.sent_to_kitchen_at == first.sent_to_kitchen_at
        assert len(notifier.of_type(kitchen.SENT_TO_KITCHEN)) == 1

    @pytest.mark.asyncio
    async def test_empty_order_cannot_go_to_the_kitchen(self, orders, restaurant):
        doc = await orders.create_order(restaurant.id)
        with pytest.raises(ValidationError):
            await orders.send_to_kitchen(restaurant.id, doc.id)

    @pytest.mark.asyncio
    async def test_board_then_pickup(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        await orders.send_to_kitchen(restaurant.id, doc.id)
        await orders.mark_ready(restaurant.id, doc.id)

        board = await orders.kitchen_board(restaurant.id)
        assert [o.id for o in board] == [doc.id]
        assert board[0].status == OrderStatus.READY_FOR_PICKUP

        served = await orders.acknowledge_pickup(restaurant.id, doc.id)
        assert served.status == OrderStatus.SERVED
        assert served.pickup_acknowledged_at is not None
        assert await orders.kitchen_board(restaurant.id) == []

    @pytest.mark.asyncio
    async def test_mark_ready_needs_preparing(self, orders, restaurant):
        doc = await orders.create_order(restaurant.id)
        with pytest.raises(InvalidTransition):
            await orders.mark_ready(restaurant.id, doc.id)

    @pytest.mark.asyncio
    async def test_adding_to_a_served_order_reopens_it_in_the_kitchen(self, orders, restaurant, menu_item, side_item):
        doc = await _order_with(orders, restaurant, menu_item)
        await orders.send_to_kitchen(restaurant.id, doc.id)
        await orders.acknowledge_pickup(restaurant.id, doc.id)

        doc = await orders.add_item(restaurant.id, doc.id, side_item.id)
        assert doc.status == OrderStatus.PREPARING
        assert doc.pickup_acknowledged_at is None
        assert doc.find_line(side_item.id, MAIN_SUB_ACCOUNT_ID).status == LineStatus.PENDING

    @pytest.mark.asyncio
    async def test_removing_from_preparing_order_signals_the_kitchen(self, orders, notifier, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item, menu_item)
        await orders.send_to_kitchen(restaurant.id, doc.id)
        await orders.remove_item(restaurant.id, doc.id, menu_item.id)

        signals = notifier.of_type(kitchen.ITEM_REMOVED)
        assert len(signals) == 1
        assert signals[0][2]["item_name"] == "Burger"

    @pytest.mark.asyncio
    async def test_line_status_only_while_in_the_kitchen(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        with pytest.raises(InvalidTransition):
            await orders.set_line_status(restaurant.id, doc.id, menu_item.id, MAIN_SUB_ACCOUNT_ID, LineStatus.READY)

        await orders.send_to_kitchen(restaurant.id, doc.id)
        doc = await orders.set_line_status(restaurant.id, doc.id, menu_item.id, MAIN_SUB_ACCOUNT_ID, LineStatus.READY)
        assert doc.items[0].status == LineStatus.READY


class TestCloseAndCancel:
    @pytest.mark.asyncio
    async def test_paid_is_terminal(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        await orders.close_order(restaurant.id, doc.id)

        for call in (
            orders.add_item(restaurant.id, doc.id, menu_item.id),
            orders.remove_item(restaurant.id, doc.id, menu_item.id),
            orders.close_order(restaurant.id, doc.id),
            orders.cancel_order(restaurant.id, doc.id),
        ):
            with pytest.raises(InvalidTransition):
                await call
        stored = await orders.get_order(restaurant.id, doc.id)
        assert stored.status == OrderStatus.PAID
        assert stored.subtotal == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_close_queues_inventory_deduction(self, orders, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item, menu_item)
        await orders.close_order(restaurant.id, doc.id)

        events = await OutboxEvent.filter(event_type="order.paid.v1")
        assert len(events) == 1
        assert events[0].payload["items"] == [{"menu_item_id": str(menu_item.id), "quantity": 2}]

    @pytest.mark.asyncio
    async def test_empty_close_policy(self, store, notifier, restaurant):
        strict = OrderService(store, notifier=notifier, allow_empty_close=False)
        doc = await strict.create_order(restaurant.id)
        with pytest.raises(ValidationError):
            await strict.close_order(restaurant.id, doc.id)

        lenient = OrderService(store, notifier=notifier, allow_empty_close=True)
        closed = await lenient.close_order(restaurant.id, doc.id)
        assert closed.status == OrderStatus.PAID
        assert await OutboxEvent.filter(event_type="order.paid.v1").count() == 0

    @pytest.mark.asyncio
    async def test_cancel_deletes_and_watchers_see_none(self, orders, notifier, restaurant, menu_item):
        doc = await _order_with(orders, restaurant, menu_item)
        await orders.send_to_kitchen(restaurant.id, doc.id)

        async with orders.watch_order(restaurant.id, doc.id) as updates:
            current = await updates.__anext__()
            assert current.id == doc.id

            last = await orders.cancel_order(restaurant.id, doc.id)
            after = await asyncio.wait_for(updates.__anext__(), timeout=1)

        assert after is None
        assert last.items[0].name == "Burger"
        assert not await Order.filter(id=doc.id).exists()
        assert len(notifier.of_type(kitchen.ORDER_CANCELLED)) == 1

    @pytest.mark.asyncio
    async def test_bill_uses_restaurant_tax_rate(self, orders, restaurant, menu_item, side_item):
        doc = await _order_with(orders, restaurant, menu_item, side_item)
        bill = await orders.compute_bill(restaurant.id, doc.id)

        assert bill.subtotal == Decimal("150.00")
        assert bill.tax_rate == Decimal("0.16")
        assert bill.tax == Decimal("24.00")
        assert bill.total == Decimal("174.00")


class TestTakeout:
    @pytest.mark.asyncio
    async def test_takeout_ids_are_consecutive_per_day(self, orders, restaurant):
        first = await orders.create_order(restaurant.id, takeout=True)
        second = await orders.create_order(restaurant.id, takeout=True)

        assert first.takeout_id.startswith("00001-")
        assert second.takeout_id.startswith("00002-")
        assert first.takeout_id[6:] == second.takeout_id[6:]

    @pytest.mark.asyncio
    async def test_inactive_restaurant_cannot_open_orders(self, orders, restaurant):
        restaurant.is_active = False
        await restaurant.save()
        with pytest.raises(NotFound):
            await orders.create_order(restaurant.id)

    @pytest.mark.asyncio
    async def test_losing_the_first_counter_insert_still_gets_a_number(self, orders, restaurant):
        real_create = DailyCounter.create
        inserts = []

        async def insert_loses_once(*args, **kwargs):
            inserts.append(kwargs["id"])
            if len(inserts) == 1:
                raise IntegrityError("duplicate key value violates unique constraint")
            return await real_create(*args, **kwargs)

        with patch.object(DailyCounter, "create", new=insert_loses_once):
            first = await orders.create_order(restaurant.id, takeout=True)
        second = await orders.create_order(restaurant.id, takeout=True)

        assert len(inserts) == 2
        assert first.takeout_id.startswith("00001-")
        assert second.takeout_id.startswith("00002-")


class TestDinerNames:
    @pytest.mark.asyncio
    async def test_names_are_not_reused_after_a_removal(self, orders, restaurant):
        doc = await orders.create_order(restaurant.id)
        doc = await orders.add_sub_account(restaurant.id, doc.id)
        doc = await orders.add_sub_account(restaurant.id, doc.id)
        diner_2 = next(sa for sa in doc.subaccounts if sa.name == "Diner 2")

        await orders.remove_sub_account(restaurant.id, doc.id, diner_2.id)
        doc = await orders.add_sub_account(restaurant.id, doc.id)

        assert [sa.name for sa in doc.subaccounts] == ["General", "Diner 3", "Diner 4"]

    def test_renamed_sub_accounts_are_skipped(self):
        sub_accounts = [SubAccount(id="main", name="General"), SubAccount(id="sub_a", name="Grandma")]
        assert next_diner_name(sub_accounts) == "Diner 2"


class TestNotificationFailures:
    @pytest.mark.asyncio
    async def test_removal_commits_when_the_kitchen_signal_fails(self, store, restaurant, menu_item, side_item):
        orders = OrderService(store, notifier=KitchenNotifier())
        doc = await _order_with(orders, restaurant, menu_item, side_item)
        await orders.send_to_kitchen(restaurant.id, doc.id)

        with patch(
            "orderledger.events.kitchen.create_outbox_event",
            new=AsyncMock(side_effect=OperationalError("outbox table is locked")),
        ):
            doc = await orders.remove_item(restaurant.id, doc.id, side_item.id)

        assert doc.find_line(side_item.id, MAIN_SUB_ACCOUNT_ID) is None
        stored = await orders.get_order(restaurant.id, doc.id)
        assert [line.id for line in stored.items] == [menu_item.id]
        assert stored.subtotal == Decimal("100.00")
        assert await OutboxEvent.filter(event_type=kitchen.ITEM_REMOVED).count() == 0
