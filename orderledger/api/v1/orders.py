import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from orderledger.core.dependencies import get_order_service
from orderledger.core.streaming import stream_snapshots
from orderledger.schemas.order import (
    AddItemRequest,
    CreateOrderRequest,
    LineStatusUpdate,
    MAIN_SUB_ACCOUNT_ID,
)
from orderledger.schemas.response import SuccessResponse
from orderledger.services.order_service import OrderService

router = APIRouter()
log = logging.getLogger("orderledger.api")


def _order(doc):
    return SuccessResponse(data=doc.model_dump(mode="json"))


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(
    restaurant_id: UUID, payload: CreateOrderRequest, orders: OrderService = Depends(get_order_service)
):
    """Opens an empty order for a table, or a takeout order with a consecutive id."""
    doc = await orders.create_order(restaurant_id, table_name=payload.table_name, takeout=payload.takeout)
    return _order(doc)


@router.get("/kitchen", response_model=SuccessResponse)
async def kitchen_board_endpoint(restaurant_id: UUID, orders: OrderService = Depends(get_order_service)):
    """Orders in preparation or waiting for pickup, oldest first."""
    board = await orders.kitchen_board(restaurant_id)
    return SuccessResponse(data=[doc.model_dump(mode="json") for doc in board])


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    return _order(await orders.get_order(restaurant_id, order_id))


@router.get("/{order_id}/bill", response_model=SuccessResponse)
async def get_bill_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    """Subtotal, tax and total for the order and for each sub-account."""
    bill = await orders.compute_bill(restaurant_id, order_id)
    return SuccessResponse(data=bill.model_dump(mode="json"))


# ----------- Lines -----------

@router.post("/{order_id}/items", response_model=SuccessResponse)
async def add_item_endpoint(
    restaurant_id: UUID, order_id: UUID, payload: AddItemRequest, orders: OrderService = Depends(get_order_service)
):
    doc = await orders.add_item(restaurant_id, order_id, payload.menu_item_id, payload.sub_account_id)
    return _order(doc)


@router.delete("/{order_id}/items/{menu_item_id}", response_model=SuccessResponse)
async def remove_item_endpoint(
    restaurant_id: UUID,
    order_id: UUID,
    menu_item_id: UUID,
    sub_account_id: str = MAIN_SUB_ACCOUNT_ID,
    orders: OrderService = Depends(get_order_service),
):
    """Removes one unit of the item from the given sub-account."""
    doc = await orders.remove_item(restaurant_id, order_id, menu_item_id, sub_account_id)
    return _order(doc)


@router.patch("/{order_id}/items/{menu_item_id}/status", response_model=SuccessResponse)
async def line_status_endpoint(
    restaurant_id: UUID,
    order_id: UUID,
    menu_item_id: UUID,
    payload: LineStatusUpdate,
    orders: OrderService = Depends(get_order_service),
):
    doc = await orders.set_line_status(
        restaurant_id, order_id, menu_item_id, payload.sub_account_id, payload.status
    )
    return _order(doc)


# ----------- Sub-accounts -----------

@router.post("/{order_id}/subaccounts", response_model=SuccessResponse)
async def add_sub_account_endpoint(
    restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)
):
    return _order(await orders.add_sub_account(restaurant_id, order_id))


@router.delete("/{order_id}/subaccounts/{sub_account_id}", response_model=SuccessResponse)
async def remove_sub_account_endpoint(
    restaurant_id: UUID, order_id: UUID, sub_account_id: str, orders: OrderService = Depends(get_order_service)
):
    return _order(await orders.remove_sub_account(restaurant_id, order_id, sub_account_id))


# ----------- Lifecycle -----------

@router.post("/{order_id}/send", response_model=SuccessResponse)
async def send_to_kitchen_endpoint(
    restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)
):
    return _order(await orders.send_to_kitchen(restaurant_id, order_id))


@router.post("/{order_id}/ready", response_model=SuccessResponse)
async def mark_ready_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    return _order(await orders.mark_ready(restaurant_id, order_id))


@router.post("/{order_id}/serve", response_model=SuccessResponse)
async def serve_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    """The waiter picked the order up from the kitchen."""
    return _order(await orders.acknowledge_pickup(restaurant_id, order_id))


@router.post("/{order_id}/close", response_model=SuccessResponse)
async def close_order_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    """Marks the order paid. Paid orders can no longer change."""
    return _order(await orders.close_order(restaurant_id, order_id))


@router.post("/{order_id}/cancel", response_model=SuccessResponse)
async def cancel_order_endpoint(restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)):
    """Deletes the order. The response carries its last state."""
    return _order(await orders.cancel_order(restaurant_id, order_id))


# ----------- Real-time -----------

@router.websocket("/{order_id}/stream")
async def order_stream(
    websocket: WebSocket, restaurant_id: UUID, order_id: UUID, orders: OrderService = Depends(get_order_service)
):
    """Pushes the full order on every change; ``null`` once it is cancelled."""
    await websocket.accept()
    try:
        client_left = await stream_snapshots(
            websocket,
            orders.watch_order(restaurant_id, order_id),
            lambda doc: doc.model_dump(mode="json") if doc else None,
            until=lambda doc: doc is None,
        )
    except WebSocketDisconnect:
        client_left = True
    if client_left:
        log.info(f"Order stream for {order_id} disconnected.")
        return
    await websocket.close()
