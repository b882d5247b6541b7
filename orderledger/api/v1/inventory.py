import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from orderledger.core.dependencies import get_actor, get_inventory_service, get_supplier_service
from orderledger.schemas.actor import Actor
from orderledger.schemas.inventory import (
    InventoryItemRequest,
    InventoryItemUpdate,
    MovementRequest,
    SupplierRequest,
    SupplierUpdate,
)
from orderledger.schemas.response import SuccessResponse
from orderledger.services.inventory_service import InventoryService
from orderledger.services.supplier_service import SupplierService

router = APIRouter()
log = logging.getLogger("orderledger.api")


@router.post("/items", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_item_endpoint(
    restaurant_id: UUID,
    payload: InventoryItemRequest,
    inventory: InventoryService = Depends(get_inventory_service),
    actor: Actor = Depends(get_actor),
):
    """Creates a stock item. Opening stock is recorded as an adjustment movement."""
    item = await inventory.create_item(restaurant_id, payload, actor=actor)
    return SuccessResponse(data=item.model_dump(mode="json"))


@router.get("/items", response_model=SuccessResponse)
async def list_items_endpoint(restaurant_id: UUID, inventory: InventoryService = Depends(get_inventory_service)):
    items = await inventory.list_items(restaurant_id)
    return SuccessResponse(
        data=[{**item.model_dump(mode="json"), "is_low_stock": item.is_low_stock} for item in items]
    )


@router.get("/items/{item_id}", response_model=SuccessResponse)
async def get_item_endpoint(
    restaurant_id: UUID, item_id: UUID, inventory: InventoryService = Depends(get_inventory_service)
):
    item = await inventory.get_item(restaurant_id, item_id)
    return SuccessResponse(data={**item.model_dump(mode="json"), "is_low_stock": item.is_low_stock})


@router.patch("/items/{item_id}", response_model=SuccessResponse)
async def update_item_endpoint(
    restaurant_id: UUID,
    item_id: UUID,
    payload: InventoryItemUpdate,
    inventory: InventoryService = Depends(get_inventory_service),
):
    """Edits name, unit, category, minimum stock, average cost or main supplier. Stock changes need a movement."""
    item = await inventory.update_item(restaurant_id, item_id, payload)
    return SuccessResponse(data=item.model_dump(mode="json"))


@router.post("/items/{item_id}/movements", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def apply_movement_endpoint(
    restaurant_id: UUID,
    item_id: UUID,
    payload: MovementRequest,
    inventory: InventoryService = Depends(get_inventory_service),
    actor: Actor = Depends(get_actor),
):
    """Registers an entry, exit or adjustment. Exits that would leave negative stock get a 409."""
    result = await inventory.apply_movement(
        restaurant_id, item_id, payload.type, payload.quantity, cost=payload.cost, actor=actor
    )
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/movements", response_model=SuccessResponse)
async def list_movements_endpoint(
    restaurant_id: UUID,
    item_id: Optional[UUID] = None,
    limit: int = Query(100, ge=1, le=1000),
    inventory: InventoryService = Depends(get_inventory_service),
):
    """Movement history, newest first."""
    movements = await inventory.list_movements(restaurant_id, item_id=item_id, limit=limit)
    return SuccessResponse(data=[m.model_dump(mode="json") for m in movements])


@router.get("/summary", response_model=SuccessResponse)
async def summary_endpoint(restaurant_id: UUID, inventory: InventoryService = Depends(get_inventory_service)):
    summary = await inventory.inventory_summary(restaurant_id)
    return SuccessResponse(data=summary.model_dump(mode="json"))


# ----------- Suppliers -----------

@router.post("/suppliers", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_supplier_endpoint(
    restaurant_id: UUID, payload: SupplierRequest, suppliers: SupplierService = Depends(get_supplier_service)
):
    supplier = await suppliers.create_supplier(restaurant_id, payload)
    return SuccessResponse(data=supplier.model_dump(mode="json"))


@router.get("/suppliers", response_model=SuccessResponse)
async def list_suppliers_endpoint(restaurant_id: UUID, suppliers: SupplierService = Depends(get_supplier_service)):
    return SuccessResponse(data=[s.model_dump(mode="json") for s in await suppliers.list_suppliers(restaurant_id)])


@router.get("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def get_supplier_endpoint(
    restaurant_id: UUID, supplier_id: UUID, suppliers: SupplierService = Depends(get_supplier_service)
):
    supplier = await suppliers.get_supplier(restaurant_id, supplier_id)
    return SuccessResponse(data=supplier.model_dump(mode="json"))


@router.patch("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def update_supplier_endpoint(
    restaurant_id: UUID,
    supplier_id: UUID,
    payload: SupplierUpdate,
    suppliers: SupplierService = Depends(get_supplier_service),
):
    supplier = await suppliers.update_supplier(restaurant_id, supplier_id, payload)
    return SuccessResponse(data=supplier.model_dump(mode="json"))


@router.delete("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def delete_supplier_endpoint(
    restaurant_id: UUID, supplier_id: UUID, suppliers: SupplierService = Depends(get_supplier_service)
):
    """Deletes the supplier. Items it supplied are kept without a main supplier."""
    supplier = await suppliers.delete_supplier(restaurant_id, supplier_id)
    return SuccessResponse(data=supplier.model_dump(mode="json"))
