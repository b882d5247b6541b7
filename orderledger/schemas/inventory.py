from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

from orderledger.models.inventory import MovementType
from orderledger.schemas.refs import InventoryItemRef, SnapshotName


class InventoryItemRequest(BaseModel):
    name: str = Field(..., description="Name of the stock item (e.g., Tomato).")
    category: str = Field("", description="Free-form inventory category.")
    unit: str = Field(..., description="Unit of measure (kg, l, pcs...).")
    initial_stock: Decimal = Field(Decimal("0"), ge=0, description="Opening stock, recorded as an adjustment.")
    minimum_stock: Decimal = Field(Decimal("0"), ge=0, description="Stock level below which an alert is raised.")
    average_cost: Decimal = Field(Decimal("0"), ge=0, description="Cost per unit.")
    supplier_id: Optional[uuid.UUID] = Field(None, description="Main supplier of the item.")


class InventoryItemUpdate(BaseModel):
    """Metadata edits. Stock is never edited here; use a movement."""
    name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    minimum_stock: Optional[Decimal] = Field(None, ge=0)
    average_cost: Optional[Decimal] = Field(None, ge=0)
    supplier_id: Optional[uuid.UUID] = Field(None, description="Main supplier; an explicit null removes it.")


class InventoryItemRecord(BaseModel):
    """Validated view of an inventory item row."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    name: str
    category: str
    unit: str
    current_stock: Decimal = Field(..., ge=0)
    minimum_stock: Decimal = Field(..., ge=0)
    average_cost: Decimal = Field(..., ge=0)
    supplier_id: Optional[uuid.UUID] = None

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.minimum_stock


class MovementRequest(BaseModel):
    type: MovementType
    quantity: Decimal = Field(..., gt=0, description="Units moved; for adjustments, the counted stock.")
    cost: Optional[Decimal] = Field(None, ge=0, description="Total cost of an entry.")


class MovementRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    item_id: InventoryItemRef
    item_name: SnapshotName
    type: MovementType
    quantity: Decimal
    cost: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    actor_id: str
    actor_email: str
    reference: Optional[str] = None
    created_at: datetime


class MovementResult(BaseModel):
    previous_stock: Decimal
    new_stock: Decimal
    movement: MovementRecord


class InventorySummary(BaseModel):
    item_count: int
    low_stock_items: int
    inventory_value: Decimal


class SupplierRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Company name of the supplier.")
    contact_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    payment_terms: str = Field("", description="Free text, e.g. 'Net 30'.")


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: Optional[str] = None


class SupplierRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    contact_name: str
    phone: str
    email: str
    address: str
    payment_terms: str
