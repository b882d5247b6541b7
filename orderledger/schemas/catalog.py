from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from orderledger.models.catalog import MenuItemStatus
from orderledger.schemas.refs import InventoryItemRef, SnapshotCost, SnapshotName, SnapshotUnit


class RestaurantRequest(BaseModel):
    name: str = Field(..., description="Name of the restaurant.")
    is_active: bool = Field(True, description="Whether the restaurant is currently active.")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=1, description="Sales tax as a fraction, e.g. 0.16.")


class RestaurantRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    is_active: bool
    tax_rate: Optional[Decimal] = None


class CategoryRequest(BaseModel):
    name: str


class CategoryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class IngredientInput(BaseModel):
    """What an editor submits: a live item reference and a quantity."""
    item_id: InventoryItemRef
    quantity: Decimal


class RecipeIngredient(BaseModel):
    """
    Stored ingredient. ``item_id`` is live; name, unit and unit cost are
    snapshots taken when the recipe was saved.
    """
    item_id: InventoryItemRef
    item_name: SnapshotName
    quantity: Decimal = Field(..., gt=0)
    unit: SnapshotUnit
    cost: SnapshotCost


class RecipeRequest(BaseModel):
    name: str
    ingredients: List[IngredientInput] = Field(default_factory=list)


class RecipeRecord(BaseModel):
    id: uuid.UUID
    name: str
    ingredients: List[RecipeIngredient]
    cost: SnapshotCost


class MenuItemRequest(BaseModel):
    name: str = Field(..., description="Name of the dish (e.g., Chicken Biryani).")
    price: Decimal = Field(..., gt=0, description="Selling price of the item.")
    category_id: Optional[uuid.UUID] = None
    recipe_id: Optional[uuid.UUID] = None
    inventory_item_id: Optional[uuid.UUID] = Field(None, description="For items sold as-is, e.g. a bottled drink.")
    status: MenuItemStatus = MenuItemStatus.ACTIVE

    @model_validator(mode="after")
    def _one_cost_source(self) -> "MenuItemRequest":
        if self.recipe_id and self.inventory_item_id:
            raise ValueError("A menu item takes its cost from a recipe or an inventory item, not both.")
        return self


class MenuItemUpdate(BaseModel):
    """Partial edit. An explicit null clears category, recipe or inventory item."""
    name: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, description="New price; lines already on orders keep theirs.")
    category_id: Optional[uuid.UUID] = None
    recipe_id: Optional[uuid.UUID] = None
    inventory_item_id: Optional[uuid.UUID] = None
    status: Optional[MenuItemStatus] = None

    @model_validator(mode="after")
    def _one_cost_source(self) -> "MenuItemUpdate":
        if self.recipe_id and self.inventory_item_id:
            raise ValueError("A menu item takes its cost from a recipe or an inventory item, not both.")
        return self


class MenuItemRecord(BaseModel):
    id: uuid.UUID
    name: str
    price: Decimal
    category_id: Optional[uuid.UUID] = None
    recipe_id: Optional[uuid.UUID] = None
    inventory_item_id: Optional[uuid.UUID] = None
    status: MenuItemStatus
    cost: Decimal = Decimal("0")
