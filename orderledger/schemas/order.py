from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional
import uuid

from pydantic import BaseModel, Field, model_validator

from orderledger.models.order import Order, OrderStatus
from orderledger.schemas.refs import CategoryRef, MenuItemRef, SnapshotName, SnapshotPrice

MAIN_SUB_ACCOUNT_ID = "main"
MAIN_SUB_ACCOUNT_NAME = "General"

CENTS = Decimal("0.01")


class LineStatus(str, Enum):
    """Kitchen progress of a single line."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"


class SubAccount(BaseModel):
    """A named partition of an order's lines, used to split the bill."""
    id: str
    name: str


class OrderLine(BaseModel):
    """One line of an order; ``id`` is the menu item, name and price are copied at add time."""
    id: MenuItemRef
    name: SnapshotName
    price: SnapshotPrice
    quantity: int = Field(..., ge=1)
    sub_account_id: str = MAIN_SUB_ACCOUNT_ID
    category_id: Optional[CategoryRef] = None
    status: Optional[LineStatus] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


def compute_subtotal(lines: Iterable[OrderLine]) -> Decimal:
    return sum((line.line_total for line in lines), Decimal("0")).quantize(CENTS)


def default_sub_accounts() -> List[SubAccount]:
    return [SubAccount(id=MAIN_SUB_ACCOUNT_ID, name=MAIN_SUB_ACCOUNT_NAME)]


class OrderDocument(BaseModel):
    """
    Validated view of an order row. Loading normalizes legacy shapes (no
    sub-accounts, lines without a sub-account), rejects lines pointing at an
    unknown sub-account, and recomputes the subtotal from the lines.
    """
    id: uuid.UUID
    restaurant_id: uuid.UUID
    status: OrderStatus
    items: List[OrderLine] = Field(default_factory=list)
    subaccounts: List[SubAccount] = Field(default_factory=default_sub_accounts)
    subtotal: Decimal = Decimal("0.00")
    table_name: Optional[str] = None
    takeout_id: Optional[str] = None
    created_at: datetime
    sent_to_kitchen_at: Optional[datetime] = None
    pickup_acknowledged_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "OrderDocument":
        if not any(sa.id == MAIN_SUB_ACCOUNT_ID for sa in self.subaccounts):
            self.subaccounts = default_sub_accounts() + list(self.subaccounts)
        known = {sa.id for sa in self.subaccounts}
        for line in self.items:
            if line.sub_account_id not in known:
                raise ValueError(
                    f"Line '{line.name}' references unknown sub-account '{line.sub_account_id}'"
                )
        self.subtotal = compute_subtotal(self.items)
        return self

    @classmethod
    def from_model(cls, order: Order) -> "OrderDocument":
        return cls(
            id=order.id,
            restaurant_id=order.restaurant_id,
            status=order.status,
            items=order.items or [],
            subaccounts=order.subaccounts or default_sub_accounts(),
            subtotal=order.subtotal,
            table_name=order.table_name,
            takeout_id=order.takeout_id,
            created_at=order.created_at,
            sent_to_kitchen_at=order.sent_to_kitchen_at,
            pickup_acknowledged_at=order.pickup_acknowledged_at,
        )

    def find_line(self, menu_item_id, sub_account_id: str) -> Optional[OrderLine]:
        for line in self.items:
            if str(line.id) == str(menu_item_id) and line.sub_account_id == sub_account_id:
                return line
        return None

    def lines_in(self, sub_account_id: str) -> List[OrderLine]:
        return [line for line in self.items if line.sub_account_id == sub_account_id]


def dump_lines(lines: Iterable[OrderLine]) -> list:
    """JSON-safe representation stored in the order row."""
    return [line.model_dump(mode="json") for line in lines]


def dump_sub_accounts(sub_accounts: Iterable[SubAccount]) -> list:
    return [sa.model_dump(mode="json") for sa in sub_accounts]


# ----------- Request / response bodies -----------

class CreateOrderRequest(BaseModel):
    """Schema for opening a new order."""
    table_name: Optional[str] = Field(None, max_length=64)
    takeout: bool = Field(False, description="Allocate a consecutive takeout id for today.")


class AddItemRequest(BaseModel):
    """Schema for adding one unit of a menu item to a sub-account."""
    menu_item_id: uuid.UUID
    sub_account_id: str = MAIN_SUB_ACCOUNT_ID


class LineStatusUpdate(BaseModel):
    sub_account_id: str = MAIN_SUB_ACCOUNT_ID
    status: LineStatus


class SubAccountBill(BaseModel):
    sub_account_id: str
    name: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal


class Bill(BaseModel):
    """Presentation totals; tax is applied here and never stored on the order."""
    order_id: uuid.UUID
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    sub_accounts: List[SubAccountBill]
