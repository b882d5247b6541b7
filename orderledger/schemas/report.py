from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import BaseModel


class ProfitabilityRow(BaseModel):
    menu_item_id: uuid.UUID
    name: str
    category: str
    quantity_sold: int = 0
    total_revenue: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    profit_margin: Decimal = Decimal("0")  # Percent of revenue


class ConsumptionRow(BaseModel):
    inventory_item_id: uuid.UUID
    name: str
    category: str
    unit: str
    quantity_consumed: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")


class CategorySales(BaseModel):
    name: str
    value: Decimal


class DailyRollup(BaseModel):
    since: datetime
    total_sales: Decimal
    active_orders: int
    total_orders: int
    sales_by_category: List[CategorySales]


class ReportTotals(BaseModel):
    orders_included: int
    total_revenue: Decimal
    total_cost: Decimal
    net_profit: Decimal


class RangeReport(BaseModel):
    restaurant_id: uuid.UUID
    start: datetime
    end: datetime
    totals: ReportTotals
    profitability: List[ProfitabilityRow]
    consumption: List[ConsumptionRow]
    today: Optional[DailyRollup] = None
