"""Profitability & consumption aggregation.

Historical reports join completed orders with the menu, the recipes (using
each recipe's cached cost snapshot) and the current inventory items. Missing
references degrade a row to cost 0; a failure to load the lookup tables
aborts the whole report.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from tortoise.exceptions import BaseORMException

from orderledger.core.changefeed import orders_topic
from orderledger.core.clock import local_midnight, now_utc
from orderledger.core.errors import NotFound, Unavailable, ValidationError
from orderledger.core.store import LedgerStore
from orderledger.models.catalog import MenuCategory, MenuItem, Recipe, Restaurant
from orderledger.models.inventory import InventoryItem
from orderledger.models.order import Order, OrderStatus
from orderledger.schemas.catalog import RecipeIngredient
from orderledger.schemas.order import CENTS, OrderDocument
from orderledger.schemas.report import (
    CategorySales,
    ConsumptionRow,
    DailyRollup,
    ProfitabilityRow,
    RangeReport,
    ReportTotals,
)

log = logging.getLogger("orderledger.reports")

COMPLETED = (OrderStatus.PAID, OrderStatus.SERVED)
ACTIVE = (OrderStatus.OPEN, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP)
UNCATEGORIZED = "Uncategorized"


def is_completed(order: OrderDocument) -> bool:
    return order.status in COMPLETED


def profit_margin(revenue: Decimal, net_profit: Decimal) -> Decimal:
    if revenue == 0:
        return Decimal("0.00")
    return (net_profit / revenue * 100).quantize(CENTS)


# ----------- Pure aggregation -----------

def compute_daily_rollup(
    orders: Iterable[OrderDocument], category_names: Mapping[str, str], since: datetime
) -> DailyRollup:
    """Rebuilt from the full snapshot every time, never patched from deltas."""
    total_sales = Decimal("0")
    active = 0
    total = 0
    by_category: Dict[str, Decimal] = OrderedDict()
    for order in orders:
        total += 1
        if order.status in ACTIVE:
            active += 1
        if not is_completed(order):
            continue
        total_sales += order.subtotal
        for line in order.items:
            name = category_names.get(str(line.category_id), UNCATEGORIZED) if line.category_id else UNCATEGORIZED
            by_category[name] = by_category.get(name, Decimal("0")) + line.line_total
    return DailyRollup(
        since=since,
        total_sales=total_sales,
        active_orders=active,
        total_orders=total,
        sales_by_category=[CategorySales(name=k, value=v) for k, v in by_category.items()],
    )


def build_profitability(
    orders: Iterable[OrderDocument],
    menu_items: Mapping[str, MenuItem],
    recipes: Mapping[str, Recipe],
    category_names: Mapping[str, str],
) -> List[ProfitabilityRow]:
    rows: Dict[str, ProfitabilityRow] = {}
    for order in orders:
        for line in order.items:
            key = str(line.id)
            menu = menu_items.get(key)
            row = rows.get(key)
            if row is None:
                category_id = (menu.category_id if menu else None) or line.category_id
                row = rows[key] = ProfitabilityRow(
                    menu_item_id=line.id,
                    name=menu.name if menu else line.name,
                    category=category_names.get(str(category_id), UNCATEGORIZED) if category_id else UNCATEGORIZED,
                )
            recipe = recipes.get(str(menu.recipe_id)) if menu and menu.recipe_id else None
            # No recipe (or a dangling reference) counts as cost 0.
            unit_cost = recipe.cost if recipe else Decimal("0")
            row.quantity_sold += line.quantity
            row.total_revenue += line.line_total
            row.total_cost += unit_cost * line.quantity

    for row in rows.values():
        row.net_profit = row.total_revenue - row.total_cost
        row.profit_margin = profit_margin(row.total_revenue, row.net_profit)
    return sorted(rows.values(), key=lambda r: r.name.casefold())


def build_consumption(
    orders: Iterable[OrderDocument],
    menu_items: Mapping[str, MenuItem],
    recipes: Mapping[str, Recipe],
    inventory_items: Mapping[str, InventoryItem],
) -> List[ConsumptionRow]:
    rows: Dict[str, ConsumptionRow] = {}
    for order in orders:
        for line in order.items:
            menu = menu_items.get(str(line.id))
            recipe = recipes.get(str(menu.recipe_id)) if menu and menu.recipe_id else None
            if recipe is None:
                continue
            for ing in (RecipeIngredient.model_validate(i) for i in recipe.ingredients or []):
                key = str(ing.item_id)
                item = inventory_items.get(key)
                row = rows.get(key)
                if row is None:
                    row = rows[key] = ConsumptionRow(
                        inventory_item_id=ing.item_id,
                        name=item.name if item else ing.item_name,
                        category=item.category if item else "",
                        unit=item.unit if item else ing.unit,
                    )
                consumed = ing.quantity * line.quantity
                row.quantity_consumed += consumed
                # Current average cost, not the cost at sale time.
                row.total_cost += consumed * (item.average_cost if item else Decimal("0"))
    return sorted(rows.values(), key=lambda r: r.name.casefold())


# ----------- Service -----------

class CategoryNameCache:
    """Category id -> name, fetched once per id."""

    def __init__(self):
        self._names: Dict[str, str] = {}

    async def resolve(self, restaurant_id: UUID, category_ids: Iterable) -> Dict[str, str]:
        wanted = {str(c) for c in category_ids if c}
        missing = wanted - self._names.keys()
        if missing:
            for category in await MenuCategory.filter(restaurant_id=restaurant_id, id__in=list(missing)):
                self._names[str(category.id)] = category.name
        return {cid: self._names[cid] for cid in wanted if cid in self._names}


class ReportService:
    def __init__(self, store: LedgerStore, category_cache: Optional[CategoryNameCache] = None):
        self.store = store
        self.categories = category_cache or CategoryNameCache()

    async def _orders_between(self, restaurant_id: UUID, start: datetime, end: Optional[datetime] = None) -> List[OrderDocument]:
        query = Order.filter(restaurant_id=restaurant_id, created_at__gte=start)
        if end is not None:
            query = query.filter(created_at__lte=end)
        return [OrderDocument.from_model(o) for o in await query.order_by("created_at")]

    async def daily_rollup(self, restaurant_id: UUID, now: Optional[datetime] = None) -> DailyRollup:
        since = local_midnight(now)
        orders = await self._orders_between(restaurant_id, since)
        category_ids = {line.category_id for o in orders if is_completed(o) for line in o.items}
        names = await self.categories.resolve(restaurant_id, category_ids)
        return compute_daily_rollup(orders, names, since)

    def watch_daily_rollup(self, restaurant_id: UUID):
        """Scoped subscription; every order change delivers a freshly computed rollup."""
        return self.store.feed.subscribe(
            [orders_topic(restaurant_id)], lambda: self.daily_rollup(restaurant_id)
        )

    async def generate(
        self,
        restaurant_id: UUID,
        start: datetime,
        end: datetime,
        include_today: bool = True,
    ) -> RangeReport:
        """Profitability and consumption for orders created in [start, end]."""
        if end < start:
            raise ValidationError(
                f"Report range is inverted: {start.isoformat()} is after {end.isoformat()}.",
                {"start": start.isoformat(), "end": end.isoformat()},
            )
        if not await Restaurant.filter(id=restaurant_id).exists():
            raise NotFound("Restaurant", restaurant_id)

        try:
            menu_items = {str(m.id): m for m in await MenuItem.filter(restaurant_id=restaurant_id)}
            recipes = {str(r.id): r for r in await Recipe.filter(restaurant_id=restaurant_id)}
            inventory = {str(i.id): i for i in await InventoryItem.filter(restaurant_id=restaurant_id)}
            category_names = {
                str(c.id): c.name for c in await MenuCategory.filter(restaurant_id=restaurant_id)
            }
            orders = await self._orders_between(restaurant_id, start, end)
        except BaseORMException as e:
            log.exception(f"Report for {restaurant_id} aborted while loading lookup tables.")
            raise Unavailable(
                "Could not load menu, recipes or inventory for the report. Please retry.",
                {"restaurant_id": str(restaurant_id), "reason": str(e)},
            )

        # Status filter applied after the range query.
        completed = [o for o in orders if is_completed(o)]
        profitability = build_profitability(completed, menu_items, recipes, category_names)
        consumption = build_consumption(completed, menu_items, recipes, inventory)

        revenue = sum((r.total_revenue for r in profitability), Decimal("0"))
        cost = sum((r.total_cost for r in profitability), Decimal("0"))
        log.info(
            f"Report for {restaurant_id} {start.isoformat()}..{end.isoformat()}: "
            f"{len(completed)}/{len(orders)} orders, revenue {revenue}"
        )
        return RangeReport(
            restaurant_id=restaurant_id,
            start=start,
            end=end,
            totals=ReportTotals(
                orders_included=len(completed),
                total_revenue=revenue,
                total_cost=cost,
                net_profit=revenue - cost,
            ),
            profitability=profitability,
            consumption=consumption,
            today=await self.daily_rollup(restaurant_id, now_utc()) if include_today else None,
        )
