"""FastAPI dependency providers: one LedgerStore per app, services built per request."""
from typing import Optional

from fastapi import Header
from starlette.requests import HTTPConnection

from orderledger.core.store import LedgerStore
from orderledger.events.kitchen import KitchenNotifier
from orderledger.schemas.actor import Actor
from orderledger.services.catalog_service import CatalogService
from orderledger.services.inventory_service import InventoryService
from orderledger.services.order_service import OrderService
from orderledger.services.recipe_costing import RecipeService
from orderledger.services.report_service import CategoryNameCache, ReportService
from orderledger.services.supplier_service import SupplierService


def get_store(conn: HTTPConnection) -> LedgerStore:
    """The store created at startup. HTTPConnection also covers WebSocket routes."""
    store = getattr(conn.app.state, "store", None)
    if store is None:
        store = conn.app.state.store = LedgerStore()
    return store


def get_category_cache(conn: HTTPConnection) -> CategoryNameCache:
    cache = getattr(conn.app.state, "category_cache", None)
    if cache is None:
        cache = conn.app.state.category_cache = CategoryNameCache()
    return cache


def get_order_service(conn: HTTPConnection) -> OrderService:
    return OrderService(get_store(conn), notifier=KitchenNotifier())


def get_inventory_service(conn: HTTPConnection) -> InventoryService:
    return InventoryService(get_store(conn))


def get_recipe_service(conn: HTTPConnection) -> RecipeService:
    return RecipeService(get_store(conn))


def get_supplier_service(conn: HTTPConnection) -> SupplierService:
    return SupplierService(get_store(conn))


def get_catalog_service() -> CatalogService:
    return CatalogService()


def get_report_service(conn: HTTPConnection) -> ReportService:
    return ReportService(get_store(conn), get_category_cache(conn))


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_email: Optional[str] = Header(None),
) -> Actor:
    """Identity is resolved upstream; the ledger only records what it is handed."""
    return Actor(id=x_actor_id or "unknown", email=x_actor_email or "unknown")
