import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status

from orderledger.api.v1.catalog import router as catalog_router
from orderledger.api.v1.inventory import router as inventory_router
from orderledger.api.v1.orders import router as orders_router
from orderledger.api.v1.reports import router as reports_router
from orderledger.api.v1.restaurants import router as restaurants_router
from orderledger.core.config import LOG_FORMAT, LOG_LEVEL, PROJECT_NAME, VERSION
from orderledger.core.db import close_db, init_db
from orderledger.core.exception_handlers import setup_exception_handlers
from orderledger.core.relay import start_change_relay
from orderledger.core.store import LedgerStore
from orderledger.services.report_service import CategoryNameCache

log = logging.getLogger("orderledger")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db()  # Connect to DB and generate schemas
    app.state.store = LedgerStore()
    app.state.category_cache = CategoryNameCache()
    # Changes made by other workers and by the outbox poller
    relay = await start_change_relay(app.state.store.feed)
    yield
    if relay is not None:
        await relay.stop()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")


app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

TENANT = "/api/v1/restaurants/{restaurant_id}"

# Include routers for modular API structure
app.include_router(restaurants_router, prefix="/api/v1/restaurants", tags=["Restaurants"])
app.include_router(orders_router, prefix=f"{TENANT}/orders", tags=["Order Engine"])
app.include_router(inventory_router, prefix=f"{TENANT}/inventory", tags=["Inventory"])
app.include_router(catalog_router, prefix=f"{TENANT}/catalog", tags=["Menu & Recipes"])
app.include_router(reports_router, prefix=f"{TENANT}/reports", tags=["Reports"])

setup_exception_handlers(app)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
