import logging
from logging import INFO

from tortoise import Tortoise

from orderledger.core.config import DB_URL

log = logging.getLogger("orderledger.db")

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)

# Define all models modules for the ORM
MODELS_MODULES = [
    "orderledger.models.catalog",
    "orderledger.models.inventory",
    "orderledger.models.order",
    "orderledger.models.outbox",
    "orderledger.models.processed_event",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
            use_tz=True,
            timezone="UTC",
        )
        if generate_schemas:
            await Tortoise.generate_schemas()
        log.info("Database connection established.")
    except Exception:
        log.exception("FATAL ERROR: Could not connect to database.")
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
