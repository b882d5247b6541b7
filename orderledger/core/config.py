import os
from decimal import Decimal


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/orderledger_db")

# Application Metadata
PROJECT_NAME = "Order Ledger & Inventory Service"
VERSION = "1.0.0"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Outbox Poller Configuration (Simulates the Consumer/Worker)
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll

# Ledger transactions: attempts before a write conflict surfaces as Unavailable
MAX_TXN_ATTEMPTS = int(os.getenv("MAX_TXN_ATTEMPTS", 3))

# Business policy
DEFAULT_TAX_RATE = Decimal(os.getenv("DEFAULT_TAX_RATE", "0.16")) # Used when the restaurant has no rate of its own
ALLOW_EMPTY_ORDER_CLOSE = _flag("ALLOW_EMPTY_ORDER_CLOSE", "true")
AUTO_DEDUCT_INVENTORY_ON_PAID = _flag("AUTO_DEDUCT_INVENTORY_ON_PAID", "true")

# "Today" for the real-time rollup and day-based report ranges
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "UTC")

# Cross-process change notifications (Postgres LISTEN/NOTIFY); ignored for other databases
CHANGE_RELAY_ENABLED = _flag("CHANGE_RELAY_ENABLED", "true")
CHANGE_CHANNEL = os.getenv("CHANGE_CHANNEL", "orderledger_changes")
