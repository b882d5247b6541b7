"""The Ledger Store: transactional access to the document tables.

Every mutating engine operation is expressed as a unit of work passed to
``LedgerStore.run``. The unit reads, computes and conditionally writes using
the connection it is given; the store commits it atomically, retries transient
write conflicts, and publishes change notifications only after commit.
"""
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from tortoise.exceptions import OperationalError, TransactionManagementError
from tortoise.transactions import in_transaction

from orderledger.core.changefeed import ChangeFeed
from orderledger.core.config import MAX_TXN_ATTEMPTS
from orderledger.core.errors import Unavailable

log = logging.getLogger("orderledger.store")

R = TypeVar("R")

# Errors the backend raises for serialization failures, deadlocks and lock timeouts.
# IntegrityError is an OperationalError: a unit that lost an insert race on a
# unique key is re-run and then reads the row the winner committed.
TRANSIENT_ERRORS = (OperationalError, TransactionManagementError)


class LedgerStore:
    def __init__(self, feed: ChangeFeed = None, max_attempts: int = MAX_TXN_ATTEMPTS):
        self.feed = feed or ChangeFeed()
        self.max_attempts = max(1, max_attempts)

    async def run(
        self,
        work: Callable[[Any], Awaitable[R]],
        *,
        topics: Iterable[str] = (),
        label: str = "transaction",
    ) -> R:
        """Runs ``work(conn)`` inside one atomic transaction.

        Business errors raised by ``work`` roll the transaction back and
        propagate unchanged. Transient conflicts are retried up to
        ``max_attempts`` times before surfacing as ``Unavailable``.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with in_transaction() as conn:
                    result = await work(conn)
            except TRANSIENT_ERRORS as e:
                last_error = e
                log.warning(f"{label}: write conflict on attempt {attempt}/{self.max_attempts}: {e}")
                continue
            self.feed.publish(*topics)
            return result

        raise Unavailable(
            f"Could not complete {label} after {self.max_attempts} attempts. Please retry.",
            {"operation": label, "attempts": self.max_attempts, "reason": str(last_error)},
        )
