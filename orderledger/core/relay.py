"""Carries change-feed topics between processes over Postgres LISTEN/NOTIFY.

Every API worker and the outbox poller keeps its own ChangeFeed. The relay
forwards what its process publishes and delivers what the other processes
publish, so a stock deduction made by the poller reaches inventory watchers
in the API.
"""
import asyncio
import json
import logging
import uuid
from typing import Iterable, List, Optional, Set

import asyncpg

from orderledger.core.changefeed import ChangeFeed
from orderledger.core.config import CHANGE_CHANNEL, CHANGE_RELAY_ENABLED, DB_URL

log = logging.getLogger("orderledger.relay")

POSTGRES_SCHEMES = ("postgres://", "postgresql://")


class PgNotifyRelay:
    def __init__(self, dsn: str, feed: ChangeFeed, channel: str = CHANGE_CHANNEL, connect=asyncpg.connect):
        self.dsn = dsn
        self.feed = feed
        self.channel = channel
        self._connect = connect
        # Postgres also notifies the sending session; our own messages are skipped
        self.origin = uuid.uuid4().hex
        self._conn = None
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Future] = set()

    async def start(self) -> None:
        self._conn = await self._connect(self.dsn)
        await self._conn.add_listener(self.channel, self._on_notification)
        self.feed.relay = self
        log.info(f"Change relay listening on '{self.channel}'.")

    async def stop(self) -> None:
        if self.feed.relay is self:
            self.feed.relay = None
        await self.flush()
        if self._conn is not None:
            await self._conn.remove_listener(self.channel, self._on_notification)
            await self._conn.close()
            self._conn = None
        log.info("Change relay stopped.")

    def forward(self, topics: Iterable[str]) -> None:
        """Called by ChangeFeed.publish; the NOTIFY is sent in the background."""
        task = asyncio.ensure_future(self._send(list(topics)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Waits for notifications that are still being sent."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _send(self, topics: List[str]) -> None:
        payload = json.dumps({"origin": self.origin, "topics": topics})
        try:
            # One connection runs one query at a time
            async with self._lock:
                await self._conn.execute("SELECT pg_notify($1, $2)", self.channel, payload)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            # Subscribers in this process already have the change.
            log.exception(f"Could not relay change notification for {topics}.")

    def _on_notification(self, connection, pid: int, channel: str, payload: str) -> None:
        try:
            message = json.loads(payload)
        except ValueError:
            log.warning(f"Ignoring malformed change notification on '{channel}': {payload!r}")
            return
        if message.get("origin") == self.origin:
            return
        self.feed.deliver(*message.get("topics", []))


async def start_change_relay(feed: ChangeFeed, db_url: str = DB_URL) -> Optional[PgNotifyRelay]:
    """Starts a relay when the database is Postgres; other backends run a single process."""
    if not CHANGE_RELAY_ENABLED or not db_url.startswith(POSTGRES_SCHEMES):
        log.info("Change relay disabled; real-time updates stay within this process.")
        return None
    relay = PgNotifyRelay(db_url, feed)
    await relay.start()
    return relay
