"""Real-time subscriptions.

Writers publish a topic after their transaction commits; subscribers hold a
scoped subscription that reloads and delivers the *full* current snapshot on
every notification. Consumers replace their local state with each delivery.
The registry lives in one process; a relay (``orderledger.core.relay``)
carries published topics to the feeds of the other processes.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Generic, Iterable, Set, TypeVar

log = logging.getLogger("orderledger.changefeed")

T = TypeVar("T")


def order_topic(order_id) -> str:
    return f"order:{order_id}"


def orders_topic(restaurant_id) -> str:
    return f"orders:{restaurant_id}"


def inventory_topic(restaurant_id) -> str:
    return f"inventory:{restaurant_id}"


class Subscription(Generic[T]):
    """Async iterator of full snapshots; the first snapshot is delivered immediately."""

    def __init__(self, loader: Callable[[], Awaitable[T]]):
        self._loader = loader
        # A single pending wake-up is enough: each delivery reloads everything.
        self._wakeup: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._first = True
        self.closed = False

    def notify(self) -> None:
        try:
            self._wakeup.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        if self.closed:
            raise StopAsyncIteration
        if self._first:
            self._first = False
        else:
            await self._wakeup.get()
        return await self._loader()


class ChangeFeed:
    """Topic-keyed registry of live subscriptions."""

    def __init__(self):
        self._subscribers: Dict[str, Set[Subscription]] = defaultdict(set)
        # Forwards local publishes to other processes, see orderledger.core.relay
        self.relay = None

    def publish(self, *topics: str) -> None:
        self.deliver(*topics)
        if self.relay is not None and topics:
            self.relay.forward(topics)

    def deliver(self, *topics: str) -> None:
        """Wakes this process's subscribers only."""
        for topic in topics:
            for sub in list(self._subscribers.get(topic, ())):
                sub.notify()

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    @asynccontextmanager
    async def subscribe(
        self, topics: Iterable[str], loader: Callable[[], Awaitable[T]]
    ) -> AsyncIterator[Subscription[T]]:
        """Registers a subscription for the duration of the ``async with`` block."""
        topics = list(topics)
        sub: Subscription[T] = Subscription(loader)
        for topic in topics:
            self._subscribers[topic].add(sub)
        log.debug("Subscribed to %s", topics)
        try:
            yield sub
        finally:
            sub.closed = True
            for topic in topics:
                subscribers = self._subscribers.get(topic)
                if subscribers is not None:
                    subscribers.discard(sub)
                    if not subscribers:
                        del self._subscribers[topic]
            log.debug("Unsubscribed from %s", topics)
