import asyncio

import pytest

from orderledger.core.changefeed import ChangeFeed, order_topic


class Counter:
    def __init__(self):
        self.loads = 0

    async def load(self):
        self.loads += 1
        return self.loads


class TestChangeFeed:
    @pytest.mark.asyncio
    async def test_first_snapshot_is_immediate(self):
        feed = ChangeFeed()
        counter = Counter()
        async with feed.subscribe([order_topic("o1")], counter.load) as sub:
            assert await sub.__anext__() == 1

    @pytest.mark.asyncio
    async def test_bursts_coalesce_into_one_reload(self):
        feed = ChangeFeed()
        counter = Counter()
        async with feed.subscribe([order_topic("o1")], counter.load) as sub:
            await sub.__anext__()
            for _ in range(5):
                feed.publish(order_topic("o1"))
            assert await asyncio.wait_for(sub.__anext__(), timeout=1) == 2

            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(sub.__anext__(), timeout=0.05)

    @pytest.mark.asyncio
    async def test_other_topics_do_not_wake_subscribers(self):
        feed = ChangeFeed()
        counter = Counter()
        async with feed.subscribe([order_topic("o1")], counter.load) as sub:
            await sub.__anext__()
            feed.publish(order_topic("o2"))
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(sub.__anext__(), timeout=0.05)

    @pytest.mark.asyncio
    async def test_leaving_the_block_unsubscribes(self):
        feed = ChangeFeed()
        counter = Counter()
        async with feed.subscribe([order_topic("o1")], counter.load) as sub:
            assert feed.subscriber_count(order_topic("o1")) == 1

        assert feed.subscriber_count(order_topic("o1")) == 0
        assert sub.closed
        feed.publish(order_topic("o1"))
        with pytest.raises(StopAsyncIteration):
            await sub.__anext__()
