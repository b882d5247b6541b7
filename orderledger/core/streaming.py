"""Pushes change-feed snapshots over a WebSocket.

The client never sends anything, but its disconnect has to be noticed while
we are waiting for the next change, otherwise the subscription would stay
registered until the topic is published again.
"""
import asyncio
import logging
from typing import Any, AsyncContextManager, Callable, Optional

log = logging.getLogger("orderledger.streaming")


async def wait_for_disconnect(websocket) -> None:
    """Returns once the client has gone away. Anything else it sends is ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _discard(task: asyncio.Future) -> None:
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def stream_snapshots(
    websocket,
    subscription: AsyncContextManager,
    render: Callable[[Any], Any],
    until: Optional[Callable[[Any], bool]] = None,
) -> bool:
    """
    Sends ``render(snapshot)`` for every delivery of ``subscription``.

    Stops after a snapshot for which ``until`` is true, or when the client
    disconnects. Returns True when the client disconnected. The subscription
    is always closed before this returns.
    """
    disconnected = asyncio.ensure_future(wait_for_disconnect(websocket))
    try:
        async with subscription as updates:
            while True:
                next_snapshot = asyncio.ensure_future(updates.__anext__())
                done, _ = await asyncio.wait(
                    {disconnected, next_snapshot}, return_when=asyncio.FIRST_COMPLETED
                )
                if disconnected in done:
                    await _discard(next_snapshot)
                    return True
                try:
                    snapshot = next_snapshot.result()
                except StopAsyncIteration:
                    return False
                await websocket.send_json(render(snapshot))
                if until is not None and until(snapshot):
                    return False
    finally:
        await _discard(disconnected)
