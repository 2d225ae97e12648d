"""WebSocket routes streaming live ledger snapshots."""

import asyncio
import logging
from typing import Callable

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.models.schemas import CurrentUser
from app.services.auth import get_websocket_user
from app.services.live import LiveQueryDistributor, LiveSnapshot, Subscription, get_distributor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _drain(websocket: WebSocket) -> None:
    # Clients only need to keep the socket open; anything they send is ignored
    while True:
        await websocket.receive_text()


async def _stream(
    websocket: WebSocket,
    subscribe: Callable[[Callable[[LiveSnapshot], None]], Subscription],
) -> None:
    """
    Push every snapshot for one subscription until the client disconnects
    or a send fails.

    Commits publish on whatever thread committed, so snapshots are handed to
    the connection's event loop thread-safely and sent in arrival order.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def _enqueue(snapshot: LiveSnapshot) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, snapshot.as_message())

    subscription = subscribe(_enqueue)
    sender = asyncio.create_task(_pump(websocket, queue))
    receiver = asyncio.create_task(_drain(websocket))

    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if isinstance(error, WebSocketDisconnect):
                logger.debug(f"WebSocket for {subscription.topic} disconnected")
            elif error is not None:
                logger.error(f"WebSocket error on {subscription.topic}: {error}")
    finally:
        subscription.unsubscribe()
        sender.cancel()
        receiver.cancel()
        await asyncio.gather(sender, receiver, return_exceptions=True)


@router.websocket("/ws/wagers")
async def wagers_stream(
    websocket: WebSocket,
    distributor: LiveQueryDistributor = Depends(get_distributor)
):
    """
    Live feed of all wagers.

    Server sends:
    - {"type": "snapshot", "topic": "wagers", "sequence": 12, "items": [...]}
      once on connect and again after every commit that changes a wager.
    """
    await _stream(websocket, distributor.subscribe_wagers)


@router.websocket("/ws/notifications")
async def notifications_stream(
    websocket: WebSocket,
    current_user: CurrentUser = Depends(get_websocket_user),
    distributor: LiveQueryDistributor = Depends(get_distributor)
):
    """
    Live feed of the authenticated user's notifications (`?token=<jwt>`).

    Server sends:
    - {"type": "snapshot", "topic": "notifications", "sequence": 12, "items": [...]}
    """
    await _stream(
        websocket,
        lambda callback: distributor.subscribe_notifications(current_user.id, callback),
    )


@router.get("/ws/stats")
async def get_websocket_stats(
    distributor: LiveQueryDistributor = Depends(get_distributor)
):
    """Get live subscription counts per topic."""
    return {"subscriptions": distributor.subscriber_counts()}
