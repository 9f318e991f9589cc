"""In-process fan-out of write events to connected dashboard clients.

Delivery is best effort: nothing is persisted or replayed, and a subscriber
whose queue is full simply misses the event.
"""

import asyncio
import itertools
import logging
import threading
from typing import Any, Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

realtime_router = APIRouter()


class Subscription:
    def __init__(self, subscriber_id: int, queue_size: int):
        self.id = subscriber_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    def __repr__(self):
        return f"Subscription(id={self.id})"


class BroadcastChannel:
    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._ids = itertools.count(1)
        # insertion-ordered, so publish follows registration order
        self._subscribers: Dict[int, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        with self._lock:
            subscription = Subscription(next(self._ids), self._queue_size)
            self._subscribers[subscription.id] = subscription
        logger.info("Subscriber %s connected", subscription.id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        if removed is not None:
            logger.info("Subscriber %s disconnected", subscription.id)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """Queue ``payload`` for every current subscriber; returns how many got it."""
        with self._lock:
            targets: List[Subscription] = list(self._subscribers.values())

        frame = {"event": event, "payload": payload}
        delivered = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping %s event for subscriber %s: queue full",
                    event,
                    subscription.id,
                )
                continue
            delivered += 1
        return delivered


async def _forward_events(websocket: WebSocket, subscription: Subscription):
    while True:
        frame = await subscription.queue.get()
        await websocket.send_json(frame)


async def _wait_for_disconnect(websocket: WebSocket):
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


@realtime_router.websocket("/ws")
async def realtime_feed(websocket: WebSocket):
    channel: BroadcastChannel = websocket.app.state.channel
    # register before accepting so no event published after the handshake is missed
    subscription = channel.subscribe()
    tasks = []
    try:
        await websocket.accept()
        tasks = [
            asyncio.create_task(_forward_events(websocket, subscription)),
            asyncio.create_task(_wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.exception() is not None:
                logger.warning(
                    "Subscriber %s dropped: %r", subscription.id, task.exception()
                )
    finally:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        channel.unsubscribe(subscription)
