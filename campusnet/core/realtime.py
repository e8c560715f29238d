"""
In-process publish/subscribe hub for realtime row-insert events.

Write paths publish the stored row to a topic (``group:{id}``, ``room:{id}``)
after the insert is confirmed; WebSocket handlers subscribe for the lifetime
of the socket. Delivery is at-least-once from the subscriber's point of view,
so consumers de-duplicate by row id with SeenIds.
"""

import asyncio
import logging
import threading
import uuid
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from campusnet.config import settings

logger = logging.getLogger(__name__)

EventFilter = Callable[[Dict[str, Any]], bool]


def group_topic(group_id: str) -> str:
    return f"group:{group_id}"


def room_topic(room_id: str) -> str:
    return f"room:{room_id}"


class Subscription:
    def __init__(
        self,
        topic: str,
        loop: asyncio.AbstractEventLoop,
        event_filter: Optional[EventFilter] = None,
        maxsize: int = 100,
    ):
        self.id = uuid.uuid4().hex
        self.topic = topic
        self.event_filter = event_filter
        self.active = True
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def _put(self, event: Dict[str, Any]) -> None:
        if self._queue.full():
            dropped = self._queue.get_nowait()
            logger.warning(f"Subscription {self.id} on {self.topic} is full; dropped event {dropped.get('id')}")
        self._queue.put_nowait(event)

    def deliver(self, event: Dict[str, Any]) -> bool:
        """Queue an event for this subscriber. Safe to call from any thread."""
        if not self.active:
            return False
        if self.event_filter is not None and not self.event_filter(event):
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._put(event)
            return True
        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # Subscriber's loop is closed
            self.active = False
            return False
        return True

    async def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> int:
        return self._queue.qsize()


class RealtimeHub:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: Dict[str, Dict[str, Subscription]] = {}

    def subscribe(self, topic: str, event_filter: Optional[EventFilter] = None) -> Subscription:
        """Register a subscriber on the running event loop."""
        subscription = Subscription(
            topic, asyncio.get_running_loop(), event_filter=event_filter, maxsize=self.queue_size
        )
        with self._lock:
            self._topics.setdefault(topic, {})[subscription.id] = subscription
        logger.debug(f"Subscribed {subscription.id} to {topic}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        with self._lock:
            subscribers = self._topics.get(subscription.topic)
            if subscribers is not None:
                subscribers.pop(subscription.id, None)
                if not subscribers:
                    del self._topics[subscription.topic]
        logger.debug(f"Unsubscribed {subscription.id} from {subscription.topic}")

    def publish(self, topic: str, event: Dict[str, Any]) -> int:
        """Fan an event out to every active subscriber of the topic. Returns the delivery count."""
        with self._lock:
            subscribers = list(self._topics.get(topic, {}).values())
        delivered = 0
        for subscription in subscribers:
            if subscription.deliver(event):
                delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, {}))

    @contextmanager
    def subscription(self, topic: str, event_filter: Optional[EventFilter] = None) -> Iterator[Subscription]:
        """Subscription bound to a ``with`` block; released when the block exits."""
        subscription = self.subscribe(topic, event_filter)
        try:
            yield subscription
        finally:
            self.unsubscribe(subscription)


class SeenIds:
    """Bounded set of row ids already delivered to one consumer."""

    def __init__(self, limit: int = 1000):
        self.limit = limit
        self._ids: "OrderedDict[str, None]" = OrderedDict()

    def add(self, row_id: Any) -> bool:
        """Record an id; False if it was already seen."""
        key = str(row_id)
        if key in self._ids:
            return False
        self._ids[key] = None
        if len(self._ids) > self.limit:
            self._ids.popitem(last=False)
        return True

    def __contains__(self, row_id: Any) -> bool:
        return str(row_id) in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def merge_by_id(existing: List[Dict[str, Any]], incoming: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Merge rows into an already displayed list; an incoming row replaces the one with the same id."""
    merged: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for row in existing:
        merged[str(row["id"])] = row
    for row in incoming:
        merged[str(row["id"])] = row
    return list(merged.values())


hub = RealtimeHub(queue_size=settings.realtime_queue_size)


def get_hub() -> RealtimeHub:
    return hub
