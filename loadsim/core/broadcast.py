"""
Broadcast Channel

In-process publish/subscribe fan-out of metric events to live viewers.
Delivery is best-effort: nothing is persisted for late joiners and a
subscriber that cannot keep up drops events.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import AsyncIterator, Optional

from loadsim.models.metrics import MetricEvent

logger = logging.getLogger(__name__)

# Queue sentinel that wakes a consumer when its subscription is closed.
_CLOSED = object()


class Subscription:
    """One subscriber's registration and its bounded event queue."""

    def __init__(self, subscriber_id: str, queue_size: int = 100) -> None:
        self.id = subscriber_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, event: MetricEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Make room for the sentinel; the consumer is going away anyway.
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[MetricEvent]:
        """Next event, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self) -> AsyncIterator[MetricEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[MetricEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class BroadcastChannel:
    """
    Process-wide fan-out from the execution gateway to viewer sessions.

    The subscriber registry (subscriber id -> Subscription) can be injected so
    callers can share or inspect it.
    """

    def __init__(
        self,
        registry: Optional[dict[str, Subscription]] = None,
        queue_size: int = 100,
    ) -> None:
        self._subscribers: dict[str, Subscription] = (
            registry if registry is not None else {}
        )
        self.queue_size = queue_size
        self.published = 0

    def subscribe(self, subscriber_id: Optional[str] = None) -> Subscription:
        subscriber_id = subscriber_id or uuid.uuid4().hex[:12]
        if subscriber_id in self._subscribers:
            raise ValueError(f"Subscriber already registered: {subscriber_id}")
        sub = Subscription(subscriber_id, queue_size=self.queue_size)
        self._subscribers[subscriber_id] = sub
        logger.debug("Subscriber %s registered (%d total)", subscriber_id, len(self))
        return sub

    def unsubscribe(self, subscriber_id: str) -> None:
        sub = self._subscribers.pop(subscriber_id, None)
        if sub is None:
            return
        sub.close()
        logger.debug("Subscriber %s removed (%d total)", subscriber_id, len(self))

    def publish(self, event: MetricEvent) -> int:
        """
        Deliver `event` to every registered subscriber.

        Never suspends and never raises on behalf of a subscriber. Returns the
        number of subscribers the event was queued for.
        """
        self.published += 1
        delivered = 0
        for sub in list(self._subscribers.values()):
            if sub.closed:
                self._subscribers.pop(sub.id, None)
                continue
            if sub.deliver(event):
                delivered += 1
            else:
                # Drop if a client can't keep up.
                logger.debug("Dropped event for slow subscriber %s", sub.id)
        return delivered

    def subscriber_ids(self) -> list[str]:
        return list(self._subscribers)

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        for subscriber_id in list(self._subscribers):
            self.unsubscribe(subscriber_id)
