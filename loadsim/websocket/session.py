"""
Viewer sessions.

Each connected dashboard gets one session: a broadcast subscription plus a
single consumer task that owns the viewer's rolling window and query history.
Nothing else mutates either structure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from loadsim.core.aggregator import DEFAULT_WINDOW_SIZE, RollingWindow
from loadsim.core.broadcast import BroadcastChannel, Subscription
from loadsim.core.history import DEFAULT_HISTORY_CAPACITY, QueryHistory
from loadsim.models.metrics import AggregateStats, MetricEvent
from loadsim.models.queries import HistoryEntry

logger = logging.getLogger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[None]]


class ViewerSession:
    """
    One live viewer.

    Args:
        channel: Broadcast channel to subscribe to
        send: Coroutine that pushes a JSON-able message to the viewer
        viewer_id: Subscriber id (generated when omitted)
        window_size: Rolling window capacity
        history_capacity: History log capacity
        include_generated: Record every event in history, not just own submissions
        slow_threshold_ms: Latency above which an event counts as slow
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        send: Sender,
        *,
        viewer_id: Optional[str] = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        include_generated: bool = False,
        slow_threshold_ms: int = 10,
    ) -> None:
        self.channel = channel
        self._send = send
        self._requested_id = viewer_id
        self.window = RollingWindow(window_size, slow_threshold_ms=slow_threshold_ms)
        self.history = QueryHistory(history_capacity)
        self.include_generated = include_generated

        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self.events_received = 0

    @property
    def id(self) -> str:
        if self._subscription is None:
            raise RuntimeError("Session not started")
        return self._subscription.id

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> str:
        """Subscribe and launch the consumer task. Returns the viewer id."""
        if self._subscription is None:
            self._subscription = self.channel.subscribe(self._requested_id)
            self._consumer = asyncio.create_task(
                self._consume(self._subscription),
                name=f"viewer-{self._subscription.id}",
            )
        return self._subscription.id

    async def send(self, message: dict[str, Any]) -> None:
        """Push a message to the viewer; sends are serialized."""
        async with self._send_lock:
            await self._send(message)

    def owns(self, event: MetricEvent) -> bool:
        return self.include_generated or (
            self._subscription is not None and event.viewer_id == self._subscription.id
        )

    def apply(self, event: MetricEvent) -> AggregateStats:
        """Fold one event into the window and, when it is ours, the history."""
        self.events_received += 1
        stats = self.window.add(event)
        if self.owns(event):
            self.history.append(HistoryEntry.from_event(event))
        return stats

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            stats = self.apply(event)
            try:
                await self.send(
                    {
                        "event": "query_metric",
                        "data": event.to_wire(),
                        "stats": stats.to_dict(),
                    }
                )
            except Exception as e:
                logger.info("Viewer %s unreachable, ending session: %s", subscription.id, e)
                break
        self.channel.unsubscribe(subscription.id)

    async def wait_closed(self) -> None:
        if self._consumer is not None:
            await asyncio.gather(self._consumer, return_exceptions=True)

    async def close(self) -> None:
        if self._subscription is None:
            return
        self.channel.unsubscribe(self._subscription.id)
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
        await self.wait_closed()

    def history_view(
        self, kind: Optional[str] = None, search: Optional[str] = None
    ) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.history.filter(kind, search)]


class SessionRegistry:
    """Process-wide lookup of live viewer sessions by id."""

    def __init__(self) -> None:
        self._sessions: dict[str, ViewerSession] = {}

    def add(self, session: ViewerSession) -> None:
        self._sessions[session.id] = session

    def remove(self, viewer_id: str) -> None:
        self._sessions.pop(viewer_id, None)

    def get(self, viewer_id: str) -> Optional[ViewerSession]:
        return self._sessions.get(viewer_id)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)
