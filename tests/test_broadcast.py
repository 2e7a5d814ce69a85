"""
Tests for the broadcast channel.
"""

from __future__ import annotations

import asyncio

import pytest

from fakes import drain
from loadsim.core.broadcast import BroadcastChannel
from loadsim.models.metrics import MetricEvent, QueryKind, QueryStatus


def _event(latency: int = 5, kind: QueryKind = QueryKind.SELECT) -> MetricEvent:
    return MetricEvent(kind=kind, latency_ms=latency, status=QueryStatus.SUCCESS)


class TestBroadcastChannel:
    def test_publish_reaches_every_subscriber(self) -> None:
        channel = BroadcastChannel()
        subs = [channel.subscribe() for _ in range(3)]

        delivered = channel.publish(_event())

        assert delivered == 3
        for sub in subs:
            assert len(drain(sub)) == 1

    def test_publish_without_subscribers_is_a_no_op(self) -> None:
        channel = BroadcastChannel()
        assert channel.publish(_event()) == 0
        assert channel.published == 1

    def test_order_is_preserved_per_subscriber(self) -> None:
        channel = BroadcastChannel()
        sub = channel.subscribe()
        for latency in range(10):
            channel.publish(_event(latency))

        assert [e.latency_ms for e in drain(sub)] == list(range(10))

    def test_late_subscriber_sees_no_backlog(self) -> None:
        channel = BroadcastChannel()
        channel.publish(_event())
        late = channel.subscribe()
        assert late.pending == 0

    def test_unsubscribed_viewer_stops_receiving(self) -> None:
        channel = BroadcastChannel()
        keep = channel.subscribe("keep")
        gone = channel.subscribe("gone")

        channel.unsubscribe("gone")
        channel.publish(_event())

        assert "gone" not in channel
        assert gone.closed
        assert len(drain(keep)) == 1

    def test_unsubscribe_unknown_is_ignored(self) -> None:
        channel = BroadcastChannel()
        channel.unsubscribe("nobody")
        assert len(channel) == 0

    def test_duplicate_subscriber_id_is_rejected(self) -> None:
        channel = BroadcastChannel()
        channel.subscribe("a")
        with pytest.raises(ValueError):
            channel.subscribe("a")

    def test_slow_subscriber_drops_without_blocking_others(self) -> None:
        channel = BroadcastChannel(queue_size=2)
        slow = channel.subscribe("slow")
        fast = channel.subscribe("fast")

        channel.publish(_event(1))
        channel.publish(_event(2))
        drain(fast)
        delivered = channel.publish(_event(3))

        assert delivered == 1
        assert slow.dropped == 1
        assert [e.latency_ms for e in drain(fast)] == [3]

    def test_injected_registry_is_used(self) -> None:
        registry: dict = {}
        channel = BroadcastChannel(registry=registry)
        channel.subscribe("viewer-1")
        assert list(registry) == ["viewer-1"]


@pytest.mark.asyncio
async def test_consumer_iteration_ends_on_close() -> None:
    channel = BroadcastChannel()
    sub = channel.subscribe()
    received = []

    async def consume() -> None:
        async for event in sub:
            received.append(event.latency_ms)

    task = asyncio.create_task(consume())
    channel.publish(_event(1))
    channel.publish(_event(2))
    await asyncio.sleep(0)
    channel.unsubscribe(sub.id)

    await asyncio.wait_for(task, timeout=1.0)
    assert received == [1, 2]


@pytest.mark.asyncio
async def test_close_on_full_queue_still_wakes_consumer() -> None:
    channel = BroadcastChannel(queue_size=1)
    sub = channel.subscribe()
    channel.publish(_event())

    channel.close()

    assert await asyncio.wait_for(sub.get(), timeout=1.0) is None
    assert len(channel) == 0
