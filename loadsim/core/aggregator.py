"""
Rolling Window Aggregator

Keeps the last N metric events for one viewer and derives live statistics
from them. Statistics are recomputed from the window on every event, so old
outcomes age out instead of accumulating.
"""

from collections import deque
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from loadsim.models.metrics import AggregateStats, MetricEvent, QueryKind

DEFAULT_WINDOW_SIZE = 20


def _round_half_up(value: float, places: int) -> float:
    """Round like the dashboard's toFixed: halves go up, not to even."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


class RollingWindow:
    """Fixed-capacity, oldest-evicted-first buffer of metric events."""

    def __init__(
        self,
        capacity: int = DEFAULT_WINDOW_SIZE,
        slow_threshold_ms: int = 10,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.slow_threshold_ms = slow_threshold_ms
        self._events: deque[MetricEvent] = deque(maxlen=capacity)
        self._stats = AggregateStats()

    def add(self, event: MetricEvent) -> AggregateStats:
        """Append an event, evicting the oldest if full, and return fresh stats."""
        self._events.append(event)
        self._stats = self._compute()
        return self._stats

    def stats(self) -> AggregateStats:
        return self._stats

    def events(self) -> List[MetricEvent]:
        """Events in arrival order, oldest first."""
        return list(self._events)

    def latencies(self) -> List[int]:
        return [e.latency_ms for e in self._events]

    def __len__(self) -> int:
        return len(self._events)

    def _compute(self) -> AggregateStats:
        counts = {k.value: 0 for k in QueryKind}
        total_latency = 0
        successful = 0
        slow = 0

        for event in self._events:
            counts[event.kind.value] += 1
            total_latency += event.latency_ms
            if event.succeeded:
                successful += 1
            if event.latency_ms > self.slow_threshold_ms:
                slow += 1

        total = len(self._events)
        if total == 0:
            return AggregateStats()

        return AggregateStats(
            counts=counts,
            avg_latency_ms=_round_half_up(total_latency / total, 2),
            success_rate=_round_half_up(successful / total * 100, 1),
            total=total,
            slow_count=slow,
            latencies=self.latencies(),
        )
