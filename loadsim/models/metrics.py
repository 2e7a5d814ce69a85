"""
Metrics Models

Defines Pydantic models for live query metrics and rolling-window statistics.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueryKind(str, Enum):
    """Query classification derived from a statement's leading keyword."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    OTHER = "OTHER"

    @property
    def is_write(self) -> bool:
        return self in (QueryKind.INSERT, QueryKind.UPDATE)


class QueryStatus(str, Enum):
    """Outcome of one executed statement."""

    SUCCESS = "success"
    ERROR = "error"


class EventSource(str, Enum):
    """Which path produced a metric event."""

    GENERATOR = "generator"
    OPERATOR = "operator"


class MetricEvent(BaseModel):
    """
    The published record of one executed statement.

    Immutable once built; the gateway publishes each one exactly once.
    """

    model_config = ConfigDict(frozen=True)

    kind: QueryKind = Field(..., description="Query kind")
    latency_ms: int = Field(..., ge=0, description="Measured latency (ms)")
    status: QueryStatus = Field(..., description="success or error")
    source: EventSource = Field(EventSource.GENERATOR, description="Producer path")
    viewer_id: Optional[str] = Field(
        None, description="Submitting viewer (operator events only)"
    )
    query: Optional[str] = Field(None, description="Executed SQL text")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Completion time (UTC)"
    )

    @property
    def succeeded(self) -> bool:
        return self.status == QueryStatus.SUCCESS

    def to_wire(self) -> Dict[str, Any]:
        """Payload pushed to live viewers."""
        return {
            "queryType": self.kind.value,
            "latency": self.latency_ms,
            "status": self.status.value,
            "source": self.source.value,
            "viewerId": self.viewer_id,
            "query": self.query,
            "timestamp": self.timestamp.isoformat(),
        }


class AggregateStats(BaseModel):
    """Statistics derived from the current rolling window."""

    counts: Dict[str, int] = Field(
        default_factory=lambda: {k.value: 0 for k in QueryKind},
        description="Events per query kind",
    )
    avg_latency_ms: float = Field(0.0, description="Mean latency (ms)")
    success_rate: float = Field(0.0, description="Successful events (%)")
    total: int = Field(0, description="Events in the window")
    slow_count: int = Field(0, description="Events above the latency alert threshold")
    latencies: List[int] = Field(
        default_factory=list, description="Latency series, oldest first"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dashboard's stats shape."""
        return {
            **self.counts,
            "avgLatency": self.avg_latency_ms,
            "successRate": self.success_rate,
            "total": self.total,
            "slowCount": self.slow_count,
            "latencies": list(self.latencies),
        }
