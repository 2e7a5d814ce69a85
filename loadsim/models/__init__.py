"""
Data models for the load simulator.

This package contains Pydantic models for:
- Live metric events and rolling-window statistics
- Statements, execution results and query history
"""

from loadsim.models.metrics import (
    QueryKind,
    QueryStatus,
    EventSource,
    MetricEvent,
    AggregateStats,
)

from loadsim.models.queries import (
    Statement,
    RowSetPayload,
    WriteResultPayload,
    QueryPayload,
    ExecutionResult,
    HistoryEntry,
    ExecuteQueryRequest,
)

__all__ = [
    # metrics
    "QueryKind",
    "QueryStatus",
    "EventSource",
    "MetricEvent",
    "AggregateStats",
    # queries
    "Statement",
    "RowSetPayload",
    "WriteResultPayload",
    "QueryPayload",
    "ExecutionResult",
    "HistoryEntry",
    "ExecuteQueryRequest",
]
