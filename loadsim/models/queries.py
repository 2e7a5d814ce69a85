"""
Query Execution Models

Defines Pydantic models for statements, execution results and query history.
"""

from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from loadsim.models.metrics import (
    EventSource,
    MetricEvent,
    QueryKind,
    QueryStatus,
)


class Statement(BaseModel):
    """A single statement handed to the execution gateway."""

    sql: str = Field(..., description="SQL text")
    kind: QueryKind = Field(..., description="Classified query kind")
    params: List[Any] = Field(default_factory=list, description="Bind parameters")
    source: EventSource = Field(EventSource.OPERATOR, description="Producer path")
    viewer_id: Optional[str] = Field(None, description="Submitting viewer")
    timeout: Optional[float] = Field(None, description="Driver timeout (seconds)")
    record_latency: bool = Field(
        False,
        description="Statement returns a query_metrics id whose latency_ms is "
        "set to the measured latency",
    )
    target_sql: Optional[str] = Field(
        None,
        description="Untimed setup run first on the same connection; the single "
        "value it returns is bound as $1",
    )


class RowSetPayload(BaseModel):
    """Rows returned by a read statement."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class WriteResultPayload(BaseModel):
    """Outcome of a write statement."""

    affected_rows: int = Field(0, description="Rows inserted or updated")
    insert_id: Optional[Any] = Field(None, description="First returned key, if any")


QueryPayload = Union[RowSetPayload, WriteResultPayload]


class ExecutionResult(BaseModel):
    """Published event plus the statement's payload."""

    event: MetricEvent
    payload: QueryPayload

    def to_response(self) -> Dict[str, Any]:
        """Body returned to the submitting operator."""
        body: Dict[str, Any] = {
            "success": True,
            "executionTime": self.event.latency_ms,
        }
        if isinstance(self.payload, RowSetPayload):
            body["data"] = self.payload.rows
            body["rowCount"] = self.payload.row_count
        else:
            body["affectedRows"] = self.payload.affected_rows
            body["insertId"] = self.payload.insert_id
        return body


class HistoryEntry(BaseModel):
    """One executed query in a viewer's history."""

    model_config = ConfigDict(frozen=True)

    query_text: str
    kind: QueryKind
    execution_time_ms: int = Field(0, ge=0)
    status: QueryStatus
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_event(cls, event: MetricEvent) -> "HistoryEntry":
        return cls(
            query_text=event.query or "",
            kind=event.kind,
            execution_time_ms=event.latency_ms,
            status=event.status,
            timestamp=event.timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query_text,
            "type": self.kind.value,
            "executionTime": self.execution_time_ms,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }


class ExecuteQueryRequest(BaseModel):
    """Body of an operator submission."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., description="SQL text to execute")
    viewer_id: Optional[str] = Field(
        None, alias="viewerId", description="Viewer session to attribute the query to"
    )
