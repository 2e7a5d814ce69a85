"""
Error taxonomy for query execution.

Connection problems, rejected input and store-side statement failures are
distinct types so the API layer can map each to its own response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from loadsim.core.query_policy import Decision


class LoadSimError(Exception):
    """Base class for all load simulator errors."""

    code: str = "LOADSIM_ERROR"


class StoreConnectionError(LoadSimError, ConnectionError):
    """The pool or the store behind it could not hand out a connection."""

    code = "STORE_UNAVAILABLE"


class PoolExhausted(StoreConnectionError):
    """The pool is saturated and its wait queue is full."""

    code = "POOL_EXHAUSTED"


class MalformedQuery(LoadSimError):
    """The SQL text has no leading keyword."""

    code = "MALFORMED_QUERY"


class QueryRejected(LoadSimError):
    """The validator refused a submitted statement."""

    code = "QUERY_REJECTED"

    def __init__(self, decision: "Decision"):
        super().__init__(decision.reason or f"{decision.keyword} rejected")
        self.decision = decision


class QueryBlocked(QueryRejected):
    code = "QUERY_BLOCKED"


class QueryUnsupported(QueryRejected):
    code = "QUERY_UNSUPPORTED"


class ExecutionError(LoadSimError):
    """
    The store rejected a statement.

    Carries the store's error code (SQLSTATE where available) and the latency
    measured up to the failure.
    """

    def __init__(self, message: str, code: Optional[str] = None, latency_ms: int = 0):
        super().__init__(message)
        self.message = message
        self.code = code or "EXECUTION_ERROR"
        self.latency_ms = latency_ms
