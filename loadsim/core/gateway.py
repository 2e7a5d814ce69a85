"""
Execution Gateway

Owns the life cycle of a single statement: lease a connection, execute,
measure latency, release, classify the outcome and publish exactly one metric
event. Used by both the autonomous generator and operator submissions.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import asyncpg

from loadsim.connectors.postgres_pool import PostgresConnectionPool
from loadsim.core.broadcast import BroadcastChannel
from loadsim.core.errors import ExecutionError, StoreConnectionError
from loadsim.models.metrics import MetricEvent, QueryKind, QueryStatus
from loadsim.models.queries import (
    ExecutionResult,
    QueryPayload,
    RowSetPayload,
    Statement,
    WriteResultPayload,
)

logger = logging.getLogger(__name__)

METRICS_TABLE = "query_metrics"

CREATE_METRICS_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {METRICS_TABLE} (
    id SERIAL PRIMARY KEY,
    query_type VARCHAR(16) NOT NULL,
    latency_ms INTEGER NOT NULL DEFAULT 0,
    status VARCHAR(16) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

RECORD_LATENCY_SQL = f"UPDATE {METRICS_TABLE} SET latency_ms = $1 WHERE id = $2"


def _parse_rowcount(status: Any) -> int:
    """Parse the row count from a command status ("INSERT 0 3", "UPDATE 5")."""
    if not status:
        return 0
    parts = str(status).split()
    if len(parts) >= 2:
        try:
            return int(parts[-1])
        except ValueError:
            return 0
    return 0


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, ExecutionError):
        return exc.code
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate:
        return str(sqlstate)
    return type(exc).__name__


class QueryGateway:
    """
    Executes statements against the store and publishes their metrics.

    Args:
        pool: Connection pool facade
        channel: Broadcast channel that receives every metric event
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        pool: PostgresConnectionPool,
        channel: BroadcastChannel,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.pool = pool
        self.channel = channel
        self.clock = clock

    async def ensure_schema(self) -> None:
        """Create the metrics table if it does not exist."""
        async with self.pool.get_connection() as conn:
            await conn.execute(CREATE_METRICS_TABLE_SQL)
        logger.info("Metrics table %s ready", METRICS_TABLE)

    async def execute(self, statement: Statement) -> ExecutionResult:
        """
        Execute one statement and publish its metric event.

        Exactly one event is published per call, whatever the outcome.

        Raises:
            StoreConnectionError: no connection could be leased
            ExecutionError: the store rejected the statement
        """
        try:
            conn = await self.pool.acquire()
        except StoreConnectionError as e:
            # Nothing ran, so there is no latency to report.
            self._publish(statement, QueryStatus.ERROR, 0)
            logger.warning(
                "%s %s not executed: %s", statement.source.value, statement.kind.value, e
            )
            raise

        try:
            payload, latency_ms = await self._run_measured(conn, statement)
        except ExecutionError as e:
            event = self._publish(statement, QueryStatus.ERROR, e.latency_ms)
            logger.info(
                "Query: %s, Latency: %sms, Status: error (%s)",
                event.kind.value,
                e.latency_ms,
                e.message,
            )
            raise
        finally:
            await self.pool.release(conn)

        event = self._publish(statement, QueryStatus.SUCCESS, latency_ms)
        logger.info("Query: %s, Latency: %sms, Status: success", event.kind.value, latency_ms)
        return ExecutionResult(event=event, payload=payload)

    async def _run_measured(
        self, conn: asyncpg.Connection, statement: Statement
    ) -> tuple[QueryPayload, int]:
        """
        Run the statement (plus its target setup and latency follow-up) on
        `conn` and return the payload with the statement's own latency.

        Any store-side failure is raised as ExecutionError carrying the latency
        measured up to that point.
        """
        start: Optional[float] = None
        latency_ms: Optional[int] = None
        try:
            params = await self._bind_target(conn, statement)
            start = self.clock()
            payload = await self._run(conn, statement, params)
            latency_ms = self._elapsed_ms(start)
            if statement.record_latency:
                await self._record_latency(conn, statement, payload, latency_ms)
        except Exception as e:
            if latency_ms is None:
                latency_ms = self._elapsed_ms(start) if start is not None else 0
            raise ExecutionError(
                str(e), code=_error_code(e), latency_ms=latency_ms
            ) from e
        return payload, latency_ms

    async def _bind_target(
        self, conn: asyncpg.Connection, statement: Statement
    ) -> list[Any]:
        """Create the statement's target row, if it has one, and bind its id as $1."""
        if statement.target_sql is None:
            return list(statement.params)
        target_id = await conn.fetchval(statement.target_sql, timeout=statement.timeout)
        if target_id is None:
            raise ExecutionError(
                f"{statement.kind.value} target setup returned no {METRICS_TABLE} id",
                code="NO_METRICS_ROW",
            )
        return [target_id, *statement.params]

    async def _run(
        self, conn: asyncpg.Connection, statement: Statement, params: list[Any]
    ) -> QueryPayload:
        # Affected rows come from the command status, RETURNING or not.
        prepared = await conn.prepare(statement.sql, timeout=statement.timeout)
        records = await prepared.fetch(*params, timeout=statement.timeout)

        if not statement.kind.is_write:
            return RowSetPayload(rows=[dict(r) for r in records])

        insert_id = None
        if records:
            first = list(records[0].values())
            insert_id = first[0] if first else None
        return WriteResultPayload(
            affected_rows=_parse_rowcount(prepared.get_statusmsg()),
            insert_id=insert_id,
        )

    async def _record_latency(
        self,
        conn: asyncpg.Connection,
        statement: Statement,
        payload: QueryPayload,
        latency_ms: int,
    ) -> None:
        row_id = getattr(payload, "insert_id", None)
        if row_id is None:
            raise ExecutionError(
                f"{statement.kind.value} returned no {METRICS_TABLE} id to record latency on",
                code="NO_METRICS_ROW",
            )
        await conn.execute(RECORD_LATENCY_SQL, latency_ms, row_id, timeout=statement.timeout)

    def _elapsed_ms(self, start: float) -> int:
        return max(0, int(round((self.clock() - start) * 1000)))

    def _publish(
        self, statement: Statement, status: QueryStatus, latency_ms: int
    ) -> MetricEvent:
        event = MetricEvent(
            kind=statement.kind,
            latency_ms=latency_ms,
            status=status,
            source=statement.source,
            viewer_id=statement.viewer_id,
            query=statement.sql,
        )
        self.channel.publish(event)
        return event


def operator_statement(
    sql: str,
    kind: QueryKind,
    *,
    viewer_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Statement:
    """Build the Statement for an already-validated operator submission."""
    return Statement(
        sql=sql.strip(),
        kind=kind,
        viewer_id=viewer_id,
        timeout=timeout,
    )
