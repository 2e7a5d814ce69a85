"""
Process-wide service wiring.

The pool, broadcast channel, gateway, generator and viewer registry are built
once per process and passed by reference to the request handlers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from loadsim.config import Settings
from loadsim.connectors.postgres_pool import PostgresConnectionPool
from loadsim.core.broadcast import BroadcastChannel
from loadsim.core.errors import QueryRejected
from loadsim.core.gateway import QueryGateway, operator_statement
from loadsim.core.generator import LoadGenerator
from loadsim.core.query_policy import check_submission
from loadsim.models.queries import ExecutionResult
from loadsim.websocket.session import SessionRegistry, ViewerSession, Sender

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    pool: PostgresConnectionPool
    channel: BroadcastChannel
    gateway: QueryGateway
    generator: LoadGenerator
    sessions: SessionRegistry

    async def submit(self, sql: str, viewer_id: Optional[str] = None) -> ExecutionResult:
        """
        Validate and execute an operator submission.

        Rejected statements never reach the gateway, so nothing is published
        for them.
        """
        try:
            kind = check_submission(sql)
        except QueryRejected as e:
            logger.info("Rejected submission (%s): %s", e.decision.keyword, e)
            raise
        statement = operator_statement(
            sql,
            kind,
            viewer_id=viewer_id,
            timeout=self.settings.QUERY_TIMEOUT_SECONDS,
        )
        return await self.gateway.execute(statement)

    def open_session(self, send: Sender) -> ViewerSession:
        session = ViewerSession(
            self.channel,
            send,
            window_size=self.settings.METRICS_WINDOW_SIZE,
            history_capacity=self.settings.HISTORY_CAPACITY,
            include_generated=self.settings.HISTORY_INCLUDE_GENERATED,
            slow_threshold_ms=self.settings.LATENCY_ALERT_THRESHOLD_MS,
        )
        session.start()
        self.sessions.add(session)
        return session

    async def close_session(self, session: ViewerSession) -> None:
        self.sessions.remove(session.id)
        await session.close()

    async def shutdown(self) -> None:
        await self.generator.stop()
        await self.sessions.close_all()
        self.channel.close()
        await self.pool.close()

    def describe(self) -> dict[str, Any]:
        return {
            "viewers": len(self.sessions),
            "subscribers": len(self.channel),
            "events_published": self.channel.published,
            "generator": self.generator.status(),
        }


def build_services(
    settings: Settings,
    pool: Optional[PostgresConnectionPool] = None,
) -> Services:
    """Wire the services for one process from settings."""
    if pool is None:
        pool = PostgresConnectionPool(
            host=settings.POSTGRES_HOST,
            port=settings.POSTGRES_PORT,
            database=settings.POSTGRES_DATABASE,
            user=settings.POSTGRES_USER,
            password=settings.POSTGRES_PASSWORD,
            min_size=settings.POSTGRES_POOL_MIN_SIZE,
            max_size=settings.POSTGRES_POOL_MAX_SIZE,
            queue_limit=settings.POSTGRES_POOL_QUEUE_LIMIT,
        )
    channel = BroadcastChannel(queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
    gateway = QueryGateway(pool, channel)
    generator = LoadGenerator(gateway, period_seconds=settings.generator_period_seconds)
    return Services(
        settings=settings,
        pool=pool,
        channel=channel,
        gateway=gateway,
        generator=generator,
        sessions=SessionRegistry(),
    )
