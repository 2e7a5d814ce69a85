"""
Autonomous Load Generator

Fires one synthetic query per tick through the execution gateway. Ticks are
fire-and-forget: a slow tick may overlap the next one, and a failing tick is
logged without affecting later ticks.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import UTC, datetime
from typing import Any, Optional

from loadsim.core.gateway import METRICS_TABLE, QueryGateway
from loadsim.models.metrics import EventSource, QueryKind
from loadsim.models.queries import Statement

logger = logging.getLogger(__name__)

GENERATED_KINDS: tuple[QueryKind, ...] = (
    QueryKind.SELECT,
    QueryKind.INSERT,
    QueryKind.UPDATE,
)


class LoadGenerator:
    """
    Timer-driven producer of synthetic queries.

    Args:
        gateway: Execution gateway every tick goes through
        period_seconds: Interval between ticks
        rng: Random source for kind selection (seedable for tests)
    """

    def __init__(
        self,
        gateway: QueryGateway,
        period_seconds: float = 2.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")
        self.gateway = gateway
        self.period_seconds = period_seconds
        self.random = rng or random.Random()

        self._task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self.ticks = 0
        self.failures = 0
        self.started_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def build_statement(self, kind: QueryKind) -> Statement:
        """Synthesize a minimal statement of `kind` against the metrics table."""
        if kind == QueryKind.SELECT:
            return Statement(
                sql=f"SELECT COUNT(*) AS count FROM {METRICS_TABLE}",
                kind=kind,
                source=EventSource.GENERATOR,
            )
        if kind == QueryKind.INSERT:
            return Statement(
                sql=(
                    f"INSERT INTO {METRICS_TABLE} (query_type, latency_ms, status) "
                    "VALUES ($1, 0, 'success') RETURNING id"
                ),
                kind=kind,
                params=[kind.value],
                source=EventSource.GENERATOR,
                record_latency=True,
            )
        if kind == QueryKind.UPDATE:
            # The tick updates a row of its own so every tick leaves one
            # query_metrics row behind.
            return Statement(
                sql=(
                    f"UPDATE {METRICS_TABLE} SET status = 'success' "
                    "WHERE id = $1 RETURNING id"
                ),
                kind=kind,
                source=EventSource.GENERATOR,
                record_latency=True,
                target_sql=(
                    f"INSERT INTO {METRICS_TABLE} (query_type, latency_ms, status) "
                    f"VALUES ('{kind.value}', 0, 'pending') RETURNING id"
                ),
            )
        raise ValueError(f"Generator does not emit {kind.value} queries")

    async def tick(self) -> bool:
        """
        Run one synthetic query.

        Returns True on success. Failures are logged and counted, never raised.
        """
        kind = self.random.choice(GENERATED_KINDS)
        self.ticks += 1
        try:
            await self.gateway.execute(self.build_statement(kind))
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error("Query simulation error (%s): %s", kind.value, e)
            return False

    def start(self) -> None:
        if self.is_running:
            return
        self.started_at = datetime.now(UTC)
        self._task = asyncio.create_task(self._run(), name="load-generator")
        logger.info("Load generator started (every %.2fs)", self.period_seconds)

    async def stop(self, *, timeout_seconds: float = 5.0) -> None:
        """Stop the timer, let in-flight ticks finish, then cancel stragglers."""
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        pending = list(self._inflight)
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout_seconds)
            for t in still_running:
                t.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning(
                    "Cancelled %d generator ticks still running after %.1fs",
                    len(still_running),
                    timeout_seconds,
                )
        logger.info("Load generator stopped after %d ticks", self.ticks)

    async def _run(self) -> None:
        while True:
            self._spawn_tick()
            await asyncio.sleep(self.period_seconds)

    def _spawn_tick(self) -> asyncio.Task:
        task = asyncio.create_task(self.tick())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "period_ms": int(round(self.period_seconds * 1000)),
            "ticks": self.ticks,
            "failures": self.failures,
            "inflight": self.inflight,
            "last_error": self.last_error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
