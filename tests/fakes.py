"""
In-memory stand-ins for the asyncpg pool and a manual clock.

Tests drive measured latency through `ManualClock`; every statement run on a
fake connection advances it by `FakeStore.latency_seconds`.
"""

from __future__ import annotations

import itertools
from typing import Any, Optional

from loadsim.connectors.postgres_pool import PostgresConnectionPool


class ManualClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """
    Scripted statement results shared by every fake connection.

    `script` maps an upper-cased SQL substring to a result, an exception
    instance to raise, or a callable `(sql, args) -> result`. A result is a
    list of rows, a command status string, or a `(rows, status)` pair; the
    missing half is derived. Unscripted statements get plausible defaults.
    Every statement advances `clock` by `latency_seconds`.
    """

    def __init__(self, clock: Optional[ManualClock] = None) -> None:
        self.clock = clock or ManualClock()
        self.latency_seconds = 0.005
        self.script: dict[str, Any] = {}
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self._ids = itertools.count(1)

    def run(self, method: str, sql: str, args: tuple[Any, ...]) -> tuple[list, str]:
        """Record and answer one statement as `(rows, command status)`."""
        self.calls.append((method, sql, args))
        self.clock.advance(self.latency_seconds)
        sql_upper = " ".join(sql.split()).upper()
        keyword = sql_upper.split()[0] if sql_upper else ""

        for key, result in self.script.items():
            if key.upper() in sql_upper:
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    result = result(sql, args)
                return self._shape(keyword, result)

        if keyword in ("INSERT", "UPDATE"):
            rows = [{"id": next(self._ids)}] if "RETURNING" in sql_upper else []
            return rows, self._status(keyword, 1)
        if keyword != "SELECT":
            return [], f"{keyword} 1"
        if "COUNT(*)" in sql_upper:
            return [{"count": 0}], "SELECT 1"
        return [{"?column?": 1}], "SELECT 1"

    def _shape(self, keyword: str, result: Any) -> tuple[list, str]:
        if isinstance(result, tuple):
            return list(result[0]), result[1]
        if isinstance(result, str):
            return [], result
        rows = list(result)
        return rows, self._status(keyword, len(rows))

    @staticmethod
    def _status(keyword: str, count: int) -> str:
        return f"INSERT 0 {count}" if keyword == "INSERT" else f"{keyword} {count}"


class FakePreparedStatement:
    def __init__(self, store: FakeStore, sql: str) -> None:
        self.store = store
        self.sql = sql
        self._status = ""

    async def fetch(self, *args: Any, timeout: Optional[float] = None):
        rows, self._status = self.store.run("prepared", self.sql, args)
        return rows

    def get_statusmsg(self) -> str:
        return self._status


class FakeConnection:
    def __init__(self, store: FakeStore, number: int) -> None:
        self.store = store
        self.number = number

    async def prepare(self, sql: str, *, timeout: Optional[float] = None):
        return FakePreparedStatement(self.store, sql)

    async def fetch(self, sql: str, *args: Any, timeout: Optional[float] = None):
        return self.store.run("fetch", sql, args)[0]

    async def execute(self, sql: str, *args: Any, timeout: Optional[float] = None):
        return self.store.run("execute", sql, args)[1]

    async def fetchval(self, sql: str, *args: Any, timeout: Optional[float] = None):
        rows = self.store.run("fetch", sql, args)[0]
        if not rows:
            return None
        return list(rows[0].values())[0]


class FakeAsyncpgPool:
    """Mimics the acquire/release/close surface of asyncpg.Pool."""

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.acquire_error: Optional[BaseException] = None
        self.acquired = 0
        self.released = 0
        self.closed = False
        self._free: list[FakeConnection] = []
        self._numbers = itertools.count(1)

    async def acquire(self) -> FakeConnection:
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        if self._free:
            return self._free.pop()
        return FakeConnection(self.store, next(self._numbers))

    async def release(self, conn: FakeConnection) -> None:
        self.released += 1
        self._free.append(conn)

    async def close(self) -> None:
        self.closed = True


class FakeSqlError(Exception):
    """Store-side statement failure carrying a SQLSTATE like asyncpg errors."""

    def __init__(self, message: str, sqlstate: str = "42P01") -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def make_pool(
    backend: FakeAsyncpgPool, max_size: int = 5, queue_limit: int = 0
) -> PostgresConnectionPool:
    """A PostgresConnectionPool already initialized over `backend`."""
    pool = PostgresConnectionPool(
        host="localhost",
        port=5432,
        database="load_simulator_test",
        user="test",
        password="",
        min_size=1,
        max_size=max_size,
        queue_limit=queue_limit,
        pool_name="test",
    )
    pool._pool = backend  # type: ignore[assignment]
    pool._initialized = True
    return pool


def drain(subscription) -> list:
    """Pop every queued event from a subscription without waiting."""
    events = []
    while subscription.pending:
        events.append(subscription._queue.get_nowait())
    return events
