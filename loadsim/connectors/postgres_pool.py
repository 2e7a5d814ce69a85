"""
Postgres Connection Pool Manager

Bounded async connection pool for the metrics store, with lazy
initialization, retry on transient connect failures, and an optional limit on
the number of callers waiting for a connection.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import (
    CannotConnectNowError,
    TooManyConnectionsError,
)

from loadsim.core.errors import PoolExhausted, StoreConnectionError

logger = logging.getLogger(__name__)


class PostgresConnectionPool:
    """
    Async connection pool for Postgres.

    At most `max_size` connections are leased at once. Further callers wait in
    FIFO order; when `queue_limit` is positive, a caller that would wait behind
    `queue_limit` others fails with PoolExhausted instead.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_size: int = 1,
        max_size: int = 10,
        queue_limit: int = 0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 60.0,
        pool_name: str = "default",
    ):
        """
        Initialize Postgres connection pool.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Username
            password: Password
            min_size: Minimum pool size
            max_size: Maximum pool size (connections leased at once)
            queue_limit: Max callers waiting for a connection (0 = unbounded)
            max_retries: Max retry attempts for transient failures
            retry_delay: Delay between retries in seconds
            command_timeout: Command timeout in seconds
            pool_name: Descriptive name for logging
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_size = min(min_size, max_size)
        self.max_size = max_size
        self.queue_limit = max(0, queue_limit)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.pool_name = pool_name

        self._pool: Optional[Pool] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._slots = asyncio.Semaphore(max_size)
        self._waiting = 0
        self._leased: set[int] = set()

        logger.info(
            f"[{pool_name}] Postgres pool configured: {user}@{host}:{port}/{database}, "
            f"size={self.min_size}-{max_size}, queue_limit={self.queue_limit or 'unbounded'}"
        )

    async def initialize(self):
        """Initialize the connection pool."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            logger.info(f"[{self.pool_name}] Creating Postgres connection pool...")

            for attempt in range(self.max_retries):
                try:
                    self._pool = await asyncpg.create_pool(
                        host=self.host,
                        port=self.port,
                        database=self.database,
                        user=self.user,
                        password=self.password,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=self.command_timeout,
                    )
                    self._initialized = True
                    logger.info(
                        f"[{self.pool_name}] Postgres pool ready "
                        f"(size: {self.min_size}-{self.max_size})"
                    )
                    return

                except (CannotConnectNowError, TooManyConnectionsError) as e:
                    if attempt < self.max_retries - 1:
                        logger.warning(
                            f"Pool creation attempt {attempt + 1} failed, retrying: {e}"
                        )
                        await asyncio.sleep(self.retry_delay * (attempt + 1))
                    else:
                        logger.error(
                            f"Failed to create pool after {self.max_retries} attempts"
                        )
                        raise StoreConnectionError(str(e)) from e
                except (OSError, asyncpg.PostgresError, asyncio.TimeoutError) as e:
                    logger.error(f"[{self.pool_name}] Store unreachable: {e}")
                    raise StoreConnectionError(str(e)) from e

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def in_use(self) -> int:
        return len(self._leased)

    @property
    def waiting(self) -> int:
        return self._waiting

    async def acquire(self) -> asyncpg.Connection:
        """
        Lease a connection, waiting while the pool is saturated.

        Raises:
            PoolExhausted: the wait queue is at `queue_limit`
            StoreConnectionError: the store could not be reached
        """
        if not self._initialized:
            await self.initialize()

        if self._pool is None:
            raise StoreConnectionError("Pool not initialized")

        if (
            self.queue_limit
            and self._slots.locked()
            and self._waiting >= self.queue_limit
        ):
            raise PoolExhausted(
                f"[{self.pool_name}] {self._waiting} callers already waiting "
                f"for {self.max_size} connections"
            )

        self._waiting += 1
        try:
            await self._slots.acquire()
        finally:
            self._waiting -= 1

        try:
            conn = await self._pool.acquire()
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError) as e:
            self._slots.release()
            logger.error(f"[{self.pool_name}] Failed to acquire connection: {e}")
            raise StoreConnectionError(str(e)) from e
        except BaseException:
            self._slots.release()
            raise

        if id(conn) in self._leased:
            # The driver handed out a connection that is still leased.
            await self._pool.release(conn)
            self._slots.release()
            raise StoreConnectionError("Connection already leased")
        self._leased.add(id(conn))
        return conn

    async def release(self, conn: asyncpg.Connection) -> None:
        """
        Return a leased connection to the pool.

        Releasing after close() is a no-op: close() already returned every
        outstanding lease's slot.
        """
        if id(conn) not in self._leased:
            if self._pool is None:
                logger.debug(f"[{self.pool_name}] Release after close ignored")
                return
            raise ValueError("Connection is not leased from this pool")
        self._leased.discard(id(conn))
        try:
            await self._pool.release(conn)
        finally:
            self._slots.release()

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool (async context manager).

        Usage:
            async with pool.get_connection() as conn:
                result = await conn.fetch("SELECT 1")

        Yields:
            Connection: Connection from pool
        """
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def fetch_val(self, query: str, *args, timeout: Optional[float] = None) -> Any:
        """Fetch a single value from a query."""
        async with self.get_connection() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    async def is_healthy(self) -> bool:
        """
        Check if the connection pool is healthy.

        Returns:
            bool: True if pool is healthy
        """
        if not self._initialized or self._pool is None:
            return False

        try:
            result = await self.fetch_val("SELECT 1")
            return result == 1
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dict with pool statistics
        """
        if not self._initialized or self._pool is None:
            return {
                "initialized": False,
                "size": 0,
                "in_use": 0,
                "waiting": self._waiting,
            }

        return {
            "initialized": True,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "queue_limit": self.queue_limit,
            "in_use": self.in_use,
            "waiting": self._waiting,
        }

    async def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            logger.info(f"[{self.pool_name}] Closing Postgres connection pool...")
            await self._pool.close()
            self._pool = None
            self._initialized = False
            # Outstanding leases die with the pool; free their slots.
            for _ in self._leased:
                self._slots.release()
            self._leased.clear()
            logger.info(f"[{self.pool_name}] Postgres pool closed")
