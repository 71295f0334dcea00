"""
Bounded PostgreSQL connection pool for the document store.

The pool is an owned object: whoever builds it opens it, hands it to the
stores that need it, and closes it at shutdown. Every connection lent out by
``acquire()`` must come back through ``release()``; ``connection()`` pairs the
two so that no exit path (error, cancellation) can leak a connection.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import DictRow, dict_row
from psycopg_pool import AsyncConnectionPool, PoolClosed, PoolTimeout, TooManyRequests

from collab_store.errors import StorageConnectionError, StoreClosedError


logger = logging.getLogger(__name__)

# Plain reads run without an implicit BEGIN so a connection goes back to the
# pool idle; commit opens its own transaction with conn.transaction().
CONNECTION_KWARGS = {"row_factory": dict_row, "autocommit": True}


class ConnectionPool:
    def __init__(
        self,
        conninfo: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 10.0,
        max_waiting: int = 100,
        name: str = "collab_store",
    ) -> None:
        self.name = name
        self._timeout = timeout
        self._closed = False
        self._pool: AsyncConnectionPool[AsyncConnection[DictRow]] = AsyncConnectionPool(
            conninfo,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
            max_waiting=max_waiting,
            kwargs=dict(CONNECTION_KWARGS),
            name=name,
            open=False,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, wait: bool = True) -> None:
        """Open the pool, optionally waiting for ``min_size`` connections."""
        if self._closed:
            raise StoreClosedError(f"pool {self.name} is closed")
        try:
            await self._pool.open(wait=wait, timeout=self._timeout)
        except PoolTimeout as e:
            raise StorageConnectionError(f"pool {self.name}: database unreachable: {e}") from e
        logger.info("connection pool opened: %s", self.name)

    async def acquire(self) -> AsyncConnection[DictRow]:
        if self._closed:
            raise StoreClosedError(f"pool {self.name} is closed")
        start = time.monotonic()
        try:
            conn = await self._pool.getconn()
        except PoolClosed as e:
            raise StoreClosedError(f"pool {self.name} is closed") from e
        except (PoolTimeout, TooManyRequests) as e:
            raise StorageConnectionError(f"pool {self.name}: no connection available: {e}") from e
        except psycopg.OperationalError as e:
            raise StorageConnectionError(f"pool {self.name}: {e}") from e
        logger.debug("connection acquired from %s in %.1fms", self.name, (time.monotonic() - start) * 1000)
        return conn

    async def release(self, conn: AsyncConnection[DictRow]) -> None:
        # A broken connection is discarded by psycopg_pool.
        await self._pool.putconn(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection[DictRow]]:
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def close(self) -> None:
        """Mark the pool closed and shut the underlying connections down."""
        if self._closed:
            return
        self._closed = True
        await self._pool.close()
        logger.info("connection pool closed: %s", self.name)

    def stats(self) -> dict[str, int]:
        return dict(self._pool.get_stats())
