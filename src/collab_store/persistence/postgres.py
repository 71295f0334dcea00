"""
Postgres-backed document store.

Commit is the optimistic-concurrency gate: an operation is accepted only when
the snapshot it produces is exactly one version ahead of the stored one.

Invariants:
    - snapshots.version == max(ops.version) for every committed document
    - ops versions for a document form the contiguous run 1..N
    - the snapshot row lock (SELECT ... FOR UPDATE) is the only thing that
      serializes commits to one document; other documents never wait on it
    - a version mismatch returns False and never raises
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

import psycopg
from psycopg import errors as pg_errors
from psycopg.types.json import Jsonb

from collab_store.core.models import OpRecord, Snapshot
from collab_store.errors import IntegrityViolation, QueryError, StorageConnectionError, StorageError, StoreClosedError
from collab_store.persistence.base import DocumentStore
from collab_store.persistence.pool import ConnectionPool
from collab_store.persistence.schema import ensure_schema


logger = logging.getLogger(__name__)

_LOCK_SNAPSHOT = """
    SELECT version FROM snapshots
    WHERE collection = %s AND doc_id = %s
    FOR UPDATE
"""

# The WHERE clause only matters when two first commits raced past an empty
# lock read: the loser's insert turns into an update that matches nothing.
_UPSERT_SNAPSHOT = """
    INSERT INTO snapshots (collection, doc_id, doc_type, version, data)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (collection, doc_id) DO UPDATE
        SET doc_type = EXCLUDED.doc_type, version = EXCLUDED.version, data = EXCLUDED.data
        WHERE snapshots.version = EXCLUDED.version - 1
    RETURNING version
"""

_INSERT_OP = """
    INSERT INTO ops (collection, doc_id, version, operation)
    VALUES (%s, %s, %s, %s)
"""

_SELECT_SNAPSHOT = """
    SELECT version, data, doc_type FROM snapshots
    WHERE collection = %s AND doc_id = %s
    LIMIT 1
"""

_SELECT_SNAPSHOT_BULK = """
    SELECT doc_id, version, data, doc_type FROM snapshots
    WHERE collection = %s AND doc_id = ANY(%s)
"""

_SELECT_OPS = "SELECT version, operation FROM ops WHERE collection = %s AND doc_id = %s AND version > %s"


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except StorageError:
        raise
    except psycopg.OperationalError as e:
        raise StorageConnectionError(str(e)) from e
    except psycopg.Error as e:
        raise QueryError(str(e)) from e


class PostgresDocumentStore(DocumentStore):
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool
        self._closed = False

    async def ensure_schema(self) -> None:
        self._check_open()
        with _translate_errors():
            await ensure_schema(self._pool)

    async def commit(self, collection: str, doc_id: str, operation: Any, snapshot: Snapshot) -> bool:
        self._check_open()
        extra = {"collection": collection, "doc_id": doc_id, "version": snapshot.version}
        try:
            with _translate_errors():
                committed = await self._commit(collection, doc_id, operation, snapshot)
        except IntegrityViolation:
            logger.error("commit rejected: op version already recorded", extra=extra)
            raise
        except StorageError:
            logger.exception("commit failed", extra=extra)
            raise

        if committed:
            logger.info("commit applied", extra=extra)
        else:
            logger.info("commit rejected: not the latest version", extra=extra)
        return committed

    async def _commit(self, collection: str, doc_id: str, operation: Any, snapshot: Snapshot) -> bool:
        committed = False
        async with self._pool.connection() as conn:
            async with conn.transaction():
                cur = await conn.execute(_LOCK_SNAPSHOT, (collection, doc_id))
                row = await cur.fetchone()
                expected = row["version"] + 1 if row is not None else 1
                if snapshot.version != expected:
                    raise psycopg.Rollback()

                cur = await conn.execute(
                    _UPSERT_SNAPSHOT,
                    (collection, doc_id, snapshot.type, snapshot.version, Jsonb(snapshot.data)),
                )
                if await cur.fetchone() is None:
                    raise psycopg.Rollback()

                try:
                    await conn.execute(_INSERT_OP, (collection, doc_id, snapshot.version, Jsonb(operation)))
                except pg_errors.UniqueViolation as e:
                    raise IntegrityViolation(collection, doc_id, snapshot.version) from e
                committed = True
        return committed

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot:
        self._check_open()
        with _translate_errors():
            async with self._pool.connection() as conn:
                cur = await conn.execute(_SELECT_SNAPSHOT, (collection, doc_id))
                row = await cur.fetchone()
        if row is None:
            return Snapshot.missing(doc_id)
        return Snapshot(id=doc_id, version=row["version"], type=row["doc_type"], data=row["data"])

    async def get_snapshot_bulk(self, collection: str, doc_ids: Iterable[str]) -> dict[str, Snapshot]:
        self._check_open()
        ids = list(doc_ids)
        if not ids:
            return {}
        with _translate_errors():
            async with self._pool.connection() as conn:
                cur = await conn.execute(_SELECT_SNAPSHOT_BULK, (collection, ids))
                rows = await cur.fetchall()
        found = {
            row["doc_id"]: Snapshot(id=row["doc_id"], version=row["version"], type=row["doc_type"], data=row["data"])
            for row in rows
        }
        return {doc_id: found.get(doc_id) or Snapshot.missing(doc_id) for doc_id in ids}

    async def get_ops(
        self, collection: str, doc_id: str, from_version: int, to_version: Optional[int] = None
    ) -> list[OpRecord]:
        self._check_open()
        query = _SELECT_OPS
        params: list[Any] = [collection, doc_id, from_version]
        if to_version is not None:
            query += " AND version <= %s"
            params.append(to_version)
        query += " ORDER BY version"

        with _translate_errors():
            async with self._pool.connection() as conn:
                cur = await conn.execute(query, params)
                rows = await cur.fetchall()
        return [
            OpRecord(collection=collection, doc_id=doc_id, version=row["version"], operation=row["operation"])
            for row in rows
        ]

    async def get_ops_to_snapshot(
        self, collection: str, doc_id: str, from_version: int, snapshot: Snapshot
    ) -> list[OpRecord]:
        return await self.get_ops(collection, doc_id, from_version, snapshot.version)

    async def close(self) -> None:
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("document store is closed")
