"""
Table layout for the Postgres document store.

    snapshots:
        - collection TEXT
        - doc_id TEXT
        - doc_type TEXT (nullable)
        - version INTEGER (>= 1 once a row exists)
        - data JSONB
        - PRIMARY KEY (collection, doc_id)

    ops:
        - collection TEXT
        - doc_id TEXT
        - version INTEGER (> 0)
        - operation JSONB
        - PRIMARY KEY (collection, doc_id, version)

The ops primary key turns a second insert at an existing version into a
unique violation instead of a silent duplicate.
"""

from __future__ import annotations

import logging

from collab_store.persistence.pool import ConnectionPool


logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        collection TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        doc_type TEXT,
        version INTEGER NOT NULL CHECK (version > 0),
        data JSONB,
        PRIMARY KEY (collection, doc_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ops (
        collection TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        version INTEGER NOT NULL CHECK (version > 0),
        operation JSONB NOT NULL,
        PRIMARY KEY (collection, doc_id, version)
    )
    """,
)


async def ensure_schema(pool: ConnectionPool) -> None:
    async with pool.connection() as conn:
        async with conn.transaction():
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("schema ensured")
