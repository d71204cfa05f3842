"""Postgres (Supabase) document sink.

Documents are stored as JSONB rows keyed by ``(collection_path, document_id)``
so the Firestore path layout carries over unchanged.  Overwrite semantics come
from ``ON CONFLICT ... DO UPDATE``.

Uses ``asyncpg`` for direct database access; the pool is created lazily on
the first write if ``open()`` was not awaited at startup, and drained by
``close()``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import asyncpg

from moodwatch.services.sink import DocumentSink, SinkError, new_document_id

logger = logging.getLogger("moodwatch.sink.postgres")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection_path TEXT        NOT NULL,
    document_id     TEXT        NOT NULL,
    data            JSONB       NOT NULL,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection_path, document_id)
)
"""

UPSERT_SQL = """
INSERT INTO documents (collection_path, document_id, data)
VALUES ($1, $2, $3::jsonb)
ON CONFLICT (collection_path, document_id)
DO UPDATE SET data = EXCLUDED.data, updated_at = NOW()
"""


class PostgresDocumentSink(DocumentSink):
    """Store documents in a single JSONB table.

    Args:
        dsn:      Postgres connection string (``DATABASE_URL``).
        pool:     Optional pre-built pool (for testing).
        min_size: Minimum pool connections.
        max_size: Maximum pool connections.
    """

    BACKEND = "postgres"

    def __init__(
        self,
        dsn: str = "",
        pool: asyncpg.Pool | None = None,
        min_size: int = 1,
        max_size: int = 5,
    ) -> None:
        if not dsn and pool is None:
            raise ValueError("DATABASE_URL is required for the postgres sink")
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None
        self._min_size = min_size
        self._max_size = max_size
        self._schema_ready = False
        self._open_lock = asyncio.Lock()

    async def open(self) -> None:
        """Create the pool and the documents table if needed.

        Called from the application lifespan; writes call it again and find
        the pool ready.  Concurrent callers share one pool.
        """
        if self._pool is not None and self._schema_ready:
            return
        async with self._open_lock:
            await self._open()

    async def _open(self) -> None:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=30,
            )
            logger.info(
                "Database pool initialized (min=%d, max=%d)", self._min_size, self._max_size
            )
        if not self._schema_ready:
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
            self._schema_ready = True

    async def put(
        self,
        collection_path: str,
        record: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        doc_id = document_id or new_document_id()
        try:
            await self.open()
            async with self._pool.acquire() as conn:
                await conn.execute(UPSERT_SQL, collection_path, doc_id, json.dumps(record))
        except (asyncpg.PostgresError, OSError) as exc:
            raise SinkError(f"Postgres write to {collection_path} failed: {exc}") from exc
        return doc_id

    async def ping(self) -> bool:
        try:
            await self.open()
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except (asyncpg.PostgresError, OSError) as exc:
            logger.warning("Postgres probe failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")
