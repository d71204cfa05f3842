"""Document sink abstraction and the in-memory backend.

A sink stores JSON-like records in collections addressed by slash-separated
paths (``users/{user_id}/raw_periodic``).  ``put`` with a ``document_id``
overwrites that document; without one a fresh id is assigned and the record
is appended.

Backends raise ``SinkError`` on failure.  The collection loops never talk to a
backend directly: they go through ``SinkWriter``, which turns every failure
into a ``WriteResult(ok=False)`` so a bad write can never stop a tick loop.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("moodwatch.sink")

RAW_PERIODIC = "raw_periodic"
RAW_EVENTS = "raw_events"


def collection_path(user_id: str, collection: str) -> str:
    """Return ``users/{user_id}/{collection}``.

    Raises:
        ValueError: If either segment is empty or contains a slash.
    """
    for segment in (user_id, collection):
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return f"users/{user_id}/{collection}"


def new_document_id() -> str:
    """20-character id, the same length as Firestore auto ids."""
    return uuid.uuid4().hex[:20]


@dataclass
class WriteResult:
    """Outcome of handing one record to a document sink.

    Attributes:
        ok:              True if the sink acknowledged the write.
        collection_path: Target collection, e.g. ``users/u1/raw_events``.
        document_id:     Identity the record was stored under (None when an
                         auto-id write failed).
        error:           Error message when ``ok`` is False.
        attempts:        Number of write attempts made.
    """

    ok: bool
    collection_path: str
    document_id: str | None = None
    error: str | None = None
    attempts: int = 1


class SinkError(RuntimeError):
    """Raised by a backend when a write or probe fails."""


class DocumentSink(ABC):
    """Abstract document store."""

    #: Backend slug matching Settings.sink_backend.
    BACKEND: str = ""

    @abstractmethod
    async def put(
        self,
        collection_path: str,
        record: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        """Store ``record`` and return the document id it was stored under.

        Raises:
            SinkError: If the backend rejects or cannot complete the write.
        """

    async def open(self) -> None:
        """Acquire backend resources before the first write."""

    async def ping(self) -> bool:
        """Return True if the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryDocumentSink(DocumentSink):
    """Dict-backed sink for development and tests."""

    BACKEND = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def put(
        self,
        collection_path: str,
        record: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        doc_id = document_id or new_document_id()
        self._collections.setdefault(collection_path, {})[doc_id] = copy.deepcopy(record)
        return doc_id

    def documents(self, collection_path: str) -> dict[str, dict[str, Any]]:
        """Return a copy of every document in a collection, keyed by id."""
        return copy.deepcopy(self._collections.get(collection_path, {}))

    def count(self, collection_path: str) -> int:
        return len(self._collections.get(collection_path, {}))


class SinkWriter:
    """Write records to a sink without ever raising.

    Args:
        sink:        Backend to write to.
        max_retries: Extra attempts after a failed write (0 = no retry).
        backoff_ms:  Delay before the first retry; doubles on each retry.
    """

    def __init__(self, sink: DocumentSink, max_retries: int = 0, backoff_ms: int = 500) -> None:
        self.sink = sink
        self._max_retries = max(0, max_retries)
        self._backoff_ms = max(0, backoff_ms)

    async def write(
        self,
        collection_path: str,
        record: dict[str, Any],
        document_id: str | None = None,
    ) -> WriteResult:
        attempts = 0
        delay_s = self._backoff_ms / 1000.0
        last_error = ""
        while True:
            attempts += 1
            try:
                doc_id = await self.sink.put(collection_path, record, document_id)
            except Exception as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "Write to %s failed (attempt %d/%d): %s",
                    collection_path,
                    attempts,
                    self._max_retries + 1,
                    last_error,
                )
                if attempts > self._max_retries:
                    break
                await asyncio.sleep(delay_s)
                delay_s *= 2
                continue
            logger.debug("Wrote %s/%s", collection_path, doc_id)
            return WriteResult(
                ok=True,
                collection_path=collection_path,
                document_id=doc_id,
                attempts=attempts,
            )

        return WriteResult(
            ok=False,
            collection_path=collection_path,
            document_id=document_id,
            error=last_error,
            attempts=attempts,
        )
