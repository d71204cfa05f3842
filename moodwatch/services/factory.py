"""Build the configured document sink."""

from __future__ import annotations

from moodwatch.config import Settings
from moodwatch.services.firestore import FirestoreSink
from moodwatch.services.sink import DocumentSink, InMemoryDocumentSink
from moodwatch.services.supabase import PostgresDocumentSink

SINK_REGISTRY: dict[str, type[DocumentSink]] = {
    "memory": InMemoryDocumentSink,
    "firestore": FirestoreSink,
    "postgres": PostgresDocumentSink,
}


def create_sink(settings: Settings) -> DocumentSink:
    """Return a sink for ``settings.sink_backend``.

    Raises:
        KeyError:   If the backend slug is not registered.
        ValueError: If the backend is missing required settings.
    """
    backend = settings.sink_backend.strip().lower()
    if backend not in SINK_REGISTRY:
        raise KeyError(
            f"No sink registered for backend '{backend}'. Available: {list(SINK_REGISTRY)}"
        )
    if backend == "firestore":
        return FirestoreSink(
            project_id=settings.firestore_project_id,
            database=settings.firestore_database,
            access_token=settings.firestore_access_token,
            api_key=settings.firestore_api_key,
        )
    if backend == "postgres":
        return PostgresDocumentSink(dsn=settings.database_url)
    return InMemoryDocumentSink()
