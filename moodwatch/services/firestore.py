"""Firestore document sink over the Cloud Firestore v1 REST API.

Endpoints used:
    POST  {base}/{collection_path}                — create with an auto id
    PATCH {base}/{collection_path}/{document_id}  — create or replace a document
    GET   {base}/users?pageSize=1                 — reachability probe

where ``base`` is
``https://firestore.googleapis.com/v1/projects/{project}/databases/{database}/documents``.

Authentication is an OAuth2 bearer token (``FIRESTORE_ACCESS_TOKEN``), an API
key (``FIRESTORE_API_KEY``), or both.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from moodwatch.services.sink import DocumentSink, SinkError

logger = logging.getLogger("moodwatch.sink.firestore")

_FIRESTORE_API_BASE = "https://firestore.googleapis.com/v1"


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed ``Value``.

    Raises:
        TypeError: For values Firestore records do not carry here.
    """
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Unsupported Firestore value type: {type(value).__name__}")


def encode_fields(record: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(val) for key, val in record.items()}


class FirestoreSink(DocumentSink):
    """Write documents to Cloud Firestore.

    Args:
        project_id:   GCP project id.
        database:     Firestore database id, usually ``(default)``.
        access_token: OAuth2 bearer token.
        api_key:      Web API key.
        http_client:  Optional pre-configured httpx client (for testing).
        timeout_s:    Per-request timeout when this sink owns the client.
    """

    BACKEND = "firestore"

    def __init__(
        self,
        project_id: str,
        database: str = "(default)",
        access_token: str = "",
        api_key: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        if not project_id:
            raise ValueError("FIRESTORE_PROJECT_ID is required for the firestore sink")
        self._base = f"{_FIRESTORE_API_BASE}/projects/{project_id}/databases/{database}/documents"
        self._access_token = access_token
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)

    def _headers(self) -> dict[str, str]:
        if self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        return {}

    def _params(self) -> dict[str, str]:
        return {"key": self._api_key} if self._api_key else {}

    async def put(
        self,
        collection_path: str,
        record: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        body = {"fields": encode_fields(record)}
        try:
            if document_id:
                # PATCH without an updateMask replaces the whole document
                response = await self._client.patch(
                    f"{self._base}/{collection_path}/{document_id}",
                    json=body,
                    headers=self._headers(),
                    params=self._params(),
                )
            else:
                response = await self._client.post(
                    f"{self._base}/{collection_path}",
                    json=body,
                    headers=self._headers(),
                    params=self._params(),
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SinkError(
                f"Firestore rejected write to {collection_path}: "
                f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SinkError(f"Firestore unreachable: {exc}") from exc

        name = response.json().get("name", "")
        return name.rsplit("/", 1)[-1] if name else (document_id or "")

    async def ping(self) -> bool:
        try:
            response = await self._client.get(
                f"{self._base}/users",
                headers=self._headers(),
                params={**self._params(), "pageSize": "1"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Firestore probe failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
