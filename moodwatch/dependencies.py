"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from moodwatch.config import Settings, get_settings
from moodwatch.sampling.service import CollectionService


def get_collection_service(request: Request) -> CollectionService:
    """Return the CollectionService created by the application lifespan."""
    service: CollectionService | None = getattr(request.app.state, "collection", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Collection service not started")
    return service


async def require_device_token(
    settings: Annotated[Settings, Depends(get_settings)],
    x_device_token: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests without the shared device token, when one is configured."""
    if not settings.device_token:
        return
    if x_device_token is None or not hmac.compare_digest(x_device_token, settings.device_token):
        raise HTTPException(status_code=401, detail="Invalid device token")


# Annotated shortcuts for route signatures
Collection = Annotated[CollectionService, Depends(get_collection_service)]
AppSettings = Annotated[Settings, Depends(get_settings)]
