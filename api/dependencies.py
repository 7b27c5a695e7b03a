from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request

from tenants.registry import ClientConfig


logger = logging.getLogger(__name__)


def request_origin(request: Request, site_context: Dict[str, Any] | None = None) -> str | None:
    """Browser Origin header; the widget's reported site origin is used only when the header is absent."""
    origin = (request.headers.get("origin") or "").strip()
    if origin:
        return origin
    reported = (site_context or {}).get("origin")
    return reported.strip() if isinstance(reported, str) and reported.strip() else None


def authorize_client(request: Request, client_id: str | None, origin: str | None) -> ClientConfig:
    if not client_id or not client_id.strip():
        raise HTTPException(status_code=400, detail="missing_client_id")
    if not origin:
        raise HTTPException(status_code=400, detail="missing_origin")
    registry = request.app.state.client_registry
    client = registry.try_load(client_id)
    if client is None:
        logger.warning("unknown_client_rejected", extra={"client_id": client_id})
        raise HTTPException(status_code=403, detail="unknown_client")
    if not registry.is_origin_allowed(origin, client):
        logger.warning("origin_rejected", extra={"client_id": client_id, "origin": origin})
        raise HTTPException(status_code=403, detail="origin_not_allowed")
    return client
