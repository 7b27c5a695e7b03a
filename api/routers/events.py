from __future__ import annotations

from fastapi import APIRouter, Request

from api.dependencies import authorize_client, request_origin
from models.schemas import CtaClickRequest


router = APIRouter(prefix="/events", tags=["events"])


@router.post("/cta-click")
async def post_cta_click(payload: CtaClickRequest, request: Request):
    client = authorize_client(request, payload.client_id, request_origin(request))
    signals = await request.app.state.orchestrator.record_cta_click(payload, client)
    return {"ok": True, "signals": signals.model_dump(mode="json", by_alias=True)}
