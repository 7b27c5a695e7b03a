from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import authorize_client, request_origin
from models.schemas import ChatTurnRequest, WireModel


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

FAILURE_REPLY = "Something went wrong."


class ChatResetRequest(WireModel):
    client_id: str | None = None
    conversation_id: str | None = None


def _orchestrator(request: Request):
    return request.app.state.orchestrator


@router.post("/message")
async def post_chat_message(payload: ChatTurnRequest, request: Request):
    if not payload.message or not payload.message.strip():
        raise HTTPException(status_code=400, detail="missing_message")
    client = authorize_client(request, payload.client_id, request_origin(request, payload.site_context))
    try:
        response = await _orchestrator(request).handle_turn(payload, client)
    except Exception:
        logger.exception("chat_turn_failed", extra={"client_id": client.client_id, "conversation_id": payload.conversation_id})
        return JSONResponse({"reply": FAILURE_REPLY}, status_code=500)
    return response.model_dump(mode="json", by_alias=True)


@router.post("/reset")
async def reset_conversation(payload: ChatResetRequest, request: Request):
    client = authorize_client(request, payload.client_id, request_origin(request))
    result = await _orchestrator(request).reset_conversation(client, payload.conversation_id)
    return {
        "conversationId": result["conversation_id"],
        "signals": result["signals"].model_dump(mode="json", by_alias=True),
        "history": result["history"],
    }
