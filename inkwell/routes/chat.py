"""Chat turn and action execution endpoints."""

from __future__ import annotations

import base64
import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from inkwell.ai.actions import decode_wire
from inkwell.ai.engine import ActionEngine, PageState
from inkwell.ai.sessions import SessionLifecycle
from inkwell.config import Settings
from inkwell.errors import ConfigurationError
from inkwell.pipeline.chat_turn import TurnContext, prepare_turn, run_chat_turn
from inkwell.routes.deps import get_lifecycle, get_settings, get_store
from inkwell.store import ManuscriptStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

_SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


class ChatRequest(BaseModel):
    messages: list[dict]
    book_id: int
    session_id: int


class ActionsRequest(BaseModel):
    actions: list[dict[str, Any]]
    state: PageState


@router.post("/chat")
async def chat(
    body: ChatRequest,
    store: ManuscriptStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Stream one turn as ``data:`` frames."""
    try:
        api_key = settings.require_openrouter_key()
    except ConfigurationError as exc:
        logger.error("[Chat] %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=500)

    ctx = prepare_turn(
        TurnContext(
            store=store,
            book_id=body.book_id,
            session_id=body.session_id,
            messages=body.messages,
            api_key=api_key,
            model=settings.model,
            url=settings.openrouter_url,
        )
    )
    return StreamingResponse(run_chat_turn(ctx), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.post("/actions")
async def execute_actions(
    body: ActionsRequest,
    store: ManuscriptStore = Depends(get_store),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> dict:
    """Apply a turn's actions to the page state and return what changed."""
    actions = decode_wire(body.actions)
    engine = ActionEngine(store, lifecycle)
    state = body.state
    report = await engine.execute(actions, state)
    return {
        "state": state.model_dump(),
        "summaries": report.summaries,
        "skipped": [{"tool": tool, "reason": reason.value} for tool, reason in report.skipped],
        "failed": [{"tool": tool, "error": error} for tool, error in report.failed],
        "downloads": [
            {
                "filename": d.filename,
                "media_type": d.media_type,
                "content_base64": base64.b64encode(d.content).decode("ascii"),
            }
            for d in report.downloads
        ],
        "read_aloud": report.read_aloud,
        "ai_notes": report.notes,
    }
