"""FastAPI app — manuscript API, streaming chat turn and the voice WebSocket.

Data flow for one turn:
  1. ``POST /api/chat`` persists the user message and assembles the system prompt.
  2. The provider stream is relayed as ``token`` frames while it arrives.
  3. Private notes are appended server-side (``ai_notes`` frames); the rest of
     the turn's actions go to the client in one ``actions`` frame.
  4. The client posts those actions with its page state to ``/api/actions``,
     where the engine applies them in order.
  5. Assistant text is spoken through ``/ws/voice``, one chunk at a time.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from inkwell import __version__
from inkwell.audio.tts import ElevenLabsTTS
from inkwell.config import Settings
from inkwell.errors import (
    ConfigurationError,
    NotFoundError,
    NothingToUndoError,
    UpstreamError,
    error_from_exception,
    send_error,
)
from inkwell.pipeline.voice_phase import VoiceSession
from inkwell.routes.chat import router as chat_router
from inkwell.routes.manuscript import router as manuscript_router
from inkwell.store import ManuscriptStore
from inkwell.telemetry import init_telemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load settings, open the store and start tracing."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_telemetry()

    app.state.settings = settings
    app.state.store = ManuscriptStore.from_url(settings.database_url)
    logger.info("Inkwell %s ready (model=%s).", __version__, settings.model)

    yield


app = FastAPI(title="Inkwell", version=__version__, lifespan=lifespan)
app.include_router(manuscript_router)
app.include_router(chat_router)


@app.exception_handler(NothingToUndoError)
async def _nothing_to_undo(request: Request, exc: NothingToUndoError) -> JSONResponse:
    return JSONResponse({"error": "nothing to undo"}, status_code=404)


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"error": "not found"}, status_code=404)


@app.exception_handler(ConfigurationError)
async def _config_missing(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("[Config] %s", exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.exception_handler(UpstreamError)
async def _upstream_failed(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("[Upstream] %s", exc)
    return JSONResponse({"error": str(exc)}, status_code=502)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.websocket("/ws/voice")
async def voice(websocket: WebSocket) -> None:
    await websocket.accept()
    settings: Settings = websocket.app.state.settings

    try:
        api_key = settings.require_elevenlabs_key()
    except ConfigurationError as exc:
        await send_error(websocket, error_from_exception(exc))
        await websocket.close()
        return

    tts = ElevenLabsTTS(
        api_key,
        editor_voice_id=settings.editor_voice_id,
        narrator_voice_id=settings.narrator_voice_id,
    )
    session = VoiceSession(websocket, tts)
    logger.info("[Voice] Client connected.")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("[Voice] Non-JSON text message ignored")
                continue
            if isinstance(payload, dict):
                await session.handle(payload)
    except WebSocketDisconnect:
        logger.info("[Voice] Client disconnected")
    finally:
        session.close()
