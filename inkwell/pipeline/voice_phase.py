"""Voice phase — a server-side VoiceQueue driven over a WebSocket.

Client → server messages::

    {"type": "speak", "text": "...", "voice": "editor"}
    {"type": "finalize"}
    {"type": "read_aloud", "text": "..."}
    {"type": "stop"}
    {"type": "chunk_played"}            # the client finished playing a chunk

Server → client: ``pause_listening`` before playback starts, then per chunk
``tts_start`` / binary MP3 frame / ``tts_end``; ``playback_done`` when a
finalized utterance has drained; ``tts_stop`` after a stop. Resuming speech
recognition is left to the client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from inkwell.audio.tts import ElevenLabsTTS, Voice
from inkwell.audio.voice_queue import SpeechChunk, VoiceQueue
from inkwell.errors import UpstreamError, error_from_exception, send_error
from inkwell.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()

PLAYBACK_ACK_TIMEOUT = 120.0


class WebSocketAudioPlayer:
    """Synthesizes a chunk, sends it to the client and waits for its playback ack."""

    def __init__(self, websocket: WebSocket, tts: ElevenLabsTTS, ack_timeout: float = PLAYBACK_ACK_TIMEOUT) -> None:
        self._websocket = websocket
        self._tts = tts
        self._ack_timeout = ack_timeout
        self._played = asyncio.Event()

    async def play(self, chunk: SpeechChunk) -> None:
        with tracer.start_as_current_span("inkwell.voice.chunk", attributes={"text.len": len(chunk.text)}):
            try:
                audio = await self._tts.synthesize(chunk.text, chunk.voice)
            except UpstreamError as exc:
                await send_error(self._websocket, error_from_exception(exc))
                raise

            self._played.clear()
            await self._websocket.send_json({"type": "tts_start", "voice": chunk.voice.value})
            await self._websocket.send_bytes(audio)
            await self._websocket.send_json({"type": "tts_end"})
            try:
                await asyncio.wait_for(self._played.wait(), timeout=self._ack_timeout)
            except asyncio.TimeoutError:
                logger.warning("[Voice] No playback ack after %.0fs, moving on", self._ack_timeout)

    def acknowledge(self) -> None:
        self._played.set()

    def halt(self) -> None:
        self._played.set()


class WebSocketRecognizer:
    """Asks the client to pause its speech recognition; the client resumes on its own."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def pause(self) -> None:
        await self._websocket.send_json({"type": "pause_listening"})


class VoiceSession:
    """Routes control messages from one WebSocket into its own VoiceQueue."""

    def __init__(self, websocket: WebSocket, tts: ElevenLabsTTS) -> None:
        self._websocket = websocket
        self.player = WebSocketAudioPlayer(websocket, tts)
        self.queue = VoiceQueue(self.player, WebSocketRecognizer(websocket))
        self._sends: set[asyncio.Task] = set()

    def _playback_done(self) -> None:
        task = asyncio.get_running_loop().create_task(self._websocket.send_json({"type": "playback_done"}))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def handle(self, payload: dict) -> None:
        msg_type = payload.get("type", "")
        if msg_type == "speak":
            self.queue.enqueue(payload.get("text", ""), _voice(payload.get("voice")))
        elif msg_type == "finalize":
            self.queue.finalize(self._playback_done)
        elif msg_type == "read_aloud":
            self.queue.read_aloud(payload.get("text", ""), self._playback_done)
        elif msg_type == "stop":
            self.queue.stop()
            await self._websocket.send_json({"type": "tts_stop"})
        elif msg_type == "chunk_played":
            self.player.acknowledge()
        else:
            logger.debug("[Voice] Control message ignored: %s", payload)

    def close(self) -> None:
        self.queue.stop()
        for task in list(self._sends):
            task.cancel()


def _voice(value: Optional[str]) -> Voice:
    try:
        return Voice(value or Voice.EDITOR.value)
    except ValueError:
        return Voice.EDITOR
