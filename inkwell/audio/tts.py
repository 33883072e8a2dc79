"""ElevenLabs text-to-speech client returning complete MP3 payloads."""

from __future__ import annotations

import enum
import logging
from typing import Optional

import httpx

from inkwell import constants
from inkwell.errors import UpstreamError
from inkwell.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()

PROVIDER = "ElevenLabs"


class Voice(str, enum.Enum):
    """The two fixed speaking identities: conversation and narration."""

    EDITOR = "editor"
    NARRATOR = "narrator"


class ElevenLabsTTS:
    """Synthesizes text with one of two fixed ElevenLabs voices.

    Parameters
    ----------
    api_key : str
        ElevenLabs API key (from ELEVENLABS_API_KEY env var).
    editor_voice_id : str
        Voice used for conversational replies.
    narrator_voice_id : str
        Voice used when reading manuscript content aloud.
    """

    def __init__(
        self,
        api_key: str,
        *,
        editor_voice_id: str = constants.EDITOR_VOICE_ID,
        narrator_voice_id: str = constants.NARRATOR_VOICE_ID,
        url: str = constants.ELEVENLABS_URL,
    ) -> None:
        self._api_key = api_key
        self._voice_ids = {Voice.EDITOR: editor_voice_id, Voice.NARRATOR: narrator_voice_id}
        self._url = url

    def voice_id(self, voice: Voice) -> str:
        return self._voice_ids[Voice(voice)]

    async def synthesize(
        self,
        text: str,
        voice: Voice = Voice.EDITOR,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> bytes:
        """Return ``audio/mpeg`` bytes for *text*.

        Raises ``UpstreamError`` on a non-2xx response; there is no retry.
        """
        voice_id = self.voice_id(voice)
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        body = {
            "text": text,
            "model_id": constants.ELEVENLABS_MODEL_ID,
            "voice_settings": {"stability": 0.6, "similarity_boost": 0.75},
        }

        with tracer.start_as_current_span("inkwell.tts") as span:
            span.set_attribute("inkwell.tts.voice", Voice(voice).value)
            span.set_attribute("inkwell.tts.chars", len(text))

            owns_client = client is None
            if client is None:
                client = httpx.AsyncClient(timeout=constants.TTS_TIMEOUT)
            try:
                response = await client.post(f"{self._url}/{voice_id}", headers=headers, json=body)
            finally:
                if owns_client:
                    await client.aclose()

            if not response.is_success:
                logger.error("[TTS] %s returned %d", PROVIDER, response.status_code)
                raise UpstreamError(PROVIDER, response.status_code, response.text)

            logger.debug("[TTS] Synthesized %d chars → %d bytes", len(text), len(response.content))
            return response.content
