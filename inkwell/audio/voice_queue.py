"""Sequential playback queue for synthesized speech.

Exactly one chunk plays at a time no matter how many ``enqueue`` calls
arrive. ``finalize`` marks the end of an utterance; its callback fires once
the queue has drained *and* finalize was signalled. ``stop`` empties the
queue, halts the player and cancels the drain task so the next enqueue
behaves as if nothing had been interrupted.

All state lives on the ``VoiceQueue`` instance and is only touched from the
event loop that owns it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from inkwell import constants
from inkwell.audio.tts import Voice

logger = logging.getLogger(__name__)

__all__ = ["Voice", "SpeechChunk", "AudioPlayer", "Recognizer", "VoiceQueue", "chunk_text"]


@dataclass(frozen=True)
class SpeechChunk:
    text: str
    voice: Voice


class AudioPlayer(Protocol):
    async def play(self, chunk: SpeechChunk) -> None:
        """Synthesize and play *chunk*, returning when playback has finished."""

    def halt(self) -> None:
        """Stop in-flight audio output immediately."""


class Recognizer(Protocol):
    async def pause(self) -> None: ...


def chunk_text(
    text: str,
    max_chars: int = constants.READ_ALOUD_MAX_CHUNK,
    min_break: int = constants.READ_ALOUD_MIN_BREAK,
) -> list[str]:
    """Split *text* at the last sentence end within *max_chars*.

    A break is only taken past *min_break* characters; otherwise the text is
    hard-cut at *max_chars*.
    """
    chunks: list[str] = []
    remaining = text.strip()
    while remaining:
        if len(remaining) <= max_chars:
            chunks.append(remaining)
            break
        window = remaining[:max_chars]
        cut = max(window.rfind(". "), window.rfind("! "), window.rfind("? "))
        if cut > min_break:
            chunks.append(remaining[: cut + 1])
            remaining = remaining[cut + 2 :]
        else:
            chunks.append(window)
            remaining = remaining[max_chars:]
    return chunks


class VoiceQueue:
    """Owns ``{queue, playing, stopped, finalized, done_callback}`` for one listener."""

    def __init__(self, player: AudioPlayer, recognizer: Optional[Recognizer] = None) -> None:
        self._player = player
        self._recognizer = recognizer
        self.queue: deque[SpeechChunk] = deque()
        self.playing = False
        self.stopped = False
        self.finalized = False
        self.done_callback: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_speaking(self) -> bool:
        return self.playing

    def enqueue(self, text: str, voice: Voice = Voice.EDITOR) -> None:
        """Append a chunk; starts draining if the queue is idle. Blank text is ignored."""
        text = text.strip()
        if not text:
            return
        self.queue.append(SpeechChunk(text=text, voice=Voice(voice)))
        if not self.playing:
            self._start_drain()

    def finalize(self, on_done: Optional[Callable[[], None]] = None) -> None:
        """Signal that no more chunks are coming for this utterance."""
        self.done_callback = on_done
        self.finalized = True
        if not self.queue and not self.playing:
            self._fire_done()

    def stop(self) -> None:
        self.stopped = True
        self.queue.clear()
        self.done_callback = None
        self.finalized = False
        self._player.halt()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.playing = False
        self.stopped = False

    def read_aloud(self, text: str, on_done: Optional[Callable[[], None]] = None) -> None:
        """Interrupt current speech and narrate *text* in sentence-sized chunks."""
        if not text.strip():
            return
        self.stop()
        for chunk in chunk_text(text):
            self.enqueue(chunk, Voice.NARRATOR)
        self.finalize(on_done)

    def _start_drain(self) -> None:
        self.playing = True
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        # Cancellation by stop() propagates out of the awaits below, leaving
        # state untouched; stop() has already reset it.
        if self._recognizer is not None:
            await self._recognizer.pause()

        while self.queue:
            if self.stopped:
                break
            chunk = self.queue.popleft()
            try:
                await self._player.play(chunk)
            except Exception as exc:
                logger.warning("[VoiceQueue] Playback failed for %d-char chunk: %s", len(chunk.text), exc)

        self.playing = False
        self._task = None
        if self.finalized and not self.queue and not self.stopped:
            self._fire_done()

    def _fire_done(self) -> None:
        callback = self.done_callback
        self.done_callback = None
        self.finalized = False
        if callback is not None:
            callback()
