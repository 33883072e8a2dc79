"""Session lifecycle — the running conversation per book.

ACTIVE is the only steady state. A wrap writes a summary onto the current
session and immediately opens the next one; that summary is what the
context assembler later shows as the previous session. Sessions closed
without a wrap keep a null summary and are never surfaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from inkwell import constants
from inkwell.store import ManuscriptStore

logger = logging.getLogger(__name__)

Summarizer = Callable[[list[dict]], Awaitable[str]]

_CONVERSATION_ROLES = ("user", "assistant")


@dataclass
class WrapResult:
    session: dict
    summary: Optional[str]


def conversation_messages(messages: list[dict]) -> list[dict]:
    """Keep only user/assistant turns, in the shape the provider expects."""
    return [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in _CONVERSATION_ROLES
    ]


class SessionLifecycle:
    def __init__(self, store: ManuscriptStore, summarizer: Optional[Summarizer] = None) -> None:
        self._store = store
        self._summarizer = summarizer

    def current(self, book_id: int) -> dict:
        """Return the most recent session, creating the first one if none exists."""
        recent = self._store.recent_sessions(book_id, limit=1)
        if recent:
            return recent[0]
        logger.info("[Sessions] Starting first session for book %d", book_id)
        return self._store.create_session(book_id)

    def previous_summary(self, book_id: int) -> Optional[str]:
        """Summary of the session immediately before the current one, if it has one."""
        recent = self._store.recent_sessions(book_id, limit=2)
        if len(recent) < 2:
            return None
        return recent[1]["summary"]

    async def summarize(self, messages: list[dict]) -> Optional[str]:
        history = conversation_messages(messages)
        if self._summarizer is None or not history:
            return None
        return await self._summarizer(history)

    async def wrap(
        self,
        book_id: int,
        session_id: int,
        messages: list[dict],
        summary: Optional[str] = None,
    ) -> WrapResult:
        """Close *session_id* with a summary and open the next session.

        Uses *summary* when given, otherwise summarizes *messages*.
        """
        if not summary:
            summary = await self.summarize(messages)
        self._store.update_session(session_id, summary=summary)
        new_session = self._store.create_session(book_id)
        logger.info("[Sessions] Wrapped session %d → %d", session_id, new_session["id"])
        return WrapResult(session=new_session, summary=summary)

    async def start_new(
        self,
        book_id: int,
        session_id: int,
        messages: list[dict],
        summary: Optional[str] = None,
    ) -> WrapResult:
        """Open a fresh session, wrapping the current one first if anything was said in it.

        The wrapped session keeps *summary*, or a fixed default; no model call is made.
        """
        if any(m.get("role") != "action" for m in messages):
            summary = summary or constants.DEFAULT_NEW_SESSION_SUMMARY
            self._store.update_session(session_id, summary=summary)
        else:
            summary = None

        new_session = self._store.create_session(book_id)
        logger.info("[Sessions] New session %d for book %d", new_session["id"], book_id)
        return WrapResult(session=new_session, summary=summary)
