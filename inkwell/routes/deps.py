"""Request-scoped dependencies resolved from ``app.state``."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from inkwell.ai import bridge
from inkwell.ai.sessions import SessionLifecycle, Summarizer
from inkwell.config import Settings
from inkwell.store import ManuscriptStore


def get_store(request: Request) -> ManuscriptStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def make_summarizer(settings: Settings) -> Optional[Summarizer]:
    """Summarizer bound to the configured provider, or None without an API key."""
    if not settings.openrouter_api_key:
        return None

    async def _summarize(messages: list[dict]) -> str:
        return await bridge.summarize(
            messages,
            settings.openrouter_api_key,
            model=settings.model,
            url=settings.openrouter_url,
        )

    return _summarize


def get_lifecycle(request: Request) -> SessionLifecycle:
    return SessionLifecycle(get_store(request), make_summarizer(get_settings(request)))
