"""Tests for SessionLifecycle: wrap, start-new and the previous-summary hand-off.

Run:
    pytest tests/test_sessions.py -v
"""

from unittest.mock import AsyncMock

import pytest

from inkwell.ai.context import build_system_prompt
from inkwell.ai.sessions import SessionLifecycle

CHAT = [
    {"role": "user", "content": "Let's plan chapter one."},
    {"role": "assistant", "content": "Sure, what's the hook?"},
]


class TestCurrent:
    def test_creates_first_session(self, store, book):
        lifecycle = SessionLifecycle(store)
        session = lifecycle.current(book["id"])
        assert lifecycle.current(book["id"])["id"] == session["id"]

    def test_no_previous_summary_without_history(self, store, book):
        lifecycle = SessionLifecycle(store)
        lifecycle.current(book["id"])
        assert lifecycle.previous_summary(book["id"]) is None


class TestWrap:
    @pytest.mark.asyncio
    async def test_wrap_with_given_summary(self, store, book):
        summarizer = AsyncMock(return_value="generated")
        lifecycle = SessionLifecycle(store, summarizer)
        current = lifecycle.current(book["id"])

        result = await lifecycle.wrap(book["id"], current["id"], CHAT, summary="We planned.")

        summarizer.assert_not_called()
        assert result.summary == "We planned."
        assert result.session["id"] != current["id"]
        assert store.get_session(current["id"])["summary"] == "We planned."
        assert lifecycle.current(book["id"])["id"] == result.session["id"]

    @pytest.mark.asyncio
    async def test_wrap_generates_summary_from_conversation(self, store, book):
        summarizer = AsyncMock(return_value="generated")
        lifecycle = SessionLifecycle(store, summarizer)
        current = lifecycle.current(book["id"])

        result = await lifecycle.wrap(
            book["id"], current["id"], CHAT + [{"role": "action", "content": "Added a task"}]
        )

        assert result.summary == "generated"
        summarizer.assert_awaited_once_with(CHAT)

    @pytest.mark.asyncio
    async def test_start_new_without_conversation_skips_wrap(self, store, book):
        lifecycle = SessionLifecycle(store)
        current = lifecycle.current(book["id"])
        wrapped = await lifecycle.wrap(book["id"], current["id"], CHAT, summary="Outlined the intro.")

        started = await lifecycle.start_new(book["id"], wrapped.session["id"], [])

        assert started.summary is None
        prompt = build_system_prompt(store, book["id"])
        assert "## Previous Session Summary" not in prompt

    @pytest.mark.asyncio
    async def test_previous_summary_right_after_wrap(self, store, book):
        lifecycle = SessionLifecycle(store)
        current = lifecycle.current(book["id"])
        await lifecycle.wrap(book["id"], current["id"], CHAT, summary="Outlined the intro.")

        assert lifecycle.previous_summary(book["id"]) == "Outlined the intro."
        assert "## Previous Session Summary\nOutlined the intro." in build_system_prompt(store, book["id"])


class TestStartNew:
    @pytest.mark.asyncio
    async def test_wraps_current_with_given_summary(self, store, book):
        lifecycle = SessionLifecycle(store)
        current = lifecycle.current(book["id"])

        result = await lifecycle.start_new(book["id"], current["id"], CHAT, summary="Talked about roots.")

        assert store.get_session(current["id"])["summary"] == "Talked about roots."
        assert result.summary == "Talked about roots."
        assert lifecycle.previous_summary(book["id"]) == "Talked about roots."

    @pytest.mark.asyncio
    async def test_action_only_history_is_not_wrapped(self, store, book):
        lifecycle = SessionLifecycle(store, AsyncMock(return_value="unused"))
        current = lifecycle.current(book["id"])

        result = await lifecycle.start_new(
            book["id"], current["id"], [{"role": "action", "content": "Switched chapters"}]
        )

        assert store.get_session(current["id"])["summary"] is None
        assert result.session["id"] != current["id"]

    @pytest.mark.asyncio
    async def test_default_summary_without_summarizer(self, store, book):
        lifecycle = SessionLifecycle(store)
        current = lifecycle.current(book["id"])
        await lifecycle.start_new(book["id"], current["id"], CHAT)
        assert store.get_session(current["id"])["summary"] == "Session ended by AI."

    @pytest.mark.asyncio
    async def test_default_summary_never_calls_summarizer(self, store, book):
        summarizer = AsyncMock(return_value="model summary")
        lifecycle = SessionLifecycle(store, summarizer)
        current = lifecycle.current(book["id"])
        await lifecycle.start_new(book["id"], current["id"], CHAT)
        assert store.get_session(current["id"])["summary"] == "Session ended by AI."
        summarizer.assert_not_called()
