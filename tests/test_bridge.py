"""Tests for the streaming chat bridge and summarizer against a mocked provider.

Run:
    pytest tests/test_bridge.py -v
"""

import json

import httpx
import pytest

from inkwell.ai.bridge import SUMMARY_PROMPT, TextDelta, ToolCalls, stream_chat, summarize
from inkwell.errors import UpstreamError


class _ChunkedStream(httpx.AsyncByteStream):
    """Byte stream delivered in arbitrary chunks, like a real network read."""

    def __init__(self, chunks):
        self._chunks = chunks

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


def _frame(delta):
    return "data: " + json.dumps({"choices": [{"delta": delta}]}, ensure_ascii=False) + "\n"


def _client(chunks, status=200, captured=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(json.loads(request.content))
        return httpx.Response(status, stream=_ChunkedStream(chunks))

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(client, messages=None):
    events = []
    async for event in stream_chat(messages or [{"role": "user", "content": "hi"}], "SYSTEM", "key", client=client):
        events.append(event)
    return events


class TestStreamChat:
    @pytest.mark.asyncio
    async def test_text_deltas_in_order(self):
        body = _frame({"content": "Hel"}) + _frame({"content": "lo"}) + "data: [DONE]\n"
        async with _client([body.encode()]) as client:
            events = await _collect(client)
        assert events == [TextDelta("Hel"), TextDelta("lo")]

    @pytest.mark.asyncio
    async def test_partial_lines_and_split_utf8_are_held_over(self):
        raw = (_frame({"content": "café"}) + "data: [DONE]\n").encode()
        split = raw.index("é".encode()) + 1  # cut inside the two-byte character
        async with _client([raw[:10], raw[10:split], raw[split:]]) as client:
            events = await _collect(client)
        assert events == [TextDelta("café")]

    @pytest.mark.asyncio
    async def test_tool_calls_accumulate_by_index(self):
        body = (
            _frame({"content": "Adding it."})
            + _frame({"tool_calls": [{"index": 0, "function": {"name": "add_chapter", "arguments": '{"ti'}}]})
            + _frame({"tool_calls": [{"index": 1, "function": {"name": "go_to_chapter", "arguments": '{"position":'}}]})
            + _frame({"tool_calls": [{"index": 0, "function": {"arguments": 'tle": "Roots"}'}}]})
            + _frame({"tool_calls": [{"index": 1, "function": {"arguments": " 2}"}}]})
            + "data: [DONE]\n"
        )
        async with _client([body.encode()]) as client:
            events = await _collect(client)

        assert events[0] == TextDelta("Adding it.")
        assert isinstance(events[1], ToolCalls)
        assert [(c.name, c.arguments) for c in events[1].calls] == [
            ("add_chapter", {"title": "Roots"}),
            ("go_to_chapter", {"position": 2}),
        ]

    @pytest.mark.asyncio
    async def test_invalid_tool_arguments_are_dropped(self):
        body = (
            _frame({"tool_calls": [{"index": 0, "function": {"name": "add_chapter", "arguments": '{"title": '}}]})
            + "data: [DONE]\n"
        )
        async with _client([body.encode()]) as client:
            events = await _collect(client)
        assert events == []

    @pytest.mark.asyncio
    async def test_malformed_frames_and_comments_are_skipped(self):
        body = ": keep-alive\n" + "data: {oops\n" + _frame({"content": "ok"}) + "data: [DONE]\n"
        async with _client([body.encode()]) as client:
            events = await _collect(client)
        assert events == [TextDelta("ok")]

    @pytest.mark.asyncio
    async def test_done_ends_the_stream(self):
        body = _frame({"content": "a"}) + "data: [DONE]\n" + _frame({"content": "late"})
        async with _client([body.encode()]) as client:
            events = await _collect(client)
        assert events == [TextDelta("a")]

    @pytest.mark.asyncio
    async def test_request_body(self):
        captured = []
        async with _client([b"data: [DONE]\n"], captured=captured) as client:
            await _collect(client, [{"role": "user", "content": "hello"}])

        body = captured[0]
        assert body["stream"] is True
        assert body["max_tokens"] == 4096
        assert body["messages"][0] == {"role": "system", "content": "SYSTEM"}
        assert body["messages"][1] == {"role": "user", "content": "hello"}
        assert {t["function"]["name"] for t in body["tools"]} >= {"add_paragraph", "save_note"}

    @pytest.mark.asyncio
    async def test_non_success_raises_before_any_event(self):
        async with _client([b"rate limited"], status=429) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await _collect(client)
        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "rate limited"
        assert str(exc_info.value) == "OpenRouter 429: rate limited"


class TestSummarize:
    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": "We talked."}}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            summary = await summarize([{"role": "user", "content": "hi"}], "key", client=client)

        assert summary == "We talked."
        assert captured[0]["max_tokens"] == 512
        assert captured[0]["messages"][-1] == {"role": "user", "content": SUMMARY_PROMPT}
        assert "stream" not in captured[0]

    @pytest.mark.asyncio
    async def test_failure_raises_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(UpstreamError):
                await summarize([], "key", client=client)
