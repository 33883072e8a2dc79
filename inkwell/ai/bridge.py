"""Streaming chat bridge to the OpenRouter chat-completions endpoint.

``stream_chat`` opens one streaming POST and re-emits normalized events:
``TextDelta`` for every content fragment as it arrives, then a single
``ToolCalls`` once the stream has ended. Tool-call fragments are accumulated
per slot index (name overwrites, arguments concatenate) and only calls whose
argument string parses to a JSON object survive.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncGenerator, Optional, Union

import httpx

from inkwell import constants
from inkwell.ai.actions import TOOLS
from inkwell.errors import UpstreamError

logger = logging.getLogger(__name__)

PROVIDER = "OpenRouter"

SUMMARY_PROMPT = """Summarize this conversation concisely. Capture:
- Key topics and decisions made
- Important content/ideas shared for the book
- Any preferences or style notes mentioned
- Where we left off

Keep it under 300 words. This summary will replace the old messages to save context space."""


@dataclass
class TextDelta:
    content: str


@dataclass
class ToolCall:
    name: str
    arguments: dict


@dataclass
class ToolCalls:
    calls: list[ToolCall] = field(default_factory=list)


StreamEvent = Union[TextDelta, ToolCalls]


def _headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}


class _ToolCallAccumulator:
    """Collects streamed tool-call fragments keyed by slot index."""

    def __init__(self) -> None:
        self._slots: dict[int, dict[str, str]] = {}

    def add(self, fragments: list[dict]) -> None:
        for fragment in fragments:
            index = fragment.get("index") or 0
            slot = self._slots.setdefault(index, {"name": "", "arguments": ""})
            function = fragment.get("function") or {}
            if function.get("name"):
                slot["name"] = function["name"]
            if function.get("arguments"):
                slot["arguments"] += function["arguments"]

    def completed(self) -> list[ToolCall]:
        calls = []
        for index in sorted(self._slots):
            slot = self._slots[index]
            if not slot["name"]:
                continue
            try:
                arguments = json.loads(slot["arguments"])
            except json.JSONDecodeError:
                logger.debug("[Bridge] Dropping %s: arguments are not valid JSON", slot["name"])
                continue
            if not isinstance(arguments, dict):
                continue
            calls.append(ToolCall(name=slot["name"], arguments=arguments))
        return calls


def _parse_frame(line: str) -> Optional[dict]:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("[Bridge] Skipping malformed frame: %.80s", line)
        return None
    return payload if isinstance(payload, dict) else None


async def stream_chat(
    messages: list[dict],
    system_prompt: str,
    api_key: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    model: str = constants.DEFAULT_MODEL,
    url: str = constants.OPENROUTER_URL,
) -> AsyncGenerator[StreamEvent, None]:
    """Stream one completion and yield ``TextDelta`` / ``ToolCalls`` events.

    Raises ``UpstreamError`` before yielding anything when the provider
    answers with a non-2xx status.
    """
    body = {
        "model": model,
        "messages": [{"role": "system", "content": system_prompt}, *messages],
        "tools": TOOLS,
        "max_tokens": constants.CHAT_MAX_TOKENS,
        "stream": True,
    }

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=constants.PROVIDER_TIMEOUT)

    accumulator = _ToolCallAccumulator()
    try:
        async with client.stream("POST", url, headers=_headers(api_key), json=body) as response:
            if not response.is_success:
                text = (await response.aread()).decode("utf-8", errors="replace")
                logger.error("[Bridge] %s returned %d", PROVIDER, response.status_code)
                raise UpstreamError(PROVIDER, response.status_code, text)

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[6:].strip()
                if data == "[DONE]":
                    break
                frame = _parse_frame(data)
                if frame is None:
                    continue
                choices = frame.get("choices") or [{}]
                delta = choices[0].get("delta") if isinstance(choices[0], dict) else None
                if not delta:
                    continue
                if delta.get("content"):
                    yield TextDelta(delta["content"])
                if delta.get("tool_calls"):
                    accumulator.add(delta["tool_calls"])
    finally:
        if owns_client:
            await client.aclose()

    calls = accumulator.completed()
    if calls:
        logger.info("[Bridge] Stream finished with %d tool call(s)", len(calls))
        yield ToolCalls(calls)


async def summarize(
    messages: list[dict],
    api_key: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    model: str = constants.DEFAULT_MODEL,
    url: str = constants.OPENROUTER_URL,
) -> str:
    """Ask the model for a short summary of *messages* (non-streaming)."""
    body = {
        "model": model,
        "messages": [*messages, {"role": "user", "content": SUMMARY_PROMPT}],
        "max_tokens": constants.SUMMARY_MAX_TOKENS,
    }

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=constants.PROVIDER_TIMEOUT)
    try:
        response = await client.post(url, headers=_headers(api_key), json=body)
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise UpstreamError(PROVIDER, response.status_code, response.text)
    return response.json()["choices"][0]["message"]["content"]
