"""Chat turn phase — one streaming request from user message to ``[DONE]``.

Frames, in order: one ``stats``; a ``token`` per text fragment as it
arrives; an ``ai_notes`` after every private-note append; at most one
``actions`` frame after the stream completes; then ``[DONE]``. Any failure
after streaming began is reported as a single ``error`` frame and nothing
further is persisted for the turn.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, Optional

from inkwell import constants
from inkwell.ai.actions import Action, ToolName, decode_action
from inkwell.ai.bridge import TextDelta, ToolCalls, stream_chat
from inkwell.ai.context import build_system_prompt
from inkwell.ai.extraction import extract
from inkwell.errors import error_from_exception
from inkwell.store import ManuscriptStore
from inkwell.telemetry import current_trace_id, get_tracer
from inkwell.utils import estimate_tokens

logger = logging.getLogger(__name__)
tracer = get_tracer()


def sse(payload: Any) -> str:
    return f"data: {json.dumps(payload)}\n\n"


DONE_FRAME = "data: [DONE]\n\n"


@dataclass
class TurnContext:
    """Everything one chat turn needs, resolved before the response starts."""

    store: ManuscriptStore
    book_id: int
    session_id: int
    messages: list[dict]
    api_key: str
    system_prompt: str = ""
    model: str = constants.DEFAULT_MODEL
    url: str = constants.OPENROUTER_URL
    stream: Optional[Callable[..., AsyncGenerator]] = None
    assistant_text: str = ""
    actions: list[Action] = field(default_factory=list)


def prepare_turn(ctx: TurnContext) -> TurnContext:
    """Persist the user's message and build the system prompt.

    Runs before the streaming response is opened so that store failures
    surface as ordinary HTTP errors.
    """
    with tracer.start_as_current_span("inkwell.context") as span:
        span.set_attribute("inkwell.book_id", ctx.book_id)
        last = ctx.messages[-1] if ctx.messages else None
        if last and last.get("role") == "user":
            ctx.store.add_message(ctx.session_id, "user", last["content"])
        ctx.system_prompt = build_system_prompt(ctx.store, ctx.book_id)
        span.set_attribute("inkwell.prompt_chars", len(ctx.system_prompt))
    return ctx


def stats_frame(ctx: TurnContext) -> str:
    system_tokens = estimate_tokens(ctx.system_prompt)
    chat_tokens = estimate_tokens("".join(m.get("content", "") for m in ctx.messages))
    return sse({
        "type": "stats",
        "systemTokens": system_tokens,
        "chatTokens": chat_tokens,
        "totalTokens": system_tokens + chat_tokens,
        "modelMax": constants.MODEL_CONTEXT_BUDGET,
    })


async def run_chat_turn(ctx: TurnContext) -> AsyncGenerator[str, None]:
    """Yield the SSE frames for one turn."""
    try:
        yield stats_frame(ctx)

        raw_text = ""
        tool_actions: list[Action] = []
        with tracer.start_as_current_span("inkwell.stream") as span:
            stream = ctx.stream or stream_chat
            async for event in stream(
                ctx.messages, ctx.system_prompt, ctx.api_key, model=ctx.model, url=ctx.url
            ):
                if isinstance(event, TextDelta):
                    raw_text += event.content
                    yield sse({"type": "token", "content": event.content})
                elif isinstance(event, ToolCalls):
                    for call in event.calls:
                        action = decode_action(call.name, call.arguments)
                        if action is not None:
                            tool_actions.append(action)
            span.set_attribute("inkwell.response_chars", len(raw_text))

        extraction = extract(raw_text)
        ctx.assistant_text = extraction.visible_text
        ctx.actions = tool_actions + extraction.actions

        notes = extraction.notes + [a.args.note for a in ctx.actions if a.tool is ToolName.SAVE_NOTE]
        for note in notes:
            value = ctx.store.append_note(ctx.book_id, constants.NOTE_AI_INSTRUCTIONS, note)
            yield sse({"type": "ai_notes", "value": value})

        ui_actions = [a.to_wire() for a in ctx.actions if a.tool is not ToolName.SAVE_NOTE]
        if ui_actions:
            yield sse({"type": "actions", "actions": ui_actions})

        ctx.store.add_message(ctx.session_id, "assistant", ctx.assistant_text)
        ctx.store.log_event(
            book_id=ctx.book_id,
            session_id=ctx.session_id,
            action="chat_message",
            entity_type="session",
            entity_id=ctx.session_id,
            chat_snapshot=[*ctx.messages, {"role": "assistant", "content": ctx.assistant_text}],
            source="ai",
        )
        logger.info(
            "[ChatTurn] book=%d session=%d chars=%d actions=%d notes=%d",
            ctx.book_id, ctx.session_id, len(ctx.assistant_text), len(ui_actions), len(notes),
        )
        yield DONE_FRAME
    except Exception as exc:
        logger.error("[ChatTurn] Turn failed (trace=%s): %s", current_trace_id(), exc, exc_info=True)
        yield error_from_exception(exc, session_id=ctx.session_id).to_frame()
