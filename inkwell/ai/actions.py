"""Action vocabulary — the closed set of tools the writing partner may call.

Every tool has one pydantic argument model. The provider schema (``TOOLS``)
is derived from those models with langchain's function-calling converter,
and the same models validate actions decoded from inline ``<<ACTION: ...>>``
tags, so both transports share a single source of truth.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from langchain_core.utils.function_calling import convert_to_openai_function
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ToolName(str, enum.Enum):
    GO_TO_CHAPTER = "go_to_chapter"
    HIGHLIGHT_PARAGRAPH = "highlight_paragraph"
    ADD_PARAGRAPH = "add_paragraph"
    EDIT_PARAGRAPH = "edit_paragraph"
    ADD_CHAPTER = "add_chapter"
    SET_OUTLINE = "set_outline"
    ADD_TASK = "add_task"
    COMPLETE_TASK = "complete_task"
    MOVE_PARAGRAPH = "move_paragraph"
    SET_USER_INSTRUCTIONS = "set_user_instructions"
    DOWNLOAD_CHAPTER = "download_chapter"
    DOWNLOAD_BOOK = "download_book"
    WRAP_SESSION = "wrap_session"
    START_NEW_SESSION = "start_new_session"
    SAVE_NOTE = "save_note"
    READ_ALOUD = "read_aloud"


ALIASES: dict[str, ToolName] = {
    "navigate_to_chapter": ToolName.GO_TO_CHAPTER,
    "new_session": ToolName.START_NEW_SESSION,
    "save_private_note": ToolName.SAVE_NOTE,
}


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------

class GoToChapterArgs(BaseModel):
    """Navigate to a chapter by its position number."""

    position: int = Field(description="Chapter position number")


class HighlightParagraphArgs(BaseModel):
    """Highlight/select a specific paragraph in a chapter."""

    chapter_position: int
    paragraph_position: int


class AddParagraphArgs(BaseModel):
    """Add a new paragraph to a chapter. Use [IMAGE: description] format for image placeholders."""

    chapter_position: int
    content: str = Field(description="The paragraph text")


class EditParagraphArgs(BaseModel):
    """Edit an existing paragraph by replacing its content."""

    chapter_position: int
    paragraph_position: int
    content: str = Field(description="The new paragraph text")


class AddChapterArgs(BaseModel):
    """Create a new chapter."""

    title: str


class SetOutlineArgs(BaseModel):
    """Set or update a chapter outline/plan."""

    chapter_position: int
    content: str


class AddTaskArgs(BaseModel):
    """Add a task/TODO item."""

    content: str
    chapter_position: Optional[int] = Field(default=None, description="Optional, associate with a chapter")


class CompleteTaskArgs(BaseModel):
    """Mark a task as done."""

    task_id: int


class MoveParagraphArgs(BaseModel):
    """Move a paragraph to a new position within its chapter."""

    chapter_position: int
    paragraph_position: int = Field(description="Current position")
    new_position: int


class SetUserInstructionsArgs(BaseModel):
    """Update the project instructions/preferences. Replaces the entire text."""

    content: str


class _DownloadArgs(BaseModel):
    format: Literal["pdf", "md"] = Field(default="pdf", description="Default: pdf")

    @field_validator("format", mode="before")
    @classmethod
    def _default_format(cls, value: Any) -> str:
        return value if value in ("pdf", "md") else "pdf"


class DownloadChapterArgs(_DownloadArgs):
    """Download a single chapter as PDF or Markdown."""

    chapter_position: int


class DownloadBookArgs(_DownloadArgs):
    """Download the entire book as PDF or Markdown."""


class WrapSessionArgs(BaseModel):
    """Wrap up the current session and save a summary for next time."""

    summary: Optional[str] = Field(default=None, description="Brief summary of what was discussed/accomplished")


class StartNewSessionArgs(BaseModel):
    """End the current session and start a fresh one."""

    summary: Optional[str] = Field(default=None, description="Summary of the session being ended")


class SaveNoteArgs(BaseModel):
    """Save a private note to yourself for future sessions. The user will not see this."""

    note: str


class ReadAloudArgs(BaseModel):
    """Read content aloud to the user with the narrator voice. Use this when the user asks you to read back a paragraph, section, or chapter. Provide the actual text content to read, not positions. Keep to roughly one page max (~3000 chars)."""

    content: str = Field(description="The text to read aloud")


ARGUMENT_MODELS: dict[ToolName, type[BaseModel]] = {
    ToolName.GO_TO_CHAPTER: GoToChapterArgs,
    ToolName.HIGHLIGHT_PARAGRAPH: HighlightParagraphArgs,
    ToolName.ADD_PARAGRAPH: AddParagraphArgs,
    ToolName.EDIT_PARAGRAPH: EditParagraphArgs,
    ToolName.ADD_CHAPTER: AddChapterArgs,
    ToolName.SET_OUTLINE: SetOutlineArgs,
    ToolName.ADD_TASK: AddTaskArgs,
    ToolName.COMPLETE_TASK: CompleteTaskArgs,
    ToolName.MOVE_PARAGRAPH: MoveParagraphArgs,
    ToolName.SET_USER_INSTRUCTIONS: SetUserInstructionsArgs,
    ToolName.DOWNLOAD_CHAPTER: DownloadChapterArgs,
    ToolName.DOWNLOAD_BOOK: DownloadBookArgs,
    ToolName.WRAP_SESSION: WrapSessionArgs,
    ToolName.START_NEW_SESSION: StartNewSessionArgs,
    ToolName.SAVE_NOTE: SaveNoteArgs,
    ToolName.READ_ALOUD: ReadAloudArgs,
}


def _tool_schema(name: ToolName, model: type[BaseModel]) -> dict:
    function = convert_to_openai_function(model)
    function["name"] = name.value
    return {"type": "function", "function": function}


# Provider-native tool definitions (OpenAI-compatible shape)
TOOLS: list[dict] = [_tool_schema(name, model) for name, model in ARGUMENT_MODELS.items()]


# ---------------------------------------------------------------------------
# Decoded actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Action:
    """One validated tool invocation, independent of the transport that produced it."""

    tool: ToolName
    args: BaseModel

    def to_wire(self) -> dict:
        return {"tool": self.tool.value, **self.args.model_dump(exclude_none=True)}


def resolve_tool_name(name: str) -> ToolName | None:
    if name in ALIASES:
        return ALIASES[name]
    try:
        return ToolName(name)
    except ValueError:
        return None


def decode_action(name: str, arguments: dict[str, Any] | None) -> Action | None:
    """Validate a tool call into an ``Action``.

    Returns ``None`` for unknown tool names and for arguments that fail
    validation; neither is an error for the turn.
    """
    tool = resolve_tool_name(name) if isinstance(name, str) else None
    if tool is None:
        logger.debug("[Actions] Ignoring unknown tool %r", name)
        return None
    try:
        args = ARGUMENT_MODELS[tool].model_validate(arguments or {})
    except ValidationError as exc:
        logger.debug("[Actions] Dropping %s: %s", tool.value, exc)
        return None
    return Action(tool=tool, args=args)


def decode_tagged(payload: Any) -> Action | None:
    """Decode the JSON object carried by an inline action tag (``{"tool": ..., **args}``)."""
    if not isinstance(payload, dict):
        return None
    fields = dict(payload)
    name = fields.pop("tool", None)
    return decode_action(name, fields)


def decode_wire(items: list[Any]) -> list[Action]:
    """Decode a list of wire-format actions, dropping the ones that do not validate."""
    actions = []
    for item in items:
        action = decode_tagged(item)
        if action is not None:
            actions.append(action)
    return actions
