"""Action execution engine.

Applies decoded actions to the manuscript store and to a ``PageState`` view
model, strictly in emission order, because later actions in a turn may
depend on earlier ones (add a chapter, then write into it).

Positions in an action are resolved to rows first. A failed lookup is an
expected outcome when the model hallucinates a position: the action is
skipped with a ``SkipReason`` and the turn carries on.
"""

from __future__ import annotations

import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, Field

from inkwell import constants
from inkwell.ai.actions import Action, ToolName
from inkwell.ai.sessions import SessionLifecycle
from inkwell.errors import UpstreamError
from inkwell.export import Download, collect_chapters, render
from inkwell.store import ManuscriptStore
from inkwell.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()

Callback = Callable[[str], Union[None, Awaitable[None]]]

_SUMMARIES: dict[str, str] = {
    "go_to_chapter": "Switched chapters",
    "highlight_paragraph": "Highlighted a paragraph",
    "add_paragraph": "Added a paragraph",
    "edit_paragraph": "Edited a paragraph",
    "add_chapter": "Created a chapter",
    "set_outline": "Updated the outline",
    "add_task": "Added a task",
    "complete_task": "Completed a task",
    "wrap_session": "Wrapped up the session",
    "start_new_session": "Started a new session",
    "new_session": "Started a new session",
    "move_paragraph": "Moved a paragraph",
    "download_chapter": "Downloaded a chapter",
    "download_book": "Downloaded the book",
    "set_user_instructions": "Updated project instructions",
}

# Tools addressed by a required chapter position
_CHAPTER_TOOLS = frozenset({
    ToolName.GO_TO_CHAPTER,
    ToolName.HIGHLIGHT_PARAGRAPH,
    ToolName.ADD_PARAGRAPH,
    ToolName.EDIT_PARAGRAPH,
    ToolName.SET_OUTLINE,
    ToolName.MOVE_PARAGRAPH,
    ToolName.DOWNLOAD_CHAPTER,
})
_PARAGRAPH_TOOLS = frozenset({
    ToolName.HIGHLIGHT_PARAGRAPH,
    ToolName.EDIT_PARAGRAPH,
    ToolName.MOVE_PARAGRAPH,
})


def summarize_action(tool: str) -> str:
    """One-line activity-log text, determined by the tool name alone."""
    return _SUMMARIES.get(tool, tool.replace("_", " "))


class PageState(BaseModel):
    """What the author currently sees: the open chapter, tasks, session and notes."""

    book_id: int
    book_title: str = constants.DEFAULT_BOOK_TITLE
    session_id: int
    chapters: list[dict] = Field(default_factory=list)
    current_chapter: Optional[dict] = None
    selected_paragraph_id: Optional[int] = None
    tasks: list[dict] = Field(default_factory=list)
    word_count: int = 0
    messages: list[dict] = Field(default_factory=list)
    previous_session_summary: Optional[str] = None
    user_instructions: Optional[str] = None
    ai_instructions: Optional[str] = None

    def is_open(self, chapter_id: int) -> bool:
        return self.current_chapter is not None and self.current_chapter.get("id") == chapter_id


class SkipReason(str, enum.Enum):
    CHAPTER_NOT_FOUND = "chapter_not_found"
    PARAGRAPH_NOT_FOUND = "paragraph_not_found"
    TASK_NOT_FOUND = "task_not_found"


@dataclass(frozen=True)
class Resolution:
    chapter: Optional[dict] = None
    detail: Optional[dict] = None
    paragraph: Optional[dict] = None
    task: Optional[dict] = None
    skip: Optional[SkipReason] = None

    @classmethod
    def skipped(cls, reason: SkipReason) -> "Resolution":
        return cls(skip=reason)

    @property
    def ok(self) -> bool:
        return self.skip is None


@dataclass
class ActionOutcome:
    action: Action
    summary: Optional[str]
    skipped: Optional[SkipReason] = None
    error: Optional[str] = None


@dataclass
class TurnReport:
    outcomes: list[ActionOutcome] = field(default_factory=list)
    downloads: list[Download] = field(default_factory=list)
    read_aloud: list[str] = field(default_factory=list)
    notes: Optional[str] = None

    @property
    def summaries(self) -> list[str]:
        return [o.summary for o in self.outcomes if o.summary is not None]

    @property
    def skipped(self) -> list[tuple[str, SkipReason]]:
        return [(o.action.tool.value, o.skipped) for o in self.outcomes if o.skipped is not None]

    @property
    def failed(self) -> list[tuple[str, str]]:
        return [(o.action.tool.value, o.error) for o in self.outcomes if o.error is not None]


async def _notify(callback: Optional[Callback], value: str) -> None:
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class ActionEngine:
    """Runs one turn's actions against the store and the page state."""

    def __init__(
        self,
        store: ManuscriptStore,
        lifecycle: SessionLifecycle,
        *,
        on_notes_updated: Optional[Callback] = None,
        on_read_aloud: Optional[Callback] = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._on_notes_updated = on_notes_updated
        self._on_read_aloud = on_read_aloud
        self._handlers: dict[ToolName, Callable[..., Awaitable[None]]] = {
            ToolName.GO_TO_CHAPTER: self._go_to_chapter,
            ToolName.HIGHLIGHT_PARAGRAPH: self._highlight_paragraph,
            ToolName.ADD_PARAGRAPH: self._add_paragraph,
            ToolName.EDIT_PARAGRAPH: self._edit_paragraph,
            ToolName.ADD_CHAPTER: self._add_chapter,
            ToolName.SET_OUTLINE: self._set_outline,
            ToolName.ADD_TASK: self._add_task,
            ToolName.COMPLETE_TASK: self._complete_task,
            ToolName.MOVE_PARAGRAPH: self._move_paragraph,
            ToolName.SET_USER_INSTRUCTIONS: self._set_user_instructions,
            ToolName.DOWNLOAD_CHAPTER: self._download_chapter,
            ToolName.DOWNLOAD_BOOK: self._download_book,
            ToolName.WRAP_SESSION: self._wrap_session,
            ToolName.START_NEW_SESSION: self._start_new_session,
            ToolName.SAVE_NOTE: self._save_note,
            ToolName.READ_ALOUD: self._read_aloud,
        }

    async def execute(self, actions: list[Action], state: PageState) -> TurnReport:
        report = TurnReport()
        with tracer.start_as_current_span("inkwell.actions") as span:
            span.set_attribute("inkwell.book_id", state.book_id)
            span.set_attribute("inkwell.action_count", len(actions))
            for action in actions:
                report.outcomes.append(await self._execute_one(action, state, report))
        return report

    async def _execute_one(self, action: Action, state: PageState, report: TurnReport) -> ActionOutcome:
        summary = None if action.tool is ToolName.SAVE_NOTE else summarize_action(action.tool.value)
        resolution = self.resolve(action, state)
        if not resolution.ok:
            logger.info("[Engine] Skipped %s: %s", action.tool.value, resolution.skip.value)
            return ActionOutcome(action, summary, skipped=resolution.skip)

        try:
            await self._handlers[action.tool](action.args, resolution, state, report)
        except (UpstreamError, LookupError) as exc:
            # Earlier actions are already persisted; the rest of the turn still runs.
            logger.warning("[Engine] %s failed: %s", action.tool.value, exc)
            return ActionOutcome(action, None, error=str(exc))
        return ActionOutcome(action, summary)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, action: Action, state: PageState) -> Resolution:
        """Map the positions in *action* onto rows, or say why that is impossible."""
        tool, args = action.tool, action.args

        if tool is ToolName.COMPLETE_TASK:
            task = self._store.get_task(args.task_id)
            if task is None or task["book_id"] != state.book_id:
                return Resolution.skipped(SkipReason.TASK_NOT_FOUND)
            return Resolution(task=task)

        if tool is ToolName.ADD_TASK:
            # The chapter link is optional; an unknown position just leaves it unlinked.
            if args.chapter_position is None:
                return Resolution()
            return Resolution(chapter=self._find_chapter(state, args.chapter_position))

        if tool not in _CHAPTER_TOOLS:
            return Resolution()

        position = args.position if tool is ToolName.GO_TO_CHAPTER else args.chapter_position
        chapter = self._find_chapter(state, position)
        if chapter is None:
            return Resolution.skipped(SkipReason.CHAPTER_NOT_FOUND)

        detail = self._store.chapter_detail(chapter["id"])
        if detail is None:
            return Resolution.skipped(SkipReason.CHAPTER_NOT_FOUND)

        paragraph = None
        if tool in _PARAGRAPH_TOOLS:
            paragraph = next(
                (p for p in detail["chapter"]["paragraphs"] if p["position"] == args.paragraph_position),
                None,
            )
            if paragraph is None:
                return Resolution.skipped(SkipReason.PARAGRAPH_NOT_FOUND)

        return Resolution(chapter=chapter, detail=detail, paragraph=paragraph)

    @staticmethod
    def _find_chapter(state: PageState, position: int) -> Optional[dict]:
        return next((c for c in state.chapters if c["position"] == position), None)

    def _refresh_if_open(self, chapter_id: int, state: PageState) -> None:
        if not state.is_open(chapter_id):
            return
        detail = self._store.chapter_detail(chapter_id)
        if detail is not None:
            state.current_chapter = detail["chapter"]
            state.word_count = detail["word_count"]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def _go_to_chapter(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        state.current_chapter = res.detail["chapter"]
        state.selected_paragraph_id = None

    async def _highlight_paragraph(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        state.current_chapter = res.detail["chapter"]
        state.selected_paragraph_id = res.paragraph["id"]

    # ------------------------------------------------------------------
    # Manuscript mutations
    # ------------------------------------------------------------------

    async def _add_paragraph(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        self._store.add_paragraph(res.chapter["id"], args.content)
        self._refresh_if_open(res.chapter["id"], state)

    async def _edit_paragraph(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        self._store.update_paragraph(res.paragraph["id"], args.content, source="ai")
        self._refresh_if_open(res.chapter["id"], state)

    async def _move_paragraph(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        self._store.move_paragraph(res.paragraph["id"], args.new_position)
        self._refresh_if_open(res.chapter["id"], state)

    async def _add_chapter(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        chapter = self._store.create_chapter(state.book_id, args.title)
        state.chapters = self._store.list_chapters(state.book_id)
        state.current_chapter = chapter
        state.selected_paragraph_id = None

    async def _set_outline(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        self._store.update_chapter(res.chapter["id"], outline=args.content, source="ai")
        state.chapters = self._store.list_chapters(state.book_id)
        self._refresh_if_open(res.chapter["id"], state)

    # ------------------------------------------------------------------
    # Tasks & notes
    # ------------------------------------------------------------------

    async def _add_task(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        chapter_id = res.chapter["id"] if res.chapter else None
        state.tasks = self._store.add_task(state.book_id, args.content, chapter_id=chapter_id, source="ai")

    async def _complete_task(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        state.tasks = self._store.set_task_status(res.task["id"], "done")

    async def _set_user_instructions(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        self._store.set_note(state.book_id, constants.NOTE_USER_INSTRUCTIONS, args.content)
        state.user_instructions = args.content

    async def _save_note(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        value = self._store.append_note(state.book_id, constants.NOTE_AI_INSTRUCTIONS, args.note)
        state.ai_instructions = value
        report.notes = value
        await _notify(self._on_notes_updated, value)

    # ------------------------------------------------------------------
    # Downloads & speech
    # ------------------------------------------------------------------

    async def _download_chapter(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        chapters = collect_chapters(self._store, state.book_id, chapter_position=res.chapter["position"])
        title = f"{state.book_title} - {res.chapter['title']}"
        report.downloads.append(render(title, chapters, args.format))

    async def _download_book(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        chapters = collect_chapters(self._store, state.book_id)
        report.downloads.append(render(state.book_title, chapters, args.format))

    async def _read_aloud(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        report.read_aloud.append(args.content)
        await _notify(self._on_read_aloud, args.content)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def _wrap_session(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        result = await self._lifecycle.wrap(state.book_id, state.session_id, state.messages, summary=args.summary)
        self._enter_session(state, result.session, result.summary)

    async def _start_new_session(self, args: Any, res: Resolution, state: PageState, report: TurnReport) -> None:
        result = await self._lifecycle.start_new(state.book_id, state.session_id, state.messages, summary=args.summary)
        self._enter_session(state, result.session, result.summary)

    @staticmethod
    def _enter_session(state: PageState, session: dict, summary: Optional[str]) -> None:
        state.session_id = session["id"]
        state.messages = []
        state.previous_session_summary = summary
