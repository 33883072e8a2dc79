"""Manuscript API — books, chapters, paragraphs, tasks, notes, sessions and export.

Every handler is a thin adapter over ``ManuscriptStore``; lookup failures
raise ``NotFoundError`` / ``NothingToUndoError`` and are turned into 404s
by the handlers registered in ``inkwell.main``.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from inkwell import constants
from inkwell.ai import bridge
from inkwell.ai.sessions import SessionLifecycle
from inkwell.audio.tts import ElevenLabsTTS, Voice
from inkwell.config import Settings
from inkwell.errors import NotFoundError
from inkwell.export import collect_chapters, render
from inkwell.routes.deps import get_lifecycle, get_settings, get_store
from inkwell.store import ManuscriptStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["manuscript"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class BookCreate(BaseModel):
    user_id: str
    title: str = constants.DEFAULT_BOOK_TITLE


class ChapterCreate(BaseModel):
    book_id: int
    title: str


class ChapterUpdate(BaseModel):
    title: Optional[str] = None
    outline: Optional[str] = None


class ParagraphCreate(BaseModel):
    chapter_id: int
    content: str


class ParagraphUpdate(BaseModel):
    content: str


class ParagraphMove(BaseModel):
    position: int


class TaskCreate(BaseModel):
    book_id: int
    content: str
    chapter_id: Optional[int] = None
    source: Literal["user", "ai"] = "user"


class TaskUpdate(BaseModel):
    status: Literal["open", "done"]


class NoteWrite(BaseModel):
    book_id: int
    key: str
    value: Optional[str] = None


class SessionCreate(BaseModel):
    book_id: int
    mode: str = constants.DEFAULT_SESSION_MODE


class SessionUpdate(BaseModel):
    summary: Optional[str] = None
    transcript: Optional[str] = None
    mode: Optional[str] = None


class SessionWrap(BaseModel):
    book_id: int
    messages: list[dict] = Field(default_factory=list)
    summary: Optional[str] = None


class CompactRequest(BaseModel):
    messages: list[dict]


class TtsRequest(BaseModel):
    text: str = ""
    voice: Voice = Voice.EDITOR


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


@router.post("/books")
async def create_book(body: BookCreate, store: ManuscriptStore = Depends(get_store)) -> dict:
    book = store.get_or_create_book(body.user_id, body.title)
    return {"book": book, "chapters": store.list_chapters(book["id"])}


@router.get("/books/{book_id}/page")
async def load_page(
    book_id: int,
    store: ManuscriptStore = Depends(get_store),
    lifecycle: SessionLifecycle = Depends(get_lifecycle),
) -> dict:
    """Initial page state: the first chapter opened, the current session and its history."""
    book = store.get_book(book_id)
    if book is None:
        raise NotFoundError(f"book {book_id} not found")

    chapters = store.list_chapters(book_id)
    current_chapter = None
    if chapters:
        current_chapter = store.chapter_detail(chapters[0]["id"])["chapter"]

    session = lifecycle.current(book_id)
    return {
        "book": book,
        "chapters": chapters,
        "current_chapter": current_chapter,
        "session": session,
        "messages": store.list_messages(session["id"]),
        "tasks": store.list_open_tasks(book_id),
        "word_count": store.word_count(book_id),
        "user_instructions": store.get_note(book_id, constants.NOTE_USER_INSTRUCTIONS),
        "ai_instructions": store.get_note(book_id, constants.NOTE_AI_INSTRUCTIONS),
        "previous_session_summary": lifecycle.previous_summary(book_id),
    }


@router.get("/books/{book_id}/export")
async def export_book(
    book_id: int,
    format: str = "pdf",
    chapter_position: Optional[int] = None,
    store: ManuscriptStore = Depends(get_store),
) -> Response:
    book = store.get_book(book_id)
    if book is None:
        raise NotFoundError(f"book {book_id} not found")

    chapters = collect_chapters(store, book_id, chapter_position=chapter_position)
    title = book["title"]
    if chapter_position is not None:
        if not chapters:
            raise NotFoundError(f"chapter {chapter_position} not found")
        title = f"{title} - {chapters[0].title}"

    download = render(title, chapters, format if format in ("pdf", "md") else "pdf")
    return Response(
        content=download.content,
        media_type=download.media_type,
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------


@router.post("/chapters")
async def create_chapter(body: ChapterCreate, store: ManuscriptStore = Depends(get_store)) -> dict:
    chapter = store.create_chapter(body.book_id, body.title)
    return {"chapter": chapter, "chapters": store.list_chapters(body.book_id)}


@router.get("/chapters/{chapter_id}")
async def get_chapter(chapter_id: int, store: ManuscriptStore = Depends(get_store)) -> dict:
    detail = store.chapter_detail(chapter_id)
    if detail is None:
        raise NotFoundError(f"chapter {chapter_id} not found")
    return detail


@router.patch("/chapters/{chapter_id}")
async def update_chapter(
    chapter_id: int, body: ChapterUpdate, store: ManuscriptStore = Depends(get_store)
) -> dict:
    return {"chapter": store.update_chapter(chapter_id, **body.model_dump(exclude_unset=True))}


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------


@router.post("/paragraphs")
async def create_paragraph(body: ParagraphCreate, store: ManuscriptStore = Depends(get_store)) -> dict:
    return {"paragraph": store.add_paragraph(body.chapter_id, body.content)}


@router.patch("/paragraphs/{paragraph_id}")
async def update_paragraph(
    paragraph_id: int, body: ParagraphUpdate, store: ManuscriptStore = Depends(get_store)
) -> dict:
    return store.update_paragraph(paragraph_id, body.content)


@router.patch("/paragraphs/{paragraph_id}/move")
async def move_paragraph(
    paragraph_id: int, body: ParagraphMove, store: ManuscriptStore = Depends(get_store)
) -> dict:
    return {"paragraphs": store.move_paragraph(paragraph_id, body.position)}


@router.post("/paragraphs/{paragraph_id}/undo")
async def undo_paragraph(paragraph_id: int, store: ManuscriptStore = Depends(get_store)) -> dict:
    return store.undo_paragraph_edit(paragraph_id)


# ---------------------------------------------------------------------------
# Tasks & notes
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(book_id: int, store: ManuscriptStore = Depends(get_store)) -> dict:
    return {"tasks": store.list_open_tasks(book_id)}


@router.post("/tasks")
async def create_task(body: TaskCreate, store: ManuscriptStore = Depends(get_store)) -> dict:
    tasks = store.add_task(body.book_id, body.content, chapter_id=body.chapter_id, source=body.source)
    return {"tasks": tasks}


@router.patch("/tasks/{task_id}")
async def update_task(task_id: int, body: TaskUpdate, store: ManuscriptStore = Depends(get_store)) -> dict:
    return {"tasks": store.set_task_status(task_id, body.status)}


@router.put("/notes")
async def write_note(body: NoteWrite, store: ManuscriptStore = Depends(get_store)) -> dict:
    store.set_note(body.book_id, body.key, body.value)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/sessions")
async def create_session(body: SessionCreate, store: ManuscriptStore = Depends(get_store)) -> dict:
    return {"session": store.create_session(body.book_id, body.mode)}


@router.patch("/sessions/{session_id}")
async def update_session(
    session_id: int, body: SessionUpdate, store: ManuscriptStore = Depends(get_store)
) -> dict:
    return {"session": store.update_session(session_id, **body.model_dump(exclude_unset=True))}


@router.post("/sessions/{session_id}/wrap")
async def wrap_session(
    session_id: int, body: SessionWrap, lifecycle: SessionLifecycle = Depends(get_lifecycle)
) -> dict:
    result = await lifecycle.wrap(body.book_id, session_id, body.messages, summary=body.summary)
    return {"session": result.session, "summary": result.summary}


@router.post("/compact")
async def compact(body: CompactRequest, settings: Settings = Depends(get_settings)) -> dict:
    api_key = settings.require_openrouter_key()
    summary = await bridge.summarize(body.messages, api_key, model=settings.model, url=settings.openrouter_url)
    return {"summary": summary}


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------


@router.post("/tts")
async def text_to_speech(body: TtsRequest, settings: Settings = Depends(get_settings)) -> Response:
    api_key = settings.require_elevenlabs_key()
    if not body.text:
        return JSONResponse({"error": "text required"}, status_code=400)

    tts = ElevenLabsTTS(
        api_key,
        editor_voice_id=settings.editor_voice_id,
        narrator_voice_id=settings.narrator_voice_id,
    )
    audio = await tts.synthesize(body.text, body.voice)
    return Response(content=audio, media_type="audio/mpeg")
