"""Manuscript store — the persistence collaborator behind every Inkwell flow.

Wraps the SQLAlchemy models with the operations the rest of the service
needs: CRUD by id, ordered range queries ("all paragraphs for chapter X by
position"), the atomic ProjectNote upsert, audit events and the single-level
paragraph undo. Every public method opens its own transaction and returns
plain dicts so callers never hold ORM objects across sessions.

Paragraph positions are kept dense: inserts go to ``max + 1`` and moves
renumber the whole chapter ``1..n``.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from inkwell import constants
from inkwell.db import get_engine, make_session_factory
from inkwell.errors import NotFoundError, NothingToUndoError
from inkwell.models import (
    Book,
    BookTask,
    Chapter,
    Event,
    Message,
    Paragraph,
    ProjectNote,
    WritingSession,
)
from inkwell.utils import count_words

logger = logging.getLogger(__name__)


def _snapshot(value: Any) -> str | None:
    return json.dumps(value, default=str) if value else None


class ManuscriptStore:
    """Synchronous store over one SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = make_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "ManuscriptStore":
        return cls(get_engine(database_url))

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def get_or_create_book(self, user_id: str, title: str = constants.DEFAULT_BOOK_TITLE) -> dict:
        """Return the user's book, creating it (with an Introduction chapter) if absent."""
        with self._transaction() as db:
            book = db.query(Book).filter_by(user_id=user_id).order_by(Book.id).first()
            if book is None:
                book = Book(title=title, user_id=user_id)
                db.add(book)
                db.flush()
                db.add(Chapter(book_id=book.id, title=constants.DEFAULT_CHAPTER_TITLE, position=1))
                logger.info("[Store] Created book %d for user %s", book.id, user_id)
            return {"id": book.id, "title": book.title, "description": book.description, "user_id": book.user_id}

    def get_book(self, book_id: int) -> dict | None:
        with self._transaction() as db:
            book = db.get(Book, book_id)
            if book is None:
                return None
            return {"id": book.id, "title": book.title, "description": book.description, "user_id": book.user_id}

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    def list_chapters(self, book_id: int) -> list[dict]:
        with self._transaction() as db:
            rows = db.query(Chapter).filter_by(book_id=book_id).order_by(Chapter.position).all()
            return [c.to_dict() for c in rows]

    def chapter_detail(self, chapter_id: int) -> dict | None:
        """Return ``{"chapter": {..., "paragraphs": [...]}, "word_count": n}`` or None."""
        with self._transaction() as db:
            chapter = db.get(Chapter, chapter_id)
            if chapter is None:
                return None
            paragraphs = self._ordered_paragraphs(db, chapter_id)
            return {
                "chapter": {**chapter.to_dict(), "paragraphs": [p.to_dict() for p in paragraphs]},
                "word_count": self._word_count(db, chapter.book_id),
            }

    def create_chapter(self, book_id: int, title: str) -> dict:
        with self._transaction() as db:
            current_max = db.query(func.max(Chapter.position)).filter_by(book_id=book_id).scalar()
            chapter = Chapter(book_id=book_id, title=title, position=(current_max or 0) + 1)
            db.add(chapter)
            db.flush()
            return {**chapter.to_dict(), "paragraphs": []}

    def update_chapter(self, chapter_id: int, *, source: str = "user", **fields: Any) -> dict:
        """Update title/outline on a chapter and log an ``edit_chapter`` event."""
        allowed = {k: v for k, v in fields.items() if k in ("title", "outline")}
        with self._transaction() as db:
            chapter = db.get(Chapter, chapter_id)
            if chapter is None:
                raise NotFoundError(f"chapter {chapter_id} not found")
            before = chapter.to_dict()
            for key, value in allowed.items():
                setattr(chapter, key, value)
            db.flush()
            after = chapter.to_dict()
            self._log(db, book_id=chapter.book_id, action="edit_chapter", entity_type="chapter",
                      entity_id=chapter_id, before_state=before, after_state=after, source=source)
            paragraphs = self._ordered_paragraphs(db, chapter_id)
            return {**after, "paragraphs": [p.to_dict() for p in paragraphs]}

    # ------------------------------------------------------------------
    # Paragraphs
    # ------------------------------------------------------------------

    def list_paragraphs(self, chapter_id: int) -> list[dict]:
        with self._transaction() as db:
            return [p.to_dict() for p in self._ordered_paragraphs(db, chapter_id)]

    def add_paragraph(self, chapter_id: int, content: str) -> dict:
        with self._transaction() as db:
            if db.get(Chapter, chapter_id) is None:
                raise NotFoundError(f"chapter {chapter_id} not found")
            current_max = db.query(func.max(Paragraph.position)).filter_by(chapter_id=chapter_id).scalar()
            paragraph = Paragraph(chapter_id=chapter_id, content=content, position=(current_max or 0) + 1)
            db.add(paragraph)
            db.flush()
            return paragraph.to_dict()

    def update_paragraph(self, paragraph_id: int, content: str, *, source: str = "user") -> dict:
        """Replace a paragraph's content; returns ``{"paragraph", "word_count"}``."""
        with self._transaction() as db:
            paragraph = db.get(Paragraph, paragraph_id)
            if paragraph is None:
                raise NotFoundError(f"paragraph {paragraph_id} not found")
            before = paragraph.to_dict()
            paragraph.content = content
            db.flush()
            book_id = db.get(Chapter, paragraph.chapter_id).book_id
            self._log(db, book_id=book_id, action="edit_paragraph", entity_type="paragraph",
                      entity_id=paragraph_id, before_state=before, after_state=paragraph.to_dict(),
                      source=source)
            return {"paragraph": paragraph.to_dict(), "word_count": self._word_count(db, book_id)}

    def move_paragraph(self, paragraph_id: int, new_position: int) -> list[dict]:
        """Move a paragraph within its chapter and renumber the chapter densely.

        *new_position* is clamped to ``1..n``. Returns the chapter's paragraphs
        in their new order.
        """
        with self._transaction() as db:
            paragraph = db.get(Paragraph, paragraph_id)
            if paragraph is None:
                raise NotFoundError(f"paragraph {paragraph_id} not found")
            ordered = [p for p in self._ordered_paragraphs(db, paragraph.chapter_id) if p.id != paragraph_id]
            index = min(max(new_position, 1), len(ordered) + 1) - 1
            ordered.insert(index, paragraph)
            for position, row in enumerate(ordered, start=1):
                row.position = position
            db.flush()
            return [p.to_dict() for p in ordered]

    def undo_paragraph_edit(self, paragraph_id: int) -> dict:
        """Restore the content captured by the latest ``edit_paragraph`` event.

        The consumed event is deleted, so a second undo only goes further back
        if an older edit event exists. Raises ``NothingToUndoError`` otherwise.
        """
        with self._transaction() as db:
            event = (
                db.query(Event)
                .filter_by(entity_type="paragraph", entity_id=paragraph_id, action="edit_paragraph")
                .order_by(Event.created_at.desc(), Event.id.desc())
                .first()
            )
            if event is None or not event.before_state:
                raise NothingToUndoError(f"nothing to undo for paragraph {paragraph_id}")

            paragraph = db.get(Paragraph, paragraph_id)
            if paragraph is None:
                raise NotFoundError(f"paragraph {paragraph_id} not found")

            current = paragraph.to_dict()
            paragraph.content = json.loads(event.before_state)["content"]
            db.delete(event)
            db.flush()

            book_id = db.get(Chapter, paragraph.chapter_id).book_id
            self._log(db, book_id=book_id, action="undo_edit_paragraph", entity_type="paragraph",
                      entity_id=paragraph_id, before_state=current, after_state=paragraph.to_dict())
            return {"paragraph": paragraph.to_dict(), "word_count": self._word_count(db, book_id)}

    def word_count(self, book_id: int) -> int:
        with self._transaction() as db:
            return self._word_count(db, book_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def list_open_tasks(self, book_id: int) -> list[dict]:
        """Open tasks in creation order, each with ``chapter_position`` when linked."""
        with self._transaction() as db:
            rows = (
                db.query(BookTask, Chapter.position)
                .outerjoin(Chapter, Chapter.id == BookTask.chapter_id)
                .filter(BookTask.book_id == book_id, BookTask.status == "open")
                .order_by(BookTask.created_at, BookTask.id)
                .all()
            )
            return [{**task.to_dict(), "chapter_position": position} for task, position in rows]

    def get_task(self, task_id: int) -> dict | None:
        with self._transaction() as db:
            task = db.get(BookTask, task_id)
            return task.to_dict() if task else None

    def add_task(self, book_id: int, content: str, chapter_id: int | None = None, source: str = "user") -> list[dict]:
        with self._transaction() as db:
            db.add(BookTask(book_id=book_id, content=content, chapter_id=chapter_id, source=source))
        return self.list_open_tasks(book_id)

    def set_task_status(self, task_id: int, status: str) -> list[dict]:
        with self._transaction() as db:
            task = db.get(BookTask, task_id)
            if task is None:
                raise NotFoundError(f"task {task_id} not found")
            task.status = status
            book_id = task.book_id
        return self.list_open_tasks(book_id)

    # ------------------------------------------------------------------
    # Project notes
    # ------------------------------------------------------------------

    def get_note(self, book_id: int, key: str) -> str | None:
        with self._transaction() as db:
            note = db.query(ProjectNote).filter_by(book_id=book_id, key=key).first()
            return note.value if note else None

    def set_note(self, book_id: int, key: str, value: str | None) -> None:
        """Insert the note if absent, else replace its value."""
        with self._transaction() as db:
            self._upsert_note(db, book_id, key, value)

    def append_note(self, book_id: int, key: str, text: str) -> str:
        """Append *text* to a note on a new line and return the new value.

        Read-modify-write without a lock: two concurrent appends race and the
        last write wins.
        """
        with self._transaction() as db:
            note = db.query(ProjectNote).filter_by(book_id=book_id, key=key).first()
            if note is None:
                db.add(ProjectNote(book_id=book_id, key=key, value=text))
                return text
            note.value = f"{note.value}\n{text}" if note.value else text
            return note.value

    def claim_daily_reminder(self, book_id: int, today: str) -> bool:
        """Return True (and record *today*) if no reminder was given today yet."""
        with self._transaction() as db:
            note = db.query(ProjectNote).filter_by(book_id=book_id, key=constants.NOTE_LAST_FEEDBACK_REMINDER).first()
            if note is not None and note.value and note.value >= today:
                return False
            self._upsert_note(db, book_id, constants.NOTE_LAST_FEEDBACK_REMINDER, today, existing=note)
            return True

    # ------------------------------------------------------------------
    # Sessions & messages
    # ------------------------------------------------------------------

    def create_session(self, book_id: int, mode: str = constants.DEFAULT_SESSION_MODE) -> dict:
        with self._transaction() as db:
            session = WritingSession(book_id=book_id, mode=mode)
            db.add(session)
            db.flush()
            return session.to_dict()

    def get_session(self, session_id: int) -> dict | None:
        with self._transaction() as db:
            session = db.get(WritingSession, session_id)
            return session.to_dict() if session else None

    def recent_sessions(self, book_id: int, limit: int = 2) -> list[dict]:
        """Most recently created sessions first."""
        with self._transaction() as db:
            rows = (
                db.query(WritingSession)
                .filter_by(book_id=book_id)
                .order_by(WritingSession.created_at.desc(), WritingSession.id.desc())
                .limit(limit)
                .all()
            )
            return [s.to_dict() for s in rows]

    def update_session(self, session_id: int, **fields: Any) -> dict:
        allowed = {k: v for k, v in fields.items() if k in ("summary", "transcript", "mode")}
        with self._transaction() as db:
            session = db.get(WritingSession, session_id)
            if session is None:
                raise NotFoundError(f"session {session_id} not found")
            for key, value in allowed.items():
                setattr(session, key, value)
            db.flush()
            return session.to_dict()

    def add_message(self, session_id: int, role: str, content: str) -> dict:
        with self._transaction() as db:
            message = Message(session_id=session_id, role=role, content=content)
            db.add(message)
            db.flush()
            return message.to_dict()

    def list_messages(self, session_id: int) -> list[dict]:
        with self._transaction() as db:
            rows = db.query(Message).filter_by(session_id=session_id).order_by(Message.id).all()
            return [m.to_dict() for m in rows]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def log_event(self, **params: Any) -> None:
        with self._transaction() as db:
            self._log(db, **params)

    def list_events(self, book_id: int, entity_type: str | None = None, entity_id: int | None = None) -> list[dict]:
        with self._transaction() as db:
            query = db.query(Event).filter_by(book_id=book_id)
            if entity_type is not None:
                query = query.filter_by(entity_type=entity_type)
            if entity_id is not None:
                query = query.filter_by(entity_id=entity_id)
            return [
                {
                    "id": e.id,
                    "action": e.action,
                    "entity_type": e.entity_type,
                    "entity_id": e.entity_id,
                    "before_state": e.before_state,
                    "after_state": e.after_state,
                    "chat_snapshot": e.chat_snapshot,
                    "source": e.source,
                }
                for e in query.order_by(Event.id).all()
            ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _ordered_paragraphs(db: Session, chapter_id: int) -> list[Paragraph]:
        return db.query(Paragraph).filter_by(chapter_id=chapter_id).order_by(Paragraph.position).all()

    @staticmethod
    def _word_count(db: Session, book_id: int) -> int:
        rows = (
            db.query(Paragraph.content)
            .join(Chapter, Chapter.id == Paragraph.chapter_id)
            .filter(Chapter.book_id == book_id)
            .all()
        )
        return sum(count_words(content) for (content,) in rows)

    @staticmethod
    def _upsert_note(db: Session, book_id: int, key: str, value: str | None, existing: ProjectNote | None = None) -> None:
        note = existing or db.query(ProjectNote).filter_by(book_id=book_id, key=key).first()
        if note is None:
            db.add(ProjectNote(book_id=book_id, key=key, value=value))
        else:
            note.value = value

    @staticmethod
    def _log(
        db: Session,
        *,
        book_id: int,
        action: str,
        entity_type: str,
        entity_id: int | None = None,
        session_id: int | None = None,
        before_state: Any = None,
        after_state: Any = None,
        chat_snapshot: Any = None,
        source: str = "user",
    ) -> None:
        db.add(
            Event(
                book_id=book_id,
                session_id=session_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                before_state=_snapshot(before_state),
                after_state=_snapshot(after_state),
                chat_snapshot=_snapshot(chat_snapshot),
                source=source,
            )
        )
