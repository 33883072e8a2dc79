"""Context assembler — builds the system prompt from scratch every turn.

Section order matters only loosely: the manuscript comes before the user's
instructions and the AI's own notes so the more specific guidance is read
last.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from inkwell import constants
from inkwell.store import ManuscriptStore


def default_system_prompt() -> str:
    return """You are a warm, supportive book writing partner and virtual publisher.

You have four roles:

**Interviewer**: Draw out the author's knowledge and stories with thoughtful questions.

**Editor**: Track tone and style consistency. Keep the voice authentically theirs.

**Organizer**: Maintain awareness of the book's structure. Propose where new content fits.

**Publisher / Author Coach**: Help the author understand the craft. Book metrics, reading level, market context.

Guidelines:
- Keep responses concise and conversational, this may be a voice conversation
- Ask one question at a time
- When the author shares content, acknowledge it warmly before asking follow-ups
- This is THEIR book. Help them express their vision, not yours
- Be encouraging but honest
- Use tools to take actions: navigate, add content, edit, organize, download, etc.
- You can call multiple tools in one response
- Use save_note to remember things between sessions (the user won't see these)

## Image & Diagram Placeholders

To mark where an image or diagram should go, add a paragraph with the format:
[IMAGE: description of the image or diagram]

For example: [IMAGE: Photo of the finished mushroom cultivation setup with labels]

These render as visual placeholder blocks in the manuscript. Use them when the author mentions wanting a picture, diagram, or illustration somewhere."""


FEEDBACK_REMINDER = (
    "This is the first message today. Warmly remind the author (once, briefly) that they "
    "can share feedback or suggestions about this writing tool: what's working, what's not, "
    "what they wish it could do. Keep it to one sentence, woven naturally into your greeting. "
    "After this reminder, use save_note so you don't remind again today."
)


def format_current_time(now: datetime) -> str:
    """Human-readable wall-clock time, e.g. ``Monday, October 19, 2026, 3:07 PM UTC``."""
    hour = now.strftime("%I").lstrip("0") or "12"
    stamp = f"{now.strftime('%A, %B')} {now.day}, {now.year}, {hour}:{now.strftime('%M %p')}"
    zone = now.strftime("%Z")
    return f"{stamp} {zone}" if zone else stamp


def render_manuscript(store: ManuscriptStore, book_id: int) -> Optional[str]:
    chapters = store.list_chapters(book_id)
    if not chapters:
        return None

    parts = ["## Full Manuscript"]
    for chapter in chapters:
        block = f"### Chapter {chapter['position']}: {chapter['title']}"
        if chapter["outline"]:
            block += f"\nOutline: {chapter['outline']}"
        paragraphs = store.list_paragraphs(chapter["id"])
        if not paragraphs:
            block += "\n(no content yet)"
        for paragraph in paragraphs:
            block += f"\n\n[{paragraph['position']}] {paragraph['content']}"
        parts.append(block)
    return "\n\n".join(parts)


def render_tasks(tasks: list[dict]) -> str:
    lines = []
    for task in tasks:
        tag = f" (Ch {task['chapter_position']})" if task.get("chapter_position") is not None else ""
        lines.append(f"  - [{task['id']}] {task['content']}{tag}")
    return "\n".join(lines)


def build_system_prompt(store: ManuscriptStore, book_id: int, now: Optional[datetime] = None) -> str:
    """Assemble the full instruction context for one turn.

    Claiming the daily feedback reminder writes ``last_feedback_reminder``,
    so building the prompt is not side-effect free.
    """
    now = now or datetime.now().astimezone()
    sections = [default_system_prompt(), f"## Current Time\n{format_current_time(now)}"]

    manuscript = render_manuscript(store, book_id)
    if manuscript:
        sections.append(manuscript)

    if store.claim_daily_reminder(book_id, now.date().isoformat()):
        sections.append(f"## Feedback Reminder\n{FEEDBACK_REMINDER}")

    user_instructions = store.get_note(book_id, constants.NOTE_USER_INSTRUCTIONS)
    if user_instructions:
        sections.append(f"## User's Custom Instructions\n{user_instructions}")

    ai_notes = store.get_note(book_id, constants.NOTE_AI_INSTRUCTIONS)
    if ai_notes:
        sections.append(f"## Your Own Notes (from previous sessions)\n{ai_notes}")

    tasks = store.list_open_tasks(book_id)
    if tasks:
        sections.append(f"## Open Tasks\n{render_tasks(tasks)}")

    recent = store.recent_sessions(book_id, limit=2)
    if len(recent) >= 2 and recent[1]["summary"]:
        sections.append(f"## Previous Session Summary\n{recent[1]['summary']}")

    return "\n\n".join(sections)
