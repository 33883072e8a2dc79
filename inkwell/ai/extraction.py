"""Response extraction for the embedded-tag transport.

Model text may carry ``<<NOTE_TO_SELF: ...>>`` asides and
``<<ACTION: {...}>>`` tags. Notes are removed first, then actions are
removed from what remains; each action payload is parsed on its own so a
malformed one never affects its neighbours or the cleaned text.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from inkwell.ai.actions import Action, decode_tagged

logger = logging.getLogger(__name__)

NOTE_PATTERN = re.compile(r"<<NOTE_TO_SELF:\s*(.*?)>>", re.DOTALL)
ACTION_PATTERN = re.compile(r"<<ACTION:\s*(.*?)>>", re.DOTALL)


@dataclass
class Extraction:
    visible_text: str
    notes: list[str] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)


def extract(raw_text: str) -> Extraction:
    """Split *raw_text* into visible text, private notes and decoded actions."""
    notes: list[str] = []
    actions: list[Action] = []

    def _take_note(match: re.Match) -> str:
        note = match.group(1).strip()
        if note:
            notes.append(note)
        return ""

    def _take_action(match: re.Match) -> str:
        payload = match.group(1).strip()
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("[Extraction] Malformed action payload dropped: %.80s", payload)
            return ""
        action = decode_tagged(parsed)
        if action is not None:
            actions.append(action)
        return ""

    without_notes = NOTE_PATTERN.sub(_take_note, raw_text)
    visible = ACTION_PATTERN.sub(_take_action, without_notes)
    return Extraction(visible_text=visible.strip(), notes=notes, actions=actions)
