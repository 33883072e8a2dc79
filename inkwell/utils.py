"""Small text helpers shared by the store, the chat turn and the exporters."""

import math
import re
from datetime import datetime

from inkwell.constants import CHARS_PER_TOKEN


def count_words(text: str | None) -> int:
    """Count whitespace-separated tokens in *text*.

    Runs of whitespace count as one separator and empty tokens are dropped,
    so ``"One  two   three"`` is 3 words.
    """
    if not text:
        return 0
    return len(text.split())


def estimate_tokens(text: str) -> int:
    """Rough token estimate used for the context stats frame."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def slugify(text: str) -> str:
    """Return a filename-safe slug: alphanumerics and spaces only, hyphenated, lowercase."""
    cleaned = re.sub(r"[^a-zA-Z0-9 ]", "", text)
    return re.sub(r"\s+", "-", cleaned).lower()


def export_timestamp(now: datetime | None = None) -> str:
    """Return a ``YYYYMMDD-HHMM`` stamp for download filenames."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M")
