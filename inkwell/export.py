"""Manuscript export to Markdown and PDF.

Both renderers work from the same per-chapter projection
(``position``, ``title``, ``outline``, ``paragraphs``). PDFs are laid out
with fpdf2 on US-letter pages using the core Helvetica font.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

from fpdf import FPDF

from inkwell.store import ManuscriptStore
from inkwell.utils import export_timestamp, slugify

logger = logging.getLogger(__name__)

ExportFormat = Literal["pdf", "md"]

MEDIA_TYPES = {"pdf": "application/pdf", "md": "text/markdown"}

_PDF_MARGIN = 25
# Core fonts only cover latin-1; map the usual typographic characters first.
_PDF_REPLACEMENTS = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2013": "-",
    "\u2014": "-",
    "\u2026": "...",
})


@dataclass
class ExportChapter:
    position: int
    title: str
    outline: Optional[str] = None
    paragraphs: list[dict] = field(default_factory=list)


@dataclass
class Download:
    filename: str
    media_type: str
    content: bytes


def collect_chapters(
    store: ManuscriptStore,
    book_id: int,
    chapter_position: Optional[int] = None,
) -> list[ExportChapter]:
    """Project the book (or the single chapter at *chapter_position*) for export."""
    chapters = store.list_chapters(book_id)
    if chapter_position is not None:
        chapters = [c for c in chapters if c["position"] == chapter_position]
    return [
        ExportChapter(
            position=c["position"],
            title=c["title"],
            outline=c["outline"],
            paragraphs=[
                {"position": p["position"], "content": p["content"]}
                for p in store.list_paragraphs(c["id"])
            ],
        )
        for c in chapters
    ]


def build_markdown(title: str, chapters: list[ExportChapter]) -> str:
    md = f"# {title}\n\n"
    for chapter in chapters:
        md += f"## {chapter.position}. {chapter.title}\n\n"
        if chapter.outline:
            md += f"> {chapter.outline}\n\n"
        for paragraph in chapter.paragraphs:
            md += f"{paragraph['content']}\n\n"
    return md


def _pdf_text(text: str) -> str:
    return text.translate(_PDF_REPLACEMENTS).encode("latin-1", errors="replace").decode("latin-1")


def build_pdf(title: str, chapters: list[ExportChapter]) -> bytes:
    """Render a title page followed by every chapter; pages break automatically."""
    pdf = FPDF(unit="mm", format="letter")
    pdf.set_margins(_PDF_MARGIN, _PDF_MARGIN, _PDF_MARGIN)
    pdf.set_auto_page_break(auto=True, margin=_PDF_MARGIN)

    pdf.add_page()
    pdf.set_y(80)
    pdf.set_font("Helvetica", "", 24)
    pdf.multi_cell(0, 12, _pdf_text(title), align="C", new_x="LMARGIN", new_y="NEXT")

    pdf.add_page()
    for chapter in chapters:
        pdf.set_font("Helvetica", "B", 16)
        pdf.multi_cell(0, 8, _pdf_text(f"{chapter.position}. {chapter.title}"), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(2)

        if chapter.outline:
            pdf.set_font("Helvetica", "I", 10)
            pdf.set_x(_PDF_MARGIN + 5)
            pdf.multi_cell(0, 4.5, _pdf_text(chapter.outline), new_x="LMARGIN", new_y="NEXT")
            pdf.ln(6)

        pdf.set_font("Helvetica", "", 11)
        for paragraph in chapter.paragraphs:
            pdf.multi_cell(0, 5, _pdf_text(paragraph["content"]), new_x="LMARGIN", new_y="NEXT")
            pdf.ln(4)

        pdf.ln(8)

    return bytes(pdf.output())


def render(
    title: str,
    chapters: list[ExportChapter],
    format: ExportFormat = "pdf",
    now: Optional[datetime] = None,
) -> Download:
    """Render *chapters* in *format* and name the file ``<slug>-<YYYYMMDD-HHMM>.<ext>``."""
    if format not in MEDIA_TYPES:
        format = "pdf"
    filename = f"{slugify(title)}-{export_timestamp(now)}.{format}"
    if format == "md":
        content = build_markdown(title, chapters).encode("utf-8")
    else:
        content = build_pdf(title, chapters)
    logger.info("[Export] Rendered %s (%d chapter(s), %d bytes)", filename, len(chapters), len(content))
    return Download(filename=filename, media_type=MEDIA_TYPES[format], content=content)
