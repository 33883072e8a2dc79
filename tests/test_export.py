"""Tests for Markdown/PDF export.

Run:
    pytest tests/test_export.py -v
"""

from datetime import datetime

from inkwell.export import ExportChapter, build_markdown, build_pdf, collect_chapters, render

NOW = datetime(2026, 10, 19, 15, 7)


def _chapters():
    return [
        ExportChapter(
            position=1,
            title="Introduction",
            outline="Why mushrooms",
            paragraphs=[{"position": 1, "content": "Hello world"}, {"position": 2, "content": "Second."}],
        ),
        ExportChapter(position=2, title="Roots"),
    ]


def test_markdown_layout():
    assert build_markdown("My Book", _chapters()) == (
        "# My Book\n\n"
        "## 1. Introduction\n\n"
        "> Why mushrooms\n\n"
        "Hello world\n\n"
        "Second.\n\n"
        "## 2. Roots\n\n"
    )


def test_pdf_is_a_pdf_document():
    content = build_pdf("My Book", _chapters())
    assert content.startswith(b"%PDF")


def test_pdf_tolerates_typographic_and_non_latin_text():
    chapters = [ExportChapter(position=1, title="“Quoted” — title", paragraphs=[
        {"position": 1, "content": "Café … 漢字"},
    ])]
    assert build_pdf("Café", chapters).startswith(b"%PDF")


def test_render_names_file_from_title_and_time():
    download = render("My Book: Draft!", _chapters(), "md", now=NOW)
    assert download.filename == "my-book-draft-20261019-1507.md"
    assert download.media_type == "text/markdown"
    assert download.content.decode("utf-8").startswith("# My Book: Draft!")


def test_render_unknown_format_falls_back_to_pdf():
    download = render("My Book", _chapters(), "docx", now=NOW)
    assert download.filename == "my-book-20261019-1507.pdf"
    assert download.media_type == "application/pdf"
    assert download.content.startswith(b"%PDF")


def test_collect_single_chapter(store, book, chapters):
    collected = collect_chapters(store, book["id"], chapter_position=1)
    assert [c.title for c in collected] == ["Introduction"]
    assert [p["content"] for p in collected[0].paragraphs] == ["Hello world", "One  two   three"]
    assert [c.position for c in collect_chapters(store, book["id"])] == [1, 2]
