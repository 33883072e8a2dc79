"""Shared fixtures: a fresh in-memory store per test and a seeded book."""

import pytest

from inkwell.db import create_db_engine
from inkwell.store import ManuscriptStore


@pytest.fixture
def store():
    return ManuscriptStore(create_db_engine("sqlite://"))


@pytest.fixture
def book(store):
    """A book with its default "Introduction" chapter at position 1."""
    return store.get_or_create_book("user-1")


@pytest.fixture
def chapters(store, book):
    """Two chapters: Introduction (1, two paragraphs) and Roots (2, empty)."""
    intro = store.list_chapters(book["id"])[0]
    store.add_paragraph(intro["id"], "Hello world")
    store.add_paragraph(intro["id"], "One  two   three")
    roots = store.create_chapter(book["id"], "Roots")
    return [intro, roots]
