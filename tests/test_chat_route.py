"""HTTP-level tests: chat turn frames, action execution and manuscript endpoints.

The provider stream is replaced with a scripted async generator, so no
network access is needed.

Run:
    pytest tests/test_chat_route.py -v
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from inkwell import constants
from inkwell.ai.bridge import TextDelta, ToolCall, ToolCalls
from inkwell.config import Settings
from inkwell.errors import UpstreamError
from inkwell.main import app


@pytest.fixture
def client(store):
    app.state.store = store
    app.state.settings = Settings(openrouter_api_key="or-key")
    return TestClient(app)


def _scripted(*events, fail_with=None):
    async def fake_stream(messages, system_prompt, api_key, *, model, url):
        for event in events:
            yield event
        if fail_with is not None:
            raise fail_with

    return fake_stream


def _frames(response):
    frames = []
    for block in response.text.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


def _chat(client, book, session, content="Hi"):
    return client.post(
        "/api/chat",
        json={
            "book_id": book["id"],
            "session_id": session["id"],
            "messages": [{"role": "user", "content": content}],
        },
    )


class TestChatTurn:
    def test_frame_order(self, client, store, book):
        session = store.create_session(book["id"])
        fake = _scripted(
            TextDelta("Sure. "),
            TextDelta('<<NOTE_TO_SELF: likes fungi>><<ACTION: {"tool":"add_task","content":"Find photo"}>>'),
            ToolCalls([ToolCall("go_to_chapter", {"position": 1})]),
        )
        with patch("inkwell.pipeline.chat_turn.stream_chat", fake):
            response = _chat(client, book, session)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = _frames(response)

        assert frames[0]["type"] == "stats"
        assert frames[0]["modelMax"] == constants.MODEL_CONTEXT_BUDGET
        assert frames[0]["totalTokens"] == frames[0]["systemTokens"] + frames[0]["chatTokens"]
        assert [f["type"] for f in frames[1:3]] == ["token", "token"]
        assert frames[3] == {"type": "ai_notes", "value": "likes fungi"}
        assert frames[4] == {
            "type": "actions",
            "actions": [
                {"tool": "go_to_chapter", "position": 1},
                {"tool": "add_task", "content": "Find photo"},
            ],
        }
        assert frames[5] == "[DONE]"

    def test_messages_and_snapshot_persisted(self, client, store, book):
        session = store.create_session(book["id"])
        with patch("inkwell.pipeline.chat_turn.stream_chat", _scripted(TextDelta("Hello <<NOTE_TO_SELF: n>>"))):
            _chat(client, book, session, content="Hey")

        messages = store.list_messages(session["id"])
        assert [(m["role"], m["content"]) for m in messages] == [("user", "Hey"), ("assistant", "Hello")]
        events = store.list_events(book["id"], entity_type="session")
        assert events[-1]["action"] == "chat_message"
        assert events[-1]["source"] == "ai"

    def test_save_note_tool_is_not_forwarded(self, client, store, book):
        session = store.create_session(book["id"])
        fake = _scripted(ToolCalls([ToolCall("save_note", {"note": "one"}), ToolCall("save_note", {"note": "two"})]))
        with patch("inkwell.pipeline.chat_turn.stream_chat", fake):
            frames = _frames(_chat(client, book, session))

        assert [f["type"] for f in frames[:-1]] == ["stats", "ai_notes", "ai_notes"]
        assert frames[2]["value"] == "one\ntwo"
        assert frames[-1] == "[DONE]"

    def test_upstream_failure_becomes_error_frame(self, client, store, book):
        session = store.create_session(book["id"])
        fake = _scripted(TextDelta("par"), fail_with=UpstreamError("OpenRouter", 500, "boom"))
        with patch("inkwell.pipeline.chat_turn.stream_chat", fake):
            frames = _frames(_chat(client, book, session))

        assert frames[-1]["type"] == "error"
        assert frames[-1]["code"] == "E_UPSTREAM_FAILED"
        assert frames[-1]["session_id"] == session["id"]
        assert "[DONE]" not in frames
        assert [m["role"] for m in store.list_messages(session["id"])] == ["user"]

    def test_missing_key_is_a_500(self, client, store, book):
        app.state.settings = Settings()
        session = store.create_session(book["id"])
        response = _chat(client, book, session)
        assert response.status_code == 500
        assert response.json() == {"error": "OPENROUTER_API_KEY not set"}


class TestActionsEndpoint:
    def test_applies_actions_to_page_state(self, client, store, book, chapters):
        session = store.create_session(book["id"])
        state = {
            "book_id": book["id"],
            "session_id": session["id"],
            "chapters": store.list_chapters(book["id"]),
        }
        response = client.post(
            "/api/actions",
            json={
                "state": state,
                "actions": [
                    {"tool": "go_to_chapter", "position": 2},
                    {"tool": "add_paragraph", "chapter_position": 2, "content": "Roots run deep."},
                    {"tool": "go_to_chapter", "position": 9},
                    {"tool": "download_book", "format": "md"},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["state"]["current_chapter"]["paragraphs"][0]["content"] == "Roots run deep."
        assert body["skipped"] == [{"tool": "go_to_chapter", "reason": "chapter_not_found"}]
        assert body["summaries"][:2] == ["Switched chapters", "Added a paragraph"]
        assert body["downloads"][0]["media_type"] == "text/markdown"
        assert body["downloads"][0]["content_base64"]

    def test_failed_wrap_is_reported_and_turn_continues(self, client, store, book):
        session = store.create_session(book["id"])
        state = {
            "book_id": book["id"],
            "session_id": session["id"],
            "messages": [{"role": "user", "content": "hi"}],
        }
        failing = AsyncMock(side_effect=UpstreamError("OpenRouter", 503, "busy"))
        with patch("inkwell.ai.bridge.summarize", failing):
            response = client.post(
                "/api/actions",
                json={"state": state, "actions": [{"tool": "wrap_session"}, {"tool": "add_task", "content": "later"}]},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["failed"] == [{"tool": "wrap_session", "error": "OpenRouter 503: busy"}]
        assert [t["content"] for t in body["state"]["tasks"]] == ["later"]


class TestManuscriptEndpoints:
    def test_edit_then_undo(self, client, store, chapters):
        paragraph = store.list_paragraphs(chapters[0]["id"])[0]

        edited = client.patch(f"/api/paragraphs/{paragraph['id']}", json={"content": "Goodbye"})
        assert edited.json()["paragraph"]["content"] == "Goodbye"

        undone = client.post(f"/api/paragraphs/{paragraph['id']}/undo")
        assert undone.status_code == 200
        assert undone.json()["paragraph"]["content"] == "Hello world"

        again = client.post(f"/api/paragraphs/{paragraph['id']}/undo")
        assert again.status_code == 404
        assert again.json() == {"error": "nothing to undo"}

    def test_unknown_chapter_is_404(self, client):
        assert client.get("/api/chapters/999").status_code == 404

    def test_page_load(self, client, store, book, chapters):
        response = client.get(f"/api/books/{book['id']}/page")
        assert response.status_code == 200
        body = response.json()
        assert [c["title"] for c in body["chapters"]] == ["Introduction", "Roots"]
        assert body["current_chapter"]["title"] == "Introduction"
        assert body["word_count"] == 5

    def test_export_markdown(self, client, book, chapters):
        response = client.get(f"/api/books/{book['id']}/export", params={"format": "md"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.startswith("# ")

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
