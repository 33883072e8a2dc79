"""Tests for the action vocabulary: provider schema and the shared decoder.

Run:
    pytest tests/test_actions.py -v
"""

from inkwell.ai.actions import (
    TOOLS,
    Action,
    ToolName,
    decode_action,
    decode_tagged,
    decode_wire,
)


class TestToolSchema:
    def test_every_tool_is_exported(self):
        names = {t["function"]["name"] for t in TOOLS}
        assert names == {name.value for name in ToolName}

    def test_schema_shape(self):
        for tool in TOOLS:
            assert tool["type"] == "function"
            function = tool["function"]
            assert function["description"]
            assert function["parameters"]["type"] == "object"

    def test_required_parameters(self):
        by_name = {t["function"]["name"]: t["function"]["parameters"] for t in TOOLS}
        assert set(by_name["edit_paragraph"]["required"]) == {
            "chapter_position",
            "paragraph_position",
            "content",
        }
        assert by_name["add_task"]["required"] == ["content"]
        assert "chapter_position" in by_name["add_task"]["properties"]
        assert not by_name["download_book"].get("required")


class TestDecodeAction:
    def test_coerces_numeric_strings(self):
        action = decode_action("go_to_chapter", {"position": "3"})
        assert action == Action(ToolName.GO_TO_CHAPTER, action.args)
        assert action.args.position == 3

    def test_unknown_tool_is_ignored(self):
        assert decode_action("delete_everything", {}) is None

    def test_invalid_arguments_are_dropped(self):
        assert decode_action("add_paragraph", {"chapter_position": 1}) is None
        assert decode_action("go_to_chapter", {"position": "three"}) is None

    def test_aliases_resolve(self):
        assert decode_action("navigate_to_chapter", {"position": 1}).tool is ToolName.GO_TO_CHAPTER
        assert decode_action("new_session", {}).tool is ToolName.START_NEW_SESSION
        assert decode_action("save_private_note", {"note": "x"}).tool is ToolName.SAVE_NOTE

    def test_unknown_format_defaults_to_pdf(self):
        assert decode_action("download_book", {"format": "docx"}).args.format == "pdf"
        assert decode_action("download_book", {}).args.format == "pdf"
        assert decode_action("download_book", {"format": "md"}).args.format == "md"

    def test_wrap_summary_is_optional(self):
        action = decode_action("wrap_session", {})
        assert action.args.summary is None


class TestWireFormat:
    def test_to_wire_flattens_args(self):
        action = decode_action("add_task", {"content": "y"})
        assert action.to_wire() == {"tool": "add_task", "content": "y"}

    def test_decode_tagged_reads_tool_key(self):
        action = decode_tagged({"tool": "add_chapter", "title": "Roots"})
        assert action.tool is ToolName.ADD_CHAPTER
        assert action.args.title == "Roots"

    def test_decode_tagged_rejects_non_objects(self):
        assert decode_tagged(["add_chapter"]) is None
        assert decode_tagged({"title": "no tool"}) is None

    def test_decode_wire_keeps_valid_in_order(self):
        actions = decode_wire([
            {"tool": "add_chapter", "title": "A"},
            {"tool": "bogus"},
            {"tool": "go_to_chapter", "position": 2},
        ])
        assert [a.tool for a in actions] == [ToolName.ADD_CHAPTER, ToolName.GO_TO_CHAPTER]
