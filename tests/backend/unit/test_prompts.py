"""Tests for assistant instructions and tool definitions."""

from __future__ import annotations

from datetime import date

from core.prompts import (
    DEFAULT_WRITING_CONTEXT,
    build_writing_instructions,
    web_search_tool_definition,
)


class TestWritingInstructions:
    def test_default_context(self) -> None:
        instructions = build_writing_instructions(today=date(2025, 1, 15))

        assert DEFAULT_WRITING_CONTEXT in instructions
        assert "Wednesday, January 15, 2025" in instructions
        assert "`web_search`" in instructions

    def test_writing_task_is_embedded(self) -> None:
        instructions = build_writing_instructions("Product launch email")

        assert "Writing Task: Product launch email" in instructions
        assert DEFAULT_WRITING_CONTEXT not in instructions

    def test_no_unfilled_placeholders(self) -> None:
        instructions = build_writing_instructions("x")

        assert "{" not in instructions


def test_web_search_tool_definition() -> None:
    tool = web_search_tool_definition()

    assert tool["type"] == "function"
    assert tool["function"]["name"] == "web_search"
    assert tool["function"]["parameters"]["required"] == ["query"]
