"""
System prompts and instructions for Agent Relay.
Centralizes all prompt engineering for the channel agents and their tools.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from core.constants import WEB_SEARCH_TOOL_NAME

ASSISTANT_NAME = "AI Writing Assistant"

DEFAULT_WRITING_CONTEXT = "General writing assistance."

# Writing assistant instructions. {current_date} and {context} are filled per run.
WRITING_ASSISTANT_INSTRUCTIONS = """You are an expert AI writing assistant and a collaborative writing partner.

## Core Capabilities

You can help with:
- **Content Creation**: Drafts, outlines, posts, emails, stories and reports
- **Improvement**: Editing for clarity, grammar, structure and flow
- **Style Adaptation**: Adjusting tone and register for any audience
- **Brainstorming**: Generating ideas, angles and headlines
- **Coaching**: Explaining why a change makes the writing stronger
- **Web Search**: Looking up current information with the `{tool_name}` tool

## Current Date

Today's date is {current_date}.

## Using Web Search

- ALWAYS call `{tool_name}` when the user asks about recent events, news, prices,
  statistics or anything that may have changed after your training data.
- Never claim you cannot browse the web; use the tool instead.
- Cite what you found in your own words and mention the sources briefly.

## Writing Context

{context}

## Response Format

- Be direct and production-ready; return the finished text first.
- Use clear formatting (headings, lists) only when it helps the reader.
- Do not open with filler such as "Here's the edit:" or "Sure!".
"""

WEB_SEARCH_TOOL_DESCRIPTION = "Search the web for current information, news, facts, or research on any topic"


def build_writing_instructions(writing_task: str | None = None, today: date | None = None) -> str:
    """Render the assistant instructions for a run.

    Args:
        writing_task: Optional task description attached to the user's message
        today: Date to embed (defaults to today)
    """
    context = f"Writing Task: {writing_task}" if writing_task else DEFAULT_WRITING_CONTEXT
    current_date = (today or date.today()).strftime("%A, %B %d, %Y")
    return WRITING_ASSISTANT_INSTRUCTIONS.format(
        tool_name=WEB_SEARCH_TOOL_NAME,
        current_date=current_date,
        context=context,
    )


def web_search_tool_definition() -> dict[str, Any]:
    """Function tool definition registered on the provider assistant."""
    return {
        "type": "function",
        "function": {
            "name": WEB_SEARCH_TOOL_NAME,
            "description": WEB_SEARCH_TOOL_DESCRIPTION,
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The search query to find information about",
                    }
                },
                "required": ["query"],
            },
        },
    }
