"""Prompt assembly for the assistant run."""

from gitlab_agent.prompt.builder import (
    PromptResult,
    build_allowed_tools,
    build_disallowed_tools,
    create_prompt,
    generate_prompt,
    get_event_type_and_context,
)

__all__ = [
    "PromptResult",
    "build_allowed_tools",
    "build_disallowed_tools",
    "create_prompt",
    "generate_prompt",
    "get_event_type_and_context",
]
