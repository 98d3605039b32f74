"""Prompt building utilities for chat requests."""

import logging
from typing import Optional, Sequence

from api.constants import TERMINAL_TOOL_PREFIXES
from api.plugins.registry import CallableWidget

logger = logging.getLogger(__name__)


def build_system_prompt(
    widgets: Sequence[CallableWidget] = (),
    extra_instructions: Optional[str] = None,
    terminal_tool_prefixes: Sequence[str] = TERMINAL_TOOL_PREFIXES,
) -> str:
    """
    Build the system instructions for a chat turn.

    Args:
        widgets: Widgets currently in the catalog
        extra_instructions: Appended verbatim when given
        terminal_tool_prefixes: Tool name prefixes that end the turn

    Returns:
        Formatted prompt string
    """
    parts = []

    # Role
    parts.append("# Role")
    parts.append(
        "You are a personal assistant. Answer the user's questions, "
        "using the tools available to you where they help."
    )
    parts.append("Call tools without announcing the call to the user.")

    # Widgets
    if widgets:
        parts.append("\n# Widgets")
        prefixes = " or ".join(f"'{p}'" for p in terminal_tool_prefixes)
        if prefixes:
            parts.append(f"Tools whose name starts with {prefixes} render one of these widgets and end your turn:")
        else:
            parts.append("These widgets can be rendered by tools:")
        for widget in widgets:
            line = f"- {widget.title} ({widget.id})"
            if widget.description:
                line += f": {widget.description}"
            parts.append(line)

    if extra_instructions:
        parts.append("\n# Additional instructions")
        parts.append(extra_instructions)

    return "\n".join(parts)
