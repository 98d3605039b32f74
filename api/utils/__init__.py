"""Utility functions for the chat service."""

from .sse_formatter import format_sse_message, format_done_message, format_frame
from .prompt_builder import build_system_prompt

__all__ = [
    'format_sse_message',
    'format_done_message',
    'format_frame',
    'build_system_prompt',
]
