"""Enhanced logging for tool-loop progress."""

import json
import logging
import os
import sys
from typing import Any


class Colors:
    """ANSI color codes (only used when TTY detected)"""
    RESET = '\033[0m'
    CYAN = '\033[96m'      # Step boundaries
    GREEN = '\033[92m'     # Model text
    MAGENTA = '\033[95m'   # Tool calls
    YELLOW = '\033[93m'    # Tool results
    BLUE = '\033[94m'      # Loop finished
    RED = '\033[91m'       # Errors
    BOLD = '\033[1m'
    DIM = '\033[2m'


def _should_use_colors() -> bool:
    """Check if colored output should be enabled"""
    # Check environment variable first
    force_color = os.getenv('FORCE_COLOR', '').lower()
    if force_color in ('1', 'true', 'yes', 'on'):
        return True
    elif force_color in ('0', 'false', 'no', 'off'):
        return False

    # Auto-detect: use colors if stderr is a TTY
    return sys.stderr.isatty()


# Global flag for color usage
USE_COLORS = _should_use_colors()


def _colorize(text: str, color: str) -> str:
    """Apply color to text if colors are enabled"""
    if USE_COLORS:
        return f"{color}{text}{Colors.RESET}"
    return text


def _preview(value: Any, limit: int = 100) -> str:
    """Single-line, truncated JSON preview of a value"""
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False, default=str)
    text = text.replace('\n', ' ')
    if len(text) > limit:
        text = text[:limit - 3] + '...'
    return text


class StreamLogger:
    """Colored one-line log records for each loop event"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_step_start(self, index: int, message_count: int, tool_count: int):
        prefix = _colorize(f"[Step:{index}]", Colors.CYAN)
        self.logger.info(f"{prefix} Requesting model ({message_count} messages, {tool_count} tools)")

    def log_text(self, text: str):
        """Log the text produced in one step"""
        if not text:
            return
        prefix = _colorize("[Assistant]", Colors.GREEN)
        self.logger.info(f'{prefix} Text: "{_preview(text, 80)}"')

    def log_tool_call(self, tool_name: str, tool_call_id: str, tool_input: Any):
        prefix = _colorize(f"[Tool:{tool_name}]", Colors.MAGENTA)
        self.logger.info(f"{prefix} call={tool_call_id} input={_preview(tool_input)}")

    def log_tool_result(self, tool_name: str, tool_call_id: str, output: Any, is_error: bool):
        if is_error:
            prefix = _colorize(f"[Tool:{tool_name}] ✗", Colors.RED)
        else:
            prefix = _colorize(f"[Tool:{tool_name}] ✓", Colors.YELLOW)
        self.logger.info(f"{prefix} call={tool_call_id} output={_preview(output)}")

    def log_finish(self, reason: str, step_count: int):
        prefix = _colorize("[Loop]", Colors.BLUE)
        self.logger.info(f"{prefix} Stopping after {step_count} step(s), reason={reason}")
