"""Stream output renderer."""

import json
from typing import Any, Optional, Sequence

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from api.models.messages import Message, TextPart, ToolResultPart
from api.plugins.http import join_url

OUTPUT_PREVIEW_CHARS = 600


def _output_preview(output: Any) -> str:
    text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False, indent=2, default=str)
    if len(text) > OUTPUT_PREVIEW_CHARS:
        text = text[:OUTPUT_PREVIEW_CHARS] + "\n..."
    return text


class StreamRenderer:
    """Renders the message list produced by the stream consumer."""

    def __init__(self, console: Console):
        self.console = console

    def start_response(self):
        self.console.print("[dim]Press ESC to interrupt the response[/dim]")

    def render(self, messages: Sequence[Message], status: str = "") -> RenderableType:
        """Renderable for the assistant side of one turn, top to bottom."""
        items = []
        for message in messages:
            for part in message.parts:
                if isinstance(part, TextPart) and part.text:
                    items.append(Markdown(part.text))
                elif isinstance(part, ToolResultPart):
                    items.append(self._render_tool_result(part))
        if status:
            items.append(Text(f"⋯ {status}", style="dim italic"))
        return Group(*items)

    def _render_tool_result(self, part: ToolResultPart) -> Panel:
        output = part.output
        error = output.get("error") if isinstance(output, dict) else None
        if isinstance(error, dict):
            return Panel(
                Text(str(error.get("message", "")), style="red"),
                title=f"✗ {part.tool_name}",
                border_style="red",
            )
        if isinstance(output, dict) and output.get("baseURL"):
            widget_url = join_url(output["baseURL"], str(output["url"])) if output.get("url") else output["baseURL"]
            body = Text.assemble(("widget: ", "bold"), (str(widget_url), "underline cyan"))
            return Panel(body, title=f"▣ {part.tool_name}", border_style="magenta")
        return Panel(_output_preview(output), title=f"✓ {part.tool_name}", border_style="yellow")

    def on_finish(self, reason: Optional[str], duration: float):
        suffix = f", {reason}" if reason else ""
        self.console.print(f"[green]✓ done ({duration:.1f}s{suffix})[/green]\n")

    def show_error(self, message: str, retryable: bool):
        self.console.print(f"[red]✗ error: {message}[/red]")
        if retryable:
            self.console.print("[dim]This looks temporary, use /retry to send the message again[/dim]")
        self.console.print()

    def show_interrupted(self):
        self.console.print("[yellow]⚠ response interrupted[/yellow]\n")
