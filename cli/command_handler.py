"""Command handler with command pattern."""

from typing import Awaitable, Callable, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cli.client import ChatClient
from cli.state import REPLState

console = Console(
    legacy_windows=False,
    force_terminal=True,
    force_interactive=False,
    no_color=False,
    tab_size=4
)


class CommandHandler:
    """Slash-command dispatcher.

    Maps command prefixes to handlers instead of a long if-elif chain.
    """

    def __init__(
        self,
        state: REPLState,
        client: ChatClient,
        retry: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        """
        Args:
            state: REPL state
            client: Chat service client
            retry: Re-sends a prompt (used by /retry)
        """
        self.state = state
        self.client = client
        self.retry = retry
        self.commands = self._register_commands()

    def _register_commands(self) -> Dict[str, Callable[[str], Awaitable[bool]]]:
        return {
            "/q": self._cmd_quit,
            "/quit": self._cmd_quit,
            "/exit": self._cmd_quit,
            "/new": self._cmd_new_conversation,
            "/tools": self._cmd_tools,
            "/reload": self._cmd_reload,
            "/history": self._cmd_history,
            "/model": self._cmd_model,
            "/retry": self._cmd_retry,
            "/help": self._cmd_help,
        }

    async def handle(self, cmd: str) -> bool:
        """Handle a command.

        Returns:
            Whether the REPL loop should continue
        """
        name = cmd.split(maxsplit=1)[0]
        handler = self.commands.get(name)
        if handler is not None:
            return await handler(cmd)

        console.print(f"[red]Unknown command: {cmd}[/red]")
        console.print("[dim]Type /help for help[/dim]\n")
        return True

    async def _cmd_quit(self, cmd: str) -> bool:
        console.print("[yellow]bye bye![/yellow]")
        return False

    async def _cmd_new_conversation(self, cmd: str) -> bool:
        self.state.new_conversation()
        console.print(f"[green]✓ new conversation {self.state.conversation_id[:8]}[/green]\n")
        return True

    async def _cmd_tools(self, cmd: str) -> bool:
        """List the tools and widgets the server currently offers."""
        catalog = await self.client.get_catalog()
        table = Table(title="Tools")
        table.add_column("Name", style="cyan")
        table.add_column("Plugin")
        table.add_column("Type")
        table.add_column("Description")
        for tool in catalog.get("tools", []):
            table.add_row(tool["name"], tool.get("plugin_id", ""), tool.get("type", ""), tool.get("description", ""))
        console.print(table)

        widgets = catalog.get("widgets", [])
        if widgets:
            widget_table = Table(title="Widgets")
            widget_table.add_column("Id", style="magenta")
            widget_table.add_column("Title")
            widget_table.add_column("URL")
            for widget in widgets:
                widget_table.add_row(widget["id"], widget.get("title", ""), widget.get("url", ""))
            console.print(widget_table)
        console.print()
        return True

    async def _cmd_reload(self, cmd: str) -> bool:
        """Ask the server to reload its plugins and show the report."""
        data = await self.client.reload_plugins()
        result = data.get("result", {})
        table = Table(title="Plugin reload")
        table.add_column("Plugin", style="cyan")
        table.add_column("State")
        table.add_column("Tools", justify="right")
        table.add_column("Error")
        for report in result.get("plugins", []):
            error = report.get("error") or {}
            style = {"loaded": "green", "failed": "red"}.get(report["state"], "dim")
            table.add_row(
                report["plugin_id"],
                f"[{style}]{report['state']}[/{style}]",
                str(report.get("tool_count", 0)),
                error.get("message", ""),
            )
        console.print(table)
        for collision in result.get("collisions", []):
            console.print(
                f"[yellow]tool '{collision['name']}' from {collision['winner']} "
                f"overrides {collision['replaced']}[/yellow]"
            )
        console.print()
        return True

    async def _cmd_history(self, cmd: str) -> bool:
        """Show the server-side history of the current conversation."""
        messages = await self.client.list_messages(self.state.conversation_id)
        if not messages:
            console.print("[yellow]No messages yet[/yellow]\n")
            return True
        table = Table(title=f"Conversation {self.state.conversation_id[:8]}")
        table.add_column("#", justify="right")
        table.add_column("Role", style="cyan")
        table.add_column("Content")
        for i, message in enumerate(messages):
            summary = message.text
            if message.tool_calls:
                summary += " " + ", ".join(f"→ {c.tool_name}" for c in message.tool_calls)
            if message.tool_results:
                summary += " " + ", ".join(f"← {r.tool_name}" for r in message.tool_results)
            table.add_row(str(i), message.role, summary.strip()[:120])
        console.print(table)
        console.print()
        return True

    async def _cmd_model(self, cmd: str) -> bool:
        """Show model configs, or pick the one sent with each turn."""
        parts = cmd.split(maxsplit=1)
        data = await self.client.get_config()
        configs = data.get("configs", [])

        if len(parts) == 1:
            table = Table(title="Model configs")
            table.add_column("Name", style="cyan")
            table.add_column("Model")
            table.add_column("Base URL")
            table.add_column("")
            for config in configs:
                marks = []
                if config.get("is_active"):
                    marks.append("server default")
                if config["name"] == self.state.model:
                    marks.append("[green]selected[/green]")
                table.add_row(config["name"], config.get("model", ""), config.get("base_url", ""), ", ".join(marks))
            console.print(table)
            console.print()
            return True

        name = parts[1].strip()
        if name == "default":
            self.state.model = None
            console.print(f"[green]✓ using the server default ({data.get('current')})[/green]\n")
            return True
        if name not in {c["name"] for c in configs}:
            console.print(f"[red]Unknown model config: {name}[/red]\n")
            return True
        self.state.model = name
        console.print(f"[green]✓ model config set to {name}[/green]\n")
        return True

    async def _cmd_retry(self, cmd: str) -> bool:
        if not self.state.last_prompt or not self.state.last_error_retryable or self.retry is None:
            console.print("[yellow]Nothing to retry[/yellow]\n")
            return True
        await self.retry(self.state.last_prompt)
        return True

    async def _cmd_help(self, cmd: str) -> bool:
        help_text = """[bold]Commands:[/bold]
  /q, /quit, /exit    Exit the CLI
  /new                Start a new conversation
  /tools              List available tools and widgets
  /reload             Reload plugins on the server
  /history            Show the conversation stored on the server
  /model [name]       List model configs, or use one for this session (/model default resets)
  /retry              Resend the last message after a temporary error
  /help               Show this help

[bold]Keys:[/bold]
  ESC                 Interrupt the current response"""
        console.print(Panel(help_text, title="Help", border_style="blue"))
        console.print()
        return True
