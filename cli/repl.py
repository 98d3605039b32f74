"""REPL core loop."""

import asyncio
import logging
import sys
import time
from contextlib import aclosing
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.live import Live
from rich.panel import Panel

from api.core.errors import StreamUpstreamError
from cli.client import ChatClient
from cli.command_handler import CommandHandler
from cli.keyboard_listener import KeyboardListener
from cli.state import REPLState
from cli.stream_consumer import StreamConsumer
from cli.stream_renderer import StreamRenderer

logger = logging.getLogger(__name__)

# Global console
console = Console(
    legacy_windows=False,
    force_terminal=True,
    force_interactive=False,
    no_color=False,
    tab_size=4
)

# Log directory
LOG_DIR = Path(__file__).parent.parent / "log"
LOG_DIR.mkdir(exist_ok=True)


async def process_stream(client: ChatClient, state: REPLState, renderer: StreamRenderer, prompt: str):
    """Send one chat turn and render the response while it streams.

    Args:
        client: Chat service client
        state: REPL state
        renderer: Output renderer
        prompt: User message
    """
    messages = state.begin_turn(prompt)
    first = len(messages)
    consumer = StreamConsumer(messages)
    listener: Optional[KeyboardListener] = KeyboardListener() if sys.stdin.isatty() else None
    interrupted = False
    started = time.monotonic()

    try:
        with Live(renderer.render([], "connecting"), console=console, refresh_per_second=12) as live:
            consumer.start()
            async with aclosing(client.stream_chat(state.conversation_id, prompt, state.max_steps, state.model)) as chunks:
                async for chunk in chunks:
                    if listener is not None and listener.check_esc():
                        # Closing the response cancels the turn on the server
                        interrupted = True
                        logger.info("User interrupted response")
                        break
                    consumer.feed(chunk)
                    live.update(renderer.render(messages[first:], consumer.status))
                    if consumer.done:
                        break
            consumer.close()
            live.update(renderer.render(messages[first:]))
    except StreamUpstreamError as e:
        # The server stores nothing for a failed turn
        del messages[first - 1:]
        state.last_error_retryable = e.retryable
        renderer.show_error(e.message, e.retryable)
        logger.warning(f"Stream failed (retryable={e.retryable}): {e.message}")
        return
    finally:
        if listener is not None:
            listener.restore()

    if interrupted:
        del messages[first - 1:]
        renderer.show_interrupted()
    else:
        renderer.on_finish(consumer.finish_reason, time.monotonic() - started)


class REPLRunner:
    """REPL runner.

    Wraps the interactive main loop.
    """

    def __init__(self, server_url: str, max_steps: Optional[int] = None):
        """
        Args:
            server_url: Chat service base URL
            max_steps: Step cap sent with every turn
        """
        self.client = ChatClient(server_url)
        self.state = REPLState(max_steps=max_steps)
        self.renderer = StreamRenderer(console)
        self.command_handler = CommandHandler(self.state, self.client, retry=self._process_query)

    def _show_welcome(self):
        console.print(Panel.fit(
            "[bold cyan]Plugin Chat CLI[/bold cyan]\n"
            f"[green]Server:[/green] {self.client.base_url}\n"
            f"[green]Conversation:[/green] {self.state.conversation_id[:8]}\n"
            "Type /help for help, /tools to list tools, /q to quit",
            border_style="blue"
        ))
        console.print()

    def _build_prompt(self) -> HTML:
        return HTML(f'<ansicyan>[{self.state.conversation_id[:8]}]</ansicyan> <b>You></b> ')

    async def _process_query(self, user_input: str):
        self.renderer.start_response()
        await process_stream(self.client, self.state, self.renderer, user_input)

    async def run(self):
        """Main loop."""
        # Persistent command history
        history_file = LOG_DIR / ".cli_history"
        session = PromptSession(history=FileHistory(str(history_file)))

        self._show_welcome()

        try:
            while True:
                try:
                    user_input = await session.prompt_async(self._build_prompt())

                    if not user_input.strip():
                        continue

                    if user_input.startswith("/"):
                        should_continue = await self.command_handler.handle(user_input.strip())
                        if not should_continue:
                            break
                        continue

                    await self._process_query(user_input.strip())

                except asyncio.CancelledError:
                    print()
                    continue

                except KeyboardInterrupt:
                    print("\n\033[33m(use /q to quit)\033[0m\n")
                    continue

                except EOFError:
                    print("\n\033[33mbye bye!\033[0m")
                    break

                except Exception as e:
                    print(f"\033[31mError: {str(e)}\033[0m\n")
                    logger.exception("REPL error")
        finally:
            await self.client.close()
