"""chatrelay shell - terminal chat client.

A rich TUI that talks to the chatrelay server over HTTP/SSE, runs client
tools against its local state and autosaves the active conversation.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path
from typing import Any, Optional

import httpx
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.style import Style
from rich.text import Text

from ..schemas.conversations import (
    Conversation,
    ConversationListItem,
    ConversationUpsert,
    generate_conversation_id,
)
from .api import ApiError, ChatApiClient
from .context import STORAGE_FILE, AppContext, LocalStorage, ModelConfig, Notification
from .session import ConversationSession
from .tools import ClientToolRegistry

USER_STYLE = Style(color="bright_blue", bold=True)
ASSISTANT_STYLE = Style(color="bright_green")
TOOL_STYLE = Style(color="yellow")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

NOTIFICATION_STYLES = {
    "success": "green",
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}

HELP_TEXT = """
[bold]Commands:[/bold]
  /help                    Show this help message
  /new                     Start a new conversation
  /list                    List saved conversations
  /open <id>               Open a saved conversation
  /delete <id>             Delete a saved conversation
  /rename <title>          Rename the current conversation
  /model                   Show the current provider and model
  /model <provider> <id>   Switch provider and model
  /sidebar                 Toggle the conversation sidebar
  /theme <light|dark|auto> Change the theme
  /quit                    Exit

[bold]Shortcuts:[/bold]
  Ctrl+C                   Cancel current request
  Ctrl+D                   Exit
"""


def _short(value: Any, limit: int = 100) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


class ShellChat:
    """Terminal chat client and conversation navigator for client tools."""

    def __init__(
        self,
        server_url: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        storage_path: Path = STORAGE_FILE,
        api: Optional[ChatApiClient] = None,
        console: Optional[Console] = None,
        autosave_delay: float = 1.0,
    ):
        self.console = console or Console()
        self.api = api or ChatApiClient(server_url)
        self.running = True
        self._autosave_delay = autosave_delay

        storage = LocalStorage(storage_path)
        self.context = AppContext(
            navigator=self,
            storage=storage,
            model_config=ModelConfig(
                provider=provider or "openai", model=model or "gpt-4o"
            ),
            notifier=self._show_notification,
        )
        found, theme = storage.get("theme")
        if found and isinstance(theme, str):
            self.context.theme = theme

        self.tools = ClientToolRegistry(lambda: self.context)
        self.session = self._new_session()

    def _new_session(
        self, conversation: Optional[Conversation] = None
    ) -> ConversationSession:
        options: dict[str, Any] = {
            "get_model_config": lambda: self.context.model_config,
            "tools": self.tools,
            "autosave_delay": self._autosave_delay,
        }
        if conversation is None:
            return ConversationSession(self.api, **options)
        return ConversationSession.from_conversation(self.api, conversation, **options)

    # Conversation navigation used by client tools and slash commands

    async def new_conversation(self) -> str:
        await self.session.flush()
        conversation_id = generate_conversation_id()
        self.session = self._new_session()
        self.session.conversation_id = conversation_id
        self.context.active_conversation_id = conversation_id
        return conversation_id

    async def select_conversation(self, conversation_id: str) -> None:
        conversation = await self.api.get_conversation(conversation_id)
        await self.session.flush()
        self.session = self._new_session(conversation)
        self.context.active_conversation_id = conversation.id
        if conversation.provider and conversation.model:
            self.context.model_config = ModelConfig(
                provider=conversation.provider, model=conversation.model
            )
        self._render_history(conversation)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.api.delete_conversation(conversation_id)
        if conversation_id == self.session.conversation_id:
            self.session.discard()
            self.session = self._new_session()
            self.context.active_conversation_id = None
        await self.refresh_conversations()

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        if conversation_id == self.session.conversation_id:
            self.session.title = title
            if await self.session.save() is None:
                raise ApiError(500, f"Could not save conversation {conversation_id}")
            return
        conversation = await self.api.get_conversation(conversation_id)
        await self.api.save_conversation(
            ConversationUpsert(
                id=conversation.id,
                title=title,
                messages=conversation.messages,
                model=conversation.model,
                provider=conversation.provider,
            )
        )

    async def refresh_conversations(self) -> list[ConversationListItem]:
        items = await self.api.list_conversations()
        self.context.conversations = items
        return items

    # Rendering

    def _show_notification(self, notification: Notification) -> None:
        color = NOTIFICATION_STYLES.get(notification.type, "cyan")
        self.console.print(
            Panel(notification.message, border_style=color, title=notification.type)
        )

    def _render_history(self, conversation: Conversation) -> None:
        self.console.print(
            f"[info]Opened: {conversation.title}[/info] [dim]({conversation.id})[/dim]",
            style=INFO_STYLE,
        )
        for message in conversation.messages:
            text = message.text()
            if not text:
                continue
            if message.role == "user":
                self.console.print(Text(f"You: {text}", style=USER_STYLE))
            else:
                self.console.print(Markdown(text))

    def _render_conversations(self, items: list[ConversationListItem]) -> None:
        if not items:
            self.console.print("[dim]No saved conversations[/dim]")
            return
        self.console.print("\n[bold]Conversations:[/bold]")
        for item in items:
            marker = " [active]" if item.id == self.session.conversation_id else ""
            self.console.print(
                f"  {item.id}  {item.title}{marker} "
                f"[dim]({item.message_count} messages, {item.updated_at:%Y-%m-%d %H:%M})[/dim]"
            )
        self.console.print()

    async def _check_health(self) -> bool:
        try:
            data = await self.api.health()
        except (ApiError, httpx.HTTPError) as exc:
            self.console.print(
                f"[error]Cannot connect to server: {exc}[/error]", style=ERROR_STYLE
            )
            return False
        self.console.print(
            f"[dim]Connected. Server default: {data.get('defaultProvider')}/"
            f"{data.get('defaultModel')}. Using "
            f"{self.context.model_config.provider}/{self.context.model_config.model}[/dim]"
        )
        return True

    # Commands

    async def _run_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        result = await self.tools.execute(name, arguments)
        if not result.get("success"):
            self.console.print(
                f"[error]{result.get('error', 'Failed')}[/error]", style=ERROR_STYLE
            )
        return result

    async def _handle_command(self, cmd: str) -> bool:
        """Handle slash commands. Returns True if handled."""

        parts = cmd.strip().split(maxsplit=2)
        if not parts:
            return False
        command = parts[0].lower()
        args = parts[1:]

        if command == "/help":
            self.console.print(
                Panel(HELP_TEXT.strip(), title="chatrelay shell", border_style="blue")
            )
        elif command == "/quit":
            self.running = False
        elif command == "/new":
            conversation_id = await self.new_conversation()
            self.console.print(f"[info]New conversation {conversation_id}[/info]", style=INFO_STYLE)
        elif command == "/list":
            try:
                self._render_conversations(await self.refresh_conversations())
            except (ApiError, httpx.HTTPError) as exc:
                self.console.print(f"[error]{exc}[/error]", style=ERROR_STYLE)
        elif command == "/open" and args:
            await self._run_tool("switch_conversation", {"conversationId": args[0]})
        elif command == "/delete" and args:
            result = await self._run_tool("delete_conversation", {"conversationId": args[0]})
            if result.get("success"):
                self.console.print(f"[info]Deleted {args[0]}[/info]", style=INFO_STYLE)
        elif command == "/rename" and args:
            title = " ".join(args)
            if self.session.conversation_id is None:
                self.session.title = title
                self.console.print("[dim]Title will be used on first save[/dim]")
            else:
                await self._run_tool(
                    "rename_conversation",
                    {"conversationId": self.session.conversation_id, "newTitle": title},
                )
        elif command == "/model":
            if len(args) == 2:
                await self._run_tool("change_model", {"provider": args[0], "model": args[1]})
            config = self.context.model_config
            self.console.print(
                f"[info]Model: {config.provider}/{config.model}[/info]", style=INFO_STYLE
            )
        elif command == "/sidebar":
            result = await self._run_tool("toggle_sidebar", {})
            if result.get("isOpen"):
                try:
                    self._render_conversations(await self.refresh_conversations())
                except (ApiError, httpx.HTTPError) as exc:
                    self.console.print(f"[error]{exc}[/error]", style=ERROR_STYLE)
            else:
                self.console.print("[dim]Sidebar closed[/dim]")
        elif command == "/theme" and args:
            result = await self._run_tool("update_ui_theme", {"theme": args[0]})
            if result.get("success"):
                self.console.print(f"[info]Theme: {result['theme']}[/info]", style=INFO_STYLE)
        else:
            return False
        return True

    async def _stream_chat(self, message: str) -> None:
        """Send a message and render the streamed turn."""

        session = self.session
        full_response = ""
        tool_lines: list[str] = []

        try:
            with Live(console=self.console, refresh_per_second=10) as live:
                async for event in session.send(message):
                    data = event.data
                    if event.event == "text-delta":
                        full_response += data.get("delta", "")
                        live.update(Markdown(full_response))
                    elif event.event == "tool-call":
                        site = data.get("executionSite", "server")
                        live.update(
                            Text(f"🔧 Calling {data.get('name')} ({site})...", style=TOOL_STYLE)
                        )
                    elif event.event in ("tool-result", "client-tool-result"):
                        outcome = data.get("error") or data.get("result")
                        tool_lines.append(f"✓ {data.get('name')}: {_short(outcome)}")
                    elif event.event == "done":
                        if data.get("finishReason") == "hop-limit":
                            tool_lines.append("⏸️  Tool loop limit reached")
                        full_response = ""
                    elif event.event == "error":
                        self.console.print(
                            f"[error]Error: {data.get('error')}[/error]", style=ERROR_STYLE
                        )
            for line in tool_lines:
                self.console.print(f"[dim]{line}[/dim]")
        except ApiError as exc:
            self.console.print(f"[error]Error {exc}[/error]", style=ERROR_STYLE)
        except httpx.HTTPError as exc:
            self.console.print(f"[error]Error: {exc}[/error]", style=ERROR_STYLE)

    async def run(self) -> None:
        """Main chat loop."""

        if not await self._check_health():
            await self.api.aclose()
            return

        self.console.print()
        self.console.print(
            "[bold]chatrelay shell[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        try:
            while self.running:
                try:
                    user_input = await asyncio.to_thread(
                        Prompt.ask, "[bold blue]You[/bold blue]", console=self.console
                    )
                except EOFError:
                    self.console.print("\n[dim]Goodbye![/dim]")
                    break
                if not user_input.strip():
                    continue
                if user_input.startswith("/") and await self._handle_command(user_input):
                    continue
                self.console.print()
                await self._stream_chat(user_input)
                self.console.print()
        finally:
            await self.session.flush()
            await self.api.aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""

    parser = argparse.ArgumentParser(
        description="chatrelay shell - terminal client for the chatrelay server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  chatrelay-shell                                Connect to localhost:8000
  chatrelay-shell --server http://pi:8000        Connect to a remote server
  chatrelay-shell --provider anthropic --model claude-sonnet-4-20250514

Environment Variables:
  CHATRELAY_SERVER    Default server URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("CHATRELAY_SERVER", "http://localhost:8000"),
        help="Server URL (default: http://localhost:8000)",
    )
    parser.add_argument("--provider", default=None, help="openai, anthropic or gemini")
    parser.add_argument("--model", default=None, help="Model id for the provider")
    args = parser.parse_args(argv)

    chat = ShellChat(args.server, provider=args.provider, model=args.model)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
