"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
from pathlib import Path

from rich.console import Console

from adkchat.cli.output import OutputFormatter
from adkchat.errors import AttachmentError
from adkchat.session.attachments import MAX_ATTACHMENT_BYTES, encode_file
from adkchat.session.control import SessionService
from adkchat.session.conversation import ERROR_REASON, Conversation
from adkchat.types import InlineData, Message


class ChatHandler:
    """
    Manages the interactive chat loop.

    Handles incremental rendering of agent replies, inline commands and
    pending file attachments.
    """

    def __init__(
        self,
        conversation: Conversation,
        console: Console | None = None,
        session_service: SessionService | None = None,
        max_attachment_bytes: int = MAX_ATTACHMENT_BYTES,
    ) -> None:
        self.conversation = conversation
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.session_service = session_service
        self.max_attachment_bytes = max_attachment_bytes
        self.pending_attachments: list[InlineData] = []
        self._shown = 0
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    def render_update(self, message: Message) -> None:
        """Print the fragments that arrived since the last update."""
        for fragment in message.fragments[self._shown:]:
            self.formatter.format_fragment(fragment)
        self._shown = len(message.fragments)

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/attach":
            if not arg:
                self.console.print("  [red]Usage:[/red] /attach PATH")
                return True
            try:
                data = encode_file(arg, self.max_attachment_bytes)
            except AttachmentError as e:
                self.console.print(f"  [red]Error:[/red] {e}")
                return True
            self.pending_attachments.append(data)
            self.console.print(f"  Attached [bold]{data.display_name}[/bold] ({data.mime_type})")
            return True

        if cmd == "/clear":
            await self.conversation.clear()
            self.console.print("  Chat cleared.")
            return True

        if cmd == "/export":
            markdown = self.conversation.export_markdown()
            if arg:
                Path(arg).expanduser().write_text(markdown, encoding="utf-8")
                self.console.print(f"  Exported to {arg}")
            else:
                self.console.print(markdown, markup=False)
            return True

        if cmd == "/end":
            session = self.conversation.session
            if self.session_service is not None:
                await self.session_service.delete_session(session)
            if self.conversation.store is not None:
                await self.conversation.store.delete_session(session.session_id)
            self.conversation.transcript = []
            self._running = False
            self.console.print(f"  Session {session.session_id} ended.")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /attach PATH  - Attach a file to the next message\n"
                "  /clear        - Remove all messages\n"
                "  /export [PATH] - Export agent replies as markdown\n"
                "  /end          - End the session and quit\n"
                "  /quit         - Exit the chat\n"
                "  /help         - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> Message | None:
        """Send user input and render the streamed reply."""
        attachments, self.pending_attachments = self.pending_attachments, []
        self._shown = 0
        try:
            last = await self.conversation.send(
                user_input, attachments, on_update=self.render_update
            )
        except ValueError as e:
            self.console.print(f"[red]Error:[/red] {e}")
            return None

        if last.termination_reason == ERROR_REASON:
            self.console.print(f"[red]{last.text}[/red]")
        self.console.print()
        return last

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            f"[bold]adkchat[/bold] - {self.conversation.session.app_name}\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )
        if self.conversation.transcript:
            self.formatter.format_transcript(self.conversation.transcript)

        while self._running:
            try:
                user_input = await asyncio.get_event_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input and not self.pending_attachments:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]agent>[/dim]")
            await self.handle_input(user_input)
