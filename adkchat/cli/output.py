"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from adkchat.types import ContentFragment, FragmentKind, Message, Role, SessionInfo

ROLE_COLORS = {
    Role.USER: "blue",
    Role.AGENT: "green",
}


class OutputFormatter:
    """Rich-based output formatting for the adkchat CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_fragment(self, fragment: ContentFragment) -> None:
        if fragment.kind is FragmentKind.TEXT:
            self.console.print(Markdown(fragment.rendered_text))
        elif fragment.kind is FragmentKind.FUNCTION_CALL:
            self.console.print(Panel(
                fragment.rendered_text,
                title=f"call {fragment.call_id or '?'}",
                border_style="yellow",
            ))
        else:
            self.console.print(Panel(
                fragment.rendered_text,
                title=f"result {fragment.call_id or '?'}",
                border_style="cyan",
            ))

    def format_message(self, message: Message) -> None:
        color = ROLE_COLORS.get(message.role, "white")
        ts = message.created_at.strftime("%H:%M:%S")
        status = "streaming" if message.is_open else message.termination_reason or "-"
        self.console.print(f"[{color}]{ts} {message.role.value}[/{color}] [dim]({status})[/dim]")
        for fragment in message.fragments:
            self.format_fragment(fragment)
        pending = message.pending_call_ids()
        if pending:
            self.console.print(f"[dim]  awaiting results for: {', '.join(sorted(pending))}[/dim]")

    def format_transcript(self, messages: list[Message]) -> None:
        if not messages:
            self.console.print("[dim]No messages.[/dim]")
            return
        for message in messages:
            self.format_message(message)

    def format_session_list(self, sessions: list[SessionInfo]) -> None:
        if not sessions:
            self.console.print("[dim]No sessions found.[/dim]")
            return

        table = Table(title="Sessions")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("User", no_wrap=True)
        table.add_column("App", no_wrap=True)
        table.add_column("Created", no_wrap=True)

        for s in sessions:
            table.add_row(
                s.session_id,
                s.user_id,
                s.app_name,
                s.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )

        self.console.print(table)

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))

    def export_transcript(self, messages: list[Message], fmt: str = "markdown") -> str:
        if fmt == "json":
            return json.dumps([m.to_dict() for m in messages], indent=2, default=str)

        lines: list[str] = ["# Transcript\n"]
        for m in messages:
            lines.append(f"**{m.created_at.isoformat()}** - `{m.role.value}`\n")
            for f in m.fragments:
                if f.kind is FragmentKind.TEXT:
                    prefix = "> " if m.role is Role.USER else ""
                    lines.append(f"{prefix}{f.rendered_text}\n")
                else:
                    lines.append(f"```\n{f.rendered_text}\n```\n")
        return "\n".join(lines)
