"""
Main CLI application for adkchat.

Usage:
    adkchat chat [--session ID] [--app NAME] [--url URL] [--new]
    adkchat sessions list|show|delete|export
    adkchat replay FILE
    adkchat config show|validate
    adkchat version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from adkchat import __version__
from adkchat.config import AdkChatConfig, find_config_path, load_config
from adkchat.errors import ConfigurationError, SessionServiceError

app = typer.Typer(name="adkchat", help="adkchat - streaming chat client for ADK agents")
sessions_app = typer.Typer(help="Session management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(sessions_app, name="sessions")
app.add_typer(config_app, name="config")

console = Console()

REPLAY_CHUNK_SIZE = 4096


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def configure_logging(level: str) -> None:
    """Route all log records through a stderr ``RichHandler``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(cli_overrides: dict | None = None) -> AdkChatConfig:
    cfg = load_config(find_config_path(), cli_overrides=cli_overrides)
    try:
        cfg.validate()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(cfg.logging.level)
    return cfg


async def _open_store(cfg: AdkChatConfig):
    from adkchat.session.store import TranscriptStore

    store = TranscriptStore(cfg.storage.history_db)
    await store.init()
    return store


async def _setup_chat(
    cfg: AdkChatConfig,
    session_id: str | None = None,
    new: bool = False,
):
    """Wire up the full stack for chat."""
    from adkchat.cli.chat import ChatHandler
    from adkchat.session.control import SessionService
    from adkchat.session.conversation import Conversation
    from adkchat.stream.transport import AgentClient
    from adkchat.types import SessionInfo

    store = await _open_store(cfg) if cfg.storage.persist else None
    service = SessionService(
        cfg.server.base_url,
        cfg.agent.app_name,
        timeout=cfg.server.timeout_seconds,
    )

    session: SessionInfo | None = None
    if session_id:
        if store is not None:
            session = await store.get_session(session_id)
        if session is None:
            if not cfg.agent.user_id:
                console.print(f"[red]Unknown session:[/red] {session_id} (set agent.user_id to attach)")
                raise typer.Exit(1)
            session = SessionInfo(
                session_id=session_id,
                user_id=cfg.agent.user_id,
                app_name=cfg.agent.app_name,
            )
    elif not new and store is not None:
        latest = await store.latest_session()
        if latest is not None and latest.app_name == cfg.agent.app_name:
            session = latest

    if session is None:
        session = await service.create_session(user_id=cfg.agent.user_id or None)
        console.print(f"[dim]Created session {session.session_id}[/dim]")

    client = AgentClient(
        cfg.server.base_url,
        run_path=cfg.server.run_path,
        timeout=cfg.server.timeout_seconds,
        headers=cfg.server.headers,
    )
    conversation = Conversation(session, client, store)
    await conversation.load()

    handler = ChatHandler(
        conversation,
        console=console,
        session_service=service,
        max_attachment_bytes=cfg.attachments.max_size_mb * 1024 * 1024,
    )
    return handler, store


def _chunks(data: bytes, size: int = REPLAY_CHUNK_SIZE) -> Iterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start:start + size]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    session: Optional[str] = typer.Option(None, "--session", help="Resume session ID"),
    app_name: Optional[str] = typer.Option(None, "--app", help="Agent application name"),
    url: Optional[str] = typer.Option(None, "--url", help="Agent backend base URL"),
    new: bool = typer.Option(False, "--new", help="Always create a new session"),
):
    """Start an interactive chat session."""
    cfg = _load_config({"agent.app_name": app_name, "server.base_url": url})

    async def _run():
        try:
            handler, store = await _setup_chat(cfg, session, new)
        except SessionServiceError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        try:
            await handler.run_loop()
        finally:
            if store is not None:
                await store.close()

    asyncio.run(_run())


@app.command()
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Captured event stream"),
):
    """Decode a captured event stream offline and print the resulting message."""
    from adkchat.cli.output import OutputFormatter
    from adkchat.stream.accumulator import MessageAccumulator
    from adkchat.stream.decoder import iter_frames
    from adkchat.stream.mapper import map_frame
    from adkchat.stream.transport import DEFAULT_FINISH_REASON
    from adkchat.types import Role

    _load_config()
    accumulator = MessageAccumulator()
    accumulator.open(Role.AGENT)
    finish_reason: str | None = None
    for frame in iter_frames(_chunks(path.read_bytes())):
        mapped = map_frame(frame)
        finish_reason = mapped.finish_reason or finish_reason
        accumulator.append(mapped.fragments)
    message = accumulator.close(finish_reason or DEFAULT_FINISH_REASON)
    OutputFormatter(console).format_message(message)


@sessions_app.command("list")
def sessions_list():
    """List stored sessions."""

    async def _run():
        from adkchat.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            OutputFormatter(console).format_session_list(await store.list_sessions())
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("show")
def sessions_show(session_id: str = typer.Argument(..., help="Session ID")):
    """Show a stored transcript."""

    async def _run():
        from adkchat.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            OutputFormatter(console).format_transcript(await store.get_messages(session_id))
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("delete")
def sessions_delete(
    session_id: str = typer.Argument(..., help="Session ID"),
    remote: bool = typer.Option(True, "--remote/--local-only", help="Also delete on the backend"),
):
    """Delete a session locally and, by default, on the backend."""

    async def _run():
        from adkchat.session.control import SessionService

        cfg = _load_config()
        store = await _open_store(cfg)
        try:
            info = await store.get_session(session_id)
            if info is not None and remote:
                service = SessionService(
                    cfg.server.base_url, info.app_name, timeout=cfg.server.timeout_seconds
                )
                if not await service.delete_session(info):
                    console.print("[yellow]Warning:[/yellow] backend did not confirm deletion.")
            await store.delete_session(session_id)
            console.print(f"Deleted session: {session_id}")
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("export")
def sessions_export(
    session_id: str = typer.Argument(..., help="Session ID"),
    fmt: str = typer.Option("markdown", "--format", "-f", help="Export format: markdown, json"),
):
    """Export a stored transcript as markdown or json."""

    async def _run():
        from adkchat.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            messages = await store.get_messages(session_id)
        finally:
            await store.close()
        output = OutputFormatter(console).export_transcript(messages, fmt)
        console.print(output, markup=False)

    asyncio.run(_run())


@config_app.command("show")
def config_show():
    """Show effective config."""
    from adkchat.cli.output import OutputFormatter

    cfg = load_config(find_config_path())
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and show any issues."""
    config_path = find_config_path()
    try:
        cfg = load_config(config_path)
        cfg.validate()
    except (ConfigurationError, ValueError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Backend: {cfg.server.base_url}{cfg.server.run_path}")
    console.print(f"  App: {cfg.agent.app_name}")


@app.command()
def version():
    """Show version."""
    console.print(f"adkchat v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
