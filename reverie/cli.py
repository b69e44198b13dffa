"""
CLI interface for the journal.

Usage:
    reverie add "Morning pages" --content "..." --tag morning
    reverie list
    reverie on 2025-04-10
    reverie record "Voice note" --seconds 30
    reverie chat
"""

import asyncio
import json
import os
import sys
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .api import Journal
from .auth import principal_from_env
from .config import get_data_directory, load_or_create_config
from .errors import JournalError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Blob, EntryType, JournalEntry, add_tag, remove_tag
from .uploader import MEDIA_FORMATS

T = TypeVar("T")

# Principal used by the local backend when REVERIE_USER_ID is unset
LOCAL_USER_ID = "local"

# Lines that end a chat session
CHAT_EXIT_WORDS = ("quit", "exit")

# Set REVERIE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("REVERIE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"reverie {version('reverie-journal')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_data_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _data_callback(value: Optional[Path]):
    global _data_override
    if value is not None:
        _data_override = value


app = typer.Typer(
    name="reverie",
    help="A private journal with audio and video entries.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    data: Annotated[Optional[Path], typer.Option(
        "--data", "-d",
        envvar="REVERIE_DATA_PATH",
        help="Path to the journal data directory (default: ~/.reverie/)",
        callback=_data_callback,
        is_eager=True,
    )] = None,
):
    """A private journal with audio and video entries."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _report(error: JournalError) -> None:
    typer.echo(f"Error: {error}", err=True)


def _run(action: Callable[[Journal], Awaitable[T]]) -> T:
    """Open a journal session, sign in from the environment, run action."""

    async def session() -> T:
        journal = Journal(_data_override or get_data_directory(), on_error=_report)
        try:
            default_id = LOCAL_USER_ID if journal.config.backend == "local" else ""
            principal = principal_from_env(default_id)
            if principal is None:
                typer.echo("Error: set REVERIE_USER_ID to the signed-in user's id", err=True)
                raise typer.Exit(1)
            await journal.sign_in(principal)
            return await action(journal)
        finally:
            await journal.close()

    return asyncio.run(session())


def _unwrap(result):
    # The store already reported the error through _report
    if not result.ok:
        raise typer.Exit(1)
    return result.value


def _entry_dict(entry: JournalEntry) -> dict:
    return {
        "id": entry.id,
        "date": entry.date.isoformat(),
        "title": entry.title,
        "content": entry.content,
        "tags": list(entry.tags),
        "type": entry.type.value,
        "media_url": entry.media_url,
        "summary": entry.summary,
        "wallpaper": entry.wallpaper,
    }


def _format_line(entry: JournalEntry) -> str:
    day = entry.date.astimezone().strftime("%Y-%m-%d")
    kind = "" if entry.type is EntryType.TEXT else f" ({entry.type.value})"
    tags = f"  #{' #'.join(entry.tags)}" if entry.tags else ""
    return f"{entry.id:>6}  {day}  {entry.title}{kind}{tags}"


def _format_full(entry: JournalEntry) -> str:
    lines = [
        f"# {entry.title}",
        f"id: {entry.id}",
        f"date: {entry.date.astimezone().strftime('%Y-%m-%d %H:%M')}",
        f"type: {entry.type.value}",
    ]
    if entry.tags:
        lines.append(f"tags: {', '.join(entry.tags)}")
    if entry.media_url:
        lines.append(f"media: {entry.media_url}")
    if entry.summary:
        lines.append(f"summary: {entry.summary}")
    if entry.content:
        lines.extend(["", entry.content])
    return "\n".join(lines)


def _echo_entries(entries) -> None:
    if _json_output:
        typer.echo(json.dumps([_entry_dict(e) for e in entries], indent=2))
    elif not entries:
        typer.echo("No entries.", err=True)
    else:
        for entry in entries:
            typer.echo(_format_line(entry))


def _echo_entry(entry: JournalEntry) -> None:
    if _json_output:
        typer.echo(json.dumps(_entry_dict(entry), indent=2))
    else:
        typer.echo(_format_full(entry))


def _require_entry(journal: Journal, entry_id: str) -> JournalEntry:
    entry = journal.store.get(entry_id)
    if entry is None:
        typer.echo(f"Not found: {entry_id}", err=True)
        raise typer.Exit(1)
    return entry


TagOption = Annotated[
    Optional[list[str]],
    typer.Option("--tag", "-t", help="Tag (repeatable, case-insensitive)"),
]


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("list")
def list_entries(
    tag: Annotated[Optional[str], typer.Option(
        "--tag", "-t", help="Only entries with this tag"
    )] = None,
    search: Annotated[Optional[str], typer.Option(
        "--search", "-s", help="Only entries whose title or content contains this text"
    )] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum entries")] = 20,
):
    """List entries, newest first."""
    async def action(journal: Journal):
        entries = journal.store.search(search) if search else list(journal.store.entries)
        if tag:
            wanted = tag.strip().lower()
            entries = [e for e in entries if wanted in e.tags]
        return entries[:limit]

    _echo_entries(_run(action))


@app.command()
def add(
    title: Annotated[str, typer.Argument(help="Entry title")],
    content: Annotated[str, typer.Option("--content", "-c", help="Entry text")] = "",
    tag: TagOption = None,
    media: Annotated[Optional[Path], typer.Option(
        "--media", "-m",
        exists=True, dir_okay=False,
        help="Audio or video file to attach",
    )] = None,
    kind: Annotated[EntryType, typer.Option(
        "--type", help="Entry type (text, audio, video)"
    )] = EntryType.TEXT,
):
    """Write a new entry."""
    if media is not None and kind is EntryType.TEXT:
        typer.echo("Error: --media needs --type audio or --type video", err=True)
        raise typer.Exit(1)

    async def action(journal: Journal):
        draft = journal.new_draft(title, content=content, tags=tuple(tag or ()), type=kind)
        blob = None
        if media is not None:
            _, content_type = MEDIA_FORMATS[kind]
            blob = Blob(media.read_bytes(), content_type)
        return _unwrap(await journal.save_entry(draft, blob))

    _echo_entry(_run(action))


@app.command()
def show(entry_id: Annotated[str, typer.Argument(help="Entry id")]):
    """Show one entry."""
    async def action(journal: Journal):
        return _require_entry(journal, entry_id)

    _echo_entry(_run(action))


@app.command()
def on(day: Annotated[str, typer.Argument(help="Calendar day (YYYY-MM-DD)")]):
    """Show the entry written on a given day."""
    try:
        target = date.fromisoformat(day)
    except ValueError:
        typer.echo(f"Error: not a date: {day!r} (expected YYYY-MM-DD)", err=True)
        raise typer.Exit(1)

    async def action(journal: Journal):
        return journal.store.get_for_date(target)

    entry = _run(action)
    if entry is None:
        typer.echo(f"No entry on {target.isoformat()}", err=True)
        raise typer.Exit(1)
    _echo_entry(entry)


@app.command()
def tag(
    entry_id: Annotated[str, typer.Argument(help="Entry id")],
    add_tags: Annotated[Optional[list[str]], typer.Option(
        "--add", "-a", help="Tag to add (repeatable)"
    )] = None,
    remove_tags: Annotated[Optional[list[str]], typer.Option(
        "--remove", "-r", help="Tag to remove (repeatable)"
    )] = None,
):
    """Add or remove tags on an entry."""
    if not add_tags and not remove_tags:
        typer.echo("Error: Specify at least one --add or --remove", err=True)
        raise typer.Exit(1)

    async def action(journal: Journal):
        entry = _require_entry(journal, entry_id)
        tags = entry.tags
        for t in add_tags or ():
            tags = add_tag(tags, t)
        for t in remove_tags or ():
            tags = remove_tag(tags, t)
        return _unwrap(await journal.store.set_tags(entry_id, tags))

    _echo_entry(_run(action))


@app.command()
def delete(entry_id: Annotated[str, typer.Argument(help="Entry id")]):
    """Delete an entry."""
    async def action(journal: Journal):
        return _unwrap(await journal.store.delete(entry_id))

    deleted = _run(action)
    typer.echo(f"Deleted {deleted}")


@app.command()
def prompt():
    """Get a writing prompt from the assistant."""
    async def action(journal: Journal):
        return await journal.assistant.generate_prompt()

    typer.echo(_run(action))


@app.command()
def chat():
    """Chat with the assistant, one message per line. Ends on "quit" or end of input."""
    async def action(journal: Journal):
        conversation = journal.conversation()
        typer.echo(conversation.welcome)
        typer.echo("Try asking:")
        for suggestion in conversation.suggestions:
            typer.echo(f"  - {suggestion}")
        for line in sys.stdin:
            message = line.strip()
            if not message:
                continue
            if message.lower() in CHAT_EXIT_WORDS:
                break
            typer.echo(await conversation.send(message))

    _run(action)


@app.command()
def reflect(entry_id: Annotated[str, typer.Argument(help="Entry id")]):
    """Ask the assistant to reflect on an entry."""
    async def action(journal: Journal):
        entry = _require_entry(journal, entry_id)
        return await journal.assistant.reflect(entry.content or entry.title)

    typer.echo(_run(action))


@app.command()
def summarize(entry_id: Annotated[str, typer.Argument(help="Entry id")]):
    """Summarize an entry with the assistant and save the summary."""
    async def action(journal: Journal):
        return _unwrap(await journal.summarize_entry(entry_id))

    entry = _run(action)
    typer.echo(entry.summary or "")


@app.command()
def record(
    title: Annotated[str, typer.Argument(help="Entry title")],
    seconds: Annotated[float, typer.Option(
        "--seconds", "-n", min=0.1, help="Recording length"
    )] = 10.0,
    content: Annotated[str, typer.Option("--content", "-c", help="Entry text")] = "",
    tag: TagOption = None,
    video: Annotated[bool, typer.Option("--video", help="Record video as well as audio")] = False,
):
    """Record from the microphone and save it as an entry."""
    kind = EntryType.VIDEO if video else EntryType.AUDIO

    async def action(journal: Journal):
        recorder = journal.recorder(
            on_data_available=lambda blob: None,
            on_start=lambda: typer.echo(f"Recording {kind.value} for {seconds:g}s...", err=True),
        )
        if video:
            await recorder.start_video()
        else:
            await recorder.start_audio()
        await asyncio.sleep(seconds)
        blob = await recorder.stop()
        draft = journal.new_draft(title, content=content, tags=tuple(tag or ()), type=kind)
        return _unwrap(await journal.save_entry(draft, blob))

    _echo_entry(_run(action))


@app.command("config")
def show_config():
    """Show the active configuration (secrets omitted)."""
    config = load_or_create_config(_data_override or get_data_directory())
    info = {
        "path": str(config.config_path),
        "backend": config.backend,
        "remote_url": config.remote.url,
        "bucket": config.remote.bucket,
        "table": config.remote.table,
        "assistant": config.assistant.provider,
        "time_slice_ms": config.capture.time_slice_ms,
    }
    if _json_output:
        typer.echo(json.dumps(info, indent=2))
    else:
        for key, value in info.items():
            typer.echo(f"{key}: {value}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="reverie CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
