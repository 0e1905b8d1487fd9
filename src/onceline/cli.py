# src/onceline/cli.py
"""
Onceline Command Line Interface (CLI).

This module is the terminal front end and the composition root of the
package: it builds a :class:`~onceline.engine.TimelineEngine` from settings,
initialises it in local or remote mode, runs one operation and renders the
result with `rich`.

Modes
-----
- **Local** (default): the anonymous timeline kept under ``ONCELINE_DATA_DIR``.
- **Remote**: pass ``--user`` (and usually ``--token``) or set
  ``ONCELINE_USER_ID`` / ``ONCELINE_ACCESS_TOKEN``. Any offline data is moved
  into the remote timeline the first time.

Usage
-----
    $ onceline add "Moved to Berlin" --date 2004-09 --category residence
    $ onceline events
    $ onceline chat -m "I was born in Lisbon in 1990"
    $ onceline --user 1b2c... --token eyJ... events
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from onceline.core.contracts import ChatMessage, Identity, TimelineEvent
from onceline.core.dates import calculate_age, format_event_date, parse_loose_date
from onceline.core.errors import NotFoundError, OncelineError
from onceline.engine import TimelineEngine, TimelineState

load_dotenv()

app = typer.Typer(
    help="Onceline: tell your life story, keep it as a timeline.",
    rich_markup_mode="markdown",
)
console = Console()

T = TypeVar("T")

_EXIT_WORDS = frozenset({"exit", "quit", ":q"})


@dataclass(slots=True)
class SessionOptions:
    user_id: str | None = None
    access_token: str | None = None


# --------------------------------------------------------------------------- #
# Composition
# --------------------------------------------------------------------------- #


def _build_engine() -> TimelineEngine:
    """Seam patched by tests to inject an engine with fake collaborators."""
    return TimelineEngine.from_settings()


@asynccontextmanager
async def _session(options: SessionOptions) -> AsyncIterator[TimelineEngine]:
    engine = _build_engine()
    try:
        if options.user_id:
            await engine.init_as_remote(
                Identity(user_id=options.user_id, access_token=options.access_token)
            )
        else:
            engine.init_as_local()
        yield engine
    finally:
        await engine.aclose()


def _run(ctx: typer.Context, action: Callable[[TimelineEngine], Awaitable[T]]) -> T:
    """Open a session, run ``action`` on the engine, map package errors to exit code 1."""
    options: SessionOptions = ctx.obj or SessionOptions()

    async def _main() -> T:
        async with _session(options) as engine:
            return await action(engine)

    try:
        return asyncio.run(_main())
    except OncelineError as exc:
        console.print(f"[bold red]❌ {type(exc).__name__}:[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc


def _resolve_event_id(state: TimelineState, ref: str) -> str:
    """Accept a full id or an unambiguous prefix of one."""
    if state.find_event(ref) is not None:
        return ref
    matches = [e.id for e in state.events if e.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise NotFoundError(f"No event matches '{ref}'", entity_id=ref)
    raise NotFoundError(f"'{ref}' matches {len(matches)} events; use a longer prefix", entity_id=ref)


# --------------------------------------------------------------------------- #
# Rendering
# --------------------------------------------------------------------------- #


def _render_events(state: TimelineState) -> None:
    name = state.timeline.display_name if state.timeline else "Timeline"
    if not state.events:
        console.print(f"[dim]{name} has no events yet.[/dim]")
        return

    # ages are counted from the first dated birth event, if there is one
    birth = next(
        (e.start_date for e in state.events if e.category == "birth" and e.start_date), None
    )

    table = Table(title=f"{name} ({state.mode.value})", show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("When", style="cyan")
    if birth is not None:
        table.add_column("Age", justify="right")
    table.add_column("Event", style="bold")
    table.add_column("Category", style="magenta")
    for event in state.events:
        cells = [event.id[:8], format_event_date(event.start_date, event.date_precision)]
        if birth is not None:
            age = calculate_age(birth, event.start_date) if event.start_date else None
            cells.append("" if age is None else str(age))
        table.add_row(*cells, event.title, event.category or "")
    console.print(table)


def _render_message(message: ChatMessage) -> None:
    if message.role == "user":
        console.print(f"[bold cyan]you[/bold cyan] › {message.content}")
    else:
        console.print(f"[bold green]onceline[/bold green] › {message.content}")


def _render_added(events: list[TimelineEvent]) -> None:
    for event in events:
        when = format_event_date(event.start_date, event.date_precision)
        console.print(f"  [green]＋[/green] {event.title} [dim]({when})[/dim]")


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.callback()
def main(
    ctx: typer.Context,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", envvar="ONCELINE_USER_ID", help="Remote user id."),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="ONCELINE_ACCESS_TOKEN", help="Session bearer token."),
    ] = None,
) -> None:
    """Select local or remote mode for the command that follows."""
    ctx.obj = SessionOptions(user_id=user, access_token=token)


@app.command()
def events(ctx: typer.Context) -> None:
    """List the events of the active timeline in date order."""

    async def action(engine: TimelineEngine) -> TimelineState:
        return engine.state

    _render_events(_run(ctx, action))


@app.command()
def add(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Short event title.")],
    when: Annotated[
        str | None, typer.Option("--date", "-d", help="YYYY, YYYY-MM or YYYY-MM-DD.")
    ] = None,
    until: Annotated[str | None, typer.Option("--end", help="End date, same formats.")] = None,
    category: Annotated[str | None, typer.Option("--category", "-c")] = None,
    description: Annotated[str | None, typer.Option("--description")] = None,
    tags: Annotated[list[str] | None, typer.Option("--tag", "-t")] = None,
) -> None:
    """Add an event by hand."""
    _, precision = parse_loose_date(when)
    draft = {
        "title": title,
        "description": description,
        "start_date": when,
        "end_date": until,
        "date_precision": precision or "day",
        "category": category,
        "tags": tags or [],
        "source": "manual",
    }

    async def action(engine: TimelineEngine) -> TimelineEvent:
        return await engine.add_event(draft)

    event = _run(ctx, action)
    console.print(f"[bold green]✅ Added[/bold green] {event.title} [dim]{event.id[:8]}[/dim]")


@app.command()
def edit(
    ctx: typer.Context,
    event_ref: Annotated[str, typer.Argument(help="Event id or id prefix.")],
    title: Annotated[str | None, typer.Option("--title")] = None,
    when: Annotated[str | None, typer.Option("--date", "-d")] = None,
    category: Annotated[str | None, typer.Option("--category", "-c")] = None,
    description: Annotated[str | None, typer.Option("--description")] = None,
) -> None:
    """Change fields of an existing event; options left out stay as they are."""
    patch: dict[str, object] = {}
    if title is not None:
        patch["title"] = title
    if when is not None:
        parsed, precision = parse_loose_date(when)
        if parsed is None:
            console.print(f"[bold red]❌ Unrecognised date:[/bold red] {when}")
            raise typer.Exit(code=1)
        patch["start_date"] = parsed
        patch["date_precision"] = precision or "day"
    if category is not None:
        patch["category"] = category
    if description is not None:
        patch["description"] = description
    if not patch:
        console.print("[yellow]Nothing to change.[/yellow]")
        raise typer.Exit(code=0)

    async def action(engine: TimelineEngine) -> TimelineEvent:
        return await engine.update_event(_resolve_event_id(engine.state, event_ref), patch)

    event = _run(ctx, action)
    console.print(f"[bold green]✅ Updated[/bold green] {event.title}")


@app.command()
def delete(
    ctx: typer.Context,
    event_ref: Annotated[str, typer.Argument(help="Event id or id prefix.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete an event."""
    if not yes and not Confirm.ask(f"Delete event {event_ref}?", default=False):
        raise typer.Exit(code=0)

    async def action(engine: TimelineEngine) -> str:
        event_id = _resolve_event_id(engine.state, event_ref)
        await engine.delete_event(event_id)
        return event_id

    deleted = _run(ctx, action)
    console.print(f"[bold green]🗑  Deleted[/bold green] [dim]{deleted[:8]}[/dim]")


@app.command()
def chat(
    ctx: typer.Context,
    message: Annotated[
        str | None, typer.Option("--message", "-m", help="Send one message and exit.")
    ] = None,
) -> None:
    """Talk to the assistant; events it hears about are added to the timeline."""

    async def turn(engine: TimelineEngine, text: str) -> None:
        before = {e.id for e in engine.state.events}
        seen = len(engine.state.messages)
        with console.status("[cyan]Thinking...", spinner="dots"):
            await engine.send_message(text)
        for msg in engine.state.messages[seen:]:
            if msg.role == "assistant":
                _render_message(msg)
        _render_added([e for e in engine.state.events if e.id not in before])

    async def action(engine: TimelineEngine) -> None:
        if message is not None:
            await turn(engine, message)
            return

        console.print(
            Panel.fit(
                "[bold cyan]Onceline chat[/bold cyan]\nEmpty line or 'exit' to leave.",
                border_style="cyan",
            )
        )
        while True:
            text = Prompt.ask("[bold cyan]you[/bold cyan]", default="", show_default=False)
            if not text.strip() or text.strip().lower() in _EXIT_WORDS:
                break
            await turn(engine, text)

    _run(ctx, action)


@app.command()
def history(ctx: typer.Context) -> None:
    """Show the conversation so far."""

    async def action(engine: TimelineEngine) -> TimelineState:
        return engine.state

    state = _run(ctx, action)
    if not state.messages:
        console.print("[dim]No conversation yet.[/dim]")
    for msg in state.messages:
        _render_message(msg)


@app.command("clear-chat")
def clear_chat(
    ctx: typer.Context,
    yes: Annotated[bool, typer.Option("--yes", "-y")] = False,
) -> None:
    """Delete the whole conversation (events are kept)."""
    if not yes and not Confirm.ask("Clear the chat history?", default=False):
        raise typer.Exit(code=0)

    async def action(engine: TimelineEngine) -> None:
        await engine.clear_messages()

    _run(ctx, action)
    console.print("[bold green]✅ Chat cleared[/bold green]")


@app.command()
def rename(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="New timeline name.")],
) -> None:
    """Rename the active timeline."""

    async def action(engine: TimelineEngine) -> str:
        return (await engine.rename_timeline(name)).display_name

    console.print(f"[bold green]✅ Renamed to[/bold green] {_run(ctx, action)}")


@app.command()
def onboard(
    ctx: typer.Context,
    birthplace: Annotated[str | None, typer.Option("--birthplace", "-p")] = None,
    birthdate: Annotated[str | None, typer.Option("--birthdate", "-b", help="YYYY-MM-DD")] = None,
    name: Annotated[str | None, typer.Option("--name", "-n")] = None,
) -> None:
    """Record where and when you were born, and mark onboarding complete."""

    async def action(engine: TimelineEngine) -> TimelineEvent | None:
        return await engine.complete_onboarding(birthplace, birthdate, name)

    event = _run(ctx, action)
    if event is not None:
        _render_added([event])
    console.print("[bold green]✅ Onboarding complete[/bold green]")


if __name__ == "__main__":
    app()
