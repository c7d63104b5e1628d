"""
Typer CLI for interactive-flashcards.

Commands:
    flashcards study DECK        - Quiz yourself on a CSV deck
    flashcards decks             - List decks in the deck directory
    flashcards sessions          - List stored sessions
    flashcards resume ID         - Continue a stored session
    flashcards delete ID         - Delete a stored session

Usage:
    flashcards --help
    flashcards study networking --no-shuffle
    flashcards study ./my-deck.csv --no-ai
"""

from __future__ import annotations

import asyncio
import sys
from functools import partial
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.prompt import Confirm

from flashcards.ai.channel import Channel
from flashcards.ai.client import OpenRouterClient
from flashcards.ai.messages import WorkerOutcome, WorkerRequest
from flashcards.ai.worker import EvaluationWorker
from flashcards.cli.app import QuizApp
from flashcards.cli.ui import decks_table, sessions_table
from flashcards.config import Settings, get_settings
from flashcards.db.store import SessionStore, StoreError
from flashcards.quiz.deck import DeckError, deck_name, list_decks, load_deck
from flashcards.quiz.models import Flashcard
from flashcards.quiz.session import QuizSession

app = typer.Typer(
    name="flashcards",
    help="Interactive flashcards with AI-graded answers",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Setup helpers
# =============================================================================


def configure_logging(settings: Settings) -> None:
    """Warnings to stderr, everything at ``log_level`` to the debug log file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="WARNING",
        format="<level>{message}</level>",
    )

    log_path = settings.get_log_path()
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level=settings.log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra} | {message}",
        )


def resolve_deck(name: str, settings: Settings) -> Path:
    """Accept a path to a CSV file or a deck name inside ``deck_dir``."""
    candidate = Path(name)
    if candidate.suffix == ".csv" and candidate.is_file():
        return candidate
    in_dir = settings.deck_dir / (name if name.endswith(".csv") else f"{name}.csv")
    if in_dir.is_file():
        return in_dir
    raise DeckError(f"Deck not found: {name} (looked in {settings.deck_dir})")


def _open_store(settings: Settings) -> SessionStore:
    try:
        return SessionStore(settings.get_db_path())
    except (StoreError, OSError) as e:
        console.print(f"[red]Cannot open session database:[/red] {e}")
        raise typer.Exit(1)


async def _run_quiz(
    settings: Settings,
    cards: list[Flashcard],
    name: str,
    store: SessionStore | None,
    session_id: int | None,
    use_ai: bool,
    strict_json: bool,
) -> QuizSession:
    """Wire session, channels and worker inside the running event loop."""
    worker = None
    requests: Channel[WorkerRequest] | None = None
    outcomes: Channel[WorkerOutcome] | None = None

    if use_ai:
        requests = Channel(capacity=1)
        outcomes = Channel(capacity=1)
        worker = EvaluationWorker(
            requests,
            outcomes,
            client_factory=partial(
                OpenRouterClient,
                api_key=settings.openrouter_api_key,
                model=settings.openrouter_model,
                base_url=settings.openrouter_base_url,
            ),
            model_config=settings.get_model_config(),
            strict_json=strict_json,
        )

    session = QuizSession(
        cards,
        name,
        requests=requests,
        outcomes=outcomes,
        store=store,
        session_id=session_id,
    )
    if store is not None and session_id is not None:
        session.assessment = store.get_assessment(session_id)

    quiz = QuizApp(session, worker=worker, console=console, tick=settings.ui_tick_seconds)
    await quiz.run()
    return session


def _start(
    settings: Settings,
    cards: list[Flashcard],
    name: str,
    store: SessionStore | None,
    session_id: int | None,
    no_ai: bool,
    strict_json: Optional[bool],
) -> None:
    use_ai = not no_ai
    if use_ai and not settings.has_ai_configured():
        console.print("[yellow]OPENROUTER_API_KEY is not set; AI evaluation is disabled.[/yellow]")
        use_ai = False
    strict = settings.evaluation_strict_json if strict_json is None else strict_json

    try:
        asyncio.run(_run_quiz(settings, cards, name, store, session_id, use_ai, strict))
    except KeyboardInterrupt:
        console.print("\n[yellow]Session interrupted.[/yellow]")
    finally:
        if store is not None:
            store.close()

    if session_id is not None:
        console.print(f"[dim]Session {session_id} saved. Resume with: flashcards resume {session_id}[/dim]")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def study(
    deck: str = typer.Argument(..., help="Deck name in the deck directory, or a CSV path"),
    shuffle: bool = typer.Option(True, "--shuffle/--no-shuffle", help="Shuffle cards once at start"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Study without AI grading"),
    strict_json: Optional[bool] = typer.Option(
        None,
        "--strict-json/--lenient-json",
        help="JSON policy for AI replies (default from settings)",
    ),
) -> None:
    """Start a new quiz session on a deck."""
    settings = get_settings()

    try:
        path = resolve_deck(deck, settings)
        cards = load_deck(path, shuffle=shuffle)
    except DeckError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not cards:
        console.print(f"[red]Deck {path.name} has no cards.[/red]")
        raise typer.Exit(1)

    name = deck_name(path)
    store: SessionStore | None = _open_store(settings)
    session_id: int | None = None
    try:
        session_id = store.create_session(name, cards)
    except StoreError as e:
        logger.warning("Continuing without persistence: {}", e)
        console.print(f"[yellow]Progress will not be saved: {e}[/yellow]")
        store.close()
        store = None

    _start(settings, cards, name, store, session_id, no_ai, strict_json)


@app.command()
def resume(
    session_id: int = typer.Argument(..., help="Session id (see `flashcards sessions`)"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Study without AI grading"),
    strict_json: Optional[bool] = typer.Option(
        None,
        "--strict-json/--lenient-json",
        help="JSON policy for AI replies (default from settings)",
    ),
) -> None:
    """Continue a stored session where you left off."""
    settings = get_settings()
    store = _open_store(settings)

    record = store.get_session(session_id)
    if record is None:
        store.close()
        console.print(f"[red]No session with id {session_id}.[/red]")
        raise typer.Exit(1)

    cards = store.load_flashcards(session_id)
    if not cards:
        store.close()
        console.print(f"[red]Session {session_id} has no cards.[/red]")
        raise typer.Exit(1)

    if record.is_completed:
        console.print(f"[dim]Session {session_id} is already complete; reviewing it.[/dim]")

    _start(settings, cards, record.deck_name, store, session_id, no_ai, strict_json)


@app.command()
def decks() -> None:
    """List decks in the deck directory."""
    settings = get_settings()
    paths = list_decks(settings.deck_dir)
    if not paths:
        console.print(f"[yellow]No decks found in {settings.deck_dir}[/yellow]")
        return

    rows = []
    for path in paths:
        try:
            rows.append((deck_name(path), len(load_deck(path))))
        except DeckError as e:
            logger.warning("{}", e)
    console.print(decks_table(rows))


@app.command()
def sessions() -> None:
    """List stored sessions, most recent first."""
    store = _open_store(get_settings())
    try:
        records = store.list_sessions()
    finally:
        store.close()

    if not records:
        console.print("[dim]No sessions yet.[/dim]")
        return
    console.print(sessions_table(records))


@app.command()
def delete(
    session_id: int = typer.Argument(..., help="Session id to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a stored session with its answers and assessment."""
    if not yes and not Confirm.ask(f"Delete session {session_id}?", default=False):
        raise typer.Exit(0)

    store = _open_store(get_settings())
    try:
        deleted = store.delete_session(session_id)
    except StoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    if not deleted:
        console.print(f"[red]No session with id {session_id}.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted session {session_id}.[/green]")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    run()
