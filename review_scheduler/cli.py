"""
Review Scheduler CLI.

A Rich terminal front end over ReviewService and the SQL progress store.

Commands:
- add-item   - Register a card in a pool
- record     - Record a study attempt
- due        - Show the next study session
- due-list   - List every card whose review time has passed
- progress   - Show per-card progress for a pool
- stats      - Show pool statistics
- reset      - Clear a learner's progress on a card
"""
from __future__ import annotations

import sys
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings

from .clock import SystemClock
from .db import SqlProgressStore
from .errors import SchedulerError
from .models import Confidence, Item, ReviewState, SchedulerConfig, StudyAttempt
from .service import ReviewService

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="review-scheduler",
    help="Spaced-repetition review scheduler",
    no_args_is_help=True,
)
console = Console()


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Route loguru output to stderr (and optionally a file)."""
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{message}</level>")
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention=7)


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="Database URL (overrides settings)"),
) -> None:
    """Configure logging and the progress store."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    ctx.obj = {"database_url": db or settings.database_url}


def _get_store(ctx: typer.Context) -> SqlProgressStore:
    return SqlProgressStore(ctx.obj["database_url"])


def _get_service(ctx: typer.Context) -> ReviewService:
    settings = get_settings()
    return ReviewService(_get_store(ctx), SystemClock(), SchedulerConfig.from_settings(settings))


def _fail(error: SchedulerError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(code=1)


# =============================================================================
# Display Helpers
# =============================================================================

def mastery_style(level: int) -> str:
    """Rich color for a mastery level."""
    if level >= 80:
        return "green"
    if level >= 50:
        return "yellow"
    return "red"


def format_state(state: ReviewState) -> str:
    color = mastery_style(state.mastery_level)
    next_review = state.next_review_at.strftime("%Y-%m-%d %H:%M") if state.next_review_at else "-"
    return (
        f"Mastery: [{color}]{state.mastery_level}[/{color}]  |  "
        f"Interval: {state.interval}d  |  Ease: {state.ease_factor:.2f}  |  "
        f"Next review: {next_review}"
    )


# =============================================================================
# Commands
# =============================================================================

@app.command("add-item")
def add_item(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Card id"),
    pool: str = typer.Option(..., "--pool", "-p", help="Pool (set) id"),
    front: str = typer.Option("", "--front", help="Question text"),
    back: str = typer.Option("", "--back", help="Answer text"),
) -> None:
    """Register a card in a pool."""
    _get_store(ctx).add_item(Item(id=item_id, pool_id=pool, front=front, back=back))
    console.print(f"[green]Added[/green] {item_id} to pool {pool}")


@app.command()
def record(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    item_id: str = typer.Argument(..., help="Card id"),
    correct: bool = typer.Option(..., "--correct/--incorrect", help="Whether the answer was correct"),
    confidence: Optional[Confidence] = typer.Option(None, "--confidence", "-c", help="Self-reported confidence"),
    time_ms: Optional[int] = typer.Option(None, "--time-ms", help="Time spent answering"),
) -> None:
    """Record a study attempt."""
    service = _get_service(ctx)
    attempt = StudyAttempt(
        user_id=user_id,
        item_id=item_id,
        is_correct=correct,
        confidence=confidence,
        time_spent_ms=time_ms,
    )
    try:
        state = service.record_attempt(attempt)
    except SchedulerError as e:
        _fail(e)
        return

    icon = "[green]✓[/green]" if correct else "[red]✗[/red]"
    console.print(Panel(f"{icon} {format_state(state)}", title=item_id, title_align="left", border_style="cyan"))


@app.command()
def due(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    pool: str = typer.Argument(..., help="Pool (set) id"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Session size"),
) -> None:
    """Show the next study session."""
    service = _get_service(ctx)
    target = count if count is not None else get_settings().session_target_count
    session = service.get_due_items(user_id, pool, target)

    if not session:
        console.print("[dim]Nothing to study right now.[/dim]")
        return

    table = Table(title=f"Next session ({len(session)} cards)")
    table.add_column("ID")
    table.add_column("Front")
    table.add_column("Status")
    table.add_column("Mastery", justify="right")

    for card in session:
        status = "[green]new[/green]" if card.is_new else "[yellow]review[/yellow]"
        color = mastery_style(card.state.mastery_level)
        table.add_row(card.item.id, card.item.front, status, f"[{color}]{card.state.mastery_level}[/{color}]")

    console.print(table)


@app.command("due-list")
def due_list(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    pool: Optional[str] = typer.Option(None, "--pool", "-p", help="Only cards in this pool"),
) -> None:
    """List every card whose review time has passed."""
    service = _get_service(ctx)
    cards = service.list_due_cards(user_id, pool)

    if not cards:
        console.print("[dim]No cards due for review.[/dim]")
        return

    table = Table(title=f"Due for review ({len(cards)} cards)")
    table.add_column("ID")
    table.add_column("Pool")
    table.add_column("Due since")
    table.add_column("Mastery", justify="right")

    for card in cards:
        color = mastery_style(card.state.mastery_level)
        table.add_row(
            card.item.id,
            card.item.pool_id,
            card.state.next_review_at.strftime("%Y-%m-%d %H:%M"),
            f"[{color}]{card.state.mastery_level}[/{color}]",
        )

    console.print(table)


@app.command()
def progress(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    pool: str = typer.Argument(..., help="Pool (set) id"),
) -> None:
    """Show per-card progress for a pool."""
    service = _get_service(ctx)
    entries = service.get_set_progress(user_id, pool)

    table = Table(title=f"Progress: {pool}")
    table.add_column("ID")
    table.add_column("Studied", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Mastery", justify="right")
    table.add_column("Next review")

    for entry in entries:
        if entry.state is None:
            table.add_row(entry.item.id, "0", "0", "[dim]-[/dim]", "[dim]never studied[/dim]")
            continue
        state = entry.state
        color = mastery_style(state.mastery_level)
        next_review = state.next_review_at.strftime("%Y-%m-%d %H:%M") if state.next_review_at else "-"
        table.add_row(
            entry.item.id,
            str(state.times_studied),
            str(state.times_correct),
            f"[{color}]{state.mastery_level}[/{color}]",
            next_review,
        )

    console.print(table)


@app.command()
def stats(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    pool: str = typer.Argument(..., help="Pool (set) id"),
) -> None:
    """Show pool statistics."""
    service = _get_service(ctx)
    result = service.get_set_statistics(user_id, pool)

    table = Table(title=f"Statistics: {pool}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total cards", str(result.total_cards))
    table.add_row("Studied", str(result.studied_cards))
    table.add_row("Unstudied", str(result.unstudied_cards))
    table.add_row("Mastered", str(result.mastered_cards))
    table.add_row("Due for review", str(result.due_for_review))
    table.add_row("Average mastery", str(result.average_mastery))
    table.add_row("Success rate", f"{result.success_rate}%")
    table.add_row("Attempts", f"{result.total_correct}/{result.total_attempts} correct")

    console.print(table)


@app.command()
def reset(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner id"),
    item_id: str = typer.Argument(..., help="Card id"),
) -> None:
    """Clear a learner's progress on a card."""
    service = _get_service(ctx)
    if service.reset_progress(user_id, item_id):
        console.print(f"[green]Reset[/green] progress on {item_id}")
    else:
        console.print(f"[dim]No progress recorded for {item_id}[/dim]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
