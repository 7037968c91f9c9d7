"""
Learnloop CLI: inspect and steer stored learner progress.

Commands:
    learnloop progress COURSE LEARNER          - Dashboard for one session
    learnloop queue COURSE LEARNER CONCEPT     - Flashcard due-queue
    learnloop phase COURSE LEARNER TARGET      - Request (or --force) a phase transition
    learnloop export COURSE LEARNER            - Print the stored session document
"""
from __future__ import annotations

import json
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.gateway.documents import dump_session
from src.progress.errors import ProgressError
from src.progress.models import Phase
from src.service import LearningProgressService, build_service

console = Console()

app = typer.Typer(
    name="learnloop",
    help="Learner progress: mastery dashboard, flashcard queue, phase control",
    no_args_is_help=True,
)


def _get_service() -> LearningProgressService:
    return build_service(get_settings())


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(code=1)


def _format_progress_bar(ratio: float, width: int = 10) -> str:
    filled = int(ratio * width)
    return "#" * filled + "-" * (width - filled)


def _score_style(score: int) -> str:
    if score >= 5:
        return "green"
    if score >= 3:
        return "yellow"
    return "red"


@app.command("progress")
def show_progress(
    course: str = typer.Argument(..., help="Course name"),
    learner: str = typer.Argument(..., help="Learner id"),
) -> None:
    """Show topic scores, item mastery and overall completion."""
    try:
        summary = _get_service().progress_summary(course, learner)
    except ProgressError as e:
        _fail(e)

    overall = summary.overall_progress
    console.print(
        f"[bold]{summary.course_id}[/bold] / {summary.learner_id}  "
        f"phase: [cyan]{summary.current_phase}[/cyan]  "
        f"concept: [cyan]{summary.current_concept or '-'}[/cyan]"
    )
    console.print(
        f"Concepts [{_format_progress_bar(overall.overall_completion)}] "
        f"{overall.completed_concepts}/{overall.total_concepts}   "
        f"Items mastered {overall.items_mastered}/{overall.total_items}"
    )

    topics = Table(title="Topics")
    topics.add_column("Topic")
    topics.add_column("Comprehension", justify="right")
    for key, score in summary.topic_progress.items():
        topics.add_row(key, f"[{_score_style(score)}]{score}/5[/]")
    console.print(topics)

    if summary.item_progress:
        items = Table(title="Items")
        items.add_column("Item")
        items.add_column("Successes", justify="right")
        items.add_column("Last score", justify="right")
        for key, state in summary.item_progress.items():
            items.add_row(key, str(state["successCount"]), str(state["comprehension"]))
        console.print(items)


@app.command("queue")
def show_queue(
    course: str = typer.Argument(..., help="Course name"),
    learner: str = typer.Argument(..., help="Learner id"),
    concept: str = typer.Argument(..., help="Concept name"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum cards to show"),
) -> None:
    """Show the flashcard due-queue for a concept."""
    service = _get_service()
    try:
        queue = service.due_queue(course, learner, concept)
        position = service.store.global_position(service.get_session(course, learner), concept)
    except ProgressError as e:
        _fail(e)

    if not queue:
        console.print(f"[green]All items in '{concept}' are mastered.[/green]")
        return

    table = Table(title=f"{concept} (position {position})")
    table.add_column("Item")
    table.add_column("Due at", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Successes", justify="right")
    table.add_column("Status")
    for card in queue[:limit]:
        table.add_row(
            card.item,
            str(card.next_due_position),
            f"{card.ease_factor:.2f}",
            str(card.interval),
            str(card.success_count),
            "[yellow]due[/yellow]" if card.is_due else "[dim]ahead[/dim]",
        )
    console.print(table)


@app.command("phase")
def change_phase(
    course: str = typer.Argument(..., help="Course name"),
    learner: str = typer.Argument(..., help="Learner id"),
    target: Phase = typer.Argument(..., help="Target phase"),
    concept: str | None = typer.Option(None, "--concept", "-c", help="Concept for concept-scoped phases"),
    force: bool = typer.Option(False, "--force", help="Bypass mastery gates"),
) -> None:
    """Request a phase transition (gate-checked unless --force)."""
    service = _get_service()
    try:
        if force:
            result = service.force_transition(course, learner, target, concept)
        else:
            result = service.request_transition(course, learner, target, concept)
    except ProgressError as e:
        _fail(e)

    if result.advanced:
        suffix = " [red](forced)[/red]" if result.forced else ""
        console.print(f"[green]Now in {result.phase.value}[/green] (concept={result.concept}){suffix}")
    else:
        console.print(f"[yellow]Not advanced:[/yellow] {result.reason}")
        raise typer.Exit(code=2)


@app.command("export")
def export_session(
    course: str = typer.Argument(..., help="Course name"),
    learner: str = typer.Argument(..., help="Learner id"),
) -> None:
    """Print the stored session document as JSON."""
    try:
        session = _get_service().get_session(course, learner)
    except ProgressError as e:
        _fail(e)
    typer.echo(json.dumps(dump_session(session), indent=2))


def main() -> None:
    """CLI entry point."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")

    app()


if __name__ == "__main__":
    main()
