"""
Typer CLI for ethos-sim.

Commands:
    ethos-sim simulate PUBLISHED_JSON      - Simulate learner activity for a publish result
    ethos-sim diagnose                     - Run every enrollment discovery strategy
    ethos-sim complete-lesson ENROLLMENT   - Complete one lesson enrollment
    ethos-sim answer-quiz ENROLLMENT       - Answer one quiz enrollment to a target score

Usage:
    ethos-sim --help
    ethos-sim simulate published.json --debug --output report.json
    ethos-sim diagnose -i <item-id> -i <item-id> -u <user-id> --course <course-id>
    ethos-sim answer-quiz <enrollment-id> --percent 60
"""

from __future__ import annotations

import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.enrollment.locator import EnrollmentLocator
from src.enrollment.models import EnrollmentQuery
from src.ethos.client import EthosApiError, EthosClient
from src.ethos.lms import EthosLmsApi
from src.simulation.lesson import LessonCompletionDriver
from src.simulation.quiz import QuizAnsweringEngine
from src.simulation.runner import PublishedSnapshot, SimulationRunner

app = typer.Typer(
    help="ethos-sim: simulate learner activity against the Ethos learning platform",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log_level.upper())


def _client() -> EthosClient:
    settings = get_settings()
    if not settings.has_credentials:
        console.print("[red]ETHOS_API_KEY and ETHOS_CONTEXT_TOKEN must be set[/red]")
        raise typer.Exit(code=2)
    return EthosClient.from_settings(settings)


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except EthosApiError as e:
        console.print(f"[red]Ethos API error[/red] ({e.status}) {e.method} {e.url}: {e}")
        raise typer.Exit(code=1) from e


def _write_json(data: Any, output: Optional[Path]) -> None:
    if output:
        output.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        console.print(f"[dim]Report written to {output}[/dim]")


def _print_report(report: dict[str, Any]) -> None:
    wait = report["enrollment_wait"]
    console.print(
        f"Enrollment wait: [bold]{wait['state']}[/bold] via {wait['strategy']} "
        f"({wait['foundEnrollments']} enrollments, {wait['polls']} polls)"
    )

    table = Table(title="Simulation Results")
    table.add_column("User", style="cyan")
    table.add_column("Lessons", justify="right")
    table.add_column("Quizzes", justify="right")
    table.add_column("Misses", justify="right", style="yellow")

    for user in report["per_user_results"]:
        lessons = user["completed_lessons"]
        quizzes = user["completed_quizzes"]
        table.add_row(
            user["user_id"],
            f"{sum(1 for r in lessons if r['ok'])}/{len(lessons)}",
            f"{sum(1 for r in quizzes if r['ok'])}/{len(quizzes)}",
            str(len(user["enrollment_misses"])),
        )
    console.print(table)


def _print_diagnostics(rows: list[dict[str, Any]]) -> None:
    table = Table(title="Enrollment Discovery Diagnostics")
    table.add_column("Strategy", style="cyan")
    table.add_column("Matched", justify="right")
    table.add_column("Fetched", justify="right")
    table.add_column("Error", style="red")
    for row in rows:
        table.add_row(
            row["strategy"],
            str(row.get("count", 0)),
            str(row.get("fetched", row.get("courseEnrollments", "-"))),
            row.get("error") or ("skipped" if row.get("skipped") else ""),
        )
    console.print(table)


# ============================================================================
# COMMANDS
# ============================================================================


@app.command("simulate")
def simulate(
    published: Path = typer.Argument(..., exists=True, readable=True, help="Publish result JSON"),
    debug: bool = typer.Option(False, "--debug", help="Always run discovery diagnostics"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for learner outcomes"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the full report as JSON"),
):
    """
    Simulate learner activity for a published snapshot.

    Waits once for enrollments, then completes lessons and answers quizzes
    for every user according to the outcome model.
    """
    settings = get_settings()
    snapshot = PublishedSnapshot.from_dict(
        json.loads(published.read_text(encoding="utf-8")),
        default_course_id=settings.default_course_id,
    )
    if not snapshot.user_ids or not snapshot.learning_item_ids:
        console.print("[yellow]Snapshot has no users or no learning items; nothing to simulate[/yellow]")
        raise typer.Exit(code=1)

    async def _simulate() -> dict[str, Any]:
        async with _client() as client:
            runner = SimulationRunner.from_settings(client, settings, rng=random.Random(seed))
            return await runner.run(snapshot, debug=debug)

    report = _run(_simulate())
    _print_report(report)
    _write_json(report, output)


@app.command("diagnose")
def diagnose(
    item_ids: list[str] = typer.Option(..., "--item", "-i", help="Learning item id (repeatable)"),
    user_ids: list[str] = typer.Option([], "--user", "-u", help="User id (repeatable)"),
    course_id: Optional[str] = typer.Option(None, "--course", "-c", help="Course id"),
    light: bool = typer.Option(False, "--light", help="Only probe connectivity"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as JSON"),
):
    """Run every enrollment discovery strategy and show what each finds."""
    settings = get_settings()
    query = EnrollmentQuery(item_ids, user_ids, course_id or settings.default_course_id)

    async def _diagnose() -> dict[str, Any]:
        async with _client() as client:
            locator = EnrollmentLocator(
                EthosLmsApi(client),
                concurrency=settings.hydration_concurrency,
                per_item_cap=settings.per_item_cap,
            )
            results = await locator.diagnose(query, mode="light" if light else "full")
            sample = await locator.sample_course_enrollment(query) if query.course_id and not light else None
            return {"strategies": [r.summary() for r in results], "course_enrollment_sample": sample}

    data = _run(_diagnose())
    _print_diagnostics(data["strategies"])
    if data["course_enrollment_sample"]:
        console.print_json(json.dumps(data["course_enrollment_sample"], default=str))
    _write_json(data, output)


@app.command("complete-lesson")
def complete_lesson(
    enrollment_id: str = typer.Argument(..., help="Learning item enrollment id"),
):
    """Mark one lesson enrollment complete and show the settled record."""

    async def _complete():
        async with _client() as client:
            return await LessonCompletionDriver(EthosLmsApi(client)).complete(enrollment_id)

    result = _run(_complete())
    console.print_json(json.dumps(result.to_dict(), default=str))


@app.command("answer-quiz")
def answer_quiz(
    enrollment_id: str = typer.Argument(..., help="Learning item enrollment id of the quiz"),
    percent: float = typer.Option(..., "--percent", "-p", min=0, max=100, help="Target percent correct"),
    debug: bool = typer.Option(False, "--debug", help="Include re-fetched card samples"),
):
    """Answer one quiz enrollment to a target percentage."""
    settings = get_settings()

    async def _answer():
        async with _client() as client:
            engine = QuizAnsweringEngine(
                EthosLmsApi(client),
                concurrency=settings.hydration_concurrency,
                card_poll_attempts=settings.card_poll_attempts,
                card_poll_seconds=settings.card_poll_seconds,
                score_poll_attempts=settings.score_poll_attempts,
                score_poll_seconds=settings.score_poll_seconds,
            )
            return await engine.answer(enrollment_id, None, percent, debug=debug)

    result = _run(_answer())
    console.print_json(json.dumps(result.to_dict(), default=str))
    if not result.ok:
        raise typer.Exit(code=1)


def run():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
