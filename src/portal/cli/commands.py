"""Admin CLI for the learning portal.

Commands:
- init-db: Create the database schema
- load-course: Import a YAML course file
- status: Show a student's lesson unlock table
- attempts: Show a student's attempts on a quiz
- sweep: Finalize in-progress attempts past their deadline
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from portal.config.app_config import load_app_config
from portal.core.attempt_session import AttemptSessionManager
from portal.core.course_loader import CourseLoadError, load_course
from portal.core.errors import NotFoundError
from portal.core.evaluator import SubmissionEvaluator
from portal.core.progression import ProgressionTracker
from portal.core.reconciler import sweep_stale_attempts
from portal.db.database import init_db

app = typer.Typer(
    name="portal",
    help="Learning portal administration: content, progression, and quiz attempts.",
    no_args_is_help=True,
)

console = Console()


def _open_db(db_path: Path | None) -> None:
    init_db(db_path or load_app_config().db_path)


@app.command(name="init-db")
def init_database(
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Create the database schema."""
    _open_db(db_path)
    console.print("[green]✓ Database ready[/green]")


@app.command(name="load-course")
def load_course_command(
    course_file: Path = typer.Argument(..., help="YAML course description"),
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Import lessons, videos, and quizzes from a YAML course file."""
    _open_db(db_path)
    try:
        result = load_course(course_file)
    except FileNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    except CourseLoadError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(
        f"[green]✓ Loaded {result.lessons} lessons, {result.videos} videos, "
        f"{result.quizzes} quizzes ({result.questions} questions)[/green]"
    )
    console.print(f"  Tracks: {', '.join(result.tracks)}")


@app.command()
def status(
    student_id: str = typer.Argument(..., help="Student id"),
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Show unlock, completion, and progress of every lesson for a student."""
    _open_db(db_path)
    statuses = ProgressionTracker().get_lesson_unlock_status(student_id)

    if not statuses:
        console.print("[yellow]No lessons loaded.[/yellow]")
        return

    table = Table(title=f"Lessons for {student_id}")
    table.add_column("Track")
    table.add_column("Session", justify="right")
    table.add_column("Lesson")
    table.add_column("Unlocked")
    table.add_column("Completed")
    table.add_column("Progress", justify="right")

    for progress in statuses:
        lesson = progress.lesson
        if progress.is_completed:
            completed = "[green]yes[/green]"
        elif progress.attempts_exhausted:
            completed = "[yellow]quiz exhausted[/yellow]"
        else:
            completed = "no"
        table.add_row(
            lesson.track,
            str(lesson.session_number),
            lesson.title or lesson.lesson_id,
            "[green]yes[/green]" if progress.is_unlocked else "[red]locked[/red]",
            completed,
            f"{progress.progress_percent}%",
        )

    console.print(table)


@app.command()
def attempts(
    student_id: str = typer.Argument(..., help="Student id"),
    quiz_id: str = typer.Argument(..., help="Quiz id"),
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Show a student's attempts on a quiz."""
    _open_db(db_path)
    manager = AttemptSessionManager()
    try:
        eligibility = manager.can_attempt(student_id, quiz_id)
    except NotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    history = manager.list_attempts(student_id, quiz_id)
    for attempt in history:
        time_taken = attempt.metadata.get("timeTaken")
        line = f"  #{attempt.attempt_number} {attempt.status.value}"
        if attempt.is_terminal:
            line += (
                f" {attempt.score}% ({attempt.correct_answers}/{attempt.total_questions})"
                f" in {time_taken}s"
            )
        else:
            line += f" ({attempt.time_remaining_seconds}s left)"
        console.print(line)

    if not history:
        console.print("  (no attempts)")

    if eligibility.allowed:
        console.print(f"[green]Can attempt ({eligibility.attempts_remaining} left)[/green]")
    else:
        console.print(f"[yellow]Cannot attempt: {eligibility.reason}[/yellow]")


@app.command()
def sweep(
    grace: int = typer.Option(0, "--grace", help="Seconds of slack past each deadline"),
    db_path: Path = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Finalize in-progress attempts whose deadline has passed."""
    _open_db(db_path)
    evaluator = SubmissionEvaluator()
    report = sweep_stale_attempts(evaluator, grace_seconds=grace)

    for attempt_id, result in report.finalized.items():
        console.print(f"  {attempt_id}: {result.status.value} ({result.score_percent}%)")
    console.print(
        f"[green]✓ Checked {report.checked} in-progress attempts, "
        f"finalized {report.finalized_count}[/green]"
    )


if __name__ == "__main__":
    app()
