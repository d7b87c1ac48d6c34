"""CLI commands for the reading program.

Administrators and scripts drive the same lifecycle operations as the web
API:
- phase / set-phase / advance-phase: program phase
- add-nominee / nominees: nominee catalog
- select / deselect / option / reward / save / release / show: teacher configuration
- add-student / shelf-add / submit / quiz / history: student reading
- pending / approve / revise / cancel: submission review
- vote / results: favorite-book voting
- rollover: seed the next academic year
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from luxlibris.config.app_config import load_app_config
from luxlibris.core.catalog import NomineeBook, list_nominees, register_nominee
from luxlibris.core.configuration_store import ConfigurationResult, TeacherConfiguration
from luxlibris.core.phases import (
    AcademicYear,
    ProgramPhase,
    advance_phase,
    get_program_state,
    set_program_phase,
)
from luxlibris.core.students import StudentRecord, register_student
from luxlibris.core.submissions import SubmissionResult
from luxlibris.db import SqliteDocumentStore, open_document_store
from luxlibris.web.services import ProgramServices

app = typer.Typer(
    name="libris",
    help="Annual reading program lifecycle: configure, release, review, vote, roll over.",
    no_args_is_help=True,
)

console = Console()

_db_path: Path | None = None


@app.callback()
def main(
    db: Path | None = typer.Option(
        None, "--db", help="SQLite database path (defaults to the configured storage)"
    ),
) -> None:
    global _db_path
    _db_path = db


def _services() -> ProgramServices:
    config = load_app_config()
    store = SqliteDocumentStore(_db_path) if _db_path else open_document_store(config)
    return ProgramServices.create(store, config=config)


def _parse_year_or_exit(year: str) -> AcademicYear:
    try:
        return AcademicYear.parse(year)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


def _print_configuration(config: TeacherConfiguration) -> None:
    console.print(f"  [dim]status:[/dim]  {config.status.value}")
    console.print(
        f"  [dim]books:[/dim]   {len(config.selected_book_ids)}/{config.ceiling}"
        f" {', '.join(config.selected_book_ids)}"
    )
    console.print(
        f"  [dim]methods:[/dim] {', '.join(sorted(m.value for m in config.completion_options))}"
    )
    if config.achievement_tiers:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Books", justify="right", style="cyan", width=6)
        table.add_column("Type", width=9)
        table.add_column("Reward", width=40)
        for tier in config.achievement_tiers:
            reward = tier.reward + (" [dim](edited)[/dim]" if tier.customized else "")
            table.add_row(str(tier.books), tier.tier_type, reward)
        console.print(table)


def _report_configuration(result: ConfigurationResult) -> None:
    if not result.success:
        console.print(f"[red]✗ {result.message}[/red] [dim]({result.error.value})[/dim]")
        raise typer.Exit(code=1)
    mark = "[green]✓" if result.applied else "[yellow]="
    console.print(f"{mark} {result.message}[/]")
    if result.configuration is not None:
        _print_configuration(result.configuration)


def _report_submission(result: SubmissionResult) -> None:
    if not result.success:
        console.print(f"[red]✗ {result.message}[/red] [dim]({result.error.value})[/dim]")
        raise typer.Exit(code=1)
    mark = "[green]✓" if result.applied else "[yellow]="
    console.print(f"{mark} {result.message}[/]")
    if result.student is not None:
        console.print(
            f"  [dim]this year:[/dim] {result.student.books_submitted_this_year}"
            f"  [dim]lifetime:[/dim] {result.student.lifetime_books_submitted}"
        )


# =============================================================================
# PHASE
# =============================================================================


@app.command()
def phase() -> None:
    """Show the current academic year and phase."""
    state = get_program_state(_services().store)
    if state is None:
        console.print("[yellow]Program not initialized (SETUP)[/yellow]")
        return
    year, current = state
    console.print(f"[bold]{year}[/bold] {current.value}")


@app.command(name="set-phase")
def set_phase(
    year: str = typer.Argument(..., help="Academic year, e.g. 2025-26"),
    new_phase: ProgramPhase = typer.Argument(..., help="Program phase"),
) -> None:
    """Set the current academic year and phase."""
    academic_year = _parse_year_or_exit(year)
    try:
        set_program_phase(_services().store, academic_year, new_phase)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ {academic_year} is now {new_phase.value}[/green]")


@app.command(name="advance-phase")
def advance() -> None:
    """Move the program to its next phase."""
    try:
        year, current = advance_phase(_services().store)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ {year} is now {current.value}[/green]")


# =============================================================================
# CATALOG
# =============================================================================


@app.command(name="add-nominee")
def add_nominee(
    year: str = typer.Argument(..., help="Academic year"),
    book_id: str = typer.Argument(..., help="Nominee id"),
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: list[str] = typer.Option([], "--author", "-a", help="Author (repeatable)"),
    pages: int | None = typer.Option(None, "--pages", help="Page count"),
    genre: list[str] = typer.Option([], "--genre", "-g", help="Genre tag (repeatable)"),
) -> None:
    """Publish a nominee into a year's catalog."""
    academic_year = _parse_year_or_exit(year)
    book = NomineeBook(
        book_id=book_id,
        title=title,
        academic_year=str(academic_year),
        authors=list(author),
        pages=pages,
        genres=list(genre),
    )
    try:
        added = register_nominee(_services().store, book)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    if added:
        console.print(f"[green]✓ {title} published for {academic_year}[/green]")
    else:
        console.print(f"[yellow]= {book_id} already published for {academic_year}[/yellow]")


@app.command()
def nominees(year: str = typer.Argument(..., help="Academic year")) -> None:
    """List a year's nominees."""
    books = list_nominees(_services().store, _parse_year_or_exit(year))
    if not books:
        console.print("[yellow]No nominees[/yellow]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="cyan", no_wrap=True, overflow="fold")
    table.add_column("Title")
    table.add_column("Authors")
    for book in books:
        table.add_row(book.book_id, book.title, ", ".join(book.authors))
    console.print(table)


# =============================================================================
# TEACHER CONFIGURATION
# =============================================================================


@app.command()
def show(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
) -> None:
    """Show a teacher's configuration."""
    config = _services().configurations.get_configuration(teacher_id, _parse_year_or_exit(year))
    if config is None:
        console.print(f"[red]✗ No configuration for {teacher_id} in {year}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[bold]{teacher_id}[/bold] {year}")
    _print_configuration(config)


@app.command()
def select(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
    book_id: str = typer.Argument(..., help="Nominee id"),
) -> None:
    """Add a nominee to a teacher's selection."""
    _report_configuration(
        _services().configurations.select_book(teacher_id, _parse_year_or_exit(year), book_id)
    )


@app.command()
def deselect(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
    book_id: str = typer.Argument(..., help="Nominee id"),
) -> None:
    """Remove a nominee from a teacher's selection."""
    _report_configuration(
        _services().configurations.deselect_book(teacher_id, _parse_year_or_exit(year), book_id)
    )


@app.command()
def option(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
    option_key: str = typer.Argument(..., help="Completion method, e.g. submitReview"),
    enabled: bool = typer.Option(True, "--enable/--disable", help="Enable or disable"),
) -> None:
    """Toggle a completion method."""
    _report_configuration(
        _services().configurations.set_completion_option(
            teacher_id, _parse_year_or_exit(year), option_key, enabled
        )
    )


@app.command()
def reward(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
    books: int = typer.Argument(..., help="Book count of the tier"),
    text: str = typer.Argument(..., help="Reward text"),
) -> None:
    """Edit the reward text of a tier."""
    _report_configuration(
        _services().configurations.set_tier_reward(
            teacher_id, _parse_year_or_exit(year), books, text
        )
    )


@app.command()
def save(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
) -> None:
    """Save a draft configuration."""
    _report_configuration(_services().configurations.save(teacher_id, _parse_year_or_exit(year)))


@app.command()
def release(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    year: str = typer.Argument(..., help="Academic year"),
) -> None:
    """Release a saved configuration to students."""
    result = _services().release_gate.release(teacher_id, _parse_year_or_exit(year))
    if not result.success:
        console.print(f"[red]✗ {result.message}[/red] [dim]({result.error.value})[/dim]")
        raise typer.Exit(code=1)
    if result.applied:
        console.print(f"[green]✓ {result.message}[/green]")
    else:
        console.print(f"[yellow]= {result.message}[/yellow]")
    if result.record is not None:
        console.print(f"  [dim]released_at:[/dim] {result.record.released_at}")
        console.print(f"  [dim]books:[/dim]       {result.record.books_released}")


# =============================================================================
# STUDENTS
# =============================================================================


@app.command(name="add-student")
def add_student(
    student_id: str = typer.Argument(..., help="Student id"),
    first_name: str = typer.Argument(..., help="First name"),
    teacher_id: str = typer.Option(..., "--teacher", help="Teacher id"),
    year: str = typer.Option(..., "--year", help="Academic year"),
    last_initial: str = typer.Option("", "--initial", help="Last initial"),
    grade: int | None = typer.Option(None, "--grade", help="Grade"),
) -> None:
    """Enroll a student with a teacher."""
    student = register_student(
        _services().store,
        StudentRecord(
            student_id=student_id,
            first_name=first_name,
            teacher_id=teacher_id,
            academic_year=str(_parse_year_or_exit(year)),
            last_initial=last_initial,
            grade=grade,
        ),
    )
    console.print(f"[green]✓ {student.display_name} ({student.student_id})[/green]")


@app.command(name="shelf-add")
def shelf_add(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
) -> None:
    """Put a released book on a student's shelf."""
    _report_submission(_services().submissions.add_to_shelf(student_id, book_id))


@app.command()
def submit(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
    method: str = typer.Option(..., "--method", "-m", help="Completion method"),
    progress: int = typer.Option(0, "--progress", help="Pages or minutes read"),
) -> None:
    """Submit a book for teacher approval."""
    _report_submission(
        _services().submissions.submit_for_approval(student_id, book_id, method, progress)
    )


@app.command()
def quiz(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
    passed: bool = typer.Option(..., "--pass/--fail", help="Quiz outcome"),
) -> None:
    """Record a quiz result."""
    _report_submission(_services().submissions.record_quiz_result(student_id, book_id, passed))


@app.command()
def history(
    student_id: str = typer.Argument(..., help="Student id"),
    grade: int = typer.Argument(..., help="Earlier grade"),
    books: int = typer.Argument(..., help="Books completed in that grade"),
) -> None:
    """Add books a student read in an earlier grade to their lifetime count."""
    _report_submission(
        _services().submissions.add_historical_completion(student_id, grade, books)
    )


# =============================================================================
# SUBMISSION REVIEW
# =============================================================================


@app.command()
def pending(teacher_id: str = typer.Argument(..., help="Teacher id")) -> None:
    """List submissions waiting for a teacher, most recent first."""
    rows = _services().submissions.get_pending_submissions(teacher_id)
    if not rows:
        console.print("[green]Nothing to review[/green]")
        return
    table = Table(show_header=True, header_style="bold")
    # ids are what approve/revise take, so they are never truncated
    table.add_column("Student", style="cyan", no_wrap=True, overflow="fold")
    table.add_column("Name")
    table.add_column("Book", no_wrap=True, overflow="fold")
    table.add_column("Title")
    table.add_column("Method")
    table.add_column("Submitted")
    for row in rows:
        table.add_row(
            row.student_id,
            row.student_name,
            row.book_id,
            row.book_title,
            row.submission_type or "",
            (row.submitted_at or "")[:16].replace("T", " "),
        )
    console.print(table)


@app.command()
def approve(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
    note: str | None = typer.Option(None, "--note", "-n", help="Note for the student"),
) -> None:
    """Approve a pending submission."""
    _report_submission(_services().submissions.approve(student_id, book_id, note))


@app.command()
def revise(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
    note: str | None = typer.Option(None, "--note", "-n", help="What to improve"),
) -> None:
    """Request a revision of a pending submission."""
    _report_submission(_services().submissions.request_revision(student_id, book_id, note))


@app.command()
def cancel(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
) -> None:
    """Send a pending submission back to reading."""
    _report_submission(_services().submissions.cancel_submission(student_id, book_id))


# =============================================================================
# VOTING
# =============================================================================


@app.command()
def vote(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Completed book to vote for"),
) -> None:
    """Cast a student's favorite-book vote for the year."""
    result = _services().voting.cast_vote(student_id, book_id)
    if not result.success:
        console.print(f"[red]✗ {result.message}[/red] [dim]({result.error.value})[/dim]")
        raise typer.Exit(code=1)
    if result.applied:
        console.print(f"[green]✓ {result.message}[/green]")
    else:
        console.print(f"[yellow]= {result.message}[/yellow]")
    if result.tally is not None:
        console.print(f"  [dim]votes for {result.tally.book_id}:[/dim] {result.tally.total_votes}")


@app.command()
def results(year: str = typer.Argument(..., help="Academic year")) -> None:
    """Show a year's vote tallies, most votes first."""
    tallies = _services().voting.get_results(_parse_year_or_exit(year))
    if not tallies:
        console.print("[yellow]No votes cast[/yellow]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Id", style="cyan", no_wrap=True, overflow="fold")
    table.add_column("Title")
    table.add_column("Votes", justify="right")
    for rank, tally in enumerate(tallies, start=1):
        table.add_row(str(rank), tally.book_id, tally.book_title, str(tally.total_votes))
    console.print(table)


# =============================================================================
# ROLLOVER
# =============================================================================


@app.command()
def rollover(
    teacher_id: str = typer.Argument(..., help="Teacher id"),
    old_year: str = typer.Argument(..., help="Year being closed"),
    new_year: str = typer.Argument(..., help="Year being opened"),
) -> None:
    """Seed a teacher's next academic year."""
    old = _parse_year_or_exit(old_year)
    new = _parse_year_or_exit(new_year)
    result = _services().rollover.rollover(teacher_id, old, new)
    if not result.success:
        console.print(f"[red]✗ {result.message}[/red] [dim]({result.error.value})[/dim]")
        raise typer.Exit(code=1)
    if result.applied:
        console.print(f"[green]✓ {result.message}[/green]")
    else:
        console.print(f"[yellow]= {result.message}[/yellow]")
    console.print(f"  [dim]students rolled:[/dim] {len(result.students_rolled)}")


if __name__ == "__main__":
    app()
