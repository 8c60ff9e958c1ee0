"""CLI commands for the participation tracker.

Commands:
- sync: Reconcile students with a roster file and rebuild cached points
- students / categories: List enrolled students and event categories
- pick: Draw students with the fair picker
- record / events / change: Record, review and correct events
- summary / rebuild / points: Period summary, export and cached points
- session: Interactive loop for picking, recording, corrections and export
"""

import logging
import random
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, NoReturn

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from participation.config.app_config import (
    AppConfig,
    get_database_config,
    load_app_config,
)
from participation.core.exporter import write_summary_file
from participation.core.ledger import Ledger
from participation.core.picker import FairPicker
from participation.core.reconciler import synchronize
from participation.core.roster_reader import read_roster
from participation.db.database import Gateway, connect
from participation.errors import (
    ParseError,
    PartialApplyError,
    PersistenceError,
    ValidationError,
)
from participation.models import EventView, Student
from participation.utils.validators import (
    parse_bool,
    parse_change,
    parse_date,
    resolve_student_name,
)

app = typer.Typer(
    name="participation",
    help="Classroom participation tracker: roster sync, fair picking and points.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Classroom participation tracker."""
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _config_or_exit() -> AppConfig:
    try:
        return load_app_config()
    except ParseError as e:
        console.print(f"[red]✗ Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


@contextmanager
def _gateway_or_exit() -> Iterator[Gateway]:
    """Open the store, or exit if it cannot be opened or provisioned.

    Store failures escaping the block also exit.
    """
    try:
        db = get_database_config()
    except ParseError as e:
        _fail(f"Configuration error: {e}")
    try:
        gateway = connect(db.path, db.namespace)
    except (PersistenceError, ValueError) as e:
        _fail(f"Database error: {e}")
    try:
        yield gateway
    except PersistenceError as e:
        _fail(f"Database error: {e}")
    finally:
        gateway.close()


def _active_students_or_exit(gateway: Gateway) -> list[Student]:
    students = gateway.query_active_students()
    if not students:
        console.print("[yellow]No students in database[/yellow]")
        console.print("  Add or update students with: participation sync <roster-file>")
        raise typer.Exit(code=1)
    return students


def _resolve_student_or_exit(query: str, students: list[Student]) -> str:
    try:
        return resolve_student_name(query, [s.name for s in students])
    except ValidationError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code=1)


# =============================================================================
# ROSTER
# =============================================================================


@app.command()
def sync(
    roster_file: Path = typer.Argument(..., help="Tab-delimited roster export"),
) -> None:
    """Synchronize students with a roster file and rebuild cached points."""
    config = _config_or_exit()

    try:
        roster = read_roster(
            roster_file.expanduser(),
            encoding=config.roster.encoding,
            has_header=config.roster.has_header,
        )
    except ParseError as e:
        _fail(f"Error in reading roster: {e}")

    with _gateway_or_exit() as gateway:
        try:
            stats = synchronize(gateway, roster)
            Ledger(gateway).rebuild_summary_cache()
        except PersistenceError as e:
            _fail(f"Roster synchronization failed: {e}")

    console.print(f"[green]✓ Roster synchronized ({len(roster)} entries)[/green]")
    console.print(f"  [dim]inserted:[/dim]  {stats.inserted}")
    console.print(f"  [dim]updated:[/dim]   {stats.updated}")
    console.print(f"  [dim]unchanged:[/dim] {stats.unchanged}")
    console.print(f"  [dim]dropped:[/dim]   {stats.dropped}")


@app.command()
def students() -> None:
    """List enrolled students."""
    with _gateway_or_exit() as gateway:
        enrolled = gateway.query_active_students()

    if not enrolled:
        console.print("[yellow]No enrolled students[/yellow]")
        console.print("  Use: participation sync <roster-file>")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Username")
    table.add_column("External ID", style="dim")
    for s in enrolled:
        table.add_row(s.name, s.username, s.external_id)

    console.print(f"\n[bold]Enrolled students ({len(enrolled)}):[/bold]\n")
    console.print(table)


@app.command()
def categories() -> None:
    """List event categories."""
    with _gateway_or_exit() as gateway:
        found = gateway.query_categories()

    for c in found:
        console.print(f"  [bold]{c.name}[/bold]")


# =============================================================================
# PICKING
# =============================================================================


@app.command()
def pick(
    count: int = typer.Option(1, "--count", "-n", min=1, help="Students to draw"),
    seed: int | None = typer.Option(None, "--seed", help="Seed for a reproducible order"),
) -> None:
    """Draw students at random, each once per pass."""
    config = _config_or_exit()

    with _gateway_or_exit() as gateway:
        enrolled = _active_students_or_exit(gateway)

    rng = random.Random(seed if seed is not None else config.picker.seed)
    picker = FairPicker(enrolled, rng)
    for i in range(1, count + 1):
        student = picker.next()
        console.print(f"  {i:>3}. [bold]{student.name}[/bold] [dim]({student.username})[/dim]")


# =============================================================================
# EVENTS
# =============================================================================


@app.command()
def record(
    student: str = typer.Argument(..., help="Student name or unique prefix"),
    category: str = typer.Argument(..., help="Category name"),
    unsatisfactory: bool = typer.Option(
        False, "--unsatisfactory", "-u", help="Record without earning a point"
    ),
) -> None:
    """Record a participation event."""
    with _gateway_or_exit() as gateway:
        name = _resolve_student_or_exit(student, gateway.query_active_students())
        try:
            Ledger(gateway).record(name, category, not unsatisfactory, strict=True)
        except (ValidationError, PersistenceError) as e:
            _fail(str(e))

    mark = "[red]✗[/red]" if unsatisfactory else "[green]✓[/green]"
    console.print(f"[green]✓ Recorded[/green] {category} for {name} {mark}")


@app.command()
def events(
    student: str = typer.Argument(..., help="Student name or unique prefix"),
    day: str | None = typer.Option(None, "--date", "-d", help="Day as YYYY-MM-DD (default: today)"),
) -> None:
    """Show a student's events for one day."""
    try:
        chosen = parse_date(day) if day else date.today()
    except ParseError as e:
        _fail(str(e))

    with _gateway_or_exit() as gateway:
        name = _resolve_student_or_exit(student, gateway.query_all_students())
        try:
            found = Ledger(gateway).retrieve_events(name, chosen)
        except PersistenceError as e:
            _fail(str(e))

    _print_events(name, chosen, found)


def _print_events(name: str, chosen: date, found: list[EventView]) -> None:
    if not found:
        console.print(f"[yellow]No events for {name} on {chosen}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", title=f"{name} ({chosen})")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Category")
    table.add_column("Time")
    table.add_column("Satisfactory", justify="center")
    for ev in found:
        table.add_row(
            str(ev.id),
            ev.category_name,
            ev.timestamp.strftime("%H:%M %Y-%m-%d"),
            "✓" if ev.satisfactory else "✗",
        )
    console.print(table)


@app.command()
def change(
    changes: list[str] = typer.Argument(..., help="Corrections as ID=yes or ID=no"),
) -> None:
    """Correct the satisfactory flag of recorded events."""
    try:
        parsed = [parse_change(c) for c in changes]
    except ParseError as e:
        _fail(str(e))

    with _gateway_or_exit() as gateway:
        try:
            Ledger(gateway).change_events(parsed)
        except PartialApplyError as e:
            console.print(f"[yellow]⚠ {escape(str(e))}[/yellow]")
            raise typer.Exit(code=1)
        except PersistenceError as e:
            _fail(str(e))

    console.print(f"[green]✓ Applied {len(parsed)} change(s)[/green]")


# =============================================================================
# SUMMARY
# =============================================================================


@app.command()
def summary(
    export: Path | None = typer.Option(None, "--export", "-e", help="Write gradebook TSV here"),
) -> None:
    """Show satisfactory points per grading period."""
    config = _config_or_exit()

    with _gateway_or_exit() as gateway:
        try:
            rows = Ledger(gateway).summarize(config.summary.boundaries)
        except (ValidationError, PersistenceError) as e:
            _fail(str(e))

    t1, t2, t3 = (b.strftime("%Y-%m-%d") for b in config.summary.boundaries)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Username", style="cyan")
    table.add_column(f"< {t1}", justify="right")
    table.add_column(f"{t1} .. {t2}", justify="right")
    table.add_column(f"{t2} .. {t3}", justify="right")
    for row in rows:
        table.add_row(row.username, str(row.period1), str(row.period2), str(row.period3))
    console.print(table)

    if export is not None:
        try:
            write_summary_file(rows, export.expanduser(), config.summary.headers)
        except OSError as e:
            _fail(f"File error: {e}")
        console.print(f"[green]✓ Finished export:[/green] {export}")


@app.command()
def rebuild() -> None:
    """Recompute cached all-time points."""
    with _gateway_or_exit() as gateway:
        try:
            stamp = Ledger(gateway).rebuild_summary_cache()
        except PersistenceError as e:
            _fail(str(e))

    console.print(f"[green]✓ Summary rebuilt[/green] [dim]{stamp.astimezone():%Y-%m-%d %H:%M}[/dim]")


@app.command()
def points() -> None:
    """Show cached all-time points."""
    with _gateway_or_exit() as gateway:
        ledger = Ledger(gateway)
        entries = ledger.cached_points()
        last_updated = ledger.summary_last_updated()

    if last_updated is None:
        console.print("[yellow]Summary never rebuilt[/yellow]")
        console.print("  Use: participation rebuild")
        return

    console.print(f"[dim]Last rebuilt:[/dim] {last_updated:%Y-%m-%d %H:%M}")
    for entry in entries:
        console.print(f"  {entry.username:<20} {entry.points:>4}")


# =============================================================================
# INTERACTIVE SESSION
# =============================================================================


@app.command()
def session() -> None:
    """Interactive loop: pick students, record and correct their participation.

    Actions: Enter picks the next student, `s` selects a student by name,
    `r` records for the current student, `v` views the current student's
    events for a day, `c` corrects events by id, `x` exports the period
    summary, `q` quits. Errors are reported and the loop continues.
    """
    config = _config_or_exit()

    with _gateway_or_exit() as gateway:
        enrolled = _active_students_or_exit(gateway)
        picker = FairPicker(enrolled, random.Random(config.picker.seed))
        ledger = Ledger(gateway)
        category_names = [c.name for c in gateway.query_categories()]
        current: Student | None = None

        console.print(
            "[dim]Enter: pick next | s: select student | r: record | "
            "v: view events | c: correct | x: export | q: quit[/dim]"
        )
        console.print(f"[dim]Categories: {', '.join(category_names)}[/dim]")

        while True:
            action = typer.prompt("Action", default="", show_default=False).strip().lower()
            if action in ("q", "quit"):
                break
            if action in ("r", "v") and current is None:
                console.print("[yellow]Pick or select a student first[/yellow]")
                continue
            try:
                if action == "":
                    current = picker.next()
                    console.print(f"→ [bold]{current.name}[/bold]")
                elif action == "s":
                    query = typer.prompt("Student")
                    name = resolve_student_name(query, [s.name for s in enrolled])
                    current = next(s for s in enrolled if s.name == name)
                    console.print(f"→ [bold]{current.name}[/bold]")
                elif action == "r":
                    category = typer.prompt("Category").strip()
                    satisfactory = parse_bool(typer.prompt("Satisfactory? (y/n)", default="y"))
                    ledger.record(current.name, category, satisfactory, strict=True)
                    console.print(f"[green]✓ Recorded[/green] {category} for {current.name}")
                elif action == "v":
                    raw = typer.prompt("Date (YYYY-MM-DD, empty for today)", default="", show_default=False)
                    chosen = parse_date(raw) if raw.strip() else date.today()
                    _print_events(current.name, chosen, ledger.retrieve_events(current.name, chosen))
                elif action == "c":
                    parsed = [parse_change(c) for c in typer.prompt("Changes (ID=yes|no ...)").split()]
                    ledger.change_events(parsed)
                    console.print(f"[green]✓ Applied {len(parsed)} change(s)[/green]")
                elif action == "x":
                    path = Path(typer.prompt("Export to")).expanduser()
                    rows = ledger.summarize(config.summary.boundaries)
                    write_summary_file(rows, path, config.summary.headers)
                    console.print(f"[green]✓ Finished export:[/green] {path}")
                else:
                    console.print(f"[yellow]Unknown action: {action}[/yellow]")
            except PartialApplyError as e:
                console.print(f"[yellow]⚠ {escape(str(e))}[/yellow]")
            except (ValidationError, ParseError, PersistenceError) as e:
                console.print(f"[red]✗ {escape(str(e))}[/red]")
            except OSError as e:
                console.print(f"[red]✗ File error: {escape(str(e))}[/red]")

    console.print("[dim]Session ended[/dim]")


if __name__ == "__main__":
    app()
