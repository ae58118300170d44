"""Command-line interface for the book-club companion.

Built with Typer for commands and Rich for output.
"""

import logging
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .db.schemas import (
    Cadence,
    EntryCreate,
    EntryUpdate,
    GoalCreate,
    GoalType,
    GoalUpdate,
    MilestoneCreate,
    Privacy,
    ProgressStatus,
    ProgressUpdate,
    UserProfile,
)
from .errors import CompanionError, NotFound
from .timeutils import isoformat, parse_instant

# Create the main app
app = typer.Typer(
    name="bookclub-companion",
    help="Track book-club goals, reading progress and statistics.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def _instant(value: Optional[str], option: str):
    """Parse a date/time option or exit with an error."""
    try:
        return parse_instant(value)
    except ValueError:
        print_error(f"Invalid {option}: {value}. Use YYYY-MM-DD or an ISO-8601 timestamp")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    """Report a domain or validation error and exit."""
    if isinstance(error, ValidationError):
        messages = "; ".join(err["msg"] for err in error.errors())
        print_error(messages)
    else:
        print_error(str(error))
    raise typer.Exit(1)


def _bar(actual: float, target: float, width: int = 15) -> str:
    ratio = min(actual / target, 1.0) if target else 0.0
    filled = int(ratio * width)
    return "█" * filled + "░" * (width - filled)


def _status_style(status: str) -> str:
    return {
        ProgressStatus.FINISHED.value: "[green]finished[/green]",
        ProgressStatus.READING.value: "[yellow]reading[/yellow]",
    }.get(status, f"[dim]{status}[/dim]")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Track book-club goals, reading progress and statistics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ============================================================================
# Setup Commands
# ============================================================================


@app.command()
def init() -> None:
    """Create the database and validate configuration."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    db = get_db()
    db.create_tables()
    print_success(f"Database ready at {db.db_path}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
    debug: bool = typer.Option(False, "--debug", help="Enable Flask debug mode"),
) -> None:
    """Run the HTTP API."""
    from .api import run_server

    config = get_config()
    console.print(
        f"\n[bold]Companion API[/bold] running at "
        f"http://{host or config.api_host}:{port or config.api_port}"
    )
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    run_server(host=host, port=port, debug=debug)


# ============================================================================
# Goal Commands
# ============================================================================

goals_app = typer.Typer(help="Manage personal goals.")
app.add_typer(goals_app, name="goals")


@goals_app.command("create")
def goals_create(
    title: str = typer.Argument(..., help="Goal title"),
    user: str = typer.Option(..., "--user", "-u", help="Owner user ID"),
    goal_type: GoalType = typer.Option(..., "--type", "-t", help="habit, metric, milestone or one_time"),
    cadence: Optional[Cadence] = typer.Option(None, "--cadence", "-c", help="day, week, month or quarter"),
    target: Optional[float] = typer.Option(None, "--target", help="Target count (habit) or quantity (metric)"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Unit for metric goals"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date for one-time goals"),
    milestone: Optional[list[str]] = typer.Option(None, "--milestone", "-m", help="Milestone title (repeatable)"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
) -> None:
    """Create a goal."""
    from .goals import GoalManager

    try:
        data = GoalCreate(
            user_id=user,
            title=title,
            description=description,
            type=goal_type,
            cadence=cadence,
            target_count=int(target) if goal_type == GoalType.HABIT and target is not None else None,
            target_quantity=target if goal_type == GoalType.METRIC else None,
            unit=unit,
            due_at=_instant(due, "due date"),
            milestones=[MilestoneCreate(title=m) for m in milestone or []],
        )
        goal = GoalManager(get_db()).create_goal(data)
    except (ValidationError, CompanionError) as e:
        _fail(e)

    print_success(f"Created {goal.type} goal: {goal.title}")
    print_info(f"ID: {goal.id}")


@goals_app.command("list")
def goals_list(
    user: str = typer.Option(..., "--user", "-u", help="Owner user ID"),
    goal_type: Optional[GoalType] = typer.Option(None, "--type", "-t", help="Filter by type"),
    all_goals: bool = typer.Option(False, "--all", "-a", help="Include archived goals"),
) -> None:
    """List a user's goals with their current progress."""
    from .goals import GoalManager

    manager = GoalManager(get_db())
    goals = manager.list_goals(user, include_archived=all_goals, goal_type=goal_type)

    if not goals:
        console.print("[dim]No goals found.[/dim]")
        console.print("[dim]Use 'bookclub-companion goals create' to add one.[/dim]")
        return

    table = Table(title=f"Goals for {user}", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Type")
    table.add_column("Cadence")
    table.add_column("Progress", justify="center")
    table.add_column("Status")

    for goal in goals:
        try:
            progress = manager.get_progress(goal.id)
            target = progress.target
            progress_text = f"[{_bar(progress.actual, target)}] {progress.actual:g}/{target:g}"
            status = "[bold green]Complete![/bold green]" if progress.completed else "[dim]In Progress[/dim]"
        except CompanionError as e:
            progress_text = "-"
            status = f"[red]{e}[/red]"

        if goal.archived:
            status = "[dim]Archived[/dim]"

        table.add_row(goal.id[:8], goal.title, goal.type, goal.cadence or "-", progress_text, status)

    console.print(table)


@goals_app.command("show")
def goals_show(
    goal_id: str = typer.Argument(..., help="Goal ID"),
) -> None:
    """Show a goal's details."""
    from .goals import GoalManager

    manager = GoalManager(get_db())
    try:
        goal = manager.get_goal(goal_id)
        milestones = manager.list_milestones(goal_id) if goal.type == GoalType.MILESTONE.value else []
    except NotFound as e:
        _fail(e)

    lines = [
        f"[bold]Type:[/bold] {goal.type}",
        f"[bold]Owner:[/bold] {goal.user_id}",
    ]
    if goal.cadence:
        lines.append(f"[bold]Cadence:[/bold] {goal.cadence}")
    if goal.target_count is not None:
        lines.append(f"[bold]Target:[/bold] {goal.target_count} per {goal.cadence}")
    if goal.target_quantity is not None:
        lines.append(f"[bold]Target:[/bold] {goal.target_quantity:g} {goal.unit or ''} per {goal.cadence}")
    if goal.due_at:
        lines.append(f"[bold]Due:[/bold] {isoformat(goal.due_at)}")
    if goal.description:
        lines.append(f"\n{goal.description}")
    for milestone in milestones:
        mark = "[green]✓[/green]" if milestone.done else "○"
        lines.append(f"  {mark} {milestone.title} [dim]({milestone.id[:8]})[/dim]")

    console.print(Panel("\n".join(lines), title=goal.title, style="cyan"))


@goals_app.command("progress")
def goals_progress(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="current, all, or YYYY-MM-DD,YYYY-MM-DD"),
    at: Optional[str] = typer.Option(None, "--at", help="Evaluate as of this instant"),
) -> None:
    """Evaluate a goal's completion."""
    from .goals import GoalManager

    try:
        progress = GoalManager(get_db()).get_progress(
            goal_id, window=period, reference=_instant(at, "--at")
        )
    except CompanionError as e:
        _fail(e)

    unit = f" {progress.unit}" if progress.unit else ""
    icon = "[bold green]✓[/bold green]" if progress.completed else "[yellow]○[/yellow]"
    console.print(
        f"{icon} [{_bar(progress.actual, progress.target)}] "
        f"{progress.actual:g}/{progress.target:g}{unit}"
    )


@goals_app.command("consistency")
def goals_consistency(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    since: Optional[str] = typer.Option(None, "--since", help="Start date (default: goal creation)"),
    until: Optional[str] = typer.Option(None, "--until", help="End date (default: now)"),
) -> None:
    """Show how consistently a habit or metric goal has been met."""
    from .goals import GoalManager

    try:
        consistency = GoalManager(get_db()).get_consistency(
            goal_id,
            since=_instant(since, "--since"),
            until=_instant(until, "--until"),
        )
    except CompanionError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Period Start")
    table.add_column("Actual", justify="right")
    table.add_column("Met", justify="center")
    for period in consistency.periods:
        table.add_row(
            period.start.date().isoformat(),
            f"{period.actual:g}",
            "[green]✓[/green]" if period.completed else "[dim]-[/dim]",
        )

    console.print(table)
    console.print(f"\nConsistency: [bold]{consistency.consistency_rate}%[/bold]")
    if consistency.streak is not None:
        console.print(f"Current streak: [bold]{consistency.streak}[/bold] period(s)")


@goals_app.command("report")
def goals_report(
    user: str = typer.Option(..., "--user", "-u", help="Owner user ID"),
    since: Optional[str] = typer.Option(None, "--since", help="Start date (default: quarter start)"),
    until: Optional[str] = typer.Option(None, "--until", help="End date (default: quarter end)"),
) -> None:
    """Rank a user's habits by consistency over elapsed periods."""
    from .goals import GoalManager

    try:
        report = GoalManager(get_db()).get_habit_consistency_report(
            user,
            since=_instant(since, "--since"),
            until=_instant(until, "--until"),
        )
    except ValueError as e:
        _fail(e)

    if not report.habits:
        console.print("[dim]No active habits.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Habit", style="cyan")
    table.add_column("Consistency", justify="right")
    table.add_column("Weight", justify="right")
    for habit in report.habits:
        table.add_row(
            str(habit.habit_position),
            habit.title,
            f"{habit.consistency_rate}%",
            f"{habit.weight:.3f}",
        )

    console.print(table)
    console.print(
        f"\n{report.start.date().isoformat()} to {report.end.date().isoformat()}: "
        f"weighted consistency [bold]{report.weighted_average}%[/bold]"
    )


@goals_app.command("update")
def goals_update(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    cadence: Optional[Cadence] = typer.Option(None, "--cadence", "-c", help="New cadence"),
    target: Optional[float] = typer.Option(None, "--target", help="New target count or quantity"),
    unit: Optional[str] = typer.Option(None, "--unit", help="New unit"),
) -> None:
    """Update a goal."""
    from .goals import GoalManager

    manager = GoalManager(get_db())
    try:
        goal = manager.get_goal(goal_id)
        fields = {"title": title, "cadence": cadence, "unit": unit}
        if target is not None:
            if goal.type == GoalType.HABIT.value:
                fields["target_count"] = int(target)
            else:
                fields["target_quantity"] = target
        data = GoalUpdate(**{k: v for k, v in fields.items() if v is not None})
        goal = manager.update_goal(goal_id, data)
    except (ValidationError, CompanionError) as e:
        _fail(e)

    print_success(f"Updated goal: {goal.title}")


@goals_app.command("complete")
def goals_complete(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    period: Optional[str] = typer.Option(None, "--period", "-p", help="Period ID, e.g. 2025-W02"),
    undo: bool = typer.Option(False, "--undo", help="Remove the completion mark"),
) -> None:
    """Mark a goal (or one of its periods) complete."""
    from .goals import GoalManager

    manager = GoalManager(get_db())
    try:
        if undo:
            goal = manager.mark_incomplete(goal_id, period_id=period)
        else:
            goal = manager.mark_complete(goal_id, period_id=period)
    except CompanionError as e:
        _fail(e)

    action = "Reopened" if undo else "Completed"
    suffix = f" for {period}" if period else ""
    print_success(f"{action}: {goal.title}{suffix}")


@goals_app.command("archive")
def goals_archive(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    undo: bool = typer.Option(False, "--undo", help="Unarchive instead"),
) -> None:
    """Archive a goal."""
    from .goals import GoalManager

    manager = GoalManager(get_db())
    try:
        goal = manager.unarchive_goal(goal_id) if undo else manager.archive_goal(goal_id)
    except NotFound as e:
        _fail(e)

    print_success(f"{'Unarchived' if undo else 'Archived'}: {goal.title}")


@goals_app.command("delete")
def goals_delete(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete a goal that has no logged entries."""
    from .goals import GoalManager

    if not force and not typer.confirm(f"Delete goal {goal_id}?"):
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(0)

    try:
        GoalManager(get_db()).delete_goal(goal_id)
    except CompanionError as e:
        _fail(e)

    print_success("Goal deleted")


# ============================================================================
# Entry Commands
# ============================================================================

entries_app = typer.Typer(help="Log activity against habit and metric goals.")
app.add_typer(entries_app, name="entries")


@entries_app.command("add")
def entries_add(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    quantity: Optional[float] = typer.Option(None, "--quantity", "-q", help="Amount (metric goals)"),
    at: Optional[str] = typer.Option(None, "--at", help="When it happened (default: now)"),
) -> None:
    """Log an entry."""
    from .goals import GoalManager

    try:
        entry = GoalManager(get_db()).add_entry(
            goal_id, EntryCreate(occurred_at=_instant(at, "--at"), quantity=quantity)
        )
    except CompanionError as e:
        _fail(e)

    print_success(f"Logged entry at {isoformat(entry.occurred_at)}")
    print_info(f"ID: {entry.id}")


@entries_app.command("list")
def entries_list(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    since: Optional[str] = typer.Option(None, "--since", help="Earliest date"),
    until: Optional[str] = typer.Option(None, "--until", help="Exclusive end date"),
) -> None:
    """List a goal's entries, newest first."""
    from .goals import GoalManager

    try:
        entries = GoalManager(get_db()).list_entries(
            goal_id, start=_instant(since, "--since"), end=_instant(until, "--until")
        )
    except NotFound as e:
        _fail(e)

    if not entries:
        console.print("[dim]No entries logged.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Occurred At")
    table.add_column("Quantity", justify="right")
    for entry in entries:
        quantity = f"{entry.quantity:g}" if entry.quantity is not None else "-"
        table.add_row(entry.id[:8], isoformat(entry.occurred_at), quantity)
    console.print(table)


@entries_app.command("edit")
def entries_edit(
    entry_id: str = typer.Argument(..., help="Entry ID"),
    quantity: Optional[float] = typer.Option(None, "--quantity", "-q", help="New amount"),
    at: Optional[str] = typer.Option(None, "--at", help="New timestamp"),
) -> None:
    """Correct an entry."""
    from .goals import GoalManager

    fields = {"occurred_at": _instant(at, "--at"), "quantity": quantity}
    try:
        GoalManager(get_db()).update_entry(
            entry_id, EntryUpdate(**{k: v for k, v in fields.items() if v is not None})
        )
    except CompanionError as e:
        _fail(e)

    print_success("Entry updated")


@entries_app.command("delete")
def entries_delete(
    entry_id: str = typer.Argument(..., help="Entry ID"),
) -> None:
    """Delete an entry."""
    from .goals import GoalManager

    if not GoalManager(get_db()).delete_entry(entry_id):
        print_error(f"Entry not found: {entry_id}")
        raise typer.Exit(1)
    print_success("Entry deleted")


# ============================================================================
# Milestone Commands
# ============================================================================

milestones_app = typer.Typer(help="Manage the checklist of milestone goals.")
app.add_typer(milestones_app, name="milestones")


@milestones_app.command("add")
def milestones_add(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    title: str = typer.Argument(..., help="Milestone title"),
) -> None:
    """Append a milestone."""
    from .goals import GoalManager

    try:
        milestone = GoalManager(get_db()).add_milestone(goal_id, MilestoneCreate(title=title))
    except CompanionError as e:
        _fail(e)

    print_success(f"Added milestone #{milestone.order + 1}: {milestone.title}")
    print_info(f"ID: {milestone.id}")


@milestones_app.command("toggle")
def milestones_toggle(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
) -> None:
    """Mark a milestone done, or not done again."""
    from .goals import GoalManager

    try:
        milestone = GoalManager(get_db()).toggle_milestone(milestone_id)
    except NotFound as e:
        _fail(e)

    state = "done" if milestone.done else "not done"
    print_success(f"{milestone.title}: {state}")


@milestones_app.command("reorder")
def milestones_reorder(
    goal_id: str = typer.Argument(..., help="Goal ID"),
    milestone_ids: list[str] = typer.Argument(..., help="Every milestone ID in the new order"),
) -> None:
    """Reorder a goal's milestones."""
    from .goals import GoalManager

    try:
        GoalManager(get_db()).reorder_milestones(goal_id, milestone_ids)
    except CompanionError as e:
        _fail(e)

    print_success("Milestones reordered")


@milestones_app.command("delete")
def milestones_delete(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
) -> None:
    """Delete a milestone."""
    from .goals import GoalManager

    if not GoalManager(get_db()).delete_milestone(milestone_id):
        print_error(f"Milestone not found: {milestone_id}")
        raise typer.Exit(1)
    print_success("Milestone deleted")


# ============================================================================
# Progress Commands
# ============================================================================

progress_app = typer.Typer(help="Record reading progress on club books.")
app.add_typer(progress_app, name="progress")


@progress_app.command("set")
def progress_set(
    user: str = typer.Argument(..., help="Reader user ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
    status: Optional[ProgressStatus] = typer.Option(None, "--status", "-s", help="not_started, reading or finished"),
    percent: Optional[int] = typer.Option(None, "--percent", "-p", help="Percent complete (0-100)"),
    privacy: Optional[Privacy] = typer.Option(None, "--privacy", help="public or private"),
) -> None:
    """Create or update a reader's progress on a book."""
    from .progress import ProgressTracker

    try:
        data = ProgressUpdate(status=status, percent_complete=percent, privacy=privacy)
        record = ProgressTracker(get_db()).upsert(user, book_id, data)
    except (ValidationError, CompanionError) as e:
        _fail(e)

    print_success(
        f"{user} on book {book_id}: {record.status} ({record.percent_complete}%)"
    )


@progress_app.command("remove")
def progress_remove(
    user: str = typer.Argument(..., help="Reader user ID"),
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Remove a reader's progress on a book."""
    from .progress import ProgressTracker

    if not ProgressTracker(get_db()).delete(user, book_id):
        print_error(f"No progress for {user} on book {book_id}")
        raise typer.Exit(1)
    print_success(f"Removed progress of {user} on book {book_id}")


@progress_app.command("list")
def progress_list(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="List one reader's books"),
    book_id: Optional[int] = typer.Option(None, "--book", "-b", help="List one book's readers"),
    public_only: bool = typer.Option(False, "--public", help="Only public records (with --book)"),
) -> None:
    """List progress records by reader or by book."""
    from .progress import ProgressTracker

    if (user is None) == (book_id is None):
        print_error("Specify exactly one of --user or --book")
        raise typer.Exit(1)

    tracker = ProgressTracker(get_db())
    if user is not None:
        records = tracker.list_for_user(user)
    else:
        records = tracker.list_for_book(book_id, public_only=public_only)

    if not records:
        console.print("[dim]No progress recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("User", style="cyan")
    table.add_column("Book", justify="right")
    table.add_column("Status")
    table.add_column("Progress", justify="center")
    table.add_column("Updated")
    for record in records:
        table.add_row(
            record.user_id,
            str(record.book_id),
            _status_style(record.status),
            f"[{_bar(record.percent_complete, 100)}] {record.percent_complete}%",
            isoformat(record.updated_at) or "-",
        )
    console.print(table)


@progress_app.command("dispatch")
def progress_dispatch(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum events to deliver"),
) -> None:
    """Deliver pending and failed progress events to the statistics."""
    from .progress import ProgressTracker

    tracker = ProgressTracker(get_db())
    result = tracker.dispatcher.process_pending(limit=limit, show_progress=True)

    if result.total == 0:
        console.print("[dim]No pending progress events.[/dim]")
        return

    print_success(f"Delivered {result.delivered} event(s)")
    for event_id, error in result.errors:
        print_error(f"{event_id[:8]}: {error}")
    if not result.success:
        raise typer.Exit(1)


@progress_app.command("prune")
def progress_prune(
    days: Optional[int] = typer.Option(
        None, "--days", "-d", help="Retention in days (default: BOOKCLUB_EVENT_RETENTION_DAYS)"
    ),
) -> None:
    """Delete delivered progress events and their markers past the retention window."""
    from .progress import ProgressEventDispatcher

    try:
        events, markers = ProgressEventDispatcher(get_db()).prune_delivered(older_than_days=days)
    except ValueError as e:
        _fail(e)

    print_success(f"Pruned {events} event(s) and {markers} marker(s)")


# ============================================================================
# Statistics Commands
# ============================================================================

stats_app = typer.Typer(help="Reading statistics.")
app.add_typer(stats_app, name="stats")


@stats_app.command("user")
def stats_user(
    user: str = typer.Argument(..., help="User ID"),
) -> None:
    """Show a user's finished-book statistics."""
    from .stats import StatsReader

    try:
        stats = StatsReader(get_db()).get_user_stats(user)
    except NotFound as e:
        _fail(e)

    console.print(
        Panel(
            f"[bold]Finished books:[/bold] {stats.finished_count}\n"
            f"[bold]Last finished:[/bold] {isoformat(stats.last_finished_at) or '-'}",
            title=stats.display_name,
            style="magenta",
        )
    )


@stats_app.command("book")
def stats_book(
    book_id: int = typer.Argument(..., help="Book ID"),
) -> None:
    """Show a book's reader distribution."""
    from .stats import StatsReader

    try:
        stats = StatsReader(get_db()).get_book_stats(book_id)
    except NotFound as e:
        _fail(e)

    console.print(
        Panel(
            f"[bold]Readers:[/bold] {stats.reader_count}\n"
            f"[bold]Reading:[/bold] {stats.active_readers}\n"
            f"[bold]Finished:[/bold] {stats.finished_readers}\n"
            f"[bold]Average progress:[/bold] {stats.avg_percent:.2f}%",
            title=f"Book {book_id}",
            style="magenta",
        )
    )


@stats_app.command("leaderboard")
def stats_leaderboard(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Number of readers to show"),
) -> None:
    """Show the readers with the most finished books."""
    from .stats import StatsReader

    rows = StatsReader(get_db()).leaderboard(limit)
    if not rows:
        console.print("[dim]Nobody has finished a book yet.[/dim]")
        return

    table = Table(title="Leaderboard", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Reader", style="cyan")
    table.add_column("Finished", justify="right")
    for rank, row in enumerate(rows, 1):
        table.add_row(str(rank), row.display_name, str(row.finished_count))
    console.print(table)


@stats_app.command("rebuild")
def stats_rebuild() -> None:
    """Recompute every user's and book's statistics from progress records."""
    from .stats import StatsMaintainer

    users, books = StatsMaintainer(get_db()).rebuild_all(show_progress=True)
    print_success(f"Rebuilt statistics for {users} user(s) and {books} book(s)")


@stats_app.command("profile")
def stats_profile(
    user: str = typer.Argument(..., help="User ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
    photo: Optional[str] = typer.Option(None, "--photo", help="Photo URL"),
) -> None:
    """Save a member profile used for new statistics rows."""
    get_db().upsert_user(UserProfile(uid=user, display_name=name, photo_url=photo))
    print_success(f"Saved profile for {user}")


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"bookclub-companion version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
