from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from shiftcycle.cli._utils import format_time, parse_date, parse_user_ids, parse_window
from shiftcycle.engine import ComposeConfig, ScheduleComposer, WorkScheduleDay
from shiftcycle.engine.recurrence import iter_dates
from shiftcycle.evaluation import (
    conflict_dataframe,
    roster_dataframe,
    schedule_dataframe,
    schedule_stats,
    user_day_dataframe,
    user_summary,
)
from shiftcycle.scheduling.rotation import default_rotation_scheme
from shiftcycle.snapshot import Snapshot, load_snapshot
from shiftcycle.telemetry import RunTelemetryLogger

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


def _enable_rich_tracebacks():
    """Enable rich tracebacks with local variables and customized formatting."""
    try:
        import rich.traceback as _rt

        _rt.install(show_locals=True, width=140, extra_lines=2)
    except ImportError:
        pass


def _load(snapshot: Path) -> Snapshot:
    try:
        return load_snapshot(snapshot)
    except FileNotFoundError as exc:
        console.print(f"[red]Snapshot file not found:[/red] {exc}")
        raise typer.Exit(1)
    except (KeyError, ValueError) as exc:
        console.print(f"[red]Invalid snapshot {snapshot}:[/red] {exc}")
        raise typer.Exit(1)


def _composer(
    sc: Snapshot,
    *,
    workers: int = 1,
    batch_days: int = 31,
    keep_plant_stops: bool = False,
) -> ScheduleComposer:
    try:
        config = ComposeConfig(
            batch_days=batch_days,
            max_workers=workers,
            rest_on_plant_stop=not keep_plant_stops,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return ScheduleComposer.from_snapshot(sc, config=config)


def _print_day_table(title: str, schedule: WorkScheduleDay) -> None:
    t = Table(title=title)
    t.add_column("Shift")
    t.add_column("Window")
    t.add_column("Teams")
    t.add_column("Users")
    t.add_column("Flags")
    for entry in schedule.entries:
        flags = []
        if entry.reduced:
            flags.append("reduced")
        if entry.plant_stop:
            flags.append("plant-stop")
        t.add_row(
            entry.shift_id,
            f"{format_time(entry.start_time)}-{format_time(entry.end_time)}",
            ", ".join(entry.team_ids) or "-",
            ", ".join(entry.user_ids) or "-",
            ", ".join(flags),
        )
    if not schedule.entries:
        t.add_row("rest", "-", "-", "-", "")
    console.print(t)
    _print_diagnostics(schedule.warnings, schedule.errors, schedule.conflicts)


def _print_diagnostics(warnings, errors, conflicts) -> None:
    for message in warnings:
        console.print(f"[yellow]warning:[/yellow] {message}")
    for error in errors:
        console.print(f"[red]error[{error.code}]:[/red] {error.message}")
    for conflict in conflicts:
        console.print(
            f"[magenta]conflict:[/magenta] {conflict.date} user {conflict.user_id} "
            f"({', '.join(conflict.exception_ids)}): {conflict.reason}"
        )


@app.command()
def validate(snapshot: Path):
    """Validate a snapshot YAML and print summary."""
    sc = _load(snapshot)
    t = Table(title=f"Snapshot: {sc.name}")
    t.add_column("Entities")
    t.add_column("Count")
    t.add_row("Shifts", str(sc.timeline_or_default().shifts_per_day))
    t.add_row("Teams", str(len(sc.all_teams())))
    t.add_row("Patterns", str(len(sc.all_patterns())))
    t.add_row("Assignments", str(len(sc.assignments)))
    t.add_row("Exceptions", str(len(sc.exceptions)))
    t.add_row("Plant stops", str(len(sc.timeline_or_default().stops)))
    console.print(t)
    for message in sc.reference_warnings():
        console.print(f"[yellow]warning:[/yellow] {message}")


@app.command("compose")
def compose_cmd(
    snapshot: Path,
    start: str = typer.Option(..., "--start", help="First date (YYYY-MM-DD)"),
    end: str | None = typer.Option(None, "--end", help="Last date (defaults to --start)"),
    user: list[str] | None = typer.Option(
        None, "--user", help="User id(s); repeat or comma-separate. Defaults to every user."
    ),
    out: Path | None = typer.Option(None, "--out", help="Write the schedule to CSV"),
    workers: int = typer.Option(1, "--workers", min=1, help="Thread pool size for batches"),
    batch_days: int = typer.Option(31, "--batch-days", min=1, help="Dates per batch"),
    keep_plant_stops: bool = typer.Option(
        False, "--keep-plant-stops", help="Flag plant-stop shifts instead of resting them"
    ),
    telemetry_log: Path | None = typer.Option(
        None, "--telemetry-log", help="Append run telemetry to this JSONL file"
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose tracebacks"),
):
    """Compose effective schedules for a date window."""
    if debug:
        _enable_rich_tracebacks()
    first, last = parse_window(start, end)
    sc = _load(snapshot)
    users = parse_user_ids(user) or sc.user_ids()
    if not users:
        console.print("[red]No users to compose:[/red] snapshot has no assignments")
        raise typer.Exit(1)
    composer = _composer(
        sc, workers=workers, batch_days=batch_days, keep_plant_stops=keep_plant_stops
    )

    if telemetry_log is not None:
        logger = RunTelemetryLogger(
            log_path=telemetry_log,
            command="compose",
            snapshot=sc.name,
            snapshot_path=str(snapshot),
            config={
                "batch_days": batch_days,
                "workers": workers,
                "rest_on_plant_stop": not keep_plant_stops,
            },
            context={"users": users, "start": first.isoformat(), "end": last.isoformat()},
        )
        with logger:
            result = composer.compose_users(
                users, first, last, on_batch=logger.batch_callback()
            )
            logger.record_result(result)
    else:
        result = composer.compose_users(users, first, last)

    frame = schedule_dataframe(result)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(str(out), index=False)
        console.print(
            f"Composed {len(result.days)} day(s) for {len(users)} user(s). Saved to {out}"
        )
    else:
        t = Table(title=f"Schedule: {sc.name} ({first} → {last})")
        for column in ("date", "shift_id", "start_time", "end_time", "user_ids", "team_ids"):
            t.add_column(column)
        for row in frame.itertuples(index=False):
            t.add_row(
                str(row.date),
                row.shift_id or "rest",
                row.start_time or "-",
                row.end_time or "-",
                row.user_ids or "-",
                row.team_ids or "-",
            )
        console.print(t)
    _print_diagnostics(result.warnings(), result.errors, result.conflicts())


@app.command()
def roster(
    snapshot: Path,
    team: str = typer.Option(..., "--team", help="Team id"),
    day: str = typer.Option(..., "--date", help="Date (YYYY-MM-DD)"),
    out: Path | None = typer.Option(None, "--out", help="Write the roster to CSV"),
):
    """Show who on a team works which shift on a date."""
    target = parse_date(day)
    sc = _load(snapshot)
    schedule = _composer(sc).compose_team_roster(team, target)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        roster_dataframe(schedule).to_csv(str(out), index=False)
        console.print(f"Roster for team {team} on {target} saved to {out}")
        return
    _print_day_table(f"Team {team} on {target}", schedule)


@app.command()
def rotation(
    day: str = typer.Option(..., "--date", help="Date (YYYY-MM-DD)"),
    days: int = typer.Option(1, "--days", min=1, help="Number of consecutive dates"),
    snapshot: Path | None = typer.Option(
        None, "--snapshot", help="Snapshot providing members, exceptions and plant stops"
    ),
):
    """Show the fixed rotation: which teams work each shift, and who is off."""
    first = parse_date(day)
    if snapshot is not None:
        sc = _load(snapshot)
        composer = _composer(sc)
        scheme = composer.scheme or default_rotation_scheme(sc.rotation_start)
    else:
        composer = ScheduleComposer((), (), ())
        scheme = default_rotation_scheme()
    for current in iter_dates(first, first + timedelta(days=days - 1)):
        schedule = composer.compose_rotation_day(current)
        off = ", ".join(scheme.off_on(current))
        _print_day_table(
            f"Rotation day {scheme.cycle_index(current) + 1}/{scheme.cycle_length} on {current}",
            schedule,
        )
        console.print(f"Off duty: {off}")


@app.command()
def conflicts(
    snapshot: Path,
    start: str = typer.Option(..., "--start", help="First date (YYYY-MM-DD)"),
    end: str | None = typer.Option(None, "--end", help="Last date (defaults to --start)"),
    out: Path | None = typer.Option(None, "--out", help="Write conflicts to CSV"),
):
    """List equal-priority exception conflicts in a date window."""
    first, last = parse_window(start, end)
    composer = _composer(_load(snapshot))
    found = []
    for current in iter_dates(first, last):
        found.extend(composer.conflicts_on(current))
    frame = conflict_dataframe(found)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(str(out), index=False)
    if not found:
        console.print("[green]No exception conflicts found.[/green]")
        return
    t = Table(title=f"Exception conflicts ({first} → {last})")
    for column in ("date", "user_id", "exception_ids", "reason"):
        t.add_column(column)
    for row in frame.itertuples(index=False):
        t.add_row(str(row.date), str(row.user_id), str(row.exception_ids), str(row.reason))
    console.print(t)


@app.command()
def stats(
    snapshot: Path,
    start: str = typer.Option(..., "--start", help="First date (YYYY-MM-DD)"),
    end: str | None = typer.Option(None, "--end", help="Last date (defaults to --start)"),
    user: list[str] | None = typer.Option(
        None, "--user", help="User id(s); repeat or comma-separate. Defaults to every user."
    ),
    out: Path | None = typer.Option(None, "--out", help="Write per-user totals to CSV"),
):
    """Summarise worked days, hours and shift mix over a date window."""
    first, last = parse_window(start, end)
    sc = _load(snapshot)
    users = parse_user_ids(user) or sc.user_ids()
    if not users:
        console.print("[red]No users to compose:[/red] snapshot has no assignments")
        raise typer.Exit(1)
    timeline = sc.timeline_or_default()
    result = _composer(sc).compose_users(users, first, last)
    summary = schedule_stats(result, timeline, user_id=users[0] if len(users) == 1 else None)

    t = Table(title=f"Schedule stats: {sc.name} ({first} → {last})")
    t.add_column("Metric")
    t.add_column("Value")
    t.add_row("Days", str(summary.total_days))
    t.add_row("Working days", str(summary.working_days))
    t.add_row("Rest days", str(summary.rest_days))
    t.add_row("Shifts", str(summary.total_shifts))
    t.add_row("Hours", f"{summary.total_hours:.2f}")
    t.add_row("Hours per day", f"{summary.average_hours_per_day:.2f}")
    t.add_row("Hours per working day", f"{summary.average_hours_per_working_day:.2f}")
    t.add_row("Working day %", f"{summary.working_day_percentage:.1f}")
    t.add_row("Max daily hours", f"{summary.max_daily_hours:.2f}")
    t.add_row("Min daily hours", f"{summary.min_daily_hours:.2f}")
    for shift_id, count in summary.shift_distribution.items():
        t.add_row(f"Shift {shift_id}", str(count))
    console.print(t)

    per_user = user_summary(user_day_dataframe(result, timeline))
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        per_user.to_csv(str(out), index=False)
        console.print(f"Per-user totals saved to {out}")
    _print_diagnostics(result.warnings(), result.errors, result.conflicts())


@app.command("next-shift")
def next_shift(
    snapshot: Path,
    user: str = typer.Option(..., "--user", help="User id"),
    after: str = typer.Option(..., "--after", help="Search strictly after this date"),
    max_days: int = typer.Option(366, "--max-days", min=1, help="Search horizon in days"),
):
    """Find a user's next worked shift (exceptions and plant stops applied)."""
    start = parse_date(after, option="--after")
    sc = _load(snapshot)
    composer = _composer(sc)
    for offset in range(1, max_days + 1):
        current = start + timedelta(days=offset)
        schedule = composer.compose_day([user], current)
        entry = schedule.entry_for(user)
        if entry is not None:
            console.print(
                f"User {user} next works {entry.shift_id} on {current} "
                f"({format_time(entry.start_time)}-{format_time(entry.end_time)})"
            )
            return
    console.print(
        f"[yellow]User {user} has no shift within {max_days} day(s) after {start}[/yellow]"
    )
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
