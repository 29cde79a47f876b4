"""CLI helper utilities for shiftcycle."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

import typer


def parse_date(value: str, *, option: str = "--date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` value, raising ``typer.BadParameter`` on failure."""
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise typer.BadParameter(f"{option} expects YYYY-MM-DD, got '{value}'") from exc


def parse_window(start: str, end: str | None) -> tuple[date, date]:
    first = parse_date(start, option="--start")
    last = parse_date(end, option="--end") if end else first
    if last < first:
        raise typer.BadParameter(f"--end {last} precedes --start {first}")
    return first, last


def parse_user_ids(values: Sequence[str] | None) -> list[str]:
    """Split repeated/comma-separated ``--user`` values into a sorted unique list."""
    if not values:
        return []
    users: set[str] = set()
    for raw in values:
        for part in raw.split(","):
            part = part.strip()
            if part:
                users.add(part)
    return sorted(users)


def format_time(value) -> str:
    return value.strftime("%H:%M") if value is not None else "-"


__all__ = ["parse_date", "parse_window", "parse_user_ids", "format_time"]
