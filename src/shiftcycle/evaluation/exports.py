"""Tabular exports for composed schedules."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from shiftcycle.engine.composer import CompositionResult, ShiftEntry, WorkScheduleDay
from shiftcycle.engine.overlay import ExceptionConflict

__all__ = [
    "SCHEDULE_COLUMNS",
    "ROSTER_COLUMNS",
    "CONFLICT_COLUMNS",
    "schedule_dataframe",
    "roster_dataframe",
    "conflict_dataframe",
]

SCHEDULE_COLUMNS = [
    "date",
    "shift_id",
    "start_time",
    "end_time",
    "user_ids",
    "team_ids",
    "rest_day",
    "reduced",
    "plant_stop",
    "exception_ids",
    "errors",
    "conflicts",
]

ROSTER_COLUMNS = [
    "date",
    "shift_id",
    "user_id",
    "team_ids",
    "start_time",
    "end_time",
    "reduced",
    "plant_stop",
]

CONFLICT_COLUMNS = ["date", "user_id", "exception_ids", "reason"]


def _join(values: Sequence[str]) -> str:
    return "|".join(values)


def _time(value) -> str | None:
    return value.strftime("%H:%M") if value is not None else None


def _entry_row(day: WorkScheduleDay, entry: ShiftEntry | None) -> dict[str, object]:
    return {
        "date": day.date.isoformat(),
        "shift_id": entry.shift_id if entry else None,
        "start_time": _time(entry.start_time) if entry else None,
        "end_time": _time(entry.end_time) if entry else None,
        "user_ids": _join(entry.user_ids) if entry else "",
        "team_ids": _join(entry.team_ids) if entry else "",
        "rest_day": entry is None,
        "reduced": entry.reduced if entry else False,
        "plant_stop": entry.plant_stop if entry else False,
        "exception_ids": _join(entry.exception_ids) if entry else "",
        "errors": len(day.errors),
        "conflicts": len(day.conflicts),
    }


def schedule_dataframe(result: CompositionResult | Sequence[WorkScheduleDay]) -> pd.DataFrame:
    """Return one row per shift entry (or one ``rest_day`` row per empty date).

    Parameters
    ----------
    result:
        :class:`CompositionResult` or a plain sequence of :class:`WorkScheduleDay`.
    """
    days = result.days if isinstance(result, CompositionResult) else result
    rows: list[dict[str, object]] = []
    for day in days:
        if not day.entries:
            rows.append(_entry_row(day, None))
            continue
        rows.extend(_entry_row(day, entry) for entry in day.entries)
    if not rows:
        return pd.DataFrame(columns=SCHEDULE_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=SCHEDULE_COLUMNS)


def roster_dataframe(day: WorkScheduleDay) -> pd.DataFrame:
    """Return one row per (shift, user) for a roster or rotation day."""
    rows = [
        {
            "date": day.date.isoformat(),
            "shift_id": entry.shift_id,
            "user_id": user_id,
            "team_ids": _join(entry.team_ids),
            "start_time": _time(entry.start_time),
            "end_time": _time(entry.end_time),
            "reduced": entry.reduced,
            "plant_stop": entry.plant_stop,
        }
        for entry in day.entries
        for user_id in entry.user_ids
    ]
    if not rows:
        return pd.DataFrame(columns=ROSTER_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=ROSTER_COLUMNS)


def conflict_dataframe(conflicts: Sequence[ExceptionConflict]) -> pd.DataFrame:
    if not conflicts:
        return pd.DataFrame(columns=CONFLICT_COLUMNS)
    rows = [
        {
            "date": conflict.date.isoformat(),
            "user_id": conflict.user_id,
            "exception_ids": _join(conflict.exception_ids),
            "reason": conflict.reason,
        }
        for conflict in conflicts
    ]
    return pd.DataFrame(rows).reindex(columns=CONFLICT_COLUMNS)
