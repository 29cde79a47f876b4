"""Schedule statistics: worked days, hours and shift mix over a composed window."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, time

import pandas as pd

from shiftcycle.engine.composer import CompositionResult, ShiftEntry, WorkScheduleDay
from shiftcycle.scheduling.timeline import TimelineConfig, default_timeline

__all__ = [
    "USER_DAY_COLUMNS",
    "USER_SUMMARY_COLUMNS",
    "ScheduleStats",
    "entry_hours",
    "schedule_stats",
    "user_day_dataframe",
    "user_summary",
]

USER_DAY_COLUMNS = ["date", "user_id", "shift_id", "hours", "reduced", "plant_stop"]

USER_SUMMARY_COLUMNS = [
    "user_id",
    "working_days",
    "total_shifts",
    "total_hours",
    "average_hours_per_working_day",
    "max_daily_hours",
]


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def entry_hours(entry: ShiftEntry, timeline: TimelineConfig) -> float:
    """Hours worked by one user on ``entry``.

    Reduced entries count their own window; full shifts use the timeline's shift duration,
    falling back to the entry times for shifts the timeline does not define.
    """
    if not entry.reduced:
        shift = timeline.shift(entry.shift_id)
        if shift is not None:
            return shift.duration_minutes() / 60
    if entry.start_time is None or entry.end_time is None:
        return 0.0
    span = (_minutes(entry.end_time) - _minutes(entry.start_time)) % (24 * 60)
    return (span or 24 * 60) / 60


def _days(result: CompositionResult | Sequence[WorkScheduleDay]) -> Sequence[WorkScheduleDay]:
    return result.days if isinstance(result, CompositionResult) else result


def user_day_dataframe(
    result: CompositionResult | Sequence[WorkScheduleDay],
    timeline: TimelineConfig | None = None,
) -> pd.DataFrame:
    """Return one row per worked ``(date, user)`` placement with its hours."""
    timeline = timeline or default_timeline()
    rows = [
        {
            "date": day.date.isoformat(),
            "user_id": user_id,
            "shift_id": entry.shift_id,
            "hours": entry_hours(entry, timeline),
            "reduced": entry.reduced,
            "plant_stop": entry.plant_stop,
        }
        for day in _days(result)
        for entry in day.entries
        for user_id in entry.user_ids
    ]
    if not rows:
        return pd.DataFrame(columns=USER_DAY_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=USER_DAY_COLUMNS)


@dataclass(slots=True)
class ScheduleStats:
    """Workload summary over a composed window, for one user or for everyone composed.

    Attributes
    ----------
    start_date / end_date:
        First and last composed dates (``None`` for an empty window).
    user_id:
        User the figures are restricted to; ``None`` aggregates every user.
    total_days / working_days / rest_days:
        A working day has at least one placement for the selected user(s).
    total_shifts / total_hours:
        Per-user placements and their hours; reduced shifts count their own window.
    shift_distribution:
        Placements per shift id.
    max_daily_hours / min_daily_hours:
        Extremes over every date in the window, rest days counting as zero.
    """

    start_date: date | None
    end_date: date | None
    user_id: str | None = None
    total_days: int = 0
    working_days: int = 0
    rest_days: int = 0
    total_shifts: int = 0
    total_hours: float = 0.0
    shift_distribution: dict[str, int] = field(default_factory=dict)
    max_daily_hours: float = 0.0
    min_daily_hours: float = 0.0

    @property
    def average_shifts_per_day(self) -> float:
        return self.total_shifts / self.total_days if self.total_days else 0.0

    @property
    def average_hours_per_day(self) -> float:
        return self.total_hours / self.total_days if self.total_days else 0.0

    @property
    def average_hours_per_working_day(self) -> float:
        return self.total_hours / self.working_days if self.working_days else 0.0

    @property
    def working_day_percentage(self) -> float:
        return self.working_days / self.total_days * 100 if self.total_days else 0.0

    def as_dict(self) -> dict[str, object]:
        return {
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "user_id": self.user_id,
            "total_days": self.total_days,
            "working_days": self.working_days,
            "rest_days": self.rest_days,
            "total_shifts": self.total_shifts,
            "total_hours": self.total_hours,
            "average_shifts_per_day": self.average_shifts_per_day,
            "average_hours_per_day": self.average_hours_per_day,
            "average_hours_per_working_day": self.average_hours_per_working_day,
            "working_day_percentage": self.working_day_percentage,
            "shift_distribution": dict(self.shift_distribution),
            "max_daily_hours": self.max_daily_hours,
            "min_daily_hours": self.min_daily_hours,
        }


def schedule_stats(
    result: CompositionResult | Sequence[WorkScheduleDay],
    timeline: TimelineConfig | None = None,
    *,
    user_id: str | None = None,
) -> ScheduleStats:
    """Summarise worked days, hours and shift mix for ``result``.

    Parameters
    ----------
    result:
        Composed days, e.g. from :meth:`ScheduleComposer.compose_users`.
    timeline:
        Shift definitions used for full-shift durations; defaults to the rotation shifts.
    user_id:
        Restrict the figures to one user.
    """
    timeline = timeline or default_timeline()
    days = sorted(_days(result), key=lambda day: day.date)
    stats = ScheduleStats(
        start_date=days[0].date if days else None,
        end_date=days[-1].date if days else None,
        user_id=user_id,
        total_days=len(days),
    )
    distribution: Counter[str] = Counter()
    daily_hours: list[float] = []
    for day in days:
        hours = 0.0
        shifts = 0
        for entry in day.entries:
            users = [user for user in entry.user_ids if user_id is None or user == user_id]
            if not users:
                continue
            shifts += len(users)
            hours += entry_hours(entry, timeline) * len(users)
            distribution[entry.shift_id] += len(users)
        if shifts:
            stats.working_days += 1
        stats.total_shifts += shifts
        daily_hours.append(hours)
    stats.rest_days = stats.total_days - stats.working_days
    stats.total_hours = sum(daily_hours)
    stats.shift_distribution = dict(sorted(distribution.items()))
    if daily_hours:
        stats.max_daily_hours = max(daily_hours)
        stats.min_daily_hours = min(daily_hours)
    return stats


def user_summary(user_days: pd.DataFrame) -> pd.DataFrame:
    """Aggregate :func:`user_day_dataframe` rows into per-user workload figures."""
    if user_days.empty:
        return pd.DataFrame(columns=USER_SUMMARY_COLUMNS)
    daily = (
        user_days.groupby(["user_id", "date"], as_index=False)
        .agg(hours=("hours", "sum"), shifts=("shift_id", "count"))
        .reset_index(drop=True)
    )
    summary = (
        daily.groupby("user_id", as_index=False)
        .agg(
            working_days=("date", "nunique"),
            total_shifts=("shifts", "sum"),
            total_hours=("hours", "sum"),
            max_daily_hours=("hours", "max"),
        )
        .reset_index(drop=True)
    )
    summary["average_hours_per_working_day"] = summary["total_hours"] / summary["working_days"]
    return summary.reindex(columns=USER_SUMMARY_COLUMNS)
