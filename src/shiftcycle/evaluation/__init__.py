"""Evaluation layer (tabular exports and schedule statistics)."""

from .exports import (
    CONFLICT_COLUMNS,
    ROSTER_COLUMNS,
    SCHEDULE_COLUMNS,
    conflict_dataframe,
    roster_dataframe,
    schedule_dataframe,
)
from .stats import (
    USER_DAY_COLUMNS,
    USER_SUMMARY_COLUMNS,
    ScheduleStats,
    entry_hours,
    schedule_stats,
    user_day_dataframe,
    user_summary,
)

__all__ = [
    "SCHEDULE_COLUMNS",
    "ROSTER_COLUMNS",
    "CONFLICT_COLUMNS",
    "USER_DAY_COLUMNS",
    "USER_SUMMARY_COLUMNS",
    "ScheduleStats",
    "schedule_dataframe",
    "roster_dataframe",
    "conflict_dataframe",
    "entry_hours",
    "schedule_stats",
    "user_day_dataframe",
    "user_summary",
]
