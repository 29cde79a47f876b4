"""Snapshot data contract models."""

from .models import (
    ApprovalStatus,
    AssignmentPriority,
    AssignmentStatus,
    EndCondition,
    EndType,
    ExceptionCategory,
    ExceptionPriority,
    ExceptionType,
    Frequency,
    PatternDay,
    RecurrencePattern,
    ScheduleAssignment,
    ScheduleException,
    Snapshot,
    Team,
    Weekday,
    pattern_day_issues,
)

__all__ = [
    "ApprovalStatus",
    "AssignmentPriority",
    "AssignmentStatus",
    "EndCondition",
    "EndType",
    "ExceptionCategory",
    "ExceptionPriority",
    "ExceptionType",
    "Frequency",
    "PatternDay",
    "RecurrencePattern",
    "ScheduleAssignment",
    "ScheduleException",
    "Snapshot",
    "Team",
    "Weekday",
    "pattern_day_issues",
]
