"""Schedule-resolution engine (recurrence, assignments, overlay, composer)."""

from .assignments import (
    AssignmentResolution,
    derive_assignment_status,
    find_overlaps,
    resolve,
    resolve_governing,
    resolve_range,
)
from .composer import (
    ComposeConfig,
    CompositionError,
    CompositionResult,
    ScheduleComposer,
    ShiftEntry,
    WorkScheduleDay,
    compose_range,
    compose_rotation_day,
    compose_team_roster,
)
from .overlay import (
    ExceptionConflict,
    OverlayResult,
    approve,
    compose_with_base,
    detect_exception_conflict,
    effective_for,
    is_effective,
    reject,
    submit,
)
from .recurrence import (
    Outcome,
    evaluate,
    evaluate_range,
    next_work_date,
    pattern_from_sequence,
    pattern_sequence,
    validate_pattern,
    validate_pattern_days,
)

__all__ = [
    "AssignmentResolution",
    "ComposeConfig",
    "CompositionError",
    "CompositionResult",
    "ExceptionConflict",
    "Outcome",
    "OverlayResult",
    "ScheduleComposer",
    "ShiftEntry",
    "WorkScheduleDay",
    "approve",
    "compose_range",
    "compose_rotation_day",
    "compose_team_roster",
    "compose_with_base",
    "derive_assignment_status",
    "detect_exception_conflict",
    "effective_for",
    "evaluate",
    "evaluate_range",
    "find_overlaps",
    "is_effective",
    "next_work_date",
    "pattern_from_sequence",
    "pattern_sequence",
    "reject",
    "resolve",
    "resolve_governing",
    "resolve_range",
    "submit",
    "validate_pattern",
    "validate_pattern_days",
]
