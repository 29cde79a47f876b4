"""Governing-assignment resolution for a user and date."""

from __future__ import annotations

import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from shiftcycle.core.errors import ResolutionAmbiguityWarning, ShiftCycleValueError
from shiftcycle.engine.recurrence import iter_dates
from shiftcycle.snapshot.contract.models import AssignmentStatus, ScheduleAssignment

__all__ = [
    "EXCLUDED_STATUSES",
    "AssignmentResolution",
    "derive_assignment_status",
    "end_assignment",
    "find_overlaps",
    "governing_by_user",
    "is_candidate",
    "resolve",
    "resolve_governing",
    "resolve_range",
    "retire_assignment",
]

EXCLUDED_STATUSES = frozenset({AssignmentStatus.SUSPENDED, AssignmentStatus.CANCELLED})


@dataclass(frozen=True, slots=True)
class AssignmentResolution:
    """Governing assignment for ``user_id`` on ``date`` plus any tied runners-up."""

    user_id: str
    date: date
    assignment: ScheduleAssignment | None
    ambiguous_with: tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.ambiguous_with)


def is_candidate(assignment: ScheduleAssignment, user_id: str, day: date) -> bool:
    """Return ``True`` when ``assignment`` may govern ``user_id`` on ``day``."""
    return (
        assignment.user_id == user_id
        and assignment.active
        and assignment.status not in EXCLUDED_STATUSES
        and assignment.covers(day)
    )


def _rank_key(assignment: ScheduleAssignment) -> tuple[int, int, str]:
    # Highest priority, then latest start, then smallest id.
    return (-assignment.priority.level, -assignment.start_date.toordinal(), assignment.id)


def resolve(
    user_id: str,
    day: date,
    candidates: Iterable[ScheduleAssignment],
    *,
    warn: bool = True,
) -> AssignmentResolution:
    """Resolve the governing assignment and report ties on priority and start date.

    The result does not depend on the order of ``candidates``. When two or more assignments share
    the winning priority and start date the smallest ``id`` wins, the others are listed in
    ``ambiguous_with`` and a :class:`ResolutionAmbiguityWarning` is emitted (unless ``warn`` is
    ``False``).
    """
    eligible = sorted(
        (assignment for assignment in candidates if is_candidate(assignment, user_id, day)),
        key=_rank_key,
    )
    if not eligible:
        return AssignmentResolution(user_id=user_id, date=day, assignment=None)
    winner = eligible[0]
    tied = tuple(
        other.id
        for other in eligible[1:]
        if other.priority is winner.priority and other.start_date == winner.start_date
    )
    if tied and warn:
        warnings.warn(
            f"User {user_id} on {day.isoformat()}: assignment {winner.id} tied with "
            f"{', '.join(tied)} on priority and start date; choosing smallest id",
            ResolutionAmbiguityWarning,
            stacklevel=2,
        )
    return AssignmentResolution(user_id=user_id, date=day, assignment=winner, ambiguous_with=tied)


def resolve_governing(
    user_id: str, day: date, candidates: Iterable[ScheduleAssignment]
) -> ScheduleAssignment | None:
    return resolve(user_id, day, candidates).assignment


def resolve_range(
    user_id: str,
    start: date,
    end: date,
    candidates: Iterable[ScheduleAssignment],
) -> dict[date, ScheduleAssignment | None]:
    """Return the governing assignment for every date in ``[start, end]``."""
    mine = [
        assignment
        for assignment in candidates
        if assignment.user_id == user_id and assignment.overlaps(start, end)
    ]
    return {day: resolve(user_id, day, mine).assignment for day in iter_dates(start, end)}


def find_overlaps(
    user_id: str,
    window_start: date,
    window_end: date | None,
    candidates: Iterable[ScheduleAssignment],
    excluding_id: str | None = None,
) -> list[ScheduleAssignment]:
    """Return the user's live assignments whose windows intersect the given window."""
    overlaps = [
        assignment
        for assignment in candidates
        if assignment.user_id == user_id
        and assignment.id != excluding_id
        and assignment.active
        and assignment.status not in EXCLUDED_STATUSES
        and assignment.overlaps(window_start, window_end)
    ]
    return sorted(overlaps, key=lambda assignment: (assignment.start_date, assignment.id))


def derive_assignment_status(assignment: ScheduleAssignment, on_date: date) -> AssignmentStatus:
    """Compute the date-derived status of ``assignment`` relative to ``on_date``."""
    if assignment.status in EXCLUDED_STATUSES:
        return assignment.status
    if on_date < assignment.start_date:
        return AssignmentStatus.PENDING
    if assignment.end_date is not None and on_date > assignment.end_date:
        return AssignmentStatus.EXPIRED
    return AssignmentStatus.ACTIVE


def retire_assignment(assignment: ScheduleAssignment) -> ScheduleAssignment:
    return assignment.model_copy(update={"active": False})


def end_assignment(assignment: ScheduleAssignment, end_date: date) -> ScheduleAssignment:
    if end_date < assignment.start_date:
        raise ShiftCycleValueError(
            f"Assignment {assignment.id} cannot end on {end_date} before it starts"
        )
    return assignment.model_copy(update={"end_date": end_date})


def governing_by_user(
    user_ids: Sequence[str], day: date, candidates: Sequence[ScheduleAssignment]
) -> dict[str, AssignmentResolution]:
    return {user_id: resolve(user_id, day, candidates) for user_id in user_ids}
