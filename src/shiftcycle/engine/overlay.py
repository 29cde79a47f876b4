"""Exception overlay: effective-exception selection, conflicts and the approval workflow."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time

from shiftcycle.core.errors import InvalidTransitionError, ShiftCycleValueError
from shiftcycle.engine.recurrence import Outcome
from shiftcycle.snapshot.contract.models import (
    ApprovalStatus,
    ExceptionCategory,
    ExceptionPriority,
    ExceptionType,
    ScheduleException,
)

__all__ = [
    "ExceptionConflict",
    "OverlayResult",
    "applies_to",
    "approve",
    "compose_with_base",
    "create_shift_change",
    "create_shift_swap",
    "create_sick_leave",
    "create_time_reduction",
    "create_vacation",
    "deactivate",
    "detect_exception_conflict",
    "effective_for",
    "incoming_swaps",
    "is_effective",
    "reject",
    "submit",
]


@dataclass(frozen=True, slots=True)
class ExceptionConflict:
    """Two or more effective exceptions that cannot both apply to ``user_id`` on ``date``."""

    date: date
    user_id: str
    exception_ids: tuple[str, ...]
    reason: str


@dataclass(frozen=True, slots=True)
class OverlayResult:
    """Outcome after applying effective exceptions on top of a base outcome.

    Attributes
    ----------
    outcome:
        Final work/rest outcome.
    applied:
        Exceptions that shaped the outcome, highest priority first.
    conflicts:
        Equal-priority incompatible exceptions; none of them were applied.
    start_time / end_time:
        Reduced time window, when a reduction applied.
    unresolved:
        Swap exceptions whose partner outcome was not available.
    """

    outcome: Outcome
    applied: tuple[ScheduleException, ...] = ()
    conflicts: tuple[ExceptionConflict, ...] = ()
    start_time: time | None = None
    end_time: time | None = None
    unresolved: tuple[str, ...] = ()

    @property
    def reduced(self) -> bool:
        return self.start_time is not None or self.end_time is not None


def is_effective(exception: ScheduleException) -> bool:
    """Approved, or a draft that needs no approval, and still active."""
    if not exception.active:
        return False
    if exception.status is ApprovalStatus.APPROVED:
        return True
    return exception.status is ApprovalStatus.DRAFT and not exception.requires_approval


def applies_to(exception: ScheduleException, user_id: str, day: date) -> bool:
    return exception.user_id == user_id and exception.target_date == day and is_effective(exception)


def _rank_key(exception: ScheduleException) -> tuple[int, date, str]:
    return (-exception.priority.level, exception.target_date, exception.id)


def _mirror_swap(exception: ScheduleException) -> ScheduleException:
    partner = exception.swap_with_user_id
    if partner is None:
        raise ShiftCycleValueError(f"Exception {exception.id} names no swap partner")
    return exception.model_copy(
        update={
            "id": f"{exception.id}:mirror",
            "user_id": partner,
            "swap_with_user_id": exception.user_id,
        }
    )


def incoming_swaps(
    user_id: str, day: date, candidates: Iterable[ScheduleException]
) -> list[ScheduleException]:
    """Return swaps requested by other users naming ``user_id``, mirrored onto ``user_id``."""
    return [
        _mirror_swap(exception)
        for exception in candidates
        if exception.exception_type is ExceptionType.CHANGE_SWAP
        and exception.new_shift_id is None
        and exception.swap_with_user_id == user_id
        and exception.target_date == day
        and is_effective(exception)
    ]


def effective_for(
    user_id: str,
    day: date,
    candidates: Iterable[ScheduleException],
    *,
    include_incoming_swaps: bool = False,
) -> list[ScheduleException]:
    """Return the user's effective exceptions for ``day`` (priority desc, then date, then id)."""
    pool = list(candidates)
    selected = [exception for exception in pool if applies_to(exception, user_id, day)]
    if include_incoming_swaps:
        own_ids = {exception.id for exception in selected}
        selected.extend(
            mirror
            for mirror in incoming_swaps(user_id, day, pool)
            if mirror.id not in own_ids
        )
    return sorted(selected, key=_rank_key)


def _is_override(exception: ScheduleException) -> bool:
    category = exception.category
    if category in (ExceptionCategory.ABSENCE, ExceptionCategory.CHANGE):
        return True
    return category is ExceptionCategory.CUSTOM and exception.new_shift_id is not None


def _override_key(exception: ScheduleException) -> tuple[str, str | None]:
    if exception.category is ExceptionCategory.ABSENCE:
        return ("rest", None)
    if exception.new_shift_id is not None:
        return ("shift", exception.new_shift_id)
    return ("swap", exception.swap_with_user_id)


def _top_tier(exceptions: Sequence[ScheduleException]) -> list[ScheduleException]:
    if not exceptions:
        return []
    level = exceptions[0].priority.level
    return [exception for exception in exceptions if exception.priority.level == level]


def _reductions(exceptions: Sequence[ScheduleException]) -> list[ScheduleException]:
    return [
        exception for exception in exceptions if exception.category is ExceptionCategory.REDUCTION
    ]


def _priority_name(exception: ScheduleException) -> str:
    return exception.priority.value


def _override_outcomes(
    ordered: Sequence[ScheduleException], swap_outcome: Outcome | None
) -> tuple[list[tuple[ScheduleException, Outcome]], list[str]]:
    """Pair each override with the outcome it imposes; partnerless swaps are unresolved."""
    overrides: list[tuple[ScheduleException, Outcome]] = []
    unresolved: list[str] = []
    for exception in ordered:
        if not _is_override(exception):
            continue
        if exception.category is ExceptionCategory.ABSENCE:
            overrides.append((exception, Outcome.rest()))
        elif exception.new_shift_id is not None:
            overrides.append((exception, Outcome.work(exception.new_shift_id)))
        elif swap_outcome is not None:
            overrides.append((exception, Outcome(shift_id=swap_outcome.shift_id)))
        else:
            unresolved.append(exception.id)
    return overrides, unresolved


def _settle_overrides(
    day: date, user_id: str, overrides: Sequence[tuple[ScheduleException, Outcome]]
) -> tuple[Outcome | None, list[ScheduleException], ExceptionConflict | None]:
    """Return the top tier's agreed outcome, or the conflict when its outcomes differ."""
    if not overrides:
        return None, [], None
    level = overrides[0][0].priority.level
    tier = [
        (exception, result)
        for exception, result in overrides
        if exception.priority.level == level
    ]
    if len({result for _, result in tier}) == 1:
        return tier[0][1], [exception for exception, _ in tier], None
    conflict = ExceptionConflict(
        date=day,
        user_id=user_id,
        exception_ids=tuple(exception.id for exception, _ in tier),
        reason=f"incompatible overrides at priority {_priority_name(tier[0][0])}",
    )
    return None, [], conflict


_Window = tuple[time | None, time | None]


def _settle_reductions(
    day: date, user_id: str, ordered: Sequence[ScheduleException]
) -> tuple[_Window | None, list[ScheduleException], ExceptionConflict | None]:
    reductions = _top_tier(_reductions(ordered))
    if not reductions:
        return None, [], None
    windows = {(exception.new_start_time, exception.new_end_time) for exception in reductions}
    if len(windows) == 1:
        return windows.pop(), reductions, None
    conflict = ExceptionConflict(
        date=day,
        user_id=user_id,
        exception_ids=tuple(exception.id for exception in reductions),
        reason=f"incompatible reductions at priority {_priority_name(reductions[0])}",
    )
    return None, [], conflict


def compose_with_base(
    base: Outcome,
    effective: Sequence[ScheduleException],
    *,
    swap_outcome: Outcome | None = None,
) -> OverlayResult:
    """Apply ``effective`` exceptions (one user, one date) on top of ``base``.

    Absences force rest, changes set the new shift (a swap without ``new_shift_id`` takes the
    partner's base outcome, passed as ``swap_outcome``), reductions annotate the time window of a
    worked shift. The highest priority wins. When the top-priority overrides disagree they are
    reported as an :class:`ExceptionConflict` and the base outcome stands.
    """
    ordered = sorted(effective, key=_rank_key)
    if not ordered:
        return OverlayResult(outcome=base)
    day = ordered[0].target_date
    user_id = ordered[0].user_id

    conflicts: list[ExceptionConflict] = []
    overrides, unresolved = _override_outcomes(ordered, swap_outcome)
    settled, applied, conflict = _settle_overrides(day, user_id, overrides)
    if conflict is not None:
        conflicts.append(conflict)
    outcome = settled or base

    start_time: time | None = None
    end_time: time | None = None
    if outcome.is_work:
        window, reductions, conflict = _settle_reductions(day, user_id, ordered)
        if conflict is not None:
            conflicts.append(conflict)
        if window is not None:
            start_time, end_time = window
            applied = [*applied, *reductions]

    return OverlayResult(
        outcome=outcome,
        applied=tuple(sorted(applied, key=_rank_key)),
        conflicts=tuple(conflicts),
        start_time=start_time,
        end_time=end_time,
        unresolved=tuple(unresolved),
    )


def detect_exception_conflict(
    exceptions: Iterable[ScheduleException],
    day: date,
    *,
    user_id: str | None = None,
    bases: Mapping[str, Outcome] | None = None,
    swap_outcomes: Mapping[str, Outcome] | None = None,
) -> list[ExceptionConflict]:
    """Report users whose top-priority effective exceptions on ``day`` disagree.

    Overrides are compared by the outcome they impose, as :func:`compose_with_base` does.
    ``swap_outcomes`` maps a user to their swap partner's base outcome; a swap without one is
    left out of the comparison. ``bases`` maps a user to their base outcome; reduction conflicts
    are skipped for users known to rest and reported for users whose base is unknown.
    """
    by_user: dict[str, list[ScheduleException]] = defaultdict(list)
    for exception in exceptions:
        if exception.target_date != day or not is_effective(exception):
            continue
        if user_id is not None and exception.user_id != user_id:
            continue
        by_user[exception.user_id].append(exception)

    bases = bases or {}
    swap_outcomes = swap_outcomes or {}
    conflicts: list[ExceptionConflict] = []
    for user in sorted(by_user):
        ordered = sorted(by_user[user], key=_rank_key)
        overrides, _ = _override_outcomes(ordered, swap_outcomes.get(user))
        settled, _, conflict = _settle_overrides(day, user, overrides)
        if conflict is not None:
            conflicts.append(conflict)
        outcome = settled or bases.get(user)
        if outcome is not None and outcome.is_rest:
            continue
        _, _, conflict = _settle_reductions(day, user, ordered)
        if conflict is not None:
            conflicts.append(conflict)
    return conflicts


# Approval workflow ---------------------------------------------------------------------------


def _require_active(exception: ScheduleException, action: str) -> None:
    if not exception.active:
        raise InvalidTransitionError(f"Cannot {action} inactive exception {exception.id}")


def submit(exception: ScheduleException) -> ScheduleException:
    """DRAFT -> PENDING, or DRAFT -> APPROVED when no approval is required."""
    _require_active(exception, "submit")
    if exception.status is not ApprovalStatus.DRAFT:
        raise InvalidTransitionError(
            f"Cannot submit exception {exception.id} from status {exception.status.value}"
        )
    target = ApprovalStatus.PENDING if exception.requires_approval else ApprovalStatus.APPROVED
    return exception.model_copy(update={"status": target})


def approve(
    exception: ScheduleException, approver_id: str, at: datetime | None = None
) -> ScheduleException:
    """PENDING -> APPROVED, recording the approver and timestamp."""
    _require_active(exception, "approve")
    if exception.status is not ApprovalStatus.PENDING:
        raise InvalidTransitionError(
            f"Cannot approve exception {exception.id} from status {exception.status.value}"
        )
    if not approver_id or not approver_id.strip():
        raise InvalidTransitionError("approve() requires a non-empty approver_id")
    return exception.model_copy(
        update={
            "status": ApprovalStatus.APPROVED,
            "approved_by": approver_id.strip(),
            "approved_at": at or datetime.now(UTC),
        }
    )


def reject(exception: ScheduleException, reason: str) -> ScheduleException:
    """PENDING -> REJECTED with a reason."""
    _require_active(exception, "reject")
    if exception.status is not ApprovalStatus.PENDING:
        raise InvalidTransitionError(
            f"Cannot reject exception {exception.id} from status {exception.status.value}"
        )
    if not reason or not reason.strip():
        raise InvalidTransitionError("reject() requires a non-empty reason")
    return exception.model_copy(
        update={"status": ApprovalStatus.REJECTED, "rejection_reason": reason.strip()}
    )


def deactivate(exception: ScheduleException) -> ScheduleException:
    return exception.model_copy(update={"active": False})


# Factories -----------------------------------------------------------------------------------


def create_vacation(
    exception_id: str,
    user_id: str,
    target_date: date,
    *,
    priority: ExceptionPriority = ExceptionPriority.NORMAL,
    replacement_user_id: str | None = None,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ScheduleException:
    return ScheduleException(
        id=exception_id,
        user_id=user_id,
        target_date=target_date,
        exception_type=ExceptionType.ABSENCE_VACATION,
        priority=priority,
        replacement_user_id=replacement_user_id,
        notes=notes,
        created_at=created_at,
    )


def create_sick_leave(
    exception_id: str,
    user_id: str,
    target_date: date,
    *,
    priority: ExceptionPriority = ExceptionPriority.NORMAL,
    replacement_user_id: str | None = None,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ScheduleException:
    return ScheduleException(
        id=exception_id,
        user_id=user_id,
        target_date=target_date,
        exception_type=ExceptionType.ABSENCE_SICK,
        priority=priority,
        replacement_user_id=replacement_user_id,
        notes=notes,
        created_at=created_at,
    )


def create_shift_swap(
    exception_id: str,
    user_id: str,
    target_date: date,
    swap_with_user_id: str,
    *,
    new_shift_id: str | None = None,
    priority: ExceptionPriority = ExceptionPriority.NORMAL,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ScheduleException:
    return ScheduleException(
        id=exception_id,
        user_id=user_id,
        target_date=target_date,
        exception_type=ExceptionType.CHANGE_SWAP,
        priority=priority,
        swap_with_user_id=swap_with_user_id,
        new_shift_id=new_shift_id,
        notes=notes,
        created_at=created_at,
    )


def create_shift_change(
    exception_id: str,
    user_id: str,
    target_date: date,
    new_shift_id: str,
    *,
    exception_type: ExceptionType = ExceptionType.CHANGE_COMPANY,
    priority: ExceptionPriority = ExceptionPriority.NORMAL,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ScheduleException:
    if exception_type.category is not ExceptionCategory.CHANGE:
        raise ValueError(f"{exception_type.value} is not a CHANGE exception type")
    return ScheduleException(
        id=exception_id,
        user_id=user_id,
        target_date=target_date,
        exception_type=exception_type,
        priority=priority,
        new_shift_id=new_shift_id,
        notes=notes,
        created_at=created_at,
    )


def create_time_reduction(
    exception_id: str,
    user_id: str,
    target_date: date,
    new_start_time: time | None,
    new_end_time: time | None,
    *,
    exception_type: ExceptionType = ExceptionType.REDUCTION_PERSONAL,
    priority: ExceptionPriority = ExceptionPriority.NORMAL,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ScheduleException:
    if exception_type.category is not ExceptionCategory.REDUCTION:
        raise ValueError(f"{exception_type.value} is not a REDUCTION exception type")
    return ScheduleException(
        id=exception_id,
        user_id=user_id,
        target_date=target_date,
        exception_type=exception_type,
        priority=priority,
        new_start_time=new_start_time,
        new_end_time=new_end_time,
        notes=notes,
        created_at=created_at,
    )
