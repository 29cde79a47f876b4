"""Schedule composition: resolver, evaluator and overlay combined into daily schedules."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, time

from shiftcycle.core.errors import ShiftCycleValueError
from shiftcycle.engine.assignments import AssignmentResolution, resolve
from shiftcycle.engine.overlay import (
    ExceptionConflict,
    OverlayResult,
    compose_with_base,
    effective_for,
    is_effective,
)
from shiftcycle.engine.recurrence import Outcome, evaluate, iter_dates
from shiftcycle.scheduling.rotation import RotationScheme, default_rotation_scheme
from shiftcycle.scheduling.timeline import TimelineConfig, default_timeline
from shiftcycle.snapshot.contract.models import (
    ExceptionCategory,
    ExceptionType,
    RecurrencePattern,
    ScheduleAssignment,
    ScheduleException,
    Snapshot,
)

__all__ = [
    "ComposeConfig",
    "CompositionError",
    "CompositionResult",
    "ScheduleComposer",
    "ShiftEntry",
    "WorkScheduleDay",
    "compose_range",
    "compose_rotation_day",
    "compose_team_roster",
]

BatchCallback = Callable[[int, Sequence["WorkScheduleDay"]], None]


@dataclass(slots=True)
class ComposeConfig:
    """Tuning options for schedule composition.

    Attributes
    ----------
    batch_days:
        Number of consecutive dates handled per batch. Cancellation is checked between batches.
    max_workers:
        Thread pool size; ``1`` composes batches sequentially.
    rest_on_plant_stop:
        When ``True`` shifts covered by a plant stop are dropped (the users rest); otherwise the
        entries are kept and flagged with ``plant_stop=True``.
    include_incoming_swaps:
        Mirror swaps requested by a partner onto the named user.
    """

    batch_days: int = 31
    max_workers: int = 1
    rest_on_plant_stop: bool = True
    include_incoming_swaps: bool = True

    def __post_init__(self) -> None:
        if self.batch_days < 1:
            raise ValueError("batch_days must be >= 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass(frozen=True, slots=True)
class CompositionError:
    """Per-entry failure recorded during composition; the batch continues."""

    date: date
    user_id: str | None
    code: str
    message: str


@dataclass(slots=True)
class ShiftEntry:
    """Users and teams working one shift (or one reduced window of it) on a date."""

    shift_id: str
    user_ids: list[str] = field(default_factory=list)
    team_ids: list[str] = field(default_factory=list)
    start_time: time | None = None
    end_time: time | None = None
    reduced: bool = False
    plant_stop: bool = False
    exception_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class WorkScheduleDay:
    """Derived schedule for one date. No entries means a rest day."""

    date: date
    entries: list[ShiftEntry] = field(default_factory=list)
    conflicts: list[ExceptionConflict] = field(default_factory=list)
    errors: list[CompositionError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_rest_day(self) -> bool:
        return not self.entries

    def shift_ids(self) -> list[str]:
        return [entry.shift_id for entry in self.entries]

    def entry_for(self, user_id: str) -> ShiftEntry | None:
        for entry in self.entries:
            if user_id in entry.user_ids:
                return entry
        return None


@dataclass(slots=True)
class CompositionResult:
    """Container grouping composed days and the errors gathered along the way."""

    days: list[WorkScheduleDay]
    errors: list[CompositionError] = field(default_factory=list)
    cancelled: bool = False
    config: ComposeConfig = field(default_factory=ComposeConfig)

    def conflicts(self) -> list[ExceptionConflict]:
        return [conflict for day in self.days for conflict in day.conflicts]

    def warnings(self) -> list[str]:
        return [warning for day in self.days for warning in day.warnings]


@dataclass(slots=True)
class _Placement:
    shift_id: str
    user_id: str
    team_id: str
    start_time: time | None
    end_time: time | None
    reduced: bool
    plant_stop: bool
    exception_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class _UserDay:
    placements: list[_Placement] = field(default_factory=list)
    conflicts: list[ExceptionConflict] = field(default_factory=list)
    errors: list[CompositionError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    overlay: OverlayResult | None = None
    base: Outcome | None = None
    team_id: str | None = None


def _busy_error(day: date, user_id: str, absent_id: str, shift_id: str) -> CompositionError:
    return CompositionError(
        date=day,
        user_id=user_id,
        code="replacement_busy",
        message=(
            f"User {user_id} cannot cover {absent_id} on {day.isoformat()}: "
            f"already working {shift_id}"
        ),
    )


def _pattern_index(
    patterns: Mapping[str, RecurrencePattern] | Iterable[RecurrencePattern],
) -> dict[str, RecurrencePattern]:
    if isinstance(patterns, Mapping):
        return dict(patterns)
    return {pattern.id: pattern for pattern in patterns}


class ScheduleComposer:
    """Compose effective schedules from one consistent snapshot of records.

    The composer is stateless between calls: every method reads the records captured at
    construction and returns fresh result objects, so one instance may be shared across threads.
    """

    def __init__(
        self,
        assignments: Iterable[ScheduleAssignment],
        exceptions: Iterable[ScheduleException],
        patterns: Mapping[str, RecurrencePattern] | Iterable[RecurrencePattern],
        *,
        timeline: TimelineConfig | None = None,
        config: ComposeConfig | None = None,
        scheme: RotationScheme | None = None,
    ) -> None:
        self.assignments: tuple[ScheduleAssignment, ...] = tuple(assignments)
        self.exceptions: tuple[ScheduleException, ...] = tuple(exceptions)
        self.patterns = _pattern_index(patterns)
        self.timeline = timeline or default_timeline()
        self.config = config or ComposeConfig()
        self.scheme = scheme
        self._exceptions_by_date: dict[date, list[ScheduleException]] = {}
        for exception in self.exceptions:
            self._exceptions_by_date.setdefault(exception.target_date, []).append(exception)

    @classmethod
    def from_snapshot(
        cls, snapshot: Snapshot, *, config: ComposeConfig | None = None
    ) -> ScheduleComposer:
        scheme = None
        if snapshot.include_rotation:
            scheme = default_rotation_scheme(snapshot.rotation_start)
        return cls(
            snapshot.assignments,
            snapshot.exceptions,
            snapshot.all_patterns(),
            timeline=snapshot.timeline_or_default(),
            config=config,
            scheme=scheme,
        )

    # ------------------------------------------------------------------ per-user resolution

    def _exceptions_on(self, day: date) -> list[ScheduleException]:
        return self._exceptions_by_date.get(day, [])

    def _base_outcome(
        self, user_id: str, day: date, resolution: AssignmentResolution | None = None
    ) -> tuple[Outcome | None, ScheduleAssignment | None, CompositionError | None]:
        if resolution is None:
            resolution = resolve(user_id, day, self.assignments, warn=False)
        assignment = resolution.assignment
        if assignment is None:
            return None, None, None
        pattern = self.patterns.get(assignment.pattern_id)
        if pattern is None:
            error = CompositionError(
                date=day,
                user_id=user_id,
                code="missing_pattern",
                message=(
                    f"Assignment {assignment.id} references unknown pattern "
                    f"{assignment.pattern_id}"
                ),
            )
            return None, assignment, error
        return evaluate(pattern, day), assignment, None

    def _place(
        self,
        result: _UserDay,
        day: date,
        user_id: str,
        team_id: str,
        shift_id: str,
        *,
        start_time: time | None = None,
        end_time: time | None = None,
        exception_ids: tuple[str, ...] = (),
    ) -> None:
        shift = self.timeline.shift(shift_id)
        if shift is None:
            result.errors.append(
                CompositionError(
                    date=day,
                    user_id=user_id,
                    code="unknown_shift",
                    message=f"Shift {shift_id} is not defined in timeline {self.timeline.version}",
                )
            )
        stop = self.timeline.stop_for(day, shift_id)
        if stop is not None:
            label = f" ({stop.reason})" if stop.reason else ""
            if self.config.rest_on_plant_stop:
                result.warnings.append(
                    f"User {user_id}: shift {shift_id} on {day.isoformat()} "
                    f"suppressed by plant stop{label}"
                )
                return
        reduced = start_time is not None or end_time is not None
        result.placements.append(
            _Placement(
                shift_id=shift_id,
                user_id=user_id,
                team_id=team_id,
                start_time=start_time or (shift.start if shift else None),
                end_time=end_time or (shift.end if shift else None),
                reduced=reduced,
                plant_stop=stop is not None,
                exception_ids=exception_ids,
            )
        )

    def _resolve_user_day(self, user_id: str, day: date, *, with_coverage: bool = True) -> _UserDay:
        result = _UserDay()
        resolution = resolve(user_id, day, self.assignments, warn=False)
        if resolution.is_ambiguous and resolution.assignment is not None:
            result.warnings.append(
                f"User {user_id} on {day.isoformat()}: assignment {resolution.assignment.id} "
                f"tied with {', '.join(resolution.ambiguous_with)}; smallest id chosen"
            )
        base, assignment, error = self._base_outcome(user_id, day, resolution)
        if error is not None:
            result.errors.append(error)
        result.base = base
        result.team_id = assignment.team_id if assignment is not None else None
        if base is None:
            # No governing schedule: rest, whatever the user's own exceptions say.
            if with_coverage:
                self._add_coverage(result, user_id, day)
            return result

        effective = effective_for(
            user_id,
            day,
            self._exceptions_on(day),
            include_incoming_swaps=self.config.include_incoming_swaps,
        )

        swap_outcome = None
        for exception in effective:
            if (
                exception.exception_type is ExceptionType.CHANGE_SWAP
                and exception.new_shift_id is None
            ):
                partner = exception.swap_with_user_id or ""
                partner_base, _, _ = self._base_outcome(partner, day)
                if partner_base is None:
                    result.errors.append(
                        CompositionError(
                            date=day,
                            user_id=user_id,
                            code="missing_swap_partner",
                            message=(
                                f"Swap {exception.id}: partner {partner} has no governing "
                                f"schedule on {day.isoformat()}"
                            ),
                        )
                    )
                else:
                    swap_outcome = partner_base
                break

        overlay = compose_with_base(base, effective, swap_outcome=swap_outcome)
        result.overlay = overlay
        result.conflicts.extend(overlay.conflicts)

        team_id = result.team_id or ""
        if overlay.outcome.shift_id is not None:
            self._place(
                result,
                day,
                user_id,
                team_id,
                overlay.outcome.shift_id,
                start_time=overlay.start_time,
                end_time=overlay.end_time,
                exception_ids=tuple(exception.id for exception in overlay.applied),
            )

        if with_coverage:
            self._add_coverage(result, user_id, day)
        return result

    def _add_coverage(self, result: _UserDay, user_id: str, day: date) -> None:
        """Place ``user_id`` on shifts vacated by absent users they replace."""
        for exception in self._exceptions_on(day):
            if (
                exception.replacement_user_id != user_id
                or exception.category is not ExceptionCategory.ABSENCE
                or not is_effective(exception)
            ):
                continue
            absent = self._resolve_user_day(exception.user_id, day, with_coverage=False)
            vacated = absent.base.shift_id if absent.base is not None else None
            applied = absent.overlay is not None and exception in absent.overlay.applied
            if vacated is None or not applied:
                continue
            if result.placements:
                result.errors.append(
                    _busy_error(day, user_id, exception.user_id, result.placements[0].shift_id)
                )
                continue
            self._place(
                result,
                day,
                user_id,
                absent.team_id or "",
                vacated,
                exception_ids=(exception.id,),
            )

    # ------------------------------------------------------------------ day assembly

    def _shift_order(self, entry: ShiftEntry) -> tuple[int, str, time, time]:
        number = self.timeline.shift_number(entry.shift_id)
        return (
            number if number is not None else self.timeline.shifts_per_day + 1,
            entry.shift_id,
            entry.start_time or time.min,
            entry.end_time or time.min,
        )

    def _assemble(self, day: date, user_days: Iterable[_UserDay]) -> WorkScheduleDay:
        schedule = WorkScheduleDay(date=day)
        grouped: dict[tuple[str, time | None, time | None, bool, bool], ShiftEntry] = {}
        seen_conflicts: set[tuple[str, tuple[str, ...]]] = set()
        for user_day in user_days:
            for placement in user_day.placements:
                key = (
                    placement.shift_id,
                    placement.start_time,
                    placement.end_time,
                    placement.reduced,
                    placement.plant_stop,
                )
                entry = grouped.get(key)
                if entry is None:
                    entry = ShiftEntry(
                        shift_id=placement.shift_id,
                        start_time=placement.start_time,
                        end_time=placement.end_time,
                        reduced=placement.reduced,
                        plant_stop=placement.plant_stop,
                    )
                    grouped[key] = entry
                if placement.user_id not in entry.user_ids:
                    entry.user_ids.append(placement.user_id)
                if placement.team_id and placement.team_id not in entry.team_ids:
                    entry.team_ids.append(placement.team_id)
                for exception_id in placement.exception_ids:
                    if exception_id not in entry.exception_ids:
                        entry.exception_ids.append(exception_id)
            for conflict in user_day.conflicts:
                marker = (conflict.user_id, conflict.exception_ids)
                if marker not in seen_conflicts:
                    seen_conflicts.add(marker)
                    schedule.conflicts.append(conflict)
            schedule.errors.extend(user_day.errors)
            schedule.warnings.extend(user_day.warnings)
        for entry in grouped.values():
            entry.user_ids.sort()
            entry.team_ids.sort()
        schedule.entries = sorted(grouped.values(), key=self._shift_order)
        return schedule

    def _user_day(self, user_id: str, day: date, *, with_coverage: bool = True) -> _UserDay:
        """Resolve one user, turning an evaluation failure into a recorded error."""
        try:
            return self._resolve_user_day(user_id, day, with_coverage=with_coverage)
        except (ShiftCycleValueError, ValueError, LookupError) as exc:
            failed = _UserDay()
            failed.errors.append(
                CompositionError(
                    date=day,
                    user_id=user_id,
                    code="evaluation_failed",
                    message=f"User {user_id} on {day.isoformat()}: {type(exc).__name__}: {exc}",
                )
            )
            return failed

    def compose_day(self, user_ids: Sequence[str], day: date) -> WorkScheduleDay:
        return self._assemble(day, (self._user_day(user_id, day) for user_id in user_ids))

    def conflicts_on(self, day: date) -> list[ExceptionConflict]:
        """Return the exception conflicts composition reports on ``day``.

        Covers every user named by an effective exception that day, including swap partners.
        """
        users: set[str] = set()
        for exception in self._exceptions_on(day):
            if not is_effective(exception):
                continue
            users.add(exception.user_id)
            if exception.swap_with_user_id and self.config.include_incoming_swaps:
                users.add(exception.swap_with_user_id)
        return self.compose_day(sorted(users), day).conflicts

    # ------------------------------------------------------------------ public operations

    def compose_users(
        self,
        user_ids: Sequence[str],
        start: date,
        end: date,
        *,
        cancel: threading.Event | None = None,
        on_batch: BatchCallback | None = None,
    ) -> CompositionResult:
        """Compose one :class:`WorkScheduleDay` per date in ``[start, end]`` for ``user_ids``.

        Dates are split into batches of ``config.batch_days``. With ``config.max_workers > 1``
        batches run on a thread pool; results are always returned in date order. ``cancel`` is
        checked before each batch starts; once set, the result holds the completed prefix and
        ``cancelled=True``. ``on_batch`` receives ``(batch_index, days)`` for each finished batch.
        """
        dates = list(iter_dates(start, end))
        size = self.config.batch_days
        batches = [dates[index : index + size] for index in range(0, len(dates), size)]
        users = sorted(set(user_ids))

        def _run(batch: list[date]) -> list[WorkScheduleDay] | None:
            if cancel is not None and cancel.is_set():
                return None
            return [self.compose_day(users, day) for day in batch]

        completed: list[WorkScheduleDay] = []
        cancelled = False
        if self.config.max_workers <= 1 or len(batches) <= 1:
            for index, batch in enumerate(batches):
                days = _run(batch)
                if days is None:
                    cancelled = True
                    break
                completed.extend(days)
                if on_batch is not None:
                    on_batch(index, days)
        else:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = [executor.submit(_run, batch) for batch in batches]
                for index, future in enumerate(futures):
                    days = future.result()
                    if days is None:
                        cancelled = True
                        break
                    completed.extend(days)
                    if on_batch is not None:
                        on_batch(index, days)
                if cancelled:
                    for future in futures:
                        future.cancel()

        completed.sort(key=lambda schedule: schedule.date)
        errors = [error for schedule in completed for error in schedule.errors]
        return CompositionResult(
            days=completed, errors=errors, cancelled=cancelled, config=self.config
        )

    def compose_range(
        self,
        user_id: str,
        start: date,
        end: date,
        *,
        cancel: threading.Event | None = None,
        on_batch: BatchCallback | None = None,
    ) -> CompositionResult:
        return self.compose_users([user_id], start, end, cancel=cancel, on_batch=on_batch)

    def team_members(self, team_id: str, day: date) -> list[str]:
        """Return users whose governing assignment on ``day`` places them on ``team_id``."""
        users = sorted({assignment.user_id for assignment in self.assignments})
        members = []
        for user_id in users:
            governing = resolve(user_id, day, self.assignments, warn=False).assignment
            if governing is not None and governing.team_id == team_id:
                members.append(user_id)
        return members

    def compose_team_roster(self, team_id: str, day: date) -> WorkScheduleDay:
        """Group every member of ``team_id`` by their effective shift on ``day``.

        Replacement users named on a member's approved absence are listed on the vacated shift
        under the absent member's team.
        """
        user_days: list[_UserDay] = []
        members = self.team_members(team_id, day)
        for user_id in members:
            user_days.append(self._user_day(user_id, day, with_coverage=False))
        for user_id, user_day in list(zip(members, user_days)):
            overlay = user_day.overlay
            if overlay is None or user_day.base is None or user_day.base.shift_id is None:
                continue
            for exception in overlay.applied:
                if (
                    exception.category is ExceptionCategory.ABSENCE
                    and exception.replacement_user_id
                    and exception.user_id == user_id
                ):
                    replacement = exception.replacement_user_id
                    cover = _UserDay()
                    own = self._user_day(replacement, day, with_coverage=False)
                    if own.placements:
                        cover.errors.append(
                            _busy_error(day, replacement, user_id, own.placements[0].shift_id)
                        )
                    else:
                        self._place(
                            cover,
                            day,
                            replacement,
                            team_id,
                            user_day.base.shift_id,
                            exception_ids=(exception.id,),
                        )
                    user_days.append(cover)
                    break
        return self._assemble(day, user_days)

    def compose_rotation_day(self, day: date) -> WorkScheduleDay:
        """Coordinator view of the fixed rotation: teams per shift plus their members."""
        scheme = self.scheme or default_rotation_scheme()
        schedule = WorkScheduleDay(date=day)
        entries: dict[str, ShiftEntry] = {}
        for shift_id, teams in scheme.working_on(day).items():
            shift = self.timeline.shift(shift_id)
            stop = self.timeline.stop_for(day, shift_id)
            if stop is not None and self.config.rest_on_plant_stop:
                label = f" ({stop.reason})" if stop.reason else ""
                schedule.warnings.append(
                    f"Shift {shift_id} on {day.isoformat()} suppressed by plant stop{label}"
                )
                continue
            entries[shift_id] = ShiftEntry(
                shift_id=shift_id,
                team_ids=sorted(teams),
                start_time=shift.start if shift else None,
                end_time=shift.end if shift else None,
                plant_stop=stop is not None,
            )
        extra: list[ShiftEntry] = []
        for team in scheme.teams:
            roster = self.compose_team_roster(team, day)
            schedule.conflicts.extend(roster.conflicts)
            schedule.errors.extend(roster.errors)
            schedule.warnings.extend(roster.warnings)
            for roster_entry in roster.entries:
                entry = entries.get(roster_entry.shift_id)
                if entry is None or roster_entry.reduced:
                    extra.append(roster_entry)
                    continue
                for user_id in roster_entry.user_ids:
                    if user_id not in entry.user_ids:
                        entry.user_ids.append(user_id)
                for team_id in roster_entry.team_ids:
                    if team_id not in entry.team_ids:
                        entry.team_ids.append(team_id)
                entry.exception_ids.extend(
                    exception_id
                    for exception_id in roster_entry.exception_ids
                    if exception_id not in entry.exception_ids
                )
        for entry in entries.values():
            entry.user_ids.sort()
            entry.team_ids.sort()
        schedule.entries = sorted([*entries.values(), *extra], key=self._shift_order)
        return schedule


def compose_range(
    user_id: str,
    start: date,
    end: date,
    assignments: Iterable[ScheduleAssignment],
    exceptions: Iterable[ScheduleException],
    patterns: Mapping[str, RecurrencePattern] | Iterable[RecurrencePattern],
    *,
    timeline: TimelineConfig | None = None,
    config: ComposeConfig | None = None,
    cancel: threading.Event | None = None,
    on_batch: BatchCallback | None = None,
) -> CompositionResult:
    """Compose ``user_id``'s effective schedule for every date in ``[start, end]``."""
    composer = ScheduleComposer(
        assignments, exceptions, patterns, timeline=timeline, config=config
    )
    return composer.compose_range(user_id, start, end, cancel=cancel, on_batch=on_batch)


def compose_team_roster(
    team_id: str,
    day: date,
    assignments: Iterable[ScheduleAssignment],
    exceptions: Iterable[ScheduleException],
    patterns: Mapping[str, RecurrencePattern] | Iterable[RecurrencePattern],
    *,
    timeline: TimelineConfig | None = None,
    config: ComposeConfig | None = None,
) -> WorkScheduleDay:
    composer = ScheduleComposer(
        assignments, exceptions, patterns, timeline=timeline, config=config
    )
    return composer.compose_team_roster(team_id, day)


def compose_rotation_day(
    day: date,
    *,
    assignments: Iterable[ScheduleAssignment] = (),
    exceptions: Iterable[ScheduleException] = (),
    patterns: Mapping[str, RecurrencePattern] | Iterable[RecurrencePattern] = (),
    timeline: TimelineConfig | None = None,
    config: ComposeConfig | None = None,
    scheme: RotationScheme | None = None,
) -> WorkScheduleDay:
    composer = ScheduleComposer(
        assignments,
        exceptions,
        patterns,
        timeline=timeline,
        config=config,
        scheme=scheme,
    )
    return composer.compose_rotation_day(day)
