"""Snapshot loading utilities (YAML metadata + CSV tables)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import pandas as pd
import yaml
from pydantic import TypeAdapter

from shiftcycle.scheduling.timeline.models import (
    PlantStop,
    ShiftDefinition,
    TimelineConfig,
    default_shifts,
)
from shiftcycle.snapshot.contract.models import (
    RecurrencePattern,
    ScheduleAssignment,
    ScheduleException,
    Snapshot,
    Team,
)

__all__ = ["load_snapshot", "read_csv"]

_ASSIGNMENT_OPTIONAL = ("end_date", "title", "priority", "status", "active")
_EXCEPTION_OPTIONAL = (
    "status",
    "requires_approval",
    "priority",
    "swap_with_user_id",
    "replacement_user_id",
    "new_shift_id",
    "new_start_time",
    "new_end_time",
    "approved_by",
    "approved_at",
    "rejection_reason",
    "active",
    "created_at",
    "notes",
)


def read_csv(path: Path) -> pd.DataFrame:
    """Load a CSV file as text cells; pydantic coerces dates, times, numbers and flags."""
    return pd.read_csv(path, dtype=str)


def _as_optional_string(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if pd.isna(cast("Any", value)):
        return None
    return str(value)


def _normalise_optional_fields(rows: list[dict[str, object]], fields: tuple[str, ...]) -> None:
    """Drop blank optional cells so model defaults apply."""
    for row in rows:
        for field in fields:
            if field not in row:
                continue
            normalised = _as_optional_string(row[field])
            if normalised is None:
                row.pop(field, None)
            else:
                row[field] = normalised


def _normalise_metadata(rows: list[dict[str, object]]) -> None:
    # ``metadata`` cells hold ``key=value`` pairs separated by ``;``.
    for row in rows:
        raw = _as_optional_string(row.pop("metadata", None))
        if raw is None:
            continue
        metadata: dict[str, str] = {}
        for part in raw.split(";"):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            if key.strip():
                metadata[key.strip()] = value.strip()
        row["metadata"] = metadata


def _records(frame: pd.DataFrame) -> list[dict[str, object]]:
    return cast(list[dict[str, object]], frame.to_dict("records"))


def _load_timeline(meta: dict[str, Any], stops: list[PlantStop]) -> TimelineConfig | None:
    timeline_meta = meta.get("timeline")
    if timeline_meta is None and not stops:
        return None
    timeline_meta = dict(timeline_meta or {})
    if "shifts" in timeline_meta:
        shifts = TypeAdapter(tuple[ShiftDefinition, ...]).validate_python(timeline_meta["shifts"])
    else:
        shifts = default_shifts()
    inline_stops = TypeAdapter(list[PlantStop]).validate_python(timeline_meta.get("stops", []))
    return TimelineConfig(
        shifts=shifts,
        stops=tuple(inline_stops + stops),
        version=str(timeline_meta.get("version", "1")),
    )


def load_snapshot(yaml_path: str | Path) -> Snapshot:
    """Load a Snapshot from the YAML metadata + CSV bundle.

    Parameters
    ----------
    yaml_path:
        Path to the ``snapshot.yaml`` file that references the component CSVs.

    Returns
    -------
    Snapshot
        Fully validated Pydantic model ready to hand to the composer.

    Notes
    -----
    ``assignments``, ``exceptions`` and ``plant_stops`` are read from the CSV files named in the
    ``data`` section; ``patterns``, ``teams`` and ``timeline`` are inline YAML. Blank optional CSV
    cells are dropped so model defaults apply (e.g. ``requires_approval`` falls back to the
    per-type default), and exception ``metadata`` cells are parsed from ``key=value;...`` pairs.
    """
    base_path = Path(yaml_path).resolve()
    with base_path.open("r", encoding="utf-8") as handle:
        meta = yaml.safe_load(handle) or {}
    root = base_path.parent
    data_section = meta.get("data", {}) or {}

    def require(name: str) -> Path:
        candidate = root / data_section[name]
        if not candidate.exists():
            raise FileNotFoundError(candidate)
        return candidate

    assignments: list[ScheduleAssignment] = []
    if "assignments" in data_section:
        rows = _records(read_csv(require("assignments")))
        _normalise_optional_fields(rows, _ASSIGNMENT_OPTIONAL)
        assignments = TypeAdapter(list[ScheduleAssignment]).validate_python(rows)
    elif "assignments" in meta:
        assignments = TypeAdapter(list[ScheduleAssignment]).validate_python(meta["assignments"])

    exceptions: list[ScheduleException] = []
    if "exceptions" in data_section:
        rows = _records(read_csv(require("exceptions")))
        _normalise_optional_fields(rows, _EXCEPTION_OPTIONAL)
        _normalise_metadata(rows)
        exceptions = TypeAdapter(list[ScheduleException]).validate_python(rows)
    elif "exceptions" in meta:
        exceptions = TypeAdapter(list[ScheduleException]).validate_python(meta["exceptions"])

    stops: list[PlantStop] = []
    if "plant_stops" in data_section:
        rows = _records(read_csv(require("plant_stops")))
        _normalise_optional_fields(rows, ("reason",))
        stops = TypeAdapter(list[PlantStop]).validate_python(rows)

    patterns = TypeAdapter(list[RecurrencePattern]).validate_python(meta.get("patterns", []))
    teams = TypeAdapter(list[Team]).validate_python(meta.get("teams", []))

    snapshot = Snapshot(
        name=meta["name"],
        teams=teams,
        patterns=patterns,
        assignments=assignments,
        exceptions=exceptions,
        include_rotation=bool(meta.get("include_rotation", False)),
        rotation_start=meta.get("rotation_start"),
    )
    timeline = _load_timeline(meta, stops)
    if timeline is not None:
        snapshot = snapshot.model_copy(update={"timeline": timeline})
    return snapshot
