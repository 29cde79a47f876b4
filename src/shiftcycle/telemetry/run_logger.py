"""Context manager for capturing composition run telemetry."""

from __future__ import annotations

import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence
from uuid import uuid4

from .jsonl import append_jsonl

if TYPE_CHECKING:
    from shiftcycle.engine.composer import CompositionResult, WorkScheduleDay


def _stamp() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def summarize_result(result: CompositionResult) -> dict[str, Any]:
    """Condense a :class:`CompositionResult` into run-record metrics."""
    return {
        "days": len(result.days),
        "rest_days": sum(1 for day in result.days if day.is_rest_day),
        "entries": sum(len(day.entries) for day in result.days),
        "errors": len(result.errors),
        "conflicts": len(result.conflicts()),
        "warnings": len(result.warnings()),
        "cancelled": result.cancelled,
    }


@dataclass(slots=True)
class RunTelemetryLogger(AbstractContextManager["RunTelemetryLogger"]):
    """Append one ``run`` record per composition request, plus optional ``batch`` records.

    Parameters
    ----------
    log_path:
        JSONL file receiving the run record.
    command:
        CLI command or API entry point (``"compose"``, ``"roster"``).
    snapshot / snapshot_path:
        Snapshot name and the YAML it was loaded from.
    config:
        Composer settings (batch size, workers, plant-stop handling).
    context:
        Request details such as users and the date window.
    log_batches:
        Write ``batches/<run_id>.jsonl`` next to ``log_path`` with one record per batch.
    """

    log_path: Path
    command: str
    snapshot: str | None = None
    snapshot_path: str | None = None
    config: Mapping[str, Any] | None = None
    context: Mapping[str, Any] | None = None
    log_batches: bool = True
    schema_version: str = "1.0"
    run_id: str = field(default_factory=lambda: uuid4().hex, init=False)
    batch_count: int = field(default=0, init=False)
    _started_at: str | None = field(default=None, init=False)
    _clock: float | None = field(default=None, init=False)
    _written: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.log_path = Path(self.log_path)

    @property
    def batches_path(self) -> Path | None:
        if not self.log_batches:
            return None
        return self.log_path.parent / "batches" / f"{self.run_id}.jsonl"

    def __enter__(self) -> RunTelemetryLogger:
        self._clock = time.monotonic()
        self._started_at = _stamp()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._write_run("ok", None, None)
        else:
            self._write_run("error", None, repr(exc))
        return False

    def log_batch(self, index: int, days: Sequence[WorkScheduleDay]) -> None:
        """Record one finished batch of composed days."""
        self.batch_count += 1
        target = self.batches_path
        if target is None or not days:
            return
        append_jsonl(
            target,
            {
                "record_type": "batch",
                "schema_version": self.schema_version,
                "run_id": self.run_id,
                "batch": index,
                "first_date": days[0].date.isoformat(),
                "last_date": days[-1].date.isoformat(),
                "days": len(days),
                "entries": sum(len(day.entries) for day in days),
                "errors": sum(len(day.errors) for day in days),
                "conflicts": sum(len(day.conflicts) for day in days),
                "logged_at": _stamp(),
            },
        )

    def batch_callback(self) -> Callable[[int, Sequence[WorkScheduleDay]], None]:
        """Return an ``on_batch`` hook for :meth:`ScheduleComposer.compose_users`."""
        return self.log_batch

    def record_result(self, result: CompositionResult) -> None:
        status = "cancelled" if result.cancelled else "ok"
        self._write_run(status, summarize_result(result), None)

    def finalize(
        self,
        *,
        status: str = "ok",
        metrics: Mapping[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        self._write_run(status, metrics, error)

    def _write_run(
        self, status: str, metrics: Mapping[str, Any] | None, error: str | None
    ) -> None:
        # Only the first terminal record counts; ``__exit__`` after ``finalize`` is a no-op.
        if self._written:
            return
        elapsed = time.monotonic() - self._clock if self._clock is not None else 0.0
        append_jsonl(
            self.log_path,
            {
                "record_type": "run",
                "schema_version": self.schema_version,
                "run_id": self.run_id,
                "command": self.command,
                "snapshot": self.snapshot,
                "snapshot_path": self.snapshot_path,
                "status": status,
                "error": error,
                "metrics": dict(metrics or {}),
                "config": dict(self.config or {}),
                "context": dict(self.context or {}),
                "batches": self.batch_count,
                "started_at": self._started_at,
                "finished_at": _stamp(),
                "duration_seconds": round(elapsed, 3),
            },
        )
        self._written = True


__all__ = ["RunTelemetryLogger", "summarize_result"]
