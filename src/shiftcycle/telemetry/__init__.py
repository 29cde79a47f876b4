"""Run telemetry helpers."""

from .jsonl import append_jsonl, read_jsonl
from .run_logger import RunTelemetryLogger, summarize_result

__all__ = ["append_jsonl", "read_jsonl", "RunTelemetryLogger", "summarize_result"]
