from __future__ import annotations

from datetime import date

import pytest

from shiftcycle.engine import ComposeConfig, ScheduleComposer
from shiftcycle.snapshot import load_snapshot
from shiftcycle.telemetry import (
    RunTelemetryLogger,
    append_jsonl,
    read_jsonl,
    summarize_result,
)


def test_append_jsonl_creates_parents(tmp_path):
    path = tmp_path / "nested" / "runs.jsonl"
    append_jsonl(path, {"day": date(2024, 1, 1), "count": 1})
    append_jsonl(path, {"day": date(2024, 1, 2), "count": 2})
    assert read_jsonl(path) == [
        {"day": "2024-01-01", "count": 1},
        {"day": "2024-01-02", "count": 2},
    ]


def test_run_logger_records_batches(tmp_path, demo_snapshot_path):
    sc = load_snapshot(demo_snapshot_path)
    composer = ScheduleComposer.from_snapshot(sc, config=ComposeConfig(batch_days=2))
    log_path = tmp_path / "telemetry" / "runs.jsonl"
    with RunTelemetryLogger(
        log_path=log_path,
        command="compose",
        snapshot=sc.name,
        config={"batch_days": 2},
        context={"users": ["bob"]},
    ) as logger:
        result = composer.compose_range(
            "bob", date(2024, 1, 1), date(2024, 1, 5), on_batch=logger.batch_callback()
        )
        logger.finalize(metrics={"days": len(result.days)})

    (run,) = read_jsonl(log_path)
    assert run["record_type"] == "run"
    assert run["status"] == "ok"
    assert run["run_id"] == logger.run_id
    assert run["metrics"] == {"days": 5}
    assert run["snapshot"] == "demo-plant"
    assert run["batches"] == 3

    batches = read_jsonl(logger.batches_path)
    assert [batch["batch"] for batch in batches] == [0, 1, 2]
    assert [batch["days"] for batch in batches] == [2, 2, 1]
    assert batches[1]["first_date"] == "2024-01-03"
    assert batches[1]["conflicts"] == 1


def test_run_logger_records_errors(tmp_path):
    log_path = tmp_path / "runs.jsonl"
    with pytest.raises(RuntimeError):
        with RunTelemetryLogger(log_path=log_path, command="compose", log_batches=False):
            raise RuntimeError("boom")
    (run,) = read_jsonl(log_path)
    assert run["status"] == "error"
    assert "boom" in run["error"]
    assert not (tmp_path / "batches").exists()


def test_record_result_summarizes_composition(tmp_path, demo_snapshot_path):
    sc = load_snapshot(demo_snapshot_path)
    composer = ScheduleComposer.from_snapshot(sc)
    log_path = tmp_path / "runs.jsonl"
    with RunTelemetryLogger(log_path=log_path, command="compose", log_batches=False) as logger:
        result = composer.compose_users(sc.user_ids(), date(2024, 1, 1), date(2024, 1, 3))
        logger.record_result(result)

    (run,) = read_jsonl(log_path)
    assert run["metrics"] == summarize_result(result)
    assert run["metrics"]["days"] == 3
    assert run["metrics"]["conflicts"] == 1
    assert run["metrics"]["cancelled"] is False
