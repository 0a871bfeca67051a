from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.harvester import report_cli, telemetry
from app.harvester.state import FailureRecord
from app.harvester.utils import save_json_file


def test_finalize_writes_camel_case_report(tmp_path: Path) -> None:
    runs_dir = tmp_path / "runs"
    recorder = telemetry.RunTelemetry(runs_dir)

    path = recorder.finalize(
        status="completed",
        success_count=3,
        failed_items=[FailureRecord("Cara Chen", "No action control found", 2)],
        stats={"skipped_duplicates": 1, "reload_recoveries": 2, "context_recoveries": 0},
        output_location="/out/Data Engineer",
    )

    assert path == runs_dir / f"run_{recorder.run_id}.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["status"] == "completed"
    assert payload["successCount"] == 3
    assert payload["failedCount"] == 1
    assert payload["failedItems"][0]["pageNumber"] == 2
    assert payload["skippedDuplicates"] == 1
    assert payload["reloadRecoveries"] == 2
    assert payload["endedAt"].endswith("Z")
    assert payload["error"] is None


def test_load_latest_report_picks_newest(tmp_path: Path) -> None:
    runs_dir = tmp_path / "runs"
    assert telemetry.load_latest_report(runs_dir) is None

    save_json_file(runs_dir / "run_20240101_000000_aaaaaaaa.json", {"runId": "old"})
    save_json_file(runs_dir / "run_20240301_000000_bbbbbbbb.json", {"runId": "new"})

    assert telemetry.load_latest_report(runs_dir) == {"runId": "new"}
    assert len(telemetry.list_reports(runs_dir)) == 2


def test_report_cli_prints_summary(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    runs_dir = tmp_path / "runs"
    telemetry.RunTelemetry(runs_dir).finalize(
        status="stopped",
        success_count=1,
        failed_items=[FailureRecord("Cara Chen", "Selection could not be verified", 1)],
    )

    exit_code = report_cli.main(["--runs-dir", str(runs_dir)])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert ": stopped" in out
    assert "succeeded: 1" in out
    assert "[page 1] Cara Chen: Selection could not be verified" in out


def test_report_cli_json_output(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    report_path = tmp_path / "run_x.json"
    save_json_file(report_path, {"runId": "x", "status": "failed"})

    assert report_cli.main(["--report", str(report_path), "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == {"runId": "x", "status": "failed"}


def test_report_cli_without_reports(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert report_cli.main(["--runs-dir", str(tmp_path / "empty")]) == 1
    assert "No run report found." in capsys.readouterr().out
