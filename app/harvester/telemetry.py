"""Run reports: one JSON document per run under the runs directory."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .state import FailureRecord
from .utils import load_json_file, log_line, save_json_file, utc_now_iso

RUN_STATUSES = ("completed", "stopped", "limit_reached", "failed")


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


@dataclass
class RunReport:
    run_id: str
    started_at: str
    ended_at: Optional[str] = None
    status: str = "running"
    success_count: int = 0
    failed_items: List[FailureRecord] = field(default_factory=list)
    skipped_duplicates: int = 0
    reload_recoveries: int = 0
    context_recoveries: int = 0
    output_location: str = ""
    error: Optional[str] = None

    @property
    def failed_count(self) -> int:
        return len(self.failed_items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "status": self.status,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "failedItems": [record.to_dict() for record in self.failed_items],
            "skippedDuplicates": self.skipped_duplicates,
            "reloadRecoveries": self.reload_recoveries,
            "contextRecoveries": self.context_recoveries,
            "outputLocation": self.output_location,
            "error": self.error,
        }


class RunTelemetry:
    """Collect the run-level counters and write the final report."""

    def __init__(self, runs_dir: Optional[Path] = None) -> None:
        self.runs_dir = Path(runs_dir or config.RUNS_DIR)
        self.report = RunReport(
            run_id=f"{_ts()}_{uuid.uuid4().hex[:8]}",
            started_at=utc_now_iso(),
        )

    @property
    def run_id(self) -> str:
        return self.report.run_id

    def finalize(
        self,
        *,
        status: str,
        success_count: int,
        failed_items: List[FailureRecord],
        stats: Optional[Dict[str, int]] = None,
        output_location: str = "",
        error: Optional[str] = None,
    ) -> Path:
        stats = stats or {}
        report = self.report
        report.ended_at = utc_now_iso()
        report.status = status
        report.success_count = success_count
        report.failed_items = list(failed_items)
        report.skipped_duplicates = int(stats.get("skipped_duplicates", 0))
        report.reload_recoveries = int(stats.get("reload_recoveries", 0))
        report.context_recoveries = int(stats.get("context_recoveries", 0))
        report.output_location = output_location
        report.error = error

        path = self.runs_dir / f"run_{report.run_id}.json"
        save_json_file(path, report.to_dict())
        log_line(f"[RUN] Report written to {path}")
        return path


def list_reports(runs_dir: Optional[Path] = None) -> List[Path]:
    directory = Path(runs_dir or config.RUNS_DIR)
    if not directory.exists():
        return []
    return sorted(directory.glob("run_*.json"))


def load_latest_report(runs_dir: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """Return the newest run report, or ``None`` when no run has finished."""

    for path in reversed(list_reports(runs_dir)):
        payload = load_json_file(path)
        if isinstance(payload, dict):
            return payload
    return None


__all__ = [
    "RunReport",
    "RunTelemetry",
    "RUN_STATUSES",
    "list_reports",
    "load_latest_report",
]
