from __future__ import annotations

"""Structured progress events for whatever UI consumes a run."""

from typing import Any, Callable, Dict, Optional

from .logging_utils import _harvester_event
from .state import FailureRecord
from .utils import log_line

EventSink = Callable[[Dict[str, Any]], None]

SEVERITIES = ("info", "success", "warning", "error")


class ProgressReporter:
    """Fan out progress events to an optional sink and the run log.

    A failing sink never breaks the run.
    """

    def __init__(self, sink: Optional[EventSink] = None) -> None:
        self._sink = sink

    def _emit(self, payload: Dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            self._sink(payload)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[EVENTS][WARN] Event sink raised: {exc}")

    def message(self, text: str, severity: str = "info") -> None:
        if severity not in SEVERITIES:
            severity = "info"
        log_line(f"[{severity.upper()}] {text}")
        self._emit({"message": text, "severity": severity})

    def info(self, text: str) -> None:
        self.message(text, "info")

    def success(self, text: str) -> None:
        self.message(text, "success")

    def warning(self, text: str) -> None:
        self.message(text, "warning")

    def error(self, text: str) -> None:
        self.message(text, "error")

    def progress(self, current: int, total: int) -> None:
        percent = min(100.0, (current / total) * 100.0) if total > 0 else 0.0
        _harvester_event("progress", current=current, total=total, percent=round(percent, 1))
        self._emit({"progressPercent": percent, "currentCount": current, "totalCount": total})

    def failure(self, record: FailureRecord) -> None:
        _harvester_event(
            "failure", name=record.name, reason=record.reason, page=record.page_number
        )
        self._emit({"failure": record.to_dict()})

    def stats(self, success: int, failed: int) -> None:
        self._emit({"stats": {"success": success, "failed": failed}})


__all__ = ["EventSink", "ProgressReporter", "SEVERITIES"]
