from __future__ import annotations

import threading

from app.harvester.events import ProgressReporter
from app.harvester.run_control import RunControl
from app.harvester.state import FailureRecord


def test_reporter_emits_structured_payloads() -> None:
    events: list[dict] = []
    reporter = ProgressReporter(events.append)

    reporter.success("Artifact saved: Ada_CV.pdf")
    reporter.message("odd", severity="loud")
    reporter.progress(5, 20)
    reporter.failure(FailureRecord("Cara", "boom", 3))
    reporter.stats(5, 1)

    assert events[0] == {"message": "Artifact saved: Ada_CV.pdf", "severity": "success"}
    assert events[1]["severity"] == "info"
    assert events[2] == {"progressPercent": 25.0, "currentCount": 5, "totalCount": 20}
    assert events[3] == {"failure": {"name": "Cara", "reason": "boom", "pageNumber": 3}}
    assert events[4] == {"stats": {"success": 5, "failed": 1}}


def test_progress_is_capped_and_safe_for_zero_total() -> None:
    events: list[dict] = []
    reporter = ProgressReporter(events.append)
    reporter.progress(30, 20)
    reporter.progress(1, 0)
    assert events[0]["progressPercent"] == 100.0
    assert events[1]["progressPercent"] == 0.0


def test_failing_sink_does_not_break_reporting() -> None:
    def _sink(_payload: dict) -> None:
        raise RuntimeError("socket closed")

    ProgressReporter(_sink).info("still fine")
    ProgressReporter().info("no sink at all")


def test_wait_while_paused_runs_hook_once_and_resumes() -> None:
    control = RunControl(poll_interval=0.0)
    hooks: list[str] = []
    polls = {"count": 0}

    def _sleep(_seconds: float) -> None:
        polls["count"] += 1
        if polls["count"] == 3:
            control.resume()

    control._sleep = _sleep
    control.pause()

    assert control.wait_while_paused(on_pause=lambda: hooks.append("saved")) is True
    assert hooks == ["saved"]
    assert control.paused is False


def test_stop_releases_a_paused_wait() -> None:
    control = RunControl(poll_interval=0.01)
    control.pause()
    result: list[bool] = []

    waiter = threading.Thread(target=lambda: result.append(control.wait_while_paused()))
    waiter.start()
    control.stop()
    waiter.join(timeout=2)

    assert result == [False]
    assert control.stopped is True


def test_reset_clears_flags() -> None:
    control = RunControl()
    control.pause()
    control.stop()
    control.reset()
    assert control.paused is False
    assert control.stopped is False
    assert control.wait_while_paused() is True
