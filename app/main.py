from __future__ import annotations

import os
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Generator, Optional

from flask import Flask, Response, jsonify, request

from app.harvester import config
from app.harvester.config_validation import validate_job_config, validate_runtime_config
from app.harvester.dom import SessionProvider
from app.harvester.healthcheck import run_health_checks
from app.harvester.job import JobConfig
from app.harvester.logging_utils import _harvester_event
from app.harvester.run import run_job
from app.harvester.run_control import RunControl
from app.harvester.state import CheckpointStore
from app.harvester.telemetry import load_latest_report
from app.harvester.utils import ensure_dirs, get_current_log_path, log_line

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Initialise storage paths on import so WSGI entrypoints have the expected
# environment ready.
ensure_dirs()

MAX_BUFFERED_EVENTS = 500


def _default_session_provider() -> SessionProvider:
    from app.harvester.playwright_adapter import PlaywrightSessionProvider

    return PlaywrightSessionProvider()


class JobManager:
    """Own the single background job the API is allowed to run."""

    def __init__(
        self,
        provider_factory: Callable[[], SessionProvider] = _default_session_provider,
        *,
        max_events: int = MAX_BUFFERED_EVENTS,
    ) -> None:
        self.provider_factory = provider_factory
        self.run_kwargs: Dict[str, Any] = {}
        self.control = RunControl()
        self.events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self.status = "idle"
        self.job: Optional[JobConfig] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None
        self._seq = 0
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, job: JobConfig) -> bool:
        with self._lock:
            if self.is_running():
                return False
            self.control.reset()
            self.events.clear()
            self.job = job
            self.status = "running"
            self.last_result = None
            self.last_error = None
            self._thread = threading.Thread(target=self._run, args=(job,), daemon=True)
            self._thread.start()
        return True

    def _sink(self, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._seq += 1
            self.events.append({"seq": self._seq, **payload})

    def _run(self, job: JobConfig) -> None:
        try:
            result = run_job(
                job,
                session_provider=self.provider_factory(),
                sink=self._sink,
                control=self.control,
                entrypoint="ui",
                **self.run_kwargs,
            )
            self.last_result = result
            self.status = result.get("status", "completed")
        except Exception as exc:  # noqa: BLE001
            log_line(f"Job thread failed: {exc}")
            self.last_error = str(exc)
            self.status = "failed"

    def pause(self) -> None:
        self.control.pause()
        self.status = "paused"

    def resume(self) -> None:
        self.control.resume()
        self.status = "running"

    def stop(self) -> None:
        self.control.stop()
        self.status = "stopping"

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def snapshot(self, since: int = 0) -> Dict[str, Any]:
        with self._lock:
            events = [event for event in self.events if event["seq"] > since]
        return {
            "status": self.status,
            "running": self.is_running(),
            "job": self.job.to_dict() if self.job else None,
            "result": self.last_result,
            "error": self.last_error,
            "events": events,
        }


manager = JobManager()


def _checkpoint_store() -> CheckpointStore:
    return CheckpointStore(config.CHECKPOINT_FILE)


def _tail_log_generator() -> Generator[str, None, None]:
    """Yield Server-Sent Event messages for appended log lines."""

    ensure_dirs()
    current_path = get_current_log_path()
    current_path.parent.mkdir(parents=True, exist_ok=True)
    current_path.touch(exist_ok=True)

    handle = current_path.open("r", encoding="utf-8", errors="ignore")
    handle.seek(0, os.SEEK_END)
    try:
        while True:
            line = handle.readline()
            if line:
                yield f"data: {line.rstrip()}\n\n"
                continue
            latest = get_current_log_path()
            if latest != current_path and latest.exists():
                handle.close()
                current_path = latest
                handle = current_path.open("r", encoding="utf-8", errors="ignore")
                continue
            time.sleep(1)
    finally:
        handle.close()


@app.post("/jobs")
def start_job() -> Response:
    """Start a job from a JSON payload shaped like ``JobConfig``."""

    payload = request.get_json(silent=True) or {}
    try:
        job = JobConfig.from_dict(payload)
        validate_runtime_config("ui")
        validate_job_config(job, entrypoint="ui")
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400

    if not manager.start(job):
        _harvester_event("error", phase="api", context="start_job", error="job_already_running")
        return jsonify({"ok": False, "error": "job_already_running"}), 409

    _harvester_event("state", phase="api", context="start_job", url=job.source_list_url, resume=job.resume)
    return jsonify({"ok": True, "status": manager.status, "job": job.to_dict()}), 202


@app.post("/jobs/pause")
def pause_job() -> Response:
    if not manager.is_running():
        return jsonify({"ok": False, "error": "no_running_job"}), 409
    manager.pause()
    return jsonify({"ok": True, "status": manager.status})


@app.post("/jobs/resume")
def resume_job() -> Response:
    if not manager.is_running():
        return jsonify({"ok": False, "error": "no_running_job"}), 409
    manager.resume()
    return jsonify({"ok": True, "status": manager.status})


@app.post("/jobs/stop")
def stop_job() -> Response:
    if not manager.is_running():
        return jsonify({"ok": False, "error": "no_running_job"}), 409
    manager.stop()
    return jsonify({"ok": True, "status": manager.status})


@app.post("/jobs/reset")
def reset_job() -> Response:
    """Delete the checkpoint so the next job starts from scratch."""

    if manager.is_running():
        return jsonify({"ok": False, "error": "job_running"}), 409
    _checkpoint_store().clear()
    manager.status = "idle"
    log_line("[API] Checkpoint cleared by reset request.")
    return jsonify({"ok": True})


@app.get("/jobs/status")
def job_status() -> Response:
    try:
        since = int(request.args.get("since", 0))
    except (TypeError, ValueError):
        since = 0
    return jsonify({"ok": True, **manager.snapshot(since)})


@app.get("/jobs/checkpoint")
def job_checkpoint() -> Response:
    checkpoint = _checkpoint_store().load()
    if checkpoint is None:
        return jsonify({"ok": False, "error": "no_checkpoint"}), 404
    return jsonify({"ok": True, "checkpoint": checkpoint.to_dict()})


@app.get("/report/latest")
def latest_report() -> Response:
    report = load_latest_report()
    if report is None:
        return jsonify({"ok": False, "error": "no runs"}), 404
    return jsonify({"ok": True, "report": report})


@app.get("/logs/stream")
def logs_stream() -> Response:
    """Stream log updates to the browser using SSE."""

    response = Response(_tail_log_generator(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem and checkpoint."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080)
