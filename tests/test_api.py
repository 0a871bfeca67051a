from __future__ import annotations

import importlib
import random
import sys
import threading
from pathlib import Path

from app.harvester import config
from app.harvester.state import CheckpointStore
from tests.fakes import SOURCE_URL, FakeListSite, FakeSessionProvider, make_pages, no_sleep
from tests.test_engine import fast_settings

PAYLOAD = {
    "sourceListUrl": SOURCE_URL,
    "maxItems": 10,
    "minWaitSeconds": 0,
    "maxWaitSeconds": 0,
    "breakInterval": 0,
    "breakMinSeconds": 0,
    "breakMaxSeconds": 0,
}


def _reload_main_module():
    sys.modules.pop("app.main", None)
    return importlib.import_module("app.main")


class _GatedProvider(FakeSessionProvider):
    """Blocks in ``open`` until the test releases it."""

    def __init__(self, site: FakeListSite) -> None:
        super().__init__(site)
        self.gate = threading.Event()

    def open(self, *, headless: bool = False):
        self.gate.wait(5)
        return super().open(headless=headless)


def _wire(main, tmp_path: Path, provider: FakeSessionProvider) -> None:
    main.manager.provider_factory = lambda: provider
    main.manager.run_kwargs = {
        "settings": fast_settings(),
        "sleep": no_sleep,
        "rng": random.Random(2),
        "output_base_dir": tmp_path / "output",
    }


def test_start_job_runs_in_background(tmp_path: Path) -> None:
    main = _reload_main_module()
    site = FakeListSite(make_pages(["Ada Lovelace", "Bruno Brandt"]))
    _wire(main, tmp_path, FakeSessionProvider(site))
    client = main.app.test_client()

    resp = client.post("/jobs", json=PAYLOAD)
    assert resp.status_code == 202
    assert resp.get_json()["job"]["sourceListUrl"] == SOURCE_URL

    main.manager.join(timeout=10)

    status = client.get("/jobs/status").get_json()
    assert status["status"] == "completed"
    assert status["running"] is False
    assert status["result"]["successCount"] == 2
    messages = [event["message"] for event in status["events"] if "message" in event]
    assert "Completed! Saved 2 artifact(s), 0 failed." in messages

    last_seq = status["events"][-1]["seq"]
    assert client.get(f"/jobs/status?since={last_seq}").get_json()["events"] == []

    checkpoint = client.get("/jobs/checkpoint").get_json()
    assert checkpoint["checkpoint"]["successCount"] == 2
    assert sorted(checkpoint["checkpoint"]["processedItemKeys"]) == ["Ada Lovelace", "Bruno Brandt"]

    report = client.get("/report/latest")
    assert report.status_code == 200
    assert report.get_json()["report"]["status"] == "completed"


def test_second_job_is_rejected_while_running(tmp_path: Path) -> None:
    main = _reload_main_module()
    provider = _GatedProvider(FakeListSite(make_pages(["Ada Lovelace"])))
    _wire(main, tmp_path, provider)
    client = main.app.test_client()

    try:
        assert client.post("/jobs", json=PAYLOAD).status_code == 202

        resp = client.post("/jobs", json=PAYLOAD)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "job_already_running"

        assert client.post("/jobs/reset").status_code == 409
        assert client.post("/jobs/pause").get_json()["status"] == "paused"
        assert client.post("/jobs/resume").get_json()["status"] == "running"
        assert client.post("/jobs/stop").get_json()["status"] == "stopping"
    finally:
        provider.gate.set()
        main.manager.join(timeout=10)

    assert main.manager.snapshot()["status"] == "stopped"


def test_invalid_payload_is_rejected(tmp_path: Path) -> None:
    main = _reload_main_module()
    client = main.app.test_client()

    missing = client.post("/jobs", json={"maxItems": 3})
    assert missing.status_code == 400
    assert "sourceListUrl is required" in missing.get_json()["error"]

    bad_url = client.post("/jobs", json={"sourceListUrl": "nope"})
    assert bad_url.status_code == 400


def test_controls_without_job_conflict(tmp_path: Path) -> None:
    main = _reload_main_module()
    client = main.app.test_client()

    for route in ("/jobs/pause", "/jobs/resume", "/jobs/stop"):
        resp = client.post(route)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "no_running_job"


def test_checkpoint_and_report_missing(tmp_path: Path) -> None:
    main = _reload_main_module()
    client = main.app.test_client()

    assert client.get("/jobs/checkpoint").status_code == 404
    assert client.get("/report/latest").status_code == 404


def test_reset_clears_checkpoint(tmp_path: Path) -> None:
    main = _reload_main_module()
    CheckpointStore(config.CHECKPOINT_FILE).save(success_count=3)
    client = main.app.test_client()

    assert client.get("/jobs/checkpoint").status_code == 200
    assert client.post("/jobs/reset").get_json() == {"ok": True}
    assert client.get("/jobs/checkpoint").status_code == 404


def test_health_api_reports_status(tmp_path: Path, monkeypatch) -> None:
    main = _reload_main_module()
    client = main.app.test_client()

    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert "filesystem" in resp.get_json()["checks"]

    monkeypatch.setattr(config, "MIN_FREE_MB", -1)
    unhealthy = client.get("/api/health")
    assert unhealthy.status_code == 503
    assert unhealthy.get_json()["checks"]["config"]["ok"] is False
