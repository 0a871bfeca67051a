from __future__ import annotations

import random
from pathlib import Path
from typing import Any

import pytest

from app.harvester import config, telemetry
from app.harvester import run as run_module
from app.harvester.error_codes import AutomationError, NavigationFailed
from app.harvester.job import JobConfig
from app.harvester.run import build_output_folder_name, clean_item_label, run_job
from app.harvester.run_control import RunControl
from app.harvester.state import CheckpointStore
from tests.fakes import SOURCE_URL, FakeListSite, FakeSessionProvider, make_pages, no_sleep
from tests.test_engine import fast_settings

PAGES = (["Ada Lovelace", "Bruno Brandt"], ["Cara Chen"])


def _job(**overrides: Any) -> JobConfig:
    values: dict[str, Any] = {
        "source_list_url": SOURCE_URL,
        "max_items": 50,
        "min_wait_seconds": 0.0,
        "max_wait_seconds": 0.0,
        "break_interval": 0,
        "break_min_seconds": 0.0,
        "break_max_seconds": 0.0,
    }
    values.update(overrides)
    return JobConfig(**values)


def _run(tmp_path: Path, site: FakeListSite, job: JobConfig, events: list, **kwargs: Any) -> dict:
    provider = kwargs.pop("provider", None) or FakeSessionProvider(site)
    return run_job(
        job,
        session_provider=provider,
        sink=events.append,
        store=CheckpointStore(config.CHECKPOINT_FILE),
        settings=fast_settings(),
        output_base_dir=tmp_path / "output",
        sleep=no_sleep,
        rng=random.Random(3),
        entrypoint="tests",
        **kwargs,
    )


def _messages(events: list) -> list[str]:
    return [event["message"] for event in events if "message" in event]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Job title Data Engineer", "Data Engineer"),
        ("İş unvanı\n  Veri Mühendisi", "Veri Mühendisi"),
        ('QA / "Tester"?', "QA Tester"),
        (None, ""),
    ],
)
def test_clean_item_label(raw, expected) -> None:
    assert clean_item_label(raw) == expected


def test_output_folder_name_prefers_label() -> None:
    assert build_output_folder_name("Data Engineer", SOURCE_URL, "2024-05-01_10-00") == (
        "Data Engineer_2024-05-01_10-00"
    )
    assert build_output_folder_name("", SOURCE_URL, "2024-05-01_10-00") == "Job_4242_2024-05-01_10-00"
    assert build_output_folder_name("", "https://x.test/list", "ts") == "Job_Unknown_ts"


def test_run_walks_every_page(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(*PAGES))
    provider = FakeSessionProvider(site)
    events: list = []

    result = _run(tmp_path, site, _job(), events, provider=provider)

    assert result["status"] == "completed"
    assert result["successCount"] == 3
    assert result["failedCount"] == 0
    output_dir = Path(result["outputLocation"])
    assert output_dir.parent == tmp_path / "output"
    assert output_dir.name.startswith("Data Engineer_")
    assert len(list(output_dir.iterdir())) == 3
    assert provider.opened == [False]
    assert provider.closed == 1
    assert "No more pages available. Job complete." in _messages(events)
    assert "Completed! Saved 3 artifact(s), 0 failed." in _messages(events)

    checkpoint = CheckpointStore(config.CHECKPOINT_FILE).load()
    assert checkpoint is not None
    assert checkpoint.current_page == 2
    assert checkpoint.item_label == "Data Engineer"
    assert checkpoint.output_location == str(output_dir)

    report = telemetry.load_latest_report()
    assert report is not None
    assert report["runId"] == result["runId"]
    assert report["status"] == "completed"
    assert Path(result["reportPath"]).exists()
    assert Path(result["logPath"]).exists()


def test_resume_continues_from_checkpoint(tmp_path: Path) -> None:
    output_dir = tmp_path / "previous"
    CheckpointStore(config.CHECKPOINT_FILE).save(
        processed_item_keys=["Ada Lovelace", "Bruno Brandt"],
        success_count=2,
        current_page=2,
        output_location=str(output_dir),
        source_list_url=SOURCE_URL,
        item_label="Data Engineer",
    )
    site = FakeListSite(make_pages(*PAGES))
    events: list = []

    result = _run(tmp_path, site, _job(resume=True), events)

    assert result["status"] == "completed"
    assert result["successCount"] == 3
    assert result["outputLocation"] == str(output_dir)
    assert [p.name for p in output_dir.iterdir()] == ["Cara Chen_CV.pdf"]
    assert "Resuming previous session..." in _messages(events)


def test_resume_without_checkpoint_starts_fresh(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(["Ada Lovelace"]))
    events: list = []

    result = _run(tmp_path, site, _job(resume=True), events)

    assert "Resume requested but no valid checkpoint found. Starting fresh." in _messages(events)
    assert result["successCount"] == 1


def test_fresh_start_replaces_old_checkpoint(tmp_path: Path) -> None:
    CheckpointStore(config.CHECKPOINT_FILE).save(
        processed_item_keys=["Ada Lovelace"], success_count=9, output_location="/old"
    )
    site = FakeListSite(make_pages(["Ada Lovelace"]))

    result = _run(tmp_path, site, _job(), [])

    assert result["successCount"] == 1
    checkpoint = CheckpointStore(config.CHECKPOINT_FILE).load()
    assert checkpoint is not None
    assert checkpoint.success_count == 1
    assert checkpoint.output_location != "/old"


def test_start_page_is_sought_before_processing(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(*PAGES))

    result = _run(tmp_path, site, _job(start_page=2), [])

    assert result["successCount"] == 1
    assert site.page_clicks == ["2"]


def test_item_limit_ends_run(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(*PAGES))

    result = _run(tmp_path, site, _job(max_items=1), [])

    assert result["status"] == "limit_reached"
    assert result["successCount"] == 1


def test_stopped_run_reports_stopped(tmp_path: Path) -> None:
    control = RunControl(sleep=no_sleep)
    control.stop()
    site = FakeListSite(make_pages(*PAGES))
    events: list = []

    result = _run(tmp_path, site, _job(), events, control=control)

    assert result["status"] == "stopped"
    assert result["successCount"] == 0
    assert "Stopped. Saved 0 artifact(s), 0 failed." in _messages(events)


def test_navigation_failure_is_fatal_and_reported(tmp_path: Path) -> None:
    class _Offline(FakeListSite):
        def navigate(self, url, *, timeout=None):
            raise AutomationError("net::ERR_INTERNET_DISCONNECTED")

    site = _Offline(make_pages(*PAGES))
    provider = FakeSessionProvider(site)

    with pytest.raises(NavigationFailed):
        _run(tmp_path, site, _job(), [], provider=provider)

    assert provider.closed == 1
    report = telemetry.load_latest_report()
    assert report is not None
    assert report["status"] == "failed"
    assert "ERR_INTERNET_DISCONNECTED" in report["error"]


def test_invalid_job_is_rejected_before_launch(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(*PAGES))
    provider = FakeSessionProvider(site)

    with pytest.raises(ValueError):
        _run(tmp_path, site, _job(source_list_url="not-a-url"), [], provider=provider)

    assert provider.opened == []


def test_periodic_reload_every_n_pages(tmp_path: Path) -> None:
    site = FakeListSite(make_pages(["Ada Lovelace"], ["Bruno Brandt"], ["Cara Chen"]))

    result = _run(tmp_path, site, _job(), [], reload_every_pages=1)

    assert result["successCount"] == 3
    assert site.reload_count == 2


def test_cli_builds_job_and_leaves_setup_to_the_orchestrator(monkeypatch: pytest.MonkeyPatch) -> None:
    from app.harvester.playwright_adapter import PlaywrightSessionProvider

    setup_calls: list[str] = []
    monkeypatch.setattr(run_module, "ensure_dirs", lambda: setup_calls.append("dirs"))
    monkeypatch.setattr(
        run_module, "validate_runtime_config", lambda entrypoint: setup_calls.append(entrypoint)
    )
    captured: dict[str, Any] = {}

    def _fake_run_job(job: JobConfig, **kwargs: Any) -> dict:
        captured["job"] = job
        captured.update(kwargs)
        return {"status": "completed"}

    monkeypatch.setattr(run_module, "run_job", _fake_run_job)

    run_module._cli_entrypoint([SOURCE_URL, "--max-items", "5", "--resume", "--start-page", "2"])

    assert setup_calls == []
    job = captured["job"]
    assert (job.source_list_url, job.max_items, job.resume, job.start_page) == (SOURCE_URL, 5, True, 2)
    assert isinstance(captured["session_provider"], PlaywrightSessionProvider)
    assert isinstance(captured["control"], RunControl)
