from __future__ import annotations

from pathlib import Path

import pytest

from app.harvester import config, utils


def _configure_temp_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "RUNS_DIR", data_dir / "runs")
    monkeypatch.setattr(config, "CHECKPOINT_FILE", data_dir / "job_state.json")
    monkeypatch.setattr(config, "USER_DATA_DIR", data_dir / "user_data")
    monkeypatch.setattr(config, "OUTPUT_BASE_DIR", tmp_path / "output")
    monkeypatch.setattr(config, "MIN_FREE_MB", 0)
    monkeypatch.setattr(config, "ITEM_RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(utils, "_LOGGER_INITIALISED", False)
    return data_dir


@pytest.fixture(autouse=True)
def temp_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep logs, checkpoints and run reports inside the test's tmp dir."""

    return _configure_temp_paths(tmp_path, monkeypatch)
