from __future__ import annotations

import json
import re
from pathlib import Path

from app.harvester.state import Checkpoint, CheckpointStore, FailureRecord


def test_load_returns_none_without_prior_state(tmp_path: Path) -> None:
    store = CheckpointStore(tmp_path / "job_state.json")
    assert store.exists() is False
    assert store.load() is None


def test_save_uses_camel_case_keys(tmp_path: Path) -> None:
    path = tmp_path / "job_state.json"
    store = CheckpointStore(path)

    store.save(
        processed_item_keys=["Bruno Brandt", "Ada Lovelace"],
        success_count=2,
        failed_items=[FailureRecord("Cara Chen", "No action control found", 1)],
        current_page=3,
        output_location="/tmp/out",
        source_list_url="https://example.test/hiring/jobs/1/applicants/",
        item_label="Data Engineer",
    )

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["processedItemKeys"] == ["Ada Lovelace", "Bruno Brandt"]
    assert raw["successCount"] == 2
    assert raw["failedItems"] == [
        {"name": "Cara Chen", "reason": "No action control found", "pageNumber": 1}
    ]
    assert raw["currentPage"] == 3
    assert raw["outputLocation"] == "/tmp/out"
    assert raw["itemLabel"] == "Data Engineer"
    assert raw["savedAt"].endswith("Z")


def test_saves_are_monotonic(tmp_path: Path) -> None:
    store = CheckpointStore(tmp_path / "job_state.json")
    store.save(
        processed_item_keys=["A", "B"],
        success_count=2,
        failed_items=[FailureRecord("C", "boom", 1)],
    )

    # A stale caller view must not shrink what was stored.
    state = store.save(processed_item_keys=["A"], success_count=1, failed_items=[])

    assert state.processed_item_keys == {"A", "B"}
    assert state.success_count == 2
    assert state.failed_items == [FailureRecord("C", "boom", 1)]


def test_failures_are_not_duplicated(tmp_path: Path) -> None:
    store = CheckpointStore(tmp_path / "job_state.json")
    record = FailureRecord("C", "boom", 2)
    store.save(failed_items=[record])
    state = store.save(failed_items=[record, FailureRecord("D", "boom", 2)])
    assert [failure.name for failure in state.failed_items] == ["C", "D"]


def test_partial_save_keeps_other_fields(tmp_path: Path) -> None:
    store = CheckpointStore(tmp_path / "job_state.json")
    store.save(output_location="/out", source_list_url="https://x.test/a", current_page=4)
    store.save(processed_item_keys=["A"])

    loaded = store.load()
    assert loaded is not None
    assert loaded.output_location == "/out"
    assert loaded.current_page == 4
    assert loaded.processed_item_keys == {"A"}


def test_corrupt_file_loads_as_none(tmp_path: Path) -> None:
    path = tmp_path / "job_state.json"
    path.write_text("{not json", encoding="utf-8")
    assert CheckpointStore(path).load() is None


def test_from_dict_tolerates_bad_values() -> None:
    checkpoint = Checkpoint.from_dict(
        {
            "processedItemKeys": ["A", "", 3, "  "],
            "successCount": "many",
            "currentPage": 0,
            "failedItems": [{"name": "X", "reason": "r", "pageNumber": "two"}, "junk"],
        }
    )
    assert checkpoint.processed_item_keys == {"A"}
    assert checkpoint.success_count == 0
    assert checkpoint.current_page == 1
    assert checkpoint.failed_items == [FailureRecord("X", "r", 1)]


def test_clear_removes_file(tmp_path: Path) -> None:
    store = CheckpointStore(tmp_path / "job_state.json")
    store.save(success_count=1)
    store.clear()
    store.clear()
    assert store.load() is None


def test_save_creates_parent_dirs_and_leaves_no_temp_file(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "job_state.json"
    store = CheckpointStore(path)

    saved = store.save(success_count=1)

    assert path.exists()
    assert list(path.parent.iterdir()) == [path]
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", saved.saved_at or "")
