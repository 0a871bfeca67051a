"""Persisting and restoring job checkpoints."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from .utils import log_line, save_json_file, utc_now_iso


@dataclass(frozen=True)
class FailureRecord:
    name: str
    reason: str
    page_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "reason": self.reason, "pageNumber": self.page_number}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FailureRecord":
        try:
            page_number = int(raw.get("pageNumber", 1))
        except (TypeError, ValueError):
            page_number = 1
        return cls(
            name=str(raw.get("name") or ""),
            reason=str(raw.get("reason") or ""),
            page_number=page_number,
        )


@dataclass
class Checkpoint:
    processed_item_keys: Set[str] = field(default_factory=set)
    success_count: int = 0
    failed_items: List[FailureRecord] = field(default_factory=list)
    current_page: int = 1
    output_location: str = ""
    source_list_url: str = ""
    item_label: str = ""
    saved_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processedItemKeys": sorted(self.processed_item_keys),
            "successCount": self.success_count,
            "failedItems": [record.to_dict() for record in self.failed_items],
            "currentPage": self.current_page,
            "outputLocation": self.output_location,
            "sourceListUrl": self.source_list_url,
            "itemLabel": self.item_label,
            "savedAt": self.saved_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Checkpoint":
        keys = raw.get("processedItemKeys") or []
        failures = raw.get("failedItems") or []
        try:
            success_count = int(raw.get("successCount", 0))
        except (TypeError, ValueError):
            success_count = 0
        try:
            current_page = int(raw.get("currentPage", 1))
        except (TypeError, ValueError):
            current_page = 1
        return cls(
            processed_item_keys={str(key) for key in keys if isinstance(key, str) and key.strip()},
            success_count=max(0, success_count),
            failed_items=[FailureRecord.from_dict(item) for item in failures if isinstance(item, dict)],
            current_page=max(1, current_page),
            output_location=str(raw.get("outputLocation") or ""),
            source_list_url=str(raw.get("sourceListUrl") or ""),
            item_label=str(raw.get("itemLabel") or ""),
            saved_at=raw.get("savedAt"),
        )


def _merge_failures(
    existing: Iterable[FailureRecord], incoming: Iterable[FailureRecord]
) -> List[FailureRecord]:
    merged = list(existing)
    seen = set(merged)
    for record in incoming:
        if record not in seen:
            merged.append(record)
            seen.add(record)
    return merged


class CheckpointStore:
    """Read-merge-write persistence for a single job checkpoint file.

    Saves never shrink the processed-key set, never lower the success count
    and never drop failure records, so sequential saves within a job are
    monotonic even when a caller passes a stale view.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Checkpoint]:
        """Return the stored checkpoint, or ``None`` if there is no prior state."""

        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log_line(f"[CHECKPOINT] Failed to read checkpoint {self.path}: {exc}")
            return None
        if not isinstance(raw, dict):
            return None
        return Checkpoint.from_dict(raw)

    def save(
        self,
        *,
        processed_item_keys: Optional[Iterable[str]] = None,
        success_count: Optional[int] = None,
        failed_items: Optional[Iterable[FailureRecord]] = None,
        current_page: Optional[int] = None,
        output_location: Optional[str] = None,
        source_list_url: Optional[str] = None,
        item_label: Optional[str] = None,
    ) -> Checkpoint:
        """Merge the given fields into the stored checkpoint and persist it."""

        state = self.load() or Checkpoint()

        if processed_item_keys is not None:
            state.processed_item_keys |= {key for key in processed_item_keys if key}
        if success_count is not None:
            state.success_count = max(state.success_count, int(success_count))
        if failed_items is not None:
            state.failed_items = _merge_failures(state.failed_items, failed_items)
        if current_page is not None:
            state.current_page = max(1, int(current_page))
        if output_location is not None:
            state.output_location = output_location
        if source_list_url is not None:
            state.source_list_url = source_list_url
        if item_label is not None:
            state.item_label = item_label

        state.saved_at = utc_now_iso()
        save_json_file(self.path, state.to_dict())
        return state

    def clear(self) -> None:
        """Remove the checkpoint file if it exists."""

        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["FailureRecord", "Checkpoint", "CheckpointStore"]
