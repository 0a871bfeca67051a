from __future__ import annotations

"""Job configuration as submitted by the API or the CLI."""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

from . import config
from .engine import EngineSettings

# API payload keys (camelCase) -> JobConfig attribute.
_PAYLOAD_KEYS = {
    "sourceListUrl": "source_list_url",
    "maxItems": "max_items",
    "minWaitSeconds": "min_wait_seconds",
    "maxWaitSeconds": "max_wait_seconds",
    "breakInterval": "break_interval",
    "breakMinSeconds": "break_min_seconds",
    "breakMaxSeconds": "break_max_seconds",
    "startPage": "start_page",
    "resume": "resume",
    "outputDir": "output_dir",
    "headless": "headless",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass
class JobConfig:
    source_list_url: str
    max_items: int = config.MAX_ITEMS_DEFAULT
    min_wait_seconds: float = config.MIN_WAIT_SECONDS
    max_wait_seconds: float = config.MAX_WAIT_SECONDS
    break_interval: int = config.BREAK_INTERVAL
    break_min_seconds: float = config.BREAK_MIN_SECONDS
    break_max_seconds: float = config.BREAK_MAX_SECONDS
    start_page: int = 1
    resume: bool = False
    output_dir: Optional[str] = None
    headless: bool = config.HEADLESS_DEFAULT

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "JobConfig":
        """Build a job from a camelCase payload; unknown keys are ignored.

        Raises ``ValueError`` for values that cannot be coerced.
        """

        values: Dict[str, Any] = {}
        for key, attr in _PAYLOAD_KEYS.items():
            if key in raw and raw[key] is not None:
                values[attr] = raw[key]
            elif attr in raw and raw[attr] is not None:
                values[attr] = raw[attr]

        if "source_list_url" not in values:
            raise ValueError("sourceListUrl is required.")

        try:
            for attr in ("max_items", "break_interval", "start_page"):
                if attr in values:
                    values[attr] = int(values[attr])
            for attr in ("min_wait_seconds", "max_wait_seconds", "break_min_seconds", "break_max_seconds"):
                if attr in values:
                    values[attr] = float(values[attr])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid job configuration: {exc}") from exc

        for attr in ("resume", "headless"):
            if attr in values:
                values[attr] = _as_bool(values[attr])
        values["source_list_url"] = str(values["source_list_url"]).strip()
        if "output_dir" in values:
            values["output_dir"] = str(values["output_dir"]).strip() or None
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {key: data[attr] for key, attr in _PAYLOAD_KEYS.items()}

    def engine_settings(self, base: Optional[EngineSettings] = None) -> EngineSettings:
        return replace(
            base or EngineSettings(),
            max_items=self.max_items,
            min_wait_seconds=self.min_wait_seconds,
            max_wait_seconds=self.max_wait_seconds,
            break_interval=self.break_interval,
            break_min_seconds=self.break_min_seconds,
            break_max_seconds=self.break_max_seconds,
        )


__all__ = ["JobConfig"]
