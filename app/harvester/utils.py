from __future__ import annotations

import json
import logging
import re
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import config

LOGGER = logging.getLogger("listharvest")
_LOGGER_INITIALISED = False
_CURRENT_LOG_FILE: Path = config.LOG_FILE


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED, _CURRENT_LOG_FILE

    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _CURRENT_LOG_FILE = log_path
    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"harvest_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    _ensure_logger()
    return _CURRENT_LOG_FILE


def ensure_dirs() -> None:
    """Ensure that the application's expected directory structure exists."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)
    config.RUNS_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def log_exception(message: str) -> None:
    """Log ``message`` together with the active exception's traceback."""

    _ensure_logger()
    LOGGER.exception(message)


def normalize_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace (including newlines) into single spaces."""

    return re.sub(r"\s+", " ", text or "").strip()


def sanitize_filename_component(component: str | None) -> str:
    """Sanitise a filename component by removing unsafe characters."""

    if not component:
        return ""

    cleaned = "".join(ch if ord(ch) >= 32 else " " for ch in component)
    cleaned = re.sub(r"[\\/:*?\"<>|]+", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = cleaned.strip(" .")

    return cleaned


def truncate_to_max_bytes(value: str, max_bytes: int) -> str:
    """Truncate *value* so its UTF-8 byte length does not exceed *max_bytes*."""

    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value

    encoded = encoded[:max_bytes]
    while encoded and (encoded[-1] & 0b11000000) == 0b10000000:
        encoded = encoded[:-1]

    return encoded.decode("utf-8", "ignore")


def build_artifact_path(
    output_dir: Path,
    label: str | None,
    *,
    suffix: str = "",
    extension: str = ".pdf",
    fallback: str = "item",
) -> Path:
    """Return a free path under *output_dir* for an artifact named after *label*.

    The base name is ``<label><suffix><extension>``; when that file already
    exists an incrementing ``_v2``, ``_v3`` ... version is appended.
    """

    output_dir = Path(output_dir)
    extension = extension if extension.startswith(".") else f".{extension}"
    safe_label = sanitize_filename_component(label) or sanitize_filename_component(fallback) or "item"
    base = truncate_to_max_bytes(f"{safe_label}{suffix}", 200 - len(extension) - 8)

    path = output_dir / f"{base}{extension}"
    version = 2
    while path.exists():
        path = output_dir / f"{base}_v{version}{extension}"
        version += 1
    return path


def disk_has_room(min_free_mb: int, path: Path) -> bool:
    """Return ``True`` if the filesystem holding *path* has *min_free_mb* free."""

    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return False
    return usage.free >= min_free_mb * 1024 * 1024


def load_json_file(path: Path) -> Any:
    """Load JSON from *path*; ``None`` when missing or unreadable."""

    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError):
        return None


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 seconds with a ``Z`` suffix."""

    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def save_json_file(path: Path, payload: Any) -> None:
    """Persist *payload* as JSON at *path* atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
    tmp_path.replace(path)


__all__ = [
    "ensure_dirs",
    "setup_run_logger",
    "get_current_log_path",
    "log_line",
    "log_exception",
    "normalize_whitespace",
    "sanitize_filename_component",
    "truncate_to_max_bytes",
    "build_artifact_path",
    "disk_has_room",
    "load_json_file",
    "save_json_file",
    "utc_now_iso",
]
