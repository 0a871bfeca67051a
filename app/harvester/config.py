"""Configuration constants for the list harvester."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("HARVESTER_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
RUNS_DIR: Path = DATA_DIR / "runs"
CHECKPOINT_FILE: Path = Path(
    os.getenv("HARVESTER_CHECKPOINT_FILE", str(DATA_DIR / "job_state.json"))
)
USER_DATA_DIR: Path = Path(os.getenv("HARVESTER_USER_DATA_DIR", str(DATA_DIR / "user_data")))
OUTPUT_BASE_DIR: Path = Path(
    os.getenv("HARVESTER_OUTPUT_DIR", str(Path.home() / "Downloads" / "LinkedIn_CVs"))
)

USER_AGENT: str = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
LOCALE: str = os.getenv("HARVESTER_LOCALE", "en-US")
TIMEZONE: str = os.getenv("HARVESTER_TIMEZONE", "Europe/Istanbul")
HEADLESS_DEFAULT: bool = os.getenv("HARVESTER_HEADLESS", "false").strip().lower() in {"1", "true"}

ARTIFACT_SUFFIX: str = os.getenv("HARVESTER_ARTIFACT_SUFFIX", "_CV")
ARTIFACT_DEFAULT_EXT: str = ".pdf"
MIN_FREE_MB: int = int(os.getenv("MIN_FREE_MB", "200"))


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 0.1) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_int(env_var: str, default: int) -> int:
    try:
        return int(os.getenv(env_var, str(default)))
    except ValueError:
        return default


def _parse_float(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


# Navigation (seconds)
NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds("HARVESTER_NAV_TIMEOUT_SECONDS", 60)
LIST_VISIBLE_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "HARVESTER_LIST_VISIBLE_TIMEOUT_SECONDS", 30
)
PAGE_LOAD_WAIT_SECONDS: float = _parse_float("HARVESTER_PAGE_LOAD_WAIT_SECONDS", 3.0)
PAGE_WAIT_MIN_SECONDS: float = _parse_float("HARVESTER_PAGE_WAIT_MIN_SECONDS", 2.0)
PAGE_WAIT_MAX_SECONDS: float = _parse_float("HARVESTER_PAGE_WAIT_MAX_SECONDS", 5.0)

# Detail view sync
DETAIL_ATTACH_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "HARVESTER_DETAIL_ATTACH_TIMEOUT_SECONDS", 10
)
DETAIL_MATCH_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "HARVESTER_DETAIL_MATCH_TIMEOUT_SECONDS", 5
)
ACTION_ATTACH_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "HARVESTER_ACTION_ATTACH_TIMEOUT_SECONDS", 5
)
ARTIFACT_TIMEOUT_SECONDS: float = _parse_timeout_seconds("HARVESTER_ARTIFACT_TIMEOUT_SECONDS", 30)
ELEMENT_TIMEOUT_SECONDS: float = _parse_timeout_seconds("HARVESTER_ELEMENT_TIMEOUT_SECONDS", 5)
POLL_INTERVAL_SECONDS: float = _parse_float("HARVESTER_POLL_INTERVAL_SECONDS", 0.25)

# Pagination
ADVANCE_TIMEOUT_SECONDS: float = _parse_timeout_seconds("HARVESTER_ADVANCE_TIMEOUT_SECONDS", 15)
SEEK_ACTIVATE_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "HARVESTER_SEEK_ACTIVATE_TIMEOUT_SECONDS", 10
)
SEEK_MAX_ITERATIONS: int = _parse_int("HARVESTER_SEEK_MAX_ITERATIONS", 50)
RELOAD_EVERY_PAGES: int = _parse_int("HARVESTER_RELOAD_EVERY_PAGES", 10)

# Per-item retry bounds
SELECT_MAX_ATTEMPTS: int = _parse_int("HARVESTER_SELECT_MAX_ATTEMPTS", 7)
FORCE_CLICK_FROM_ATTEMPT: int = _parse_int("HARVESTER_FORCE_CLICK_FROM_ATTEMPT", 3)
ITEM_MAX_ATTEMPTS: int = _parse_int("HARVESTER_ITEM_MAX_ATTEMPTS", 7)
ITEM_RETRY_BACKOFF_SECONDS: float = _parse_float("HARVESTER_ITEM_RETRY_BACKOFF_SECONDS", 2.0)
OBSTRUCTION_MAX_RELOADS: int = _parse_int("HARVESTER_OBSTRUCTION_MAX_RELOADS", 3)

# List recovery
RECOVERY_MAX_SCROLL_ATTEMPTS: int = _parse_int("HARVESTER_RECOVERY_MAX_SCROLL_ATTEMPTS", 50)
RECOVERY_STAGNATION_LIMIT: int = _parse_int("HARVESTER_RECOVERY_STAGNATION_LIMIT", 10)
LAZY_LOAD_SETTLE_SECONDS: float = _parse_float("HARVESTER_LAZY_LOAD_SETTLE_SECONDS", 1.0)
LAZY_LOAD_POLLS: int = _parse_int("HARVESTER_LAZY_LOAD_POLLS", 3)

# Pacing
MIN_WAIT_SECONDS: float = _parse_float("HARVESTER_MIN_WAIT_SECONDS", 3)
MAX_WAIT_SECONDS: float = _parse_float("HARVESTER_MAX_WAIT_SECONDS", 8)
MICRO_PAUSE_MIN_MS: int = _parse_int("HARVESTER_MICRO_PAUSE_MIN_MS", 300)
MICRO_PAUSE_MAX_MS: int = _parse_int("HARVESTER_MICRO_PAUSE_MAX_MS", 700)
MICRO_PAUSE_PROBABILITY: float = _parse_float("HARVESTER_MICRO_PAUSE_PROBABILITY", 0.2)
IDLE_PROBABILITY: float = _parse_float("HARVESTER_IDLE_PROBABILITY", 0.3)
BREAK_INTERVAL: int = _parse_int("HARVESTER_BREAK_INTERVAL", 25)
BREAK_MIN_SECONDS: float = _parse_float("HARVESTER_BREAK_MIN_SECONDS", 60)
BREAK_MAX_SECONDS: float = _parse_float("HARVESTER_BREAK_MAX_SECONDS", 180)
PAUSE_POLL_SECONDS: float = _parse_float("HARVESTER_PAUSE_POLL_SECONDS", 0.5)

# Matching
FUZZY_MATCH_THRESHOLD: float = _parse_float("HARVESTER_FUZZY_MATCH_THRESHOLD", 0.5)
INVALID_IDENTITIES: tuple[str, ...] = tuple(
    part.strip()
    for part in os.getenv(
        "HARVESTER_INVALID_IDENTITIES", "LinkedIn Üyesi,LinkedIn Member,Unknown,Gizli"
    ).split(",")
    if part.strip()
)

# Checkpointing
CHECKPOINT_EVERY_SUCCESSES: int = _parse_int("HARVESTER_CHECKPOINT_EVERY_SUCCESSES", 5)
MAX_ITEMS_DEFAULT: int = _parse_int("HARVESTER_MAX_ITEMS", 100)
