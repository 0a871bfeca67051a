from __future__ import annotations

from typing import Literal
from urllib.parse import urlparse

from . import config
from .job import JobConfig
from .logging_utils import _harvester_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, job: str | None = None
) -> None:
    _harvester_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        job=job,
    )
    job_fragment = f", job={job}" if job else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{job_fragment})")
    raise ValueError(message)


def _clamp(field_name: str, value: float, adjusted: float, *, entrypoint: Entrypoint, reason: str) -> None:
    _harvester_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field_name,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field_name} {reason}; clamping to {adjusted}.")
    setattr(config, field_name, adjusted)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Out-of-range tunables (probabilities, retry bounds) are clamped and
    logged but do not raise.
    """

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
        )

    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("DETAIL_ATTACH_TIMEOUT_SECONDS", config.DETAIL_ATTACH_TIMEOUT_SECONDS),
        ("DETAIL_MATCH_TIMEOUT_SECONDS", config.DETAIL_MATCH_TIMEOUT_SECONDS),
        ("ARTIFACT_TIMEOUT_SECONDS", config.ARTIFACT_TIMEOUT_SECONDS),
        ("ADVANCE_TIMEOUT_SECONDS", config.ADVANCE_TIMEOUT_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    for field_name in ("IDLE_PROBABILITY", "MICRO_PAUSE_PROBABILITY"):
        value = getattr(config, field_name)
        if not 0.0 <= value <= 1.0:
            _clamp(
                field_name,
                value,
                min(1.0, max(0.0, value)),
                entrypoint=entrypoint,
                reason="outside [0, 1]",
            )

    if not 0.0 < config.FUZZY_MATCH_THRESHOLD <= 1.0:
        _clamp(
            "FUZZY_MATCH_THRESHOLD",
            config.FUZZY_MATCH_THRESHOLD,
            0.5,
            entrypoint=entrypoint,
            reason="outside (0, 1]",
        )

    for field_name in ("SELECT_MAX_ATTEMPTS", "ITEM_MAX_ATTEMPTS", "SEEK_MAX_ITERATIONS"):
        value = getattr(config, field_name)
        if value < 1:
            _clamp(field_name, value, 1, entrypoint=entrypoint, reason="< 1")

    if config.OBSTRUCTION_MAX_RELOADS < 0:
        _clamp(
            "OBSTRUCTION_MAX_RELOADS",
            config.OBSTRUCTION_MAX_RELOADS,
            0,
            entrypoint=entrypoint,
            reason="is negative",
        )


def validate_job_config(job: JobConfig, *, entrypoint: Entrypoint = "cli") -> None:
    """Raise ``ValueError`` when *job* cannot be run as given."""

    url = job.source_list_url
    parsed = urlparse(url or "")
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        _raise_config_error(
            "sourceListUrl must be an absolute http(s) URL.",
            entrypoint=entrypoint,
            error="invalid_source_url",
            job=url or None,
        )
    if job.max_items < 1:
        _raise_config_error(
            "maxItems must be at least 1.", entrypoint=entrypoint, error="invalid_max_items", job=url
        )
    if job.min_wait_seconds < 0 or job.max_wait_seconds < job.min_wait_seconds:
        _raise_config_error(
            "Wait range must satisfy 0 <= minWaitSeconds <= maxWaitSeconds.",
            entrypoint=entrypoint,
            error="invalid_wait_range",
            job=url,
        )
    if job.break_interval < 0:
        _raise_config_error(
            "breakInterval must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_break_interval",
            job=url,
        )
    if job.break_min_seconds < 0 or job.break_max_seconds < job.break_min_seconds:
        _raise_config_error(
            "Break range must satisfy 0 <= breakMinSeconds <= breakMaxSeconds.",
            entrypoint=entrypoint,
            error="invalid_break_range",
            job=url,
        )
    if job.start_page < 1:
        _raise_config_error(
            "startPage must be at least 1.", entrypoint=entrypoint, error="invalid_start_page", job=url
        )


__all__ = ["validate_runtime_config", "validate_job_config", "Entrypoint"]
