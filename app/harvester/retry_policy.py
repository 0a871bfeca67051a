from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from . import config
from .error_codes import ErrorCode
from .logging_utils import _harvester_event

RETRYABLE_ERROR_CODES = {
    ErrorCode.TIMEOUT,
    ErrorCode.NOT_FOUND,
    ErrorCode.CONTEXT_LOST,
}

NON_RETRYABLE_ERROR_CODES = {
    # Legitimate terminal state for an item.
    ErrorCode.ACTION_UNAVAILABLE,
    # Selection is already retried in-place before this is reported.
    ErrorCode.VERIFICATION_FAILED,
    ErrorCode.INTERNAL,
    # Run-scoped failures are never retried per item.
    ErrorCode.RECOVERY_FAILED,
    ErrorCode.NAVIGATION_FAILED,
}


@dataclass(frozen=True)
class Success:
    artifact_path: Optional[Path] = None


@dataclass(frozen=True)
class RetryableFailure:
    code: str
    reason: str


@dataclass(frozen=True)
class PermanentFailure:
    code: str
    reason: str


StepResult = Union[Success, RetryableFailure, PermanentFailure]


def compute_backoff_seconds(attempt_index: int) -> float:
    """Return the per-item backoff; constant regardless of the attempt."""

    return float(max(0.0, config.ITEM_RETRY_BACKOFF_SECONDS))


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    *,
    error_code: Optional[str] = None,
    item: Optional[str] = None,
) -> bool:
    """Decide whether a failed item attempt (1-based) should be retried."""

    if attempt_index >= max_attempts:
        _harvester_event(
            "state",
            phase="retry_decision",
            kind="capped",
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_code=error_code,
            item=item,
            will_retry=False,
        )
        return False

    code = (error_code or "").strip()
    if code in NON_RETRYABLE_ERROR_CODES:
        _harvester_event(
            "state",
            phase="retry_decision",
            kind="non_retryable",
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            item=item,
            will_retry=False,
        )
        return False

    if code in RETRYABLE_ERROR_CODES:
        _harvester_event(
            "state",
            phase="retry_decision",
            kind="retryable",
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            item=item,
            will_retry=True,
        )
        return True

    _harvester_event(
        "state",
        phase="retry_decision",
        kind="unknown" if code else "missing_error_code",
        error_code=code or None,
        attempt=attempt_index,
        max_attempts=max_attempts,
        item=item,
        will_retry=False,
    )
    return False


__all__ = [
    "Success",
    "RetryableFailure",
    "PermanentFailure",
    "StepResult",
    "decide_retry",
    "compute_backoff_seconds",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
