from __future__ import annotations

import pytest

from app.harvester import config, retry_policy
from app.harvester.error_codes import ErrorCode


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_harvester_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (6, True, "retryable"),
        (7, False, "capped"),
        (9, False, "capped"),
    ],
)
def test_timeout_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 7, error_code=ErrorCode.TIMEOUT, item="Ada")
    assert result is expected
    assert len(event_recorder) == 1
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 7
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind
    assert fields["item"] == "Ada"


@pytest.mark.parametrize(
    "error_code",
    [ErrorCode.ACTION_UNAVAILABLE, ErrorCode.VERIFICATION_FAILED, ErrorCode.RECOVERY_FAILED],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 7, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["will_retry"] is False


@pytest.mark.parametrize(
    "error_code, expected_kind",
    [("", "missing_error_code"), (None, "missing_error_code"), ("mystery", "unknown")],
)
def test_missing_or_unknown_error_codes(
    error_code: str | None, expected_kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    assert retry_policy.decide_retry(1, 7, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == expected_kind


def test_context_loss_is_retryable(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(2, 7, error_code=ErrorCode.CONTEXT_LOST) is True


def test_backoff_is_constant(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "ITEM_RETRY_BACKOFF_SECONDS", 2.0)
    assert retry_policy.compute_backoff_seconds(1) == 2.0
    assert retry_policy.compute_backoff_seconds(6) == 2.0


def test_result_variants_carry_reason() -> None:
    failure = retry_policy.PermanentFailure(ErrorCode.ACTION_UNAVAILABLE, "No action control found")
    assert failure.code == "action_unavailable"
    assert retry_policy.Success().artifact_path is None
