from __future__ import annotations

"""Error code taxonomy and exception types for harvester failures.

Codes are persisted in failure records and included in structured logs so a
run report can explain why an item failed. Keep them stable.
"""


class ErrorCode:
    OBSTRUCTION = "transient_obstruction"
    CONTEXT_LOST = "context_lost"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    ACTION_UNAVAILABLE = "action_unavailable"
    VERIFICATION_FAILED = "verification_failed"
    RECOVERY_FAILED = "recovery_failed"
    NAVIGATION_FAILED = "navigation_failed"
    INTERNAL = "internal_error"


class AutomationError(Exception):
    """Base error raised by the harvester and the DOM adapters."""

    default_code = ErrorCode.INTERNAL

    def __init__(self, message: str = "", *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code or self.default_code

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


class AutomationTimeout(AutomationError):
    default_code = ErrorCode.TIMEOUT


class ElementNotFound(AutomationError):
    default_code = ErrorCode.NOT_FOUND


class TransientObstruction(AutomationError):
    """The remote app showed an interstitial (e.g. a pending artifact scan)."""

    default_code = ErrorCode.OBSTRUCTION


class ContextLost(AutomationError):
    """Navigation left the list view unexpectedly."""

    default_code = ErrorCode.CONTEXT_LOST


class FatalRunError(AutomationError):
    """Errors that abort the whole run; the checkpoint stays resumable."""


class RecoveryFailed(FatalRunError):
    default_code = ErrorCode.RECOVERY_FAILED


class NavigationFailed(FatalRunError):
    default_code = ErrorCode.NAVIGATION_FAILED


__all__ = [
    "ErrorCode",
    "AutomationError",
    "AutomationTimeout",
    "ElementNotFound",
    "TransientObstruction",
    "ContextLost",
    "FatalRunError",
    "RecoveryFailed",
    "NavigationFailed",
]
