"""Error taxonomy and tool envelope helpers.

Errors surfaced to the model or to HTTP callers must be stable and must never
carry credentials.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

VALIDATION_ERROR = "ValidationError"
NOT_FOUND = "NotFound"
GITHUB_API_ERROR = "GitHubApiError"
EXTERNAL_API_ERROR = "ExternalApiError"
INTERNAL_ERROR = "InternalError"
CONFIG_ERROR = "Config"


@dataclass(frozen=True, slots=True)
class TriageError(Exception):
    """An error safe to expose to the model and to HTTP callers.

    ``hint`` carries the upstream cause (for example GitHub's error message) when
    one is available.
    """

    code: str
    message: str
    hint: str | None = None
    status_code: int | None = None


def github_auth_failed(*, status_code: int) -> TriageError:
    """Return a GitHubApiError for 401/403 responses.

    Used when the configured token is missing, expired, or lacks repository scope.
    """
    return TriageError(
        code=GITHUB_API_ERROR,
        message="GitHub rejected the configured token",
        hint="Check that GITHUB_TOKEN is valid and has access to the repository",
        status_code=status_code,
    )


def triage_error_to_result(err: TriageError) -> dict[str, Any]:
    """Convert a TriageError into the standard tool envelope."""
    return to_error_result(code=err.code, message=err.message, hint=err.hint)


def to_error_result(*, code: str, message: str, hint: str | None = None) -> dict[str, Any]:
    """Build a standard tool error envelope."""
    out: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if hint:
        out["hint"] = hint
    return out


def internal_error(message: str = "Internal error") -> dict[str, Any]:
    """Error for unexpected failures."""
    return to_error_result(code=INTERNAL_ERROR, message=message)
