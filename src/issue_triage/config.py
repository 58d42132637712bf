"""Configuration loading for issue-triage.

Configuration is supplied by the host environment, never by the model. The
GitHub token and API keys are secrets and must never be emitted to the model,
logs, or audit reasons.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CONFIG_ERROR, TriageError

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Non-functional limits."""

    # Network
    total_timeout_s: float = 10.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 10.0

    # Retries
    max_attempts: int = 3
    max_backoff_s: float = 5.0

    # Pagination
    per_page: int = 100
    page_limit: int = 10


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Repository binding, credentials, and service settings."""

    github_token: str
    repo_owner: str
    repo_name: str

    anthropic_api_key: str | None = None
    brave_api_key: str | None = None
    model: str = DEFAULT_MODEL
    max_steps: int = 10
    max_tokens: int = 4096

    audit_log_path: Path | None = None
    audit_max_bytes: int = 5 * 1024 * 1024
    audit_max_backups: int = 2

    host: str = "127.0.0.1"
    port: int = 8000

    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @property
    def repository(self) -> str:
        """Return ``owner/name`` for logs and audit events."""
        return f"{self.repo_owner}/{self.repo_name}"


def _parse_positive_int(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise TriageError(code=CONFIG_ERROR, message=f"{name} must be an integer") from exc
    if parsed < 1:
        raise TriageError(code=CONFIG_ERROR, message=f"{name} must be >= 1")
    return parsed


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def load_config_from_env() -> AppConfig:
    """Load and validate configuration from environment variables.

    Raises:
        TriageError: If configuration is missing/invalid.
    """
    token = _optional(os.getenv("GITHUB_TOKEN"))
    owner = _optional(os.getenv("GITHUB_REPOSITORY_OWNER"))
    name = _optional(os.getenv("GITHUB_REPOSITORY_NAME"))

    if not token or not owner or not name:
        raise TriageError(
            code=CONFIG_ERROR,
            message="Missing required configuration (GITHUB_TOKEN, GITHUB_REPOSITORY_OWNER, GITHUB_REPOSITORY_NAME)",
        )

    if "/" in owner or "/" in name:
        raise TriageError(code=CONFIG_ERROR, message="Repository owner and name must not contain '/'")

    max_steps = _parse_positive_int("TRIAGE_MAX_STEPS", os.getenv("TRIAGE_MAX_STEPS"), 10)
    page_limit = _parse_positive_int("TRIAGE_PAGE_LIMIT", os.getenv("TRIAGE_PAGE_LIMIT"), 10)
    port = _parse_positive_int("TRIAGE_PORT", os.getenv("TRIAGE_PORT"), 8000)

    audit_path_raw = _optional(os.getenv("TRIAGE_AUDIT_LOG_PATH"))
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise TriageError(code=CONFIG_ERROR, message="TRIAGE_AUDIT_LOG_PATH must be an absolute path when set")
        audit_path = p

    return AppConfig(
        github_token=token,
        repo_owner=owner,
        repo_name=name,
        anthropic_api_key=_optional(os.getenv("ANTHROPIC_API_KEY")),
        brave_api_key=_optional(os.getenv("BRAVE_API_KEY")),
        model=_optional(os.getenv("TRIAGE_MODEL")) or DEFAULT_MODEL,
        max_steps=max_steps,
        audit_log_path=audit_path,
        host=_optional(os.getenv("TRIAGE_HOST")) or "127.0.0.1",
        port=port,
        limits=LimitsConfig(page_limit=page_limit),
    )
