"""Safety helpers.

Deterministic credential detection for model-supplied tool arguments and
redaction for log lines.

Key rule: free text coming from the model is written back to GitHub (status
reasons end up in the issue body), so a value that looks like a credential is
rejected and never echoed.
"""

from __future__ import annotations

import re
from typing import Any

from .errors import VALIDATION_ERROR, TriageError

_CRED_FIELD_NAMES = {
    "token",
    "access_token",
    "authorization",
    "password",
    "api_key",
    "apikey",
    "private_key",
}

_TOKEN_PREFIXES = (
    "ghp_",
    "gho_",
    "ghu_",
    "ghs_",
    "github_pat_",
    "sk-ant-",
)

_JWT_LIKE_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


def looks_like_secret_value(value: str) -> bool:
    """Return True if the value looks like a credential.

    Matching rules:
    - known token prefix at start after trimming leading whitespace
    - bearer prefix treated case-insensitively
    - JWT-looking value treated as secret-like
    """
    if not isinstance(value, str):
        return False
    trimmed = value.lstrip()
    lowered = trimmed.lower()
    if lowered.startswith("bearer "):
        return True
    if lowered.startswith(_TOKEN_PREFIXES):
        return True
    if len(trimmed) >= 40 and _JWT_LIKE_RE.match(trimmed):
        return True
    return False


def looks_like_credential_field_name(field_name: str) -> bool:
    """Return True if a key name looks like a credential field."""
    if not isinstance(field_name, str):
        return False
    return field_name.strip().lower() in _CRED_FIELD_NAMES


def validate_no_secrets(obj: Any) -> None:
    """Reject model-provided input that appears to contain credentials.

    Raises TriageError without echoing any suspected secret value.
    """
    if isinstance(obj, dict):
        for k, v in obj.items():
            if looks_like_credential_field_name(str(k)):
                raise TriageError(code=VALIDATION_ERROR, message="Credential-like fields are not allowed")
            validate_no_secrets(v)
        return
    if isinstance(obj, list):
        for item in obj:
            validate_no_secrets(item)
        return
    if isinstance(obj, str):
        if looks_like_secret_value(obj):
            raise TriageError(code=VALIDATION_ERROR, message="Credential-like values are not allowed")
        return


def redact_text(text: str) -> str:
    """Return a redacted representation safe for logs."""
    if not isinstance(text, str):
        return "<non-string>"
    if looks_like_secret_value(text):
        return "<redacted>"
    return text
