"""Secret redaction for logs.

Tool callers may pass a GitHub token as an argument. Tokens must never reach logs or
audit events, so anything logged about a call goes through these helpers first.
"""

from __future__ import annotations

import re
from typing import Any

_CRED_FIELD_NAMES = {
    "token",
    "access_token",
    "authorization",
    "password",
    "github_token",
}

_TOKEN_PREFIXES = (
    "ghp_",
    "gho_",
    "ghu_",
    "ghs_",
    "ghr_",
    "github_pat_",
)

_JWT_LIKE_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")

REDACTED = "<redacted>"


def looks_like_secret_value(value: str) -> bool:
    """Return True if the value looks like a credential."""
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
    if not isinstance(field_name, str):
        return False
    return field_name.strip().lower() in _CRED_FIELD_NAMES


def redact_text(text: str) -> str:
    """Return a redacted representation safe for logs."""
    if not isinstance(text, str):
        return "<non-string>"
    if looks_like_secret_value(text):
        return REDACTED
    return text


def redact_arguments(obj: Any) -> Any:
    """Return a copy of tool arguments with credential fields and values masked."""
    if isinstance(obj, dict):
        out: dict[Any, Any] = {}
        for k, v in obj.items():
            if looks_like_credential_field_name(str(k)):
                out[k] = REDACTED
            else:
                out[k] = redact_arguments(v)
        return out
    if isinstance(obj, list):
        return [redact_arguments(item) for item in obj]
    if isinstance(obj, str):
        return redact_text(obj)
    return obj
