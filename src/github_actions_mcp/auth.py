"""Per-call token resolution.

An explicit `token` tool argument always wins over the configured default token.
"""

from __future__ import annotations

from .config import AppConfig
from .errors import missing_credential


def resolve_token(explicit: str | None, config: AppConfig) -> str | None:
    """Return the token for one call, or None to go unauthenticated."""
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    return config.github_token


def require_token(explicit: str | None, config: AppConfig) -> str:
    """Like resolve_token, but a missing token is a MissingCredential error.

    Raised before any network call is attempted.
    """
    token = resolve_token(explicit, config)
    if not token:
        raise missing_credential()
    return token
