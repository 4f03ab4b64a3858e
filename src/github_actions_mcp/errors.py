"""Error kinds and helpers.

Every failure surfaced to a tool caller is a SafeError with a stable `code`, so callers
can branch on the kind rather than on message text. Messages must never include tokens.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

MISSING_CREDENTIAL = "MissingCredential"
NOT_FOUND_OR_FORBIDDEN = "NotFoundOrForbidden"
VALIDATION_FAILED = "ValidationFailed"
AUTHENTICATION_FAILED = "AuthenticationFailed"
PROVIDER_ERROR = "ProviderError"
UNEXPECTED_PROTOCOL = "UnexpectedProtocol"

USER_INPUT = "UserInput"
NETWORK = "Network"
CONFIG = "Config"
INTERNAL = "Internal"

# Failures caused by the caller or the host configuration rather than by GitHub.
DENIED_CODES = frozenset({USER_INPUT, CONFIG, MISSING_CREDENTIAL})


@dataclass(frozen=True, slots=True)
class SafeError(Exception):
    """An error safe to expose to tool callers.

    `hint` is guidance for the caller. `provider_message` is GitHub's own error text, when
    the failure came from an API response.
    """

    code: str
    message: str
    hint: str | None = None
    status_code: int | None = None
    provider_message: str | None = None

    def __str__(self) -> str:
        return self.message

    def with_prefix(self, prefix: str) -> SafeError:
        """Return a copy whose message names the failing operation."""
        return dataclasses.replace(self, message=f"{prefix}: {self.message}")


def missing_credential() -> SafeError:
    return SafeError(
        code=MISSING_CREDENTIAL,
        message="GitHub token is required to trigger workflow dispatch events",
        hint="Pass a 'token' argument or set GITHUB_PERSONAL_ACCESS_TOKEN / GITHUB_TOKEN",
    )


def provider_error(*, status_code: int, reason: str, provider_message: str) -> SafeError:
    """Generic non-2xx GitHub failure, before any operation-specific translation."""
    status = f"{status_code} {reason}".strip()
    return SafeError(
        code=PROVIDER_ERROR,
        message=f"GitHub API error: {status} - {provider_message}",
        status_code=status_code,
        provider_message=provider_message,
    )


def user_input(message: str) -> SafeError:
    return SafeError(code=USER_INPUT, message=message)
