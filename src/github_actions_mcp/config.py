"""Configuration loading for github-actions-mcp.

Configuration is supplied by the host environment (e.g., MCP client config), not by the agent.
The default GitHub token is a secret: only the name of the source it came from may be logged.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CONFIG, SafeError

GITHUB_API_BASE_URL = "https://api.github.com"

# Written by older setup scripts into the template config file.
_PLACEHOLDER_TOKEN = "YOUR_GITHUB_TOKEN_HERE"

_TOKEN_ENV_VARS = ("GITHUB_PERSONAL_ACCESS_TOKEN", "GITHUB_TOKEN")


def default_config_file() -> Path:
    return Path.home() / ".github-actions-mcp" / "config.json"


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Timeouts, retry bounds and run-correlation tuning."""

    # Network
    total_timeout_s: float = 30.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 20.0

    # Retries (read-only requests; dispatch is never retried)
    max_attempts: int = 3
    max_backoff_s: float = 5.0

    # Run correlation
    settle_delay_s: float = 3.0
    correlation_window_s: float = 10.0
    recent_runs_per_page: int = 5

    releases_per_page: int = 2


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Host configuration threaded into every tool call."""

    github_token: str | None = field(default=None, repr=False)
    token_source: str | None = None
    api_base_url: str = GITHUB_API_BASE_URL
    audit_log_path: Path | None = None
    audit_max_bytes: int = 5 * 1024 * 1024
    audit_max_backups: int = 2
    limits: LimitsConfig = field(default_factory=LimitsConfig)


def _parse_float(name: str, value: str | None, *, default: float, allow_zero: bool) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise SafeError(code=CONFIG, message=f"{name} must be a number") from exc
    if not math.isfinite(parsed):
        raise SafeError(code=CONFIG, message=f"{name} must be a finite number")
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise SafeError(code=CONFIG, message=f"{name} must be {'non-negative' if allow_zero else 'positive'}")
    return parsed


def _read_token_from_file(path: Path) -> str | None:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SafeError(code=CONFIG, message="Config file is unreadable or not valid JSON") from exc
    if not isinstance(data, dict):
        raise SafeError(code=CONFIG, message="Config file must contain a JSON object")

    token = data.get("githubToken")
    if not isinstance(token, str) or not token.strip() or token == _PLACEHOLDER_TOKEN:
        return None
    return token.strip()


def resolve_default_token(config_file: Path | None = None) -> tuple[str | None, str | None]:
    """Find the process-wide default token and the name of its source.

    Priority: GITHUB_PERSONAL_ACCESS_TOKEN > GITHUB_TOKEN > config file.
    """
    for name in _TOKEN_ENV_VARS:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip(), name

    path = config_file
    if path is None:
        override = os.getenv("GITHUB_ACTIONS_MCP_CONFIG")
        path = Path(override) if override else default_config_file()

    token = _read_token_from_file(path)
    if token is not None:
        return token, "config_file"
    return None, None


def load_config_from_env() -> AppConfig:
    """Load and validate configuration from environment variables.

    Raises:
        SafeError: If configuration is invalid.
    """
    token, source = resolve_default_token()

    defaults = LimitsConfig()
    total_timeout_s = _parse_float(
        "GITHUB_ACTIONS_MCP_TIMEOUT_S",
        os.getenv("GITHUB_ACTIONS_MCP_TIMEOUT_S"),
        default=defaults.total_timeout_s,
        allow_zero=False,
    )
    settle_delay_s = _parse_float(
        "GITHUB_ACTIONS_MCP_SETTLE_DELAY_S",
        os.getenv("GITHUB_ACTIONS_MCP_SETTLE_DELAY_S"),
        default=defaults.settle_delay_s,
        allow_zero=True,
    )

    audit_path_raw = os.getenv("GITHUB_ACTIONS_MCP_AUDIT_LOG_PATH")
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise SafeError(code=CONFIG, message="GITHUB_ACTIONS_MCP_AUDIT_LOG_PATH must be an absolute path when set")
        audit_path = p

    return AppConfig(
        github_token=token,
        token_source=source,
        audit_log_path=audit_path,
        limits=LimitsConfig(total_timeout_s=total_timeout_s, settle_delay_s=settle_delay_s),
    )
