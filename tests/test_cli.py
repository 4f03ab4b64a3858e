"""Command line entry point tests."""

from __future__ import annotations

import json
from pathlib import Path

import github_actions_mcp.__main__ as cli
import github_actions_mcp.server as server_mod
import pytest
from github_actions_mcp import __version__
from github_actions_mcp.config import AppConfig
from github_actions_mcp.tools import build_runtime


def test_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        _ = cli.parse_args(["--version"])

    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_modes_are_mutually_exclusive() -> None:
    with pytest.raises(SystemExit) as exc:
        _ = cli.parse_args(["--test", "--check-config"])

    assert exc.value.code == 2


def test_check_config_prints_status_without_token(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = AppConfig(github_token="ghp_never_printed", token_source="GITHUB_PERSONAL_ACCESS_TOKEN")
    monkeypatch.setattr(server_mod, "_runtime", build_runtime(cfg))

    with pytest.raises(SystemExit) as exc:
        cli.main(["--check-config"])

    out = capsys.readouterr().out
    assert exc.value.code == 0
    assert "ghp_never_printed" not in out
    assert json.loads(out)["default_token"] == {"configured": True, "source": "GITHUB_PERSONAL_ACCESS_TOKEN"}


def test_check_config_fails_on_invalid_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(server_mod, "_runtime", None)
    monkeypatch.setenv("GITHUB_ACTIONS_MCP_CONFIG", str(tmp_path / "absent.json"))
    monkeypatch.setenv("GITHUB_ACTIONS_MCP_SETTLE_DELAY_S", "inf")

    assert cli.check_config() == 1
    status = json.loads(capsys.readouterr().out)
    assert status["configured"] is False
    assert "GITHUB_ACTIONS_MCP_SETTLE_DELAY_S" in status["config_error"]


def test_test_flag_runs_self_test(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["--test"])

    assert "4 tools" in capsys.readouterr().err
