"""Tool registry and dispatch layer.

This module:
- defines the tools (public contract surface) and their input schemas
- validates arguments before any GitHub request is made
- implements the read-only tools (workflows, action metadata, releases)
- writes one audit event per call and prefixes failures with the failing operation
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any

import httpx
import yaml

from .audit import AuditLogger, build_event, new_request_id
from .auth import resolve_token
from .config import AppConfig
from .dispatch import dispatch_workflow
from .errors import DENIED_CODES, INTERNAL, PROVIDER_ERROR, USER_INPUT, SafeError, user_input
from .github_client import GitHubClient, RequestBudget
from .models import DispatchRequest

logger = logging.getLogger(__name__)

_TOKEN_PROPERTY = {"type": "string", "description": "GitHub personal access token (optional)"}

TOOL_METADATA: dict[str, dict[str, Any]] = {
    "get_github_actions": {
        "description": "Get available GitHub Actions for a repository",
        "inputSchema": {
            "type": "object",
            "required": ["owner", "repo"],
            "properties": {
                "owner": {"type": "string", "description": "Owner of the repository (username or organization)"},
                "repo": {"type": "string", "description": "Name of the repository"},
                "token": _TOKEN_PROPERTY,
            },
        },
    },
    "get_github_action": {
        "description": (
            "Get detailed information about a specific GitHub Action, including inputs and their requirements"
        ),
        "inputSchema": {
            "type": "object",
            "required": ["owner", "repo"],
            "properties": {
                "owner": {"type": "string", "description": "Owner of the action (username or organization)"},
                "repo": {"type": "string", "description": "Repository name of the action"},
                "path": {
                    "type": "string",
                    "description": "Path to the action.yml or action.yaml file (usually just 'action.yml')",
                },
                "ref": {"type": "string", "description": "Git reference (branch, tag, or commit SHA, default: main)"},
                "token": _TOKEN_PROPERTY,
            },
        },
    },
    "trigger_github_action": {
        "description": "Trigger a GitHub workflow dispatch event with custom inputs",
        "inputSchema": {
            "type": "object",
            "required": ["owner", "repo", "workflow_id"],
            "properties": {
                "owner": {"type": "string", "description": "Owner of the repository (username or organization)"},
                "repo": {"type": "string", "description": "Name of the repository"},
                "workflow_id": {
                    "type": ["string", "integer"],
                    "description": "The ID or filename of the workflow to trigger",
                },
                "ref": {
                    "type": "string",
                    "description": "The git reference to trigger the workflow on (default: main)",
                },
                "inputs": {
                    "type": "object",
                    "description": "Inputs to pass to the workflow (must match the workflow's defined inputs)",
                    "additionalProperties": {"type": ["string", "number", "boolean"]},
                },
                "token": {"type": "string", "description": "GitHub personal access token (must have workflow scope)"},
            },
        },
    },
    "get_github_release": {
        "description": "Get the latest 2 releases from a GitHub repository",
        "inputSchema": {
            "type": "object",
            "required": ["owner", "repo"],
            "properties": {
                "owner": {"type": "string", "description": "Owner of the repository (username or organization)"},
                "repo": {"type": "string", "description": "Name of the repository"},
                "token": _TOKEN_PROPERTY,
            },
        },
    },
}

_REQUIRED_MESSAGES: dict[str, str] = {
    "get_github_actions": "Owner and repo are required",
    "get_github_action": "Owner and repo are required",
    "trigger_github_action": "Owner, repo, and workflow_id are required",
    "get_github_release": "Owner and repo are required",
}

_ERROR_PREFIXES: dict[str, str] = {
    "get_github_actions": "Failed to get GitHub Actions",
    "get_github_action": "Failed to get GitHub Action details",
    "trigger_github_action": "Failed to trigger GitHub Action",
    "get_github_release": "Failed to get GitHub releases",
}

_JSON_TYPE_CHECKS: dict[str, Any] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server dependencies passed explicitly into every tool call."""

    config: AppConfig
    audit: AuditLogger
    github: GitHubClient


def build_runtime(config: AppConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> Runtime:
    audit = AuditLogger(
        sink_path=config.audit_log_path,
        max_bytes=config.audit_max_bytes,
        max_backups=config.audit_max_backups,
    )
    github = GitHubClient(limits=config.limits, api_base_url=config.api_base_url, transport=transport)
    return Runtime(config=config, audit=audit, github=github)


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> None:
    """Validate tool arguments against the tool's declared input schema.

    Enforces required (non-empty) fields and the basic JSON type of each declared property.
    It does NOT implement full JSON Schema.
    """
    if tool_name not in TOOL_METADATA:
        raise user_input("Unknown tool")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})

    for k in schema.get("required", []):
        v = arguments.get(k)
        if v is None or (isinstance(v, str) and not v.strip()):
            raise user_input(_REQUIRED_MESSAGES[tool_name])

    for k, spec in props.items():
        v = arguments.get(k)
        if v is None:
            continue
        expected = spec.get("type")
        allowed = expected if isinstance(expected, list) else [expected]
        if not any(_JSON_TYPE_CHECKS[t](v) for t in allowed):
            raise user_input(f"Field '{k}' must be of type {' or '.join(allowed)}")


def _budget(runtime: Runtime) -> RequestBudget:
    return RequestBudget(total_timeout_s=runtime.config.limits.total_timeout_s)


def _optional_str(arguments: dict[str, Any], key: str) -> str | None:
    v = arguments.get(key)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def _owner_repo(arguments: dict[str, Any]) -> tuple[str, str]:
    return arguments["owner"].strip(), arguments["repo"].strip()


def _decode_file_content(data: object) -> str | None:
    """Decode a contents-API payload into text, or None when it carries no file content."""
    if not isinstance(data, dict):
        return None
    content_b64 = data.get("content")
    if not isinstance(content_b64, str) or not content_b64:
        return None
    decoded = base64.b64decode(content_b64.encode("utf-8"), validate=False)
    try:
        return decoded.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SafeError(code=USER_INPUT, message="Binary file content is not supported") from exc


async def _tool_get_github_actions(runtime: Runtime, arguments: dict[str, Any]) -> list[dict[str, Any]]:
    owner, repo = _owner_repo(arguments)
    token = resolve_token(_optional_str(arguments, "token"), runtime.config)
    budget = _budget(runtime)

    data = await runtime.github.request_json(
        method="GET",
        path=f"/repos/{owner}/{repo}/actions/workflows",
        token=token,
        budget=budget,
    )
    raw_workflows = data.get("workflows") if isinstance(data, dict) else None
    if not isinstance(raw_workflows, list):
        raise SafeError(code=PROVIDER_ERROR, message="Unexpected workflows response")

    workflows = [
        {
            "id": w.get("id"),
            "name": w.get("name"),
            "path": w.get("path"),
            "state": w.get("state"),
            "url": w.get("html_url"),
        }
        for w in raw_workflows
        if isinstance(w, dict)
    ]

    async def with_content(workflow: dict[str, Any]) -> dict[str, Any]:
        wf_path = workflow.get("path")
        if not isinstance(wf_path, str) or not wf_path:
            return workflow
        try:
            payload = await runtime.github.request_json(
                method="GET",
                path=f"/repos/{owner}/{repo}/contents/{wf_path}",
                token=token,
                budget=budget,
            )
            content = _decode_file_content(payload)
        except SafeError as err:
            logger.debug("Could not fetch %s in %s/%s: %s", wf_path, owner, repo, err.message)
            return workflow
        if content is None:
            return workflow
        return {**workflow, "content": content}

    return list(await asyncio.gather(*(with_content(w) for w in workflows)))


def _format_action_inputs(raw_inputs: object) -> list[dict[str, Any]]:
    if not isinstance(raw_inputs, dict):
        return []
    formatted: list[dict[str, Any]] = []
    for name, spec in raw_inputs.items():
        if not isinstance(spec, dict):
            spec = {}
        formatted.append(
            {
                "name": str(name),
                "description": spec.get("description") or "",
                "default": spec.get("default"),
                "required": spec.get("required") is True,
                "deprecationMessage": spec.get("deprecationMessage"),
            }
        )
    return formatted


async def _tool_get_github_action(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    owner, repo = _owner_repo(arguments)
    explicit_path = _optional_str(arguments, "path")
    ref = _optional_str(arguments, "ref") or "main"
    token = resolve_token(_optional_str(arguments, "token"), runtime.config)
    budget = _budget(runtime)

    async def fetch(file_path: str) -> object:
        return await runtime.github.request_json(
            method="GET",
            path=f"/repos/{owner}/{repo}/contents/{file_path}",
            params={"ref": ref},
            token=token,
            budget=budget,
        )

    path = explicit_path or "action.yml"
    try:
        data = await fetch(path)
    except SafeError as err:
        if explicit_path is not None or err.status_code != 404:
            raise
        # GitHub accepts either metadata file name.
        path = "action.yaml"
        data = await fetch(path)

    content = _decode_file_content(data)
    if content is None:
        raise user_input(f"Could not find {path} file in {owner}/{repo}")

    try:
        definition = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise user_input(f"Invalid action metadata in {path}") from exc
    if not isinstance(definition, dict):
        raise user_input(f"Invalid action metadata in {path}")

    return {
        "name": definition.get("name") or "",
        "description": definition.get("description") or "",
        "author": definition.get("author") or "",
        "inputs": _format_action_inputs(definition.get("inputs")),
        "runs": definition.get("runs"),
        "branding": definition.get("branding"),
        "originalYaml": content,
    }


def _format_release(release: dict[str, Any]) -> dict[str, Any]:
    assets = release.get("assets") if isinstance(release.get("assets"), list) else []
    author = release.get("author") if isinstance(release.get("author"), dict) else {}
    return {
        "id": release.get("id"),
        "name": release.get("name") or release.get("tag_name"),
        "tag_name": release.get("tag_name"),
        "published_at": release.get("published_at"),
        "draft": release.get("draft"),
        "prerelease": release.get("prerelease"),
        "html_url": release.get("html_url"),
        "body": release.get("body"),
        "assets": [
            {
                "name": a.get("name"),
                "size": a.get("size"),
                "download_count": a.get("download_count"),
                "browser_download_url": a.get("browser_download_url"),
                "created_at": a.get("created_at"),
                "updated_at": a.get("updated_at"),
            }
            for a in assets
            if isinstance(a, dict)
        ],
        "author": {"login": author.get("login"), "html_url": author.get("html_url")},
    }


async def _tool_get_github_release(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    owner, repo = _owner_repo(arguments)
    token = resolve_token(_optional_str(arguments, "token"), runtime.config)

    try:
        data = await runtime.github.request_json(
            method="GET",
            path=f"/repos/{owner}/{repo}/releases",
            params={"per_page": str(runtime.config.limits.releases_per_page)},
            token=token,
            budget=_budget(runtime),
        )
    except SafeError as err:
        if err.status_code == 404:
            return {"count": 0, "releases": [], "message": "No releases found for this repository"}
        raise

    if not isinstance(data, list):
        raise SafeError(code=PROVIDER_ERROR, message="Unexpected releases response")

    releases = [_format_release(r) for r in data if isinstance(r, dict)]
    return {"count": len(releases), "releases": releases}


async def _tool_trigger_github_action(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    request = DispatchRequest.from_arguments(arguments)
    result = await dispatch_workflow(runtime.github, runtime.config, request)
    return result.to_dict()


_TOOL_FUNCS: dict[str, Any] = {
    "get_github_actions": _tool_get_github_actions,
    "get_github_action": _tool_get_github_action,
    "trigger_github_action": _tool_trigger_github_action,
    "get_github_release": _tool_get_github_release,
}


def _target_repo_from_args(arguments: dict[str, Any]) -> str:
    owner = arguments.get("owner")
    repo = arguments.get("repo")
    if isinstance(owner, str) and isinstance(repo, str) and owner and repo:
        return f"{owner}/{repo}"
    return "<unknown>"


async def dispatch_tool(runtime: Runtime, name: str, arguments: dict[str, Any]) -> Any:
    """Run one tool call and return its JSON-serializable result.

    Argument problems are raised as-is; failures inside a tool are raised with a message
    prefixed by the failing operation (e.g. "Failed to trigger GitHub Action: ...").

    Raises:
        SafeError: On any failure. Exactly one audit event is written either way, including
            when the call is cancelled.
    """
    request_id = new_request_id()
    target_repo = _target_repo_from_args(arguments)
    start = runtime.audit.measure_start()

    def audit(outcome: str, reason: str | None = None, status_code: int | None = None) -> None:
        runtime.audit.write_event(
            build_event(
                request_id=request_id,
                operation=name,
                target_repo=target_repo,
                outcome=outcome,
                reason=reason,
                status_code=status_code,
                duration_ms=runtime.audit.measure_duration_ms(start),
            )
        )

    try:
        if name not in TOOL_METADATA:
            raise SafeError(
                code=USER_INPUT,
                message="Unknown tool",
                hint=f"Available tools: {', '.join(sorted(TOOL_METADATA))}",
            )
        validate_tool_arguments(name, arguments)

        func = _TOOL_FUNCS[name]
        try:
            result = await func(runtime, arguments)
        except SafeError as err:
            raise err.with_prefix(_ERROR_PREFIXES[name]) from err

    except SafeError as err:
        audit("denied" if err.code in DENIED_CODES else "failed", err.message, err.status_code)
        raise
    except asyncio.CancelledError:
        # A cancelled trigger may already have sent its dispatch.
        audit("failed", "Cancelled")
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.exception("Tool %s crashed", name)
        audit("failed", "Internal error")
        raise SafeError(code=INTERNAL, message=f"{_ERROR_PREFIXES[name]}: Internal error") from exc

    audit("succeeded")
    return result
