"""MCP server wiring for github-actions-mcp."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import Prompt, Resource, TextContent, Tool
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .config import load_config_from_env
from .errors import SafeError
from .safety import redact_arguments
from .tools import TOOL_METADATA, Runtime, build_runtime, dispatch_tool

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

SERVER_NAME = "github-actions-mcp"
STATUS_URI = "github-actions-mcp://server-status"

server = Server(SERVER_NAME)

_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """Build the runtime from the environment on first use and reuse it afterwards."""
    global _runtime  # pylint: disable=global-statement
    if _runtime is None:
        config = load_config_from_env()
        if config.token_source:
            logger.info("Using default GitHub token from %s", config.token_source)
        else:
            logger.info("No default GitHub token configured; tools require a 'token' argument to authenticate")
        _runtime = build_runtime(config)
    return _runtime


def _tools() -> list[Tool]:
    return [
        Tool(name=tool_name, description=metadata["description"], inputSchema=metadata["inputSchema"])
        for tool_name, metadata in TOOL_METADATA.items()
    ]


def _resources() -> list[Resource]:
    return [
        Resource(
            uri=STATUS_URI,
            name="Server Status",
            description="Non-secret server configuration and limits",
            mimeType="application/json",
        ),
    ]


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    tools = _tools()
    logger.info("Listed %s tools", len(tools))
    return tools


@server.call_tool(validate_input=False)
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Execute a tool and return its result as JSON text.

    Arguments are checked by `dispatch_tool` only, so every call gets its documented
    validation message and an audit event. Failures propagate as exceptions; the MCP
    server reports them to the client as tool errors carrying the exception message.
    """
    if not isinstance(arguments, dict):
        arguments = {}

    logger.info("Tool called: %s %s", name, json.dumps(redact_arguments(arguments), default=str))

    try:
        result = await dispatch_tool(get_runtime(), name, arguments)
    except SafeError as exc:
        logger.error("Tool %s failed [%s]: %s", name, exc.code, exc.message)
        raise

    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


@server.list_prompts()
async def list_prompts() -> list[Prompt]:
    return []


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return _resources()


def build_status() -> dict[str, Any]:
    """Non-secret status: version, tools, and the configuration loaded from the environment."""
    status: dict[str, Any] = {
        "server": SERVER_NAME,
        "version": __version__,
        "tools_available": len(TOOL_METADATA),
        "tool_names": sorted(TOOL_METADATA),
        "configured": False,
    }
    try:
        runtime = get_runtime()
    except SafeError as exc:
        status["config_error"] = exc.message
        return status

    limits = runtime.config.limits
    status["configured"] = True
    status["default_token"] = {
        "configured": runtime.config.github_token is not None,
        "source": runtime.config.token_source,
    }
    status["limits"] = {
        "total_timeout_s": limits.total_timeout_s,
        "settle_delay_s": limits.settle_delay_s,
        "correlation_window_s": limits.correlation_window_s,
        "recent_runs_per_page": limits.recent_runs_per_page,
        "releases_per_page": limits.releases_per_page,
    }
    status["audit"] = {"file_sink_enabled": runtime.config.audit_log_path is not None}
    return status


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = uri if isinstance(uri, str) else str(uri)

    if uri_s == STATUS_URI:
        return json.dumps(build_status(), indent=2)

    return json.dumps({"code": "NotFound", "message": "Unknown resource"}, indent=2)


async def run_server() -> None:
    """Run the server over stdio."""
    # Fail fast on invalid host configuration.
    try:
        _ = get_runtime()
    except SafeError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def test_server() -> None:
    """Lightweight self-test: build the tool and resource listings."""
    tools = _tools()
    resources = _resources()
    print(f"{SERVER_NAME} {__version__}: {len(tools)} tools, {len(resources)} resources", file=sys.stderr)
