#!/usr/bin/env python3
"""github-actions-mcp entry point.

Run:
  github-actions-mcp                  # serve MCP over stdio
  github-actions-mcp --test           # list tools and resources, then exit
  github-actions-mcp --check-config   # print the resolved (non-secret) configuration, then exit
"""

import argparse
import asyncio
import json
import sys

from github_actions_mcp import __version__
from github_actions_mcp.server import build_status, run_server, test_server


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="github-actions-mcp",
        description="MCP server for listing, inspecting and triggering GitHub Actions workflows.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--test",
        action="store_true",
        help="Build the tool and resource listings, then exit.",
    )
    mode.add_argument(
        "--check-config",
        action="store_true",
        help="Resolve configuration from the environment, print it without secrets, then exit. "
        "Exits with status 1 when the configuration is invalid.",
    )
    return parser.parse_args(argv)


def check_config() -> int:
    """Print the server status as JSON on stdout; return the process exit code."""
    status = build_status()
    print(json.dumps(status, indent=2))
    return 0 if status["configured"] else 1


def main(argv: list[str] | None = None) -> None:
    """CLI dispatcher for the MCP server."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.check_config:
        sys.exit(check_config())

    try:
        if args.test:
            asyncio.run(test_server())
        else:
            asyncio.run(run_server())
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)


if __name__ == "__main__":
    main()
