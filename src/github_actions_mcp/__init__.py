"""GitHub Actions MCP Server.

A Model Context Protocol server that fronts the GitHub REST API for GitHub Actions:
list a repository's workflows with their definitions, read a reusable action's metadata,
trigger a workflow_dispatch event and report the run it created, and fetch recent releases.

Run with: python -m github_actions_mcp
"""

__version__ = "0.1.0"
