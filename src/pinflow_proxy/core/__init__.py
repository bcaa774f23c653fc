"""Core logic — models, errors, output parsing, retry, and API clients.

Framework-agnostic: nothing here imports MCP, FastMCP or Starlette.
"""
