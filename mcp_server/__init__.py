"""MCP server exposing Web2Desk tools.

This module implements the Model Context Protocol (MCP) server that
exposes the core web2desk functionality to AI tools and external systems.

MCP tools:
- Are safe to call repeatedly where applicable (status checks)
- Return structured errors with codes
- Map directly to core services
"""

from mcp_server.server import mcp

__all__ = ["mcp"]
