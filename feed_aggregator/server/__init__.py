"""MCP server package initialization"""

from feed_aggregator.server.app import create_mcp_server, main

__all__ = ["create_mcp_server", "main"]
