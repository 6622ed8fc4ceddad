"""feed_aggregator - MCP Server

This module implements the MCP server using FastMCP with multi-transport support
(STDIO, SSE, and Streamable HTTP) and registers the feed tools.
"""

import asyncio
import os
import sys
from typing import Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from feed_aggregator.config import ServerConfig, get_config
from feed_aggregator.log_system.unified_logger import UnifiedLogger
from feed_aggregator.services.scheduler import create_scheduler, shutdown_scheduler
from feed_aggregator.storage.database import close_database
from feed_aggregator.tools.feed_tools import feed_tools, refresh_all_sources


def create_mcp_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Optional server configuration

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    UnifiedLogger.initialize_default(config)
    logger = UnifiedLogger.get_logger(__name__)
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    # Configure DNS rebinding protection (disabled by default for development)
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()] if allowed_hosts_env else []

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")
    if dns_protection and allowed_hosts:
        logger.info(f"Allowed hosts: {allowed_hosts}")

    mcp_server = FastMCP(
        config.name or "feed_aggregator",
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts
        )
    )

    register_tools(mcp_server)

    logger.info("Server initialization complete")
    return mcp_server


def register_tools(mcp_server: FastMCP) -> None:
    """Register all feed tools with the server."""
    logger = UnifiedLogger.get_logger(__name__)

    for tool_func in feed_tools:
        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(tool_func)
        logger.info(f"Registered feed tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized with {len(feed_tools)} tools")


@click.command()
@click.option(
    "--port",
    default=3001,
    help="Port to listen on for SSE or Streamable HTTP transport"
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    help="Transport type (stdio, sse, or streamable-http)"
)
def main(port: int, host: str, transport: str) -> int:
    """Run the feed_aggregator server with specified transport."""
    config = get_config()
    server = create_mcp_server(config)
    logger = UnifiedLogger.get_logger(__name__)

    async def run_server():
        """Inner async function to run the server and manage the event loop."""
        create_scheduler(refresh_all_sources, config.polling_interval)
        try:
            if transport == "stdio":
                logger.info("Starting server with STDIO transport")
                await server.run_stdio_async()
            elif transport == "sse":
                logger.info(f"Starting server with SSE transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                await server.run_sse_async()
            elif transport == "streamable-http":
                logger.info(f"Starting server with Streamable HTTP transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                server.settings.streamable_http_path = "/mcp"
                await server.run_streamable_http_async()
            else:
                raise ValueError(f"Unknown transport: {transport}")
        finally:
            shutdown_scheduler()
            await close_database()

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1
    finally:
        UnifiedLogger.close()


if __name__ == "__main__":
    sys.exit(main())
