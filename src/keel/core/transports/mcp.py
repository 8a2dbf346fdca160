"""Embedded MCP tool server scaffold.

Every context rebuild creates a fresh ``FastMCP`` instance; modules register
their tools on it during ``build()``::

    @ctx.mcp.tool(name="list_entities")
    async def list_entities() -> list[str]: ...

The server is only run when the host asks for it (``run_keel_mcp``).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from keel.core.logging import get_logger

log = get_logger("keel.core.mcp")

DEFAULT_INSTRUCTIONS = "Tools exposed by the modules of a keel application."


def create_keel_mcp(
    name: str = "keel",
    instructions: str = DEFAULT_INSTRUCTIONS,
    lifespan: Callable[..., Any] | None = None,
) -> FastMCP:
    """Create a FastMCP server instance for a keel runtime context."""
    return FastMCP(
        name,
        instructions=instructions,
        lifespan=lifespan,
    )


async def tool_names(mcp: FastMCP) -> list[str]:
    """Names of the tools currently registered on ``mcp``."""
    return [tool.name for tool in await mcp.list_tools()]


def run_keel_mcp(mcp: FastMCP, *, transport: str = "stdio", port: int = 8000) -> None:
    """Run the tool server in stdio or streamable-http mode."""
    if transport in ("http", "streamable-http"):
        mcp.settings.host = "0.0.0.0"
        mcp.settings.port = port
        log.info("mcp.starting", name=mcp.name, transport="streamable-http", port=port)
        mcp.run(transport="streamable-http")
    else:
        log.info("mcp.starting", name=mcp.name, transport="stdio")
        mcp.run(transport="stdio")
