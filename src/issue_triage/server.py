"""MCP server exposing the triage tools over stdio.

The same registry that backs the chat loop is offered to MCP clients, so both
surfaces share validation, audit and envelopes.
"""

from __future__ import annotations

import json
import logging
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import Resource, TextContent, Tool
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .config import AppConfig
from .errors import internal_error, to_error_result
from .tools import TOOL_METADATA, ToolRegistry, build_runtime
from .workflow import VALID_STATUSES

logger = logging.getLogger(__name__)

SERVER_NAME = "issue-triage"
STATUS_URI = "issue-triage://server-status"
CAPABILITIES_URI = "issue-triage://capabilities"


def tool_definitions() -> list[Tool]:
    return [
        Tool(name=name, description=meta["description"], inputSchema=meta["inputSchema"])
        for name, meta in TOOL_METADATA.items()
    ]


def resource_definitions() -> list[Resource]:
    return [
        Resource(
            uri=STATUS_URI,
            name="Server Status",
            description="Non-secret server configuration and limits",
        ),
        Resource(
            uri=CAPABILITIES_URI,
            name="Capabilities",
            description="Available tools and workflow rules",
        ),
    ]


async def call_tool_content(registry: ToolRegistry, name: str, arguments: Any) -> list[TextContent]:
    """Execute a tool and wrap the envelope as MCP TextContent."""
    if not isinstance(arguments, dict):
        arguments = {}

    logger.info("Tool called: %s", name)
    try:
        result = await registry.dispatch(name, arguments)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Tool %s failed: %s", name, exc)
        result = internal_error("Tool execution failed")
    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


def read_resource_content(registry: ToolRegistry, uri: Any) -> str:
    uri_s = (uri if isinstance(uri, str) else str(uri)).rstrip("/")
    config = registry.runtime.config

    if uri_s == CAPABILITIES_URI:
        caps = {
            "server": SERVER_NAME,
            "version": __version__,
            "tools": sorted(TOOL_METADATA),
            "statuses": list(VALID_STATUSES),
            "rules": {
                "done_requires_completed": True,
                "suggested_labels_are_not_applied": True,
            },
        }
        return json.dumps(caps, indent=2)

    if uri_s == STATUS_URI:
        status = {
            "server": SERVER_NAME,
            "version": __version__,
            "repository": config.repository,
            "tools_available": len(TOOL_METADATA),
            "external_search_enabled": config.brave_api_key is not None,
            "limits": {
                "total_timeout_s": config.limits.total_timeout_s,
                "max_attempts": config.limits.max_attempts,
                "per_page": config.limits.per_page,
                "page_limit": config.limits.page_limit,
            },
            "audit": {"file_sink_enabled": config.audit_log_path is not None},
        }
        return json.dumps(status, indent=2)

    return json.dumps(to_error_result(code="NotFound", message="Unknown resource"), indent=2)


def create_server(registry: ToolRegistry) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        tools = tool_definitions()
        logger.info("Listed %s tools", len(tools))
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        return await call_tool_content(registry, name, arguments)

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        return resource_definitions()

    @server.read_resource()
    async def read_resource(uri: Any) -> str:
        return read_resource_content(registry, uri)

    return server


async def run_server(config: AppConfig) -> None:
    """Run the MCP server over stdio."""
    registry = ToolRegistry(build_runtime(config))
    server = create_server(registry)

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
