# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""MCP server exposing the tool catalog."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any, cast

from .errors import ToolValidationError
from .runtime.logging import StructuredLogger, get_logger
from .serde import dump
from .tools import TOOLS, ToolContext, ToolSpec, invoke
from .types import JSONValue

logger: StructuredLogger = get_logger(__name__, context={"component": "mcp_server"})

SERVER_NAME = "agentsandbox"
SESSION_ARGUMENT = "session_id"

_SESSION_PROPERTY: dict[str, JSONValue] = {
    "type": "string",
    "minLength": 1,
    "description": (
        "Session to run in. Each session keeps its own sandbox; defaults to the "
        "server session."
    ),
}


def tool_schema(spec: ToolSpec) -> dict[str, JSONValue]:
    """Input schema for ``spec`` plus the optional session argument."""
    input_schema = spec.input_schema()
    properties = cast(dict[str, JSONValue], input_schema["properties"])
    properties[SESSION_ARGUMENT] = dict(_SESSION_PROPERTY)
    return input_schema


def call_tool_text(
    name: str, arguments: Mapping[str, object] | None, context: ToolContext
) -> str:
    """Invoke tool ``name`` and render its result plus the JSON payload.

    A ``session_id`` argument routes the call to that session instead of the
    context's own.

    Raises:
        ToolValidationError: For unknown tools or invalid arguments.
    """
    remaining = dict(arguments or {})
    session_id = remaining.pop(SESSION_ARGUMENT, None)
    if session_id is not None:
        if not isinstance(session_id, str) or not session_id.strip():
            raise ToolValidationError(f"{name}: session_id must be a non-empty string")
        context = context.for_session(session_id)
    result = invoke(name, remaining, context)
    payload = json.dumps(dump(result), indent=2, default=repr)
    return f"{result.render()}\n\n{payload}"


def create_server(context: ToolContext) -> Any:  # noqa: ANN401
    """Create an ``mcp.server.Server`` with the catalog registered.

    Handlers run in worker threads and share ``context``'s isolate registry.
    Calls without a ``session_id`` argument use the context's session.
    """
    from mcp.server import Server
    from mcp.types import TextContent, Tool

    server = Server(name=SERVER_NAME)

    @server.list_tools()
    async def _list_tools() -> list[Tool]:  # noqa: RUF029
        return [
            Tool(
                name=spec.name,
                description=spec.description,
                inputSchema=tool_schema(spec),
            )
            for spec in TOOLS
        ]

    @server.call_tool()
    async def _call_tool(name: str, arguments: dict[str, Any] | None) -> list[Any]:
        logger.debug(
            "Tool call received.",
            event="mcp.call_tool",
            context={
                "tool": name,
                "session_id": (arguments or {}).get(
                    SESSION_ARGUMENT, context.session_id
                ),
            },
        )
        text = await asyncio.to_thread(call_tool_text, name, arguments, context)
        return [TextContent(type="text", text=text)]

    return server


async def _run_stdio(context: ToolContext) -> None:
    from mcp.server.stdio import stdio_server

    server = create_server(context)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream, write_stream, server.create_initialization_options()
        )


def serve_stdio(context: ToolContext) -> None:
    """Serve the catalog over stdio until the client disconnects.

    Every isolate in the context's registry is disposed on exit.
    """
    logger.info(
        "MCP server starting.",
        event="mcp.started",
        context={"tools": [spec.name for spec in TOOLS]},
    )
    try:
        asyncio.run(_run_stdio(context))
    finally:
        cleaned = context.registry.cleanup_all()
        logger.info(
            "MCP server stopped.",
            event="mcp.stopped",
            context={"isolates_cleaned": cleaned},
        )


__all__ = [
    "SERVER_NAME",
    "SESSION_ARGUMENT",
    "call_tool_text",
    "create_server",
    "serve_stdio",
    "tool_schema",
]
