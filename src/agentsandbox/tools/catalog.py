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

"""Catalog of the tools exposed to agent frameworks.

Each :class:`ToolSpec` pairs a params dataclass with its handler. The catalog
produces JSON schemas from the params types and parses raw argument mappings
into them, so transports (the MCP server, the CLI) only deal in JSON.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Protocol

from ..errors import ToolValidationError
from ..runtime.logging import StructuredLogger, get_logger
from ..serde import parse, schema
from ..types import JSONValue
from ._runtime import ToolContext
from .code_execution import CodeExecutionParams, execute_code
from .file_manager import (
    FileOperationParams,
    FileSearchParams,
    FileWatchParams,
    file_operation,
    file_search,
    file_watch,
)
from .git import GitCodeWorkflowParams, GitOperationParams, git_code_workflow, git_operation
from .session import CleanupSessionParams, cleanup_session

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "tools.catalog"})

_NAME_PATTERN: Final = re.compile(r"^[a-z0-9_-]{1,64}$")


class SupportsRender(Protocol):
    def render(self) -> str: ...


class ToolHandler(Protocol):
    def __call__(self, params: Any, *, context: ToolContext) -> SupportsRender: ...  # noqa: ANN401


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Describe one callable tool."""

    name: str
    description: str
    params_type: type[Any]
    handler: ToolHandler

    def __post_init__(self) -> None:
        if not _NAME_PATTERN.match(self.name):
            raise ValueError(f"Invalid tool name: {self.name!r}")
        if not self.description.strip():
            raise ValueError(f"Tool {self.name!r} needs a description")

    def input_schema(self) -> dict[str, JSONValue]:
        return schema(self.params_type, extra="forbid")

    def parse_arguments(self, arguments: Mapping[str, object]) -> object:
        """Parse raw arguments into the params dataclass.

        Raises:
            ToolValidationError: When the arguments do not fit the params type.
        """
        try:
            return parse(self.params_type, arguments, extra="forbid")
        except (TypeError, ValueError) as error:
            raise ToolValidationError(f"{self.name}: {error}") from error


TOOLS: Final[tuple[ToolSpec, ...]] = (
    ToolSpec(
        name="execute_code",
        description=(
            "Run Python in a sandboxed interpreter (optionally shared per session "
            "so variables persist), or shell/bash on the host when system access "
            "is enabled. Returns the value of the final expression and the "
            "captured console output."
        ),
        params_type=CodeExecutionParams,
        handler=execute_code,
    ),
    ToolSpec(
        name="file_operation",
        description=(
            "Read, write, append, delete, copy, move, list, stat, chmod, archive "
            "and extract files under the configured base path."
        ),
        params_type=FileOperationParams,
        handler=file_operation,
    ),
    ToolSpec(
        name="file_search",
        description=(
            "Search file and directory names, and optionally file content, with "
            "a regular expression."
        ),
        params_type=FileSearchParams,
        handler=file_search,
    ),
    ToolSpec(
        name="file_watch",
        description="Watch a path for create, modify and delete events for a bounded time.",
        params_type=FileWatchParams,
        handler=file_watch,
    ),
    ToolSpec(
        name="git_operation",
        description=(
            "Run a Git operation (clone, pull, push, commit, diff, ...) in the "
            "configured repository. Requires system access."
        ),
        params_type=GitOperationParams,
        handler=git_operation,
    ),
    ToolSpec(
        name="git_code_workflow",
        description=(
            "Run a Git operation and then a Python snippet in the same session "
            "sandbox, returning both results and a combined output."
        ),
        params_type=GitCodeWorkflowParams,
        handler=git_code_workflow,
    ),
    ToolSpec(
        name="cleanup_session",
        description=(
            "Dispose the session sandbox, discarding its variables. The next "
            "shared call starts a fresh one."
        ),
        params_type=CleanupSessionParams,
        handler=cleanup_session,
    ),
)

_TOOLS_BY_NAME: Final[Mapping[str, ToolSpec]] = {tool.name: tool for tool in TOOLS}


def get_tool(name: str) -> ToolSpec:
    """Return the tool called ``name``.

    Raises:
        ToolValidationError: For unknown names.
    """
    try:
        return _TOOLS_BY_NAME[name]
    except KeyError:
        raise ToolValidationError(f"Unknown tool: {name}") from None


def invoke(
    name: str, arguments: Mapping[str, object], context: ToolContext
) -> SupportsRender:
    """Parse ``arguments`` for tool ``name`` and call its handler.

    Raises:
        ToolValidationError: For unknown tools, invalid arguments and paths
            outside the base path.
    """
    tool = get_tool(name)
    try:
        params = tool.parse_arguments(arguments)
        return tool.handler(params, context=context)
    except ToolValidationError as error:
        _LOGGER.warning(
            "Tool arguments rejected.",
            event="tools.validation_failed",
            context={"tool": name, "error": str(error)},
        )
        raise


__all__ = [
    "TOOLS",
    "SupportsRender",
    "ToolHandler",
    "ToolSpec",
    "get_tool",
    "invoke",
]
