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

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import cast

import pytest
from mcp import types

from agentsandbox.errors import ToolValidationError
from agentsandbox.server import (
    SERVER_NAME,
    SESSION_ARGUMENT,
    call_tool_text,
    create_server,
    tool_schema,
)
from agentsandbox.tools import ToolContext, get_tool

type MakeContext = Callable[..., ToolContext]


def test_call_tool_text_renders_and_embeds_payload(
    make_context: MakeContext, sandbox_root: Path
) -> None:
    _ = (sandbox_root / "note.txt").write_text("hello")

    text = call_tool_text(
        "file_operation", {"operation": "exists", "file_path": "note.txt"}, make_context()
    )

    rendered, _, payload = text.partition("\n\n")
    assert rendered.startswith("exists ")
    assert json.loads(payload)["result"] == {"exists": True}


def test_call_tool_text_raises_for_unknown_tools(make_context: MakeContext) -> None:
    with pytest.raises(ToolValidationError, match="Unknown tool: nope"):
        _ = call_tool_text("nope", None, make_context())


def test_call_tool_text_treats_missing_arguments_as_empty(
    make_context: MakeContext,
) -> None:
    with pytest.raises(ToolValidationError, match="Missing required field"):
        _ = call_tool_text("execute_code", None, make_context())


def test_create_server_registers_handlers(make_context: MakeContext) -> None:
    server = create_server(make_context())

    assert server.name == SERVER_NAME
    assert types.ListToolsRequest in server.request_handlers
    assert types.CallToolRequest in server.request_handlers


def test_session_argument_routes_the_call(
    make_context: MakeContext, sandbox_root: Path
) -> None:
    _ = (sandbox_root / "note.txt").write_text("hello")

    text = call_tool_text(
        "file_operation",
        {"operation": "exists", "file_path": "note.txt", "session_id": "chat-2"},
        make_context(),
    )

    _, _, payload = text.partition("\n\n")
    assert json.loads(payload)["session_id"] == "chat-2"


@pytest.mark.parametrize("session_id", ["", "  ", 7])
def test_session_argument_must_be_a_non_empty_string(
    make_context: MakeContext, session_id: object
) -> None:
    with pytest.raises(ToolValidationError, match="execute_code: session_id"):
        _ = call_tool_text(
            "execute_code", {"code": "1", "session_id": session_id}, make_context()
        )


def test_tool_schema_advertises_session_argument() -> None:
    input_schema = tool_schema(get_tool("execute_code"))
    properties = cast(dict[str, dict[str, object]], input_schema["properties"])

    assert properties[SESSION_ARGUMENT]["type"] == "string"
    assert input_schema["required"] == ["code"]
    plain = cast(dict[str, object], get_tool("execute_code").input_schema()["properties"])
    assert SESSION_ARGUMENT not in plain
