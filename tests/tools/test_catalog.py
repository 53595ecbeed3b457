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

from collections.abc import Callable
from pathlib import Path
from typing import cast

import pytest

from agentsandbox.errors import ToolValidationError
from agentsandbox.tools import (
    TOOLS,
    CodeExecutionParams,
    FileOperationParams,
    FileOperationResult,
    GitCodeWorkflowParams,
    ToolContext,
    ToolSpec,
    execute_code,
    get_tool,
    invoke,
)

type MakeContext = Callable[..., ToolContext]


def test_catalog_names() -> None:
    assert [tool.name for tool in TOOLS] == [
        "execute_code",
        "file_operation",
        "file_search",
        "file_watch",
        "git_operation",
        "git_code_workflow",
        "cleanup_session",
    ]


def test_unknown_tool() -> None:
    with pytest.raises(ToolValidationError, match="Unknown tool: rm_rf"):
        _ = get_tool("rm_rf")


def test_tool_spec_validates_name_and_description() -> None:
    with pytest.raises(ValueError, match="Invalid tool name"):
        _ = ToolSpec(
            name="Bad Name",
            description="x",
            params_type=CodeExecutionParams,
            handler=execute_code,
        )
    with pytest.raises(ValueError, match="needs a description"):
        _ = ToolSpec(
            name="ok",
            description="  ",
            params_type=CodeExecutionParams,
            handler=execute_code,
        )


class TestSchemas:
    def test_execute_code_schema(self) -> None:
        schema = get_tool("execute_code").input_schema()
        properties = cast(dict[str, dict[str, object]], schema["properties"])

        assert schema["type"] == "object"
        assert schema["required"] == ["code"]
        assert schema["additionalProperties"] is False
        assert properties["code"]["minLength"] == 1
        assert properties["timeout"]["maximum"] == 30_000
        assert properties["language"]["enum"] == ["python", "shell", "bash"]

    def test_every_schema_is_an_object(self) -> None:
        for tool in TOOLS:
            schema = tool.input_schema()
            assert schema["type"] == "object", tool.name
            assert "properties" in schema


class TestArguments:
    def test_parse_applies_defaults_and_coercion(self) -> None:
        params = get_tool("execute_code").parse_arguments(
            {"code": "1 + 1", "timeout": "2500", "modules": ["math"]}
        )

        assert params == CodeExecutionParams(code="1 + 1", timeout=2500, modules=("math",))

    def test_nested_params_parse(self) -> None:
        params = get_tool("git_code_workflow").parse_arguments(
            {
                "git": {"operation": "status", "options": {"depth": 1}},
                "code": "1",
            }
        )

        assert isinstance(params, GitCodeWorkflowParams)
        assert params.git.options.depth == 1

    @pytest.mark.parametrize(
        ("arguments", "fragment"),
        [
            ({}, "Missing required field: 'code'"),
            ({"code": ""}, "code"),
            ({"code": "1", "timeout": 50}, "timeout"),
            ({"code": "1", "language": "ruby"}, "language"),
            ({"code": "1", "surprise": True}, "Extra keys not permitted"),
        ],
    )
    def test_invalid_arguments_are_prefixed_with_tool_name(
        self, arguments: dict[str, object], fragment: str
    ) -> None:
        with pytest.raises(ToolValidationError) as excinfo:
            _ = get_tool("execute_code").parse_arguments(arguments)

        message = str(excinfo.value)
        assert message.startswith("execute_code: ")
        assert fragment in message


class TestInvoke:
    def test_invokes_handler(self, make_context: MakeContext, sandbox_root: Path) -> None:
        result = invoke(
            "file_operation",
            {"operation": "write", "file_path": "hello.txt", "content": "hi"},
            make_context(),
        )

        assert isinstance(result, FileOperationResult)
        assert result.success is True
        assert (sandbox_root / "hello.txt").read_text() == "hi"

    def test_path_escape_propagates(self, make_context: MakeContext) -> None:
        with pytest.raises(ToolValidationError, match="Path escapes"):
            _ = invoke(
                "file_operation",
                {"operation": "read", "file_path": "../../etc/passwd"},
                make_context(),
            )

    def test_bad_arguments_propagate(self, make_context: MakeContext) -> None:
        with pytest.raises(ToolValidationError, match="file_operation: "):
            _ = invoke("file_operation", {"operation": "shred", "file_path": "a"}, make_context())

    def test_params_round_trip_through_catalog(self) -> None:
        params = get_tool("file_operation").parse_arguments(
            {
                "operation": "chmod",
                "file_path": "run.sh",
                "options": {"mode": "755"},
            }
        )

        assert isinstance(params, FileOperationParams)
        assert params.options.mode == "755"

    def test_file_mode_pattern_is_enforced(self) -> None:
        with pytest.raises(ToolValidationError, match="mode"):
            _ = get_tool("file_operation").parse_arguments(
                {"operation": "chmod", "file_path": "run.sh", "options": {"mode": "rwx"}}
            )
