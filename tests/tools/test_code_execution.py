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

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from agentsandbox.tools import (
    CodeExecutionParams,
    ToolContext,
    ToolRuntime,
    execute_code,
)

type MakeContext = Callable[..., ToolContext]

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


class TestRejections:
    @pytest.mark.parametrize("language", ["shell", "bash"])
    def test_shell_requires_system_access(
        self, make_context: MakeContext, language: str
    ) -> None:
        result = execute_code(
            CodeExecutionParams(code="echo hi", language=language),  # type: ignore[arg-type]
            context=make_context(),
        )

        assert result.success is False
        assert result.error == (
            "System access is required for shell/bash execution but is disabled"
        )
        assert result.language == language

    def test_system_access_cannot_be_escalated(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="1 + 1", system_access=True),
            context=make_context(),
        )

        assert result.success is False
        assert result.error == "System access was requested but is disabled"

    def test_shell_refused_when_caller_opts_out(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="echo hi", language="shell", system_access=False),
            context=make_context(enable_system_access=True),
        )

        assert result.success is False

    def test_opting_out_narrows_isolate_bindings(self) -> None:
        allowed = ToolRuntime(enable_system_access=True)
        denied = ToolRuntime()

        assert allowed.context_options().enable_system_access is True
        assert allowed.context_options(system_access=True).enable_system_access
        assert not allowed.context_options(system_access=False).enable_system_access
        assert not denied.context_options(system_access=True).enable_system_access

    def test_result_carries_caller_identity(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="echo hi", language="bash"),
            context=make_context(user_id="alice", session_id="chat-1"),
        )

        assert result.user_id == "alice"
        assert result.session_id == "chat-1"
        assert result.request_id
        assert "failed" in result.render()


@posix_only
class TestHostShell:
    def test_stdout_and_exit_code(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="echo hello", language="shell"),
            context=make_context(enable_system_access=True),
        )

        assert result.success is True
        assert result.result == 0
        assert result.output == "hello\n"
        assert result.lint_results == ()

    def test_non_zero_exit_is_a_failure(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="echo oops >&2; exit 3", language="bash"),
            context=make_context(enable_system_access=True),
        )

        assert result.success is False
        assert result.result == 3
        assert result.output == "\nSTDERR: oops\n"
        assert result.error == "Shell command failed with exit code 3: oops\n"

    def test_runs_in_temp_dir(self, make_context: MakeContext, tmp_path: Path) -> None:
        workdir = tmp_path / "work"

        result = execute_code(
            CodeExecutionParams(code="pwd", language="shell"),
            context=make_context(enable_system_access=True, temp_dir=workdir),
        )

        assert Path(result.output.strip()).resolve() == workdir.resolve()


@pytest.mark.slow
class TestPython:
    def test_ephemeral_isolate_runs_snippet(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="console.log('hi')\nsum([1, 2, 3])"),
            context=make_context(),
        )

        assert result.success is True
        assert result.result == 6
        assert result.output == "hi"
        assert "Result: 6" in result.render()

    def test_ephemeral_isolates_do_not_share_state(
        self, make_context: MakeContext
    ) -> None:
        context = make_context()

        _ = execute_code(CodeExecutionParams(code="kept = 1"), context=context)
        result = execute_code(CodeExecutionParams(code="kept"), context=context)

        assert result.success is False

    def test_shared_isolate_keeps_state(self, make_context: MakeContext) -> None:
        context = make_context(use_shared_isolate=True)

        _ = execute_code(CodeExecutionParams(code="kept = 41"), context=context)
        result = execute_code(CodeExecutionParams(code="kept + 1"), context=context)

        assert result.result == 42
        assert context.session_id in context.registry

    def test_lint_findings_are_advisory(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="import os\n2"), context=make_context()
        )

        assert [issue.rule for issue in result.lint_results] == ["import"]
        assert result.success is False
        assert "Lint:" in result.render()

    def test_linting_can_be_disabled(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="x = 1\nx", enable_linting=False),
            context=make_context(),
        )

        assert result.lint_results == ()
        assert result.result == 1

    def test_runtime_timeout_wins(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="while True:\n    pass", timeout=30_000),
            context=make_context(execution_timeout_ms=300),
        )

        assert result.success is False
        assert "timed out after 300ms" in str(result.error)

    def test_extra_modules_reach_require(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(
                code="math = require('math')\nmath.floor(2.7)",
                modules=("math",),
            ),
            context=make_context(enable_system_access=True),
        )

        assert result.success is True
        assert result.result == 2

    def test_opting_out_hides_host_bindings(self, make_context: MakeContext) -> None:
        result = execute_code(
            CodeExecutionParams(code="shell.run('echo hi')", system_access=False),
            context=make_context(enable_system_access=True),
        )

        assert result.success is False

    def test_opting_out_applies_to_new_shared_isolate(
        self, make_context: MakeContext
    ) -> None:
        context = make_context(enable_system_access=True, use_shared_isolate=True)

        result = execute_code(
            CodeExecutionParams(code="fs", system_access=False), context=context
        )

        assert result.success is False
        isolate = context.registry.get_or_create_isolate(context.session_id)
        assert isolate.context_options.enable_system_access is False
