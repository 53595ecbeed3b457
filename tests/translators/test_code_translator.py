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

import pytest

from agentsandbox.errors import UnsupportedOperationError
from agentsandbox.isolates import ContextOptions
from agentsandbox.isolates._worker import _Worker
from agentsandbox.translators import build_shell_snippet, lint_python
from agentsandbox.translators.code import has_errors, require_language


class TestLint:
    def test_clean_code_has_no_issues(self) -> None:
        assert lint_python("total = sum([1, 2, 3])\ntotal * 2") == ()

    def test_syntax_errors_are_a_single_error(self) -> None:
        issues = lint_python("def broken(:\n    pass")

        assert len(issues) == 1
        assert issues[0].rule == "syntax"
        assert issues[0].severity == "error"
        assert issues[0].line == 1
        assert has_errors(issues)

    def test_imports_are_errors(self) -> None:
        issues = lint_python("x = 1\nfrom os import path, sep")

        assert [(issue.rule, issue.line, issue.column) for issue in issues] == [
            ("import", 2, 1)
        ]
        assert "path, sep" in issues[0].message
        assert "require('<module>')" in issues[0].message

    def test_warnings_do_not_count_as_errors(self) -> None:
        code = "\n".join(
            [
                "value = ().__class__",
                "handle = open('x')",
                "class Thing:",
                "    pass",
            ]
        )

        issues = lint_python(code)

        assert [issue.rule for issue in issues] == ["dunder", "builtin", "unsupported"]
        assert all(issue.severity == "warning" for issue in issues)
        assert not has_errors(issues)

    def test_issues_render_with_position(self) -> None:
        (issue,) = lint_python("import json")

        assert issue.render().startswith("1:1 error: import of json")


class TestLanguages:
    @pytest.mark.parametrize("language", ["python", "shell", "bash"])
    def test_known_languages(self, language: str) -> None:
        assert require_language(language) == language

    def test_unknown_language(self) -> None:
        with pytest.raises(UnsupportedOperationError, match="Unsupported language: ruby"):
            _ = require_language("ruby")


class TestShellSnippet:
    def test_command_is_a_literal(self) -> None:
        snippet = build_shell_snippet("echo 'hi'; rm -rf x", cwd="/work")

        assert snippet.startswith(
            "result = shell.run(\"echo 'hi'; rm -rf x\", cwd='/work')\n"
        )
        assert snippet.rstrip().endswith("result['code']")

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_runs_through_the_shell_binding(self) -> None:
        worker = _Worker(ContextOptions(enable_system_access=True))

        reply = dict(
            worker.handle(
                {
                    "op": "execute",
                    "code": build_shell_snippet("echo out; echo err >&2; exit 4"),
                }
            )
        )

        assert reply["success"] is True
        assert reply["result"] == 4
        assert reply["output"] == "out\n\nSTDERR: err\n"
