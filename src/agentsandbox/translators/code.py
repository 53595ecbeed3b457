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

"""Code execution translation: languages, linting and shell routing."""

from __future__ import annotations

import ast
from dataclasses import field
from typing import Final, Literal, get_args

from ..dataclasses import FrozenDataclass
from ..errors import UnsupportedOperationError

type Language = Literal["python", "shell", "bash"]
SUPPORTED_LANGUAGES: Final[tuple[str, ...]] = get_args(Language.__value__)
SHELL_LANGUAGES: Final[frozenset[str]] = frozenset({"shell", "bash"})

type Severity = Literal["error", "warning", "info"]

_UNSUPPORTED_NODES: Final[dict[type[ast.AST], str]] = {
    ast.ClassDef: "class definitions are not supported in the sandbox",
    ast.AsyncFunctionDef: "async functions are not supported in the sandbox",
    ast.Await: "await is not supported in the sandbox",
    ast.Yield: "generators are not supported in the sandbox",
    ast.YieldFrom: "generators are not supported in the sandbox",
    ast.Global: "global declarations have no effect in the sandbox",
    ast.Nonlocal: "nonlocal declarations have no effect in the sandbox",
}


@FrozenDataclass()
class LintIssue:
    """One finding reported by :func:`lint_python`."""

    line: int = field(metadata={"description": "1-based line number."})
    column: int = field(metadata={"description": "1-based column number."})
    message: str = field(metadata={"description": "Human readable finding."})
    severity: Severity = field(
        default="warning", metadata={"description": "error, warning or info."}
    )
    rule: str | None = field(
        default=None, metadata={"description": "Identifier of the check."}
    )

    def render(self) -> str:
        return f"{self.line}:{self.column} {self.severity}: {self.message}"


def is_supported_language(language: str) -> bool:
    return language in SUPPORTED_LANGUAGES


def _issue(node: ast.AST, message: str, severity: Severity, rule: str) -> LintIssue:
    return LintIssue(
        line=getattr(node, "lineno", 1),
        column=getattr(node, "col_offset", 0) + 1,
        message=message,
        severity=severity,
        rule=rule,
    )


def lint_python(code: str) -> tuple[LintIssue, ...]:
    """Check ``code`` for syntax errors and constructs the sandbox rejects.

    ``import`` statements are errors because the interpreter has no import
    machinery; modules come from ``require``. Other constructs are warnings.
    """
    try:
        tree = ast.parse(code, mode="exec")
    except SyntaxError as error:
        return (
            LintIssue(
                line=error.lineno or 1,
                column=error.offset or 1,
                message=f"SyntaxError: {error.msg}",
                severity="error",
                rule="syntax",
            ),
        )

    issues: list[LintIssue] = []
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            names = ", ".join(alias.name for alias in node.names)
            issues.append(
                _issue(
                    node,
                    f"import of {names} is not available; use require('<module>')",
                    "error",
                    "import",
                )
            )
        elif isinstance(node, ast.Attribute) and node.attr.startswith("__"):
            issues.append(
                _issue(
                    node,
                    f"access to {node.attr} is blocked in the sandbox",
                    "warning",
                    "dunder",
                )
            )
        elif (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in {"open", "exec", "eval", "compile", "__import__"}
        ):
            issues.append(
                _issue(
                    node,
                    f"{node.func.id}() is not available; use the fs binding",
                    "warning",
                    "builtin",
                )
            )
        else:
            message = _UNSUPPORTED_NODES.get(type(node))
            if message is not None:
                issues.append(_issue(node, message, "warning", "unsupported"))
    issues.sort(key=lambda issue: (issue.line, issue.column))
    return tuple(issues)


def has_errors(issues: tuple[LintIssue, ...]) -> bool:
    return any(issue.severity == "error" for issue in issues)


def build_shell_snippet(code: str, *, cwd: str | None = None) -> str:
    """Return sandbox code running ``code`` through the ``shell`` binding.

    The snippet logs stdout (and stderr prefixed with ``STDERR:``) and
    evaluates to the exit code.
    """
    call = (
        "shell.run(" + repr(code) + ")"
        if cwd is None
        else "shell.run(" + repr(code) + ", cwd=" + repr(cwd) + ")"
    )
    return (
        "result = " + call + "\n"
        "if result['stdout']:\n"
        "    console.log(result['stdout'])\n"
        "if result['stderr']:\n"
        "    console.log('STDERR: ' + result['stderr'])\n"
        "result['code']\n"
    )


def require_language(language: str) -> Language:
    """Return ``language`` narrowed to :data:`Language`.

    Raises:
        UnsupportedOperationError: For languages the sandbox cannot run.
    """
    if not is_supported_language(language):
        raise UnsupportedOperationError(f"Unsupported language: {language}")
    return language  # type: ignore[return-value]


__all__ = [
    "SHELL_LANGUAGES",
    "SUPPORTED_LANGUAGES",
    "Language",
    "LintIssue",
    "Severity",
    "build_shell_snippet",
    "has_errors",
    "is_supported_language",
    "lint_python",
    "require_language",
]
