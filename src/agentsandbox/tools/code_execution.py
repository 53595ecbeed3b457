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

"""The ``execute_code`` tool."""

from __future__ import annotations

import json
from dataclasses import field
from typing import Final

from ..dataclasses import FrozenDataclass
from ..errors import IsolateError, SystemAccessDisabledError
from ..isolates import ExecutionResult, Isolate
from ..isolates.bootstrap import ShellBinding
from ..runtime.logging import StructuredLogger, get_logger
from ..translators.code import (
    SHELL_LANGUAGES,
    Language,
    LintIssue,
    build_shell_snippet,
    has_errors,
    lint_python,
)
from ..translators.git import git_env
from ..types import JSONValue
from ._runtime import Stopwatch, ToolContext, new_request_id

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "tools.code"})

MAX_CODE_LENGTH: Final[int] = 50_000
DEFAULT_CODE_TIMEOUT_MS: Final[int] = 5_000


@FrozenDataclass()
class CodeExecutionParams:
    """Parameters accepted by ``execute_code``."""

    code: str = field(
        metadata={
            "description": "The code to execute.",
            "min_length": 1,
            "max_length": MAX_CODE_LENGTH,
        }
    )
    language: Language = field(
        default="python",
        metadata={"description": "Language of the code: python, shell or bash."},
    )
    timeout: int = field(
        default=DEFAULT_CODE_TIMEOUT_MS,
        metadata={
            "description": "Execution timeout in milliseconds (100-30000).",
            "ge": 100,
            "le": 30_000,
        },
    )
    enable_linting: bool | None = field(
        default=None,
        metadata={
            "description": (
                "Check Python code before running it. Defaults to the runtime "
                "setting. Findings are advisory."
            )
        },
    )
    system_access: bool | None = field(
        default=None,
        metadata={
            "description": (
                "Request require, shell, fs and path in the sandbox. Only honored "
                "when the runtime enables system access."
            )
        },
    )
    modules: tuple[str, ...] = field(
        default=(),
        metadata={"description": "Extra modules require() may load."},
    )
    use_shared_isolate: bool | None = field(
        default=None,
        metadata={
            "description": (
                "Run in the session isolate so state persists across calls. "
                "Defaults to the runtime setting."
            )
        },
    )


@FrozenDataclass()
class CodeExecutionResult:
    """Outcome of ``execute_code``."""

    success: bool
    request_id: str
    language: str
    result: JSONValue = None
    output: str = ""
    error: str | None = None
    lint_results: tuple[LintIssue, ...] = ()
    memory_usage: int | None = None
    execution_time_ms: int = 0
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        lines = [
            f"Code execution {'succeeded' if self.success else 'failed'} "
            f"({self.language}, {self.execution_time_ms}ms)."
        ]
        if self.result is not None:
            lines.append(f"Result: {json.dumps(self.result, default=repr)}")
        if self.output:
            lines.extend(["Output:", self.output])
        if self.error:
            lines.append(f"Error: {self.error}")
        if self.lint_results:
            lines.append("Lint:")
            lines.extend(f"- {issue.render()}" for issue in self.lint_results)
        return "\n".join(lines)


def _run_shell_on_host(
    params: CodeExecutionParams, context: ToolContext, timeout_ms: int
) -> ExecutionResult:
    temp_dir = context.runtime.temp_dir
    if temp_dir is not None:
        temp_dir.mkdir(parents=True, exist_ok=True)
    shell = ShellBinding(
        cwd=str(temp_dir) if temp_dir is not None else None,
        timeout=timeout_ms / 1000,
        env=git_env,
    )
    completed = shell.run(params.code)
    code = int(completed["code"])  # type: ignore[call-overload]
    stdout = str(completed["stdout"])
    stderr = str(completed["stderr"])
    output = stdout + (f"\nSTDERR: {stderr}" if stderr else "")
    return ExecutionResult(
        success=code == 0,
        result=code,
        output=output,
        error=None if code == 0 else f"Shell command failed with exit code {code}: {stderr}",
    )


def _run_ephemeral(
    code: str,
    context: ToolContext,
    *,
    timeout_ms: int,
    modules: tuple[str, ...],
    system_access: bool | None,
) -> ExecutionResult:
    runtime = context.runtime
    try:
        with Isolate(
            f"ephemeral-{new_request_id()}",
            memory_limit_mb=runtime.memory_limit_mb,
            context_options=runtime.context_options(
                *modules, system_access=system_access
            ),
        ) as isolate:
            return isolate.run(code, timeout_ms=timeout_ms, execution_type="code")
    except IsolateError as error:
        return ExecutionResult(success=False, error=str(error))


def execute_code(
    params: CodeExecutionParams, *, context: ToolContext
) -> CodeExecutionResult:
    """Lint and run a snippet.

    Python runs in the session isolate (or an isolate created and disposed
    for this call); shell and bash run on the host, or through the session
    isolate's ``shell`` binding when the shared isolate is used. Shell code
    always requires system access.
    """
    runtime = context.runtime
    stopwatch = Stopwatch(context.clock)
    request_id = new_request_id()
    timeout_ms = runtime.execution_timeout_ms or params.timeout
    shared = (
        runtime.use_shared_isolate
        if params.use_shared_isolate is None
        else params.use_shared_isolate
    )
    lint_enabled = (
        runtime.enable_linting if params.enable_linting is None else params.enable_linting
    )
    log_context = {
        "request_id": request_id,
        "language": params.language,
        "session_id": runtime.session_id,
        "shared": shared,
    }
    if runtime.debug:
        _LOGGER.info("Executing code.", event="tools.code.start", context=log_context)

    lint_results: tuple[LintIssue, ...] = ()
    if lint_enabled and params.language == "python":
        lint_results = lint_python(params.code)
        if has_errors(lint_results):
            _LOGGER.debug(
                "Lint reported errors; running anyway.",
                event="tools.code.lint",
                context={**log_context, "issues": len(lint_results)},
            )

    try:
        if params.system_access and not runtime.enable_system_access:
            raise SystemAccessDisabledError(
                "System access was requested but is disabled"
            )
        if params.language in SHELL_LANGUAGES:
            if not runtime.enable_system_access or params.system_access is False:
                raise SystemAccessDisabledError(
                    "System access is required for shell/bash execution but is disabled"
                )
            outcome = (
                context.execute_shared(
                    build_shell_snippet(params.code), timeout_ms=timeout_ms, execution_type="code"
                )
                if shared
                else _run_shell_on_host(params, context, timeout_ms)
            )
        elif shared:
            outcome = context.execute_shared(
                params.code,
                timeout_ms=timeout_ms,
                execution_type="code",
                modules=params.modules,
                system_access=params.system_access,
            )
        else:
            outcome = _run_ephemeral(
                params.code,
                context,
                timeout_ms=timeout_ms,
                modules=params.modules,
                system_access=params.system_access,
            )
    except SystemAccessDisabledError as error:
        _LOGGER.warning(
            "Code execution rejected.",
            event="tools.code.rejected",
            context={**log_context, "error": str(error)},
        )
        outcome = ExecutionResult(success=False, error=str(error))

    result = CodeExecutionResult(
        success=outcome.success,
        request_id=request_id,
        language=params.language,
        result=outcome.result,
        output=outcome.output,
        error=outcome.error,
        lint_results=lint_results,
        memory_usage=outcome.memory_usage,
        execution_time_ms=stopwatch.elapsed_ms(),
        user_id=runtime.user_id,
        session_id=runtime.session_id,
    )
    if runtime.debug:
        _LOGGER.info(
            "Code execution completed.",
            event="tools.code.complete",
            context={
                **log_context,
                "success": result.success,
                "execution_time_ms": result.execution_time_ms,
                "output_length": len(result.output),
            },
        )
    return result


__all__ = [
    "DEFAULT_CODE_TIMEOUT_MS",
    "MAX_CODE_LENGTH",
    "CodeExecutionParams",
    "CodeExecutionResult",
    "execute_code",
]
