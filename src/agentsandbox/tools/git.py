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

"""The ``git_operation`` and ``git_code_workflow`` tools."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import field
from pathlib import Path
from typing import Final, cast

from ..dataclasses import FrozenDataclass
from ..errors import SystemAccessDisabledError, UnsupportedOperationError
from ..isolates import DEFAULT_TIMEOUT_MS, ExecutionResult
from ..runtime.logging import StructuredLogger, get_logger
from ..translators.git import (
    GitOperation,
    GitOptions,
    build_git_command,
    build_git_snippet,
    run_git_command,
)
from ._runtime import Stopwatch, ToolContext, new_request_id

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "tools.git"})

DEFAULT_GIT_TIMEOUT_MS: Final[int] = 30_000


@FrozenDataclass()
class GitOperationParams:
    """Parameters accepted by ``git_operation``."""

    operation: GitOperation = field(metadata={"description": "Git operation to perform."})
    repository_path: str | None = field(
        default=None,
        metadata={
            "description": "Repository path. Defaults to the runtime repository path.",
            "min_length": 1,
        },
    )
    arguments: tuple[str, ...] = field(
        default=(),
        metadata={"description": "Additional arguments appended to the command."},
    )
    options: GitOptions = field(
        default_factory=GitOptions,
        metadata={"description": "Operation-specific options."},
    )
    timeout: int = field(
        default=DEFAULT_GIT_TIMEOUT_MS,
        metadata={
            "description": "Operation timeout in milliseconds (1s-5min).",
            "ge": 1_000,
            "le": 300_000,
        },
    )
    use_shared_isolate: bool | None = field(
        default=None,
        metadata={
            "description": (
                "Run through the session isolate's shell binding. Defaults to the "
                "runtime setting."
            )
        },
    )


@FrozenDataclass()
class GitOperationResult:
    """Outcome of ``git_operation``."""

    success: bool
    operation: str
    repository_path: str
    request_id: str
    output: str = ""
    error: str | None = None
    exit_code: int = 1
    command: str | None = None
    execution_time_ms: int = 0
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        lines = [
            f"git {self.operation} in {self.repository_path}: exit code "
            f"{self.exit_code} ({self.execution_time_ms}ms)"
        ]
        if self.output:
            lines.append(self.output)
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)


@FrozenDataclass()
class GitCodeWorkflowParams:
    """A Git operation followed by a snippet in the same session isolate."""

    git: GitOperationParams = field(metadata={"description": "Git step."})
    code: str = field(
        metadata={"description": "Python snippet run after the Git step.", "min_length": 1}
    )
    timeout: int = field(
        default=DEFAULT_TIMEOUT_MS,
        metadata={
            "description": "Timeout for the code step in milliseconds.",
            "ge": 100,
            "le": 300_000,
        },
    )


@FrozenDataclass()
class GitCodeWorkflowResult:
    """Combined outcome of ``git_code_workflow``."""

    success: bool
    git_result: GitOperationResult
    code_result: ExecutionResult
    combined_output: str

    def render(self) -> str:
        return self.combined_output


def _repository_path(params: GitOperationParams, context: ToolContext) -> Path:
    base = context.runtime.repo_path or Path.cwd()
    if params.repository_path is None:
        return base
    candidate = Path(params.repository_path).expanduser()
    return candidate if candidate.is_absolute() else base / candidate


def _from_snippet(outcome: ExecutionResult) -> tuple[bool, str, str | None, int]:
    if not outcome.success or not isinstance(outcome.result, Mapping):
        return False, outcome.output, outcome.error or "Git snippet failed", 1
    payload = cast(Mapping[str, object], outcome.result)
    exit_code = payload.get("exit_code")
    error = payload.get("error")
    return (
        bool(payload.get("success")),
        str(payload.get("output") or ""),
        None if error is None else str(error),
        exit_code if isinstance(exit_code, int) else 1,
    )


def git_operation(
    params: GitOperationParams, *, context: ToolContext
) -> GitOperationResult:
    """Build and run one Git command.

    Git always needs host access; with system access disabled the call fails
    without starting a process.
    """
    runtime = context.runtime
    stopwatch = Stopwatch(context.clock)
    request_id = new_request_id()
    repo = _repository_path(params, context)
    timeout_ms = runtime.execution_timeout_ms or params.timeout
    shared = (
        runtime.use_shared_isolate
        if params.use_shared_isolate is None
        else params.use_shared_isolate
    )
    command: str | None = None
    output = ""
    error: str | None = None
    exit_code = 1
    success = False

    try:
        if not runtime.enable_system_access:
            raise SystemAccessDisabledError(
                "System access is required for Git operations but is disabled"
            )
        command = build_git_command(
            params.operation,
            params.arguments,
            params.options,
            repo_path=str(repo),
            default_branch=runtime.default_branch,
            commit_format=runtime.commit_format,
        )
        if runtime.debug:
            _LOGGER.info(
                "Executing Git command.",
                event="tools.git.start",
                context={"request_id": request_id, "command": command},
            )
        if shared:
            outcome = context.execute_shared(
                build_git_snippet(command, str(repo)),
                timeout_ms=timeout_ms,
                execution_type="git",
            )
            success, output, error, exit_code = _from_snippet(outcome)
        else:
            exit_code, stdout, stderr = run_git_command(
                command, cwd=str(repo), timeout=timeout_ms / 1000
            )
            output = stdout + (f"\nSTDERR: {stderr}" if stderr else "")
            success = exit_code == 0
            if not success:
                error = f"Git operation failed with exit code {exit_code}: {stderr}"
    except (SystemAccessDisabledError, UnsupportedOperationError, OSError) as exc:
        error = str(exc)
        _LOGGER.warning(
            "Git operation failed.",
            event="tools.git.failed",
            context={
                "request_id": request_id,
                "operation": params.operation,
                "repository_path": str(repo),
                "error": error,
            },
        )

    return GitOperationResult(
        success=success,
        operation=params.operation,
        repository_path=str(repo),
        request_id=request_id,
        output=output,
        error=error,
        exit_code=exit_code,
        command=command,
        execution_time_ms=stopwatch.elapsed_ms(),
        user_id=runtime.user_id,
        session_id=runtime.session_id,
    )


def git_code_workflow(
    params: GitCodeWorkflowParams, *, context: ToolContext
) -> GitCodeWorkflowResult:
    """Run a Git step then a snippet, both in the session isolate."""
    git_result = git_operation(params.git.update(use_shared_isolate=True), context=context)
    code_result = context.execute_shared(
        params.code, timeout_ms=params.timeout, execution_type="code"
    )
    combined = (
        f"Git Operation: {git_result.operation}\n{git_result.output}\n\n"
        f"Code Execution:\n{code_result.output}"
    )
    return GitCodeWorkflowResult(
        success=git_result.success and code_result.success,
        git_result=git_result,
        code_result=code_result,
        combined_output=combined,
    )


__all__ = [
    "DEFAULT_GIT_TIMEOUT_MS",
    "GitCodeWorkflowParams",
    "GitCodeWorkflowResult",
    "GitOperationParams",
    "GitOperationResult",
    "git_code_workflow",
    "git_operation",
]
