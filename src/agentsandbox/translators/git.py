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

"""Git command translation.

:func:`build_git_command` turns an operation name, positional arguments and
:class:`GitOptions` into a single shell command line. The same line is either
run on the host by :func:`run_git_command` or wrapped by
:func:`build_git_snippet` for the sandbox ``shell`` binding.
"""

from __future__ import annotations

import os
import re
import shlex
import subprocess  # nosec: B404
from collections.abc import Sequence
from dataclasses import field
from typing import Final, Literal, get_args

from ..config import CommitFormat
from ..dataclasses import FrozenDataclass
from ..errors import UnsupportedOperationError

type GitOperation = Literal[
    "clone",
    "pull",
    "push",
    "fetch",
    "status",
    "add",
    "commit",
    "branch",
    "checkout",
    "merge",
    "rebase",
    "log",
    "diff",
    "remote",
    "tag",
    "stash",
    "reset",
    "revert",
    "cherry-pick",
    "blame",
    "show",
    "config",
]
GIT_OPERATIONS: Final[tuple[str, ...]] = get_args(GitOperation.__value__)

CONVENTIONAL_COMMIT_PATTERN: Final = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore)(\(.+\))?: .+"
)
_CONVENTIONAL_PREFIX: Final = "feat: "


@FrozenDataclass()
class GitOptions:
    """Operation-specific switches for :func:`build_git_command`."""

    branch: str | None = field(
        default=None, metadata={"description": "Branch name for the operation."}
    )
    remote: str = field(default="origin", metadata={"description": "Remote name."})
    message: str | None = field(
        default=None, metadata={"description": "Commit message."}
    )
    author: str | None = field(
        default=None, metadata={"description": "Author for commits."}
    )
    force: bool = field(default=False, metadata={"description": "Force the operation."})
    recursive: bool = field(
        default=False, metadata={"description": "Recursive operation."}
    )
    depth: int | None = field(
        default=None, metadata={"description": "Clone depth.", "ge": 1}
    )
    tags: bool = field(default=True, metadata={"description": "Include tags."})
    rebase: bool = field(
        default=False, metadata={"description": "Use rebase when pulling."}
    )
    cached: bool = field(
        default=False, metadata={"description": "Diff staged changes only."}
    )
    staged: bool = field(default=False, metadata={"description": "Alias of cached."})
    name_only: bool = field(
        default=False, metadata={"description": "Diff file names only."}
    )
    stat: bool = field(default=False, metadata={"description": "Show a diffstat."})
    numstat: bool = field(
        default=False, metadata={"description": "Show a numeric diffstat."}
    )


def is_git_operation(operation: str) -> bool:
    return operation in GIT_OPERATIONS


def format_commit_message(message: str, commit_format: CommitFormat | str) -> str:
    """Apply the repository commit convention to ``message``.

    ``conventional`` prefixes messages that lack a recognised type with
    ``feat: ``; ``standard`` and ``custom`` return the message unchanged.
    """
    if commit_format == "conventional" and not CONVENTIONAL_COMMIT_PATTERN.match(
        message
    ):
        return f"{_CONVENTIONAL_PREFIX}{message}"
    return message


def _operation_flags(
    operation: str,
    arguments: list[str],
    options: GitOptions,
    *,
    default_branch: str,
    commit_format: str,
) -> list[str]:
    flags: list[str] = []
    match operation:
        case "clone":
            if options.depth:
                flags.extend(["--depth", str(options.depth)])
            if options.branch:
                flags.extend(["--branch", options.branch])
            if not options.tags:
                flags.append("--no-tags")
        case "commit":
            if options.message:
                flags.extend(["-m", format_commit_message(options.message, commit_format)])
            if options.author:
                flags.append(f"--author={options.author}")
        case "push" | "pull":
            if operation == "push":
                flags.extend(
                    flag
                    for flag, enabled in (("--force", options.force), ("--tags", options.tags))
                    if enabled
                )
            elif options.rebase:
                flags.append("--rebase")
            if options.remote:
                flags.append(options.remote)
            branch = options.branch or default_branch
            if branch:
                flags.append(branch)
        case "branch":
            if options.force:
                flags.append("--force")
        case "checkout":
            if options.force:
                flags.append("--force")
            if not arguments:
                branch = options.branch or default_branch
                if branch:
                    arguments.append(branch)
        case "diff":
            flags.extend(
                flag
                for flag, enabled in (
                    ("--cached", options.cached),
                    ("--staged", options.staged),
                    ("--name-only", options.name_only),
                    ("--stat", options.stat),
                    ("--numstat", options.numstat),
                )
                if enabled
            )
        case _:
            pass
    return flags


def build_git_command(
    operation: str,
    arguments: Sequence[str] = (),
    options: GitOptions | None = None,
    *,
    repo_path: str,
    default_branch: str = "main",
    commit_format: CommitFormat | str = "conventional",
) -> str:
    """Return ``git -C <repo> <operation> <flags> <arguments>``.

    Every value is shell-quoted.

    Raises:
        UnsupportedOperationError: When ``operation`` is not a Git operation.
    """
    if not is_git_operation(operation):
        raise UnsupportedOperationError(f"Unsupported Git operation: {operation}")
    options = options or GitOptions()
    args = list(arguments)
    flags = _operation_flags(
        operation,
        args,
        options,
        default_branch=default_branch,
        commit_format=commit_format,
    )
    parts = ["git", "-C", repo_path, operation, *flags, *args]
    return shlex.join(parts)


def build_git_snippet(command: str, cwd: str) -> str:
    """Wrap ``command`` for the sandbox ``shell`` binding.

    The snippet evaluates to a mapping with ``success``, ``output``, ``error``
    and ``exit_code``.
    """
    return (
        "result = shell.run(" + repr(command) + ", cwd=" + repr(cwd) + ")\n"
        "output = result['stdout']\n"
        "if result['stderr']:\n"
        "    output = output + '\\nSTDERR: ' + result['stderr']\n"
        "{\n"
        "    'success': result['code'] == 0,\n"
        "    'output': output,\n"
        "    'error': result['stderr'] if result['code'] != 0 else None,\n"
        "    'exit_code': result['code'],\n"
        "}\n"
    )


def git_env() -> dict[str, str]:
    """Environment for git subprocesses without inherited ``GIT_*`` variables.

    Variables such as ``GIT_DIR`` leak in from hooks and would redirect the
    command away from ``-C <repo>``.
    """
    return {k: v for k, v in os.environ.items() if not k.startswith("GIT_")}


def run_git_command(
    command: str, *, cwd: str, timeout: float
) -> tuple[int, str, str]:
    """Run a command built by :func:`build_git_command` on the host.

    Returns ``(exit_code, stdout, stderr)``; a timeout yields exit code ``-1``.
    """
    try:
        completed = subprocess.run(  # nosec B603
            shlex.split(command),
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=git_env(),
            check=False,
        )
    except subprocess.TimeoutExpired:
        return -1, "", f"Git command timed out after {timeout:g}s"
    except FileNotFoundError as error:
        return 127, "", str(error)
    return completed.returncode, completed.stdout, completed.stderr


__all__ = [
    "CONVENTIONAL_COMMIT_PATTERN",
    "GIT_OPERATIONS",
    "GitOperation",
    "GitOptions",
    "build_git_command",
    "build_git_snippet",
    "format_commit_message",
    "git_env",
    "is_git_operation",
    "run_git_command",
]
