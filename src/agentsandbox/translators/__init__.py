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

"""Pure translators from operation descriptors to commands and snippets.

Nothing here starts a process; unsupported operations raise
:class:`~agentsandbox.errors.UnsupportedOperationError` up front.
"""

from __future__ import annotations

from .code import (
    SUPPORTED_LANGUAGES,
    Language,
    LintIssue,
    build_shell_snippet,
    lint_python,
)
from .files import (
    FILE_OPERATIONS,
    FileOptions,
    SearchOptions,
    WatchOptions,
    build_file_snippet,
    build_search_snippet,
    build_watch_snippet,
    run_file_operation,
)
from .git import (
    GIT_OPERATIONS,
    GitOptions,
    build_git_command,
    build_git_snippet,
    format_commit_message,
    run_git_command,
)

__all__ = [
    "FILE_OPERATIONS",
    "GIT_OPERATIONS",
    "SUPPORTED_LANGUAGES",
    "FileOptions",
    "GitOptions",
    "Language",
    "LintIssue",
    "SearchOptions",
    "WatchOptions",
    "build_file_snippet",
    "build_git_command",
    "build_git_snippet",
    "build_search_snippet",
    "build_shell_snippet",
    "build_watch_snippet",
    "format_commit_message",
    "lint_python",
    "run_file_operation",
    "run_git_command",
]
