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

"""Tool handlers for code execution, file management and Git."""

from __future__ import annotations

from ._runtime import DEFAULT_SESSION_ID, ToolContext, ToolRuntime
from .catalog import TOOLS, ToolSpec, get_tool, invoke
from .code_execution import CodeExecutionParams, CodeExecutionResult, execute_code
from .file_manager import (
    FileOperationParams,
    FileOperationResult,
    FileSearchParams,
    FileSearchResult,
    FileWatchParams,
    FileWatchResult,
    file_operation,
    file_search,
    file_watch,
)
from .git import (
    GitCodeWorkflowParams,
    GitCodeWorkflowResult,
    GitOperationParams,
    GitOperationResult,
    git_code_workflow,
    git_operation,
)
from .session import CleanupSessionParams, CleanupSessionResult, cleanup_session

__all__ = [
    "DEFAULT_SESSION_ID",
    "TOOLS",
    "CleanupSessionParams",
    "CleanupSessionResult",
    "CodeExecutionParams",
    "CodeExecutionResult",
    "FileOperationParams",
    "FileOperationResult",
    "FileSearchParams",
    "FileSearchResult",
    "FileWatchParams",
    "FileWatchResult",
    "GitCodeWorkflowParams",
    "GitCodeWorkflowResult",
    "GitOperationParams",
    "GitOperationResult",
    "ToolContext",
    "ToolRuntime",
    "ToolSpec",
    "cleanup_session",
    "execute_code",
    "file_operation",
    "file_search",
    "file_watch",
    "get_tool",
    "git_code_workflow",
    "git_operation",
    "invoke",
]
