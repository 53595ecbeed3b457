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

"""Sandboxed interpreters multiplexed per session."""

from __future__ import annotations

from ._types import (
    BYTES_PER_MB,
    DEFAULT_MEMORY_LIMIT_MB,
    DEFAULT_TIMEOUT_MS,
    EXECUTION_TYPES,
    SAFE_MODULES,
    ContextOptions,
    ExecutionResult,
    ExecutionType,
)
from .bootstrap import Console, OutputBuffer, RestrictedLoader, ShellBinding, install_context
from .isolate import ExecutionContext, Isolate
from .registry import IsolateRegistry, default_registry

__all__ = [
    "BYTES_PER_MB",
    "DEFAULT_MEMORY_LIMIT_MB",
    "DEFAULT_TIMEOUT_MS",
    "EXECUTION_TYPES",
    "SAFE_MODULES",
    "Console",
    "ContextOptions",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionType",
    "Isolate",
    "IsolateRegistry",
    "OutputBuffer",
    "RestrictedLoader",
    "ShellBinding",
    "default_registry",
    "install_context",
]
