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

"""Sandboxed code, file and Git execution for agent tool calls."""

from __future__ import annotations

from . import errors, isolates, runtime, serde, tools, translators, types
from .config import Settings, load_settings
from .errors import SandboxError
from .isolates import ExecutionResult, Isolate, IsolateRegistry, default_registry
from .tools import ToolContext, ToolRuntime

__version__ = "0.1.0"

__all__ = [
    "ExecutionResult",
    "Isolate",
    "IsolateRegistry",
    "SandboxError",
    "Settings",
    "ToolContext",
    "ToolRuntime",
    "__version__",
    "default_registry",
    "errors",
    "isolates",
    "load_settings",
    "runtime",
    "serde",
    "tools",
    "translators",
    "types",
]
