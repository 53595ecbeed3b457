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

"""Value types shared by the isolate host and the sandbox worker."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import field
from typing import Final, Literal, get_args

from ..dataclasses import FrozenDataclass
from ..filesystem import DEFAULT_MAX_FILE_SIZE
from ..types import JSONValue

type ExecutionType = Literal["git", "code", "mixed"]
EXECUTION_TYPES: Final[tuple[str, ...]] = get_args(ExecutionType.__value__)

DEFAULT_MEMORY_LIMIT_MB: Final[int] = 512
DEFAULT_TIMEOUT_MS: Final[int] = 30_000
BYTES_PER_MB: Final[int] = 1024 * 1024

SAFE_MODULES: Final[tuple[str, ...]] = (
    "collections",
    "datetime",
    "functools",
    "hashlib",
    "itertools",
    "json",
    "os.path",
    "urllib.parse",
)


@FrozenDataclass()
class ContextOptions:
    """Bindings installed into a fresh sandbox interpreter."""

    enable_system_access: bool = field(
        default=False,
        metadata={
            "description": (
                "Expose require, shell, fs and path. Without it the sandbox only "
                "sees console and the output helpers."
            )
        },
    )
    allowed_modules: tuple[str, ...] = field(
        default=SAFE_MODULES,
        metadata={"description": "Modules the restricted loader may import."},
    )
    max_file_size: int = field(
        default=DEFAULT_MAX_FILE_SIZE,
        metadata={"description": "Largest file the fs binding will read."},
    )

    @classmethod
    def __pre_init__(
        cls,
        *,
        enable_system_access: bool,
        allowed_modules: tuple[str, ...],
        max_file_size: int,
    ) -> Mapping[str, object]:
        return {
            "enable_system_access": bool(enable_system_access),
            "allowed_modules": tuple(dict.fromkeys(allowed_modules)),
            "max_file_size": int(max_file_size),
        }

    def with_modules(self, *modules: str) -> ContextOptions:
        """Return options whose allow-list also contains ``modules``."""

        return ContextOptions(
            enable_system_access=self.enable_system_access,
            allowed_modules=(*self.allowed_modules, *modules),
            max_file_size=self.max_file_size,
        )

    def to_payload(self) -> dict[str, JSONValue]:
        """Plain mapping sent to the worker process."""

        return {
            "enable_system_access": self.enable_system_access,
            "allowed_modules": list(self.allowed_modules),
            "max_file_size": self.max_file_size,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> ContextOptions:
        modules = payload.get("allowed_modules", SAFE_MODULES)
        return cls(
            enable_system_access=bool(payload.get("enable_system_access", False)),
            allowed_modules=tuple(str(item) for item in modules)  # type: ignore[union-attr]
            if isinstance(modules, (list, tuple))
            else SAFE_MODULES,
            max_file_size=int(payload.get("max_file_size", DEFAULT_MAX_FILE_SIZE)),  # type: ignore[arg-type]
        )


@FrozenDataclass()
class ExecutionResult:
    """Outcome of one snippet evaluated in an isolate."""

    success: bool = field(
        metadata={"description": "True when the snippet finished without raising."}
    )
    result: JSONValue = field(
        default=None,
        metadata={
            "description": (
                "Value of the final expression statement. Values that are not "
                "JSON compatible are returned as their repr."
            )
        },
    )
    output: str = field(
        default="",
        metadata={"description": "Console output captured during the execution."},
    )
    error: str | None = field(
        default=None,
        metadata={"description": "Error message when the execution failed."},
    )
    memory_usage: int | None = field(
        default=None,
        metadata={"description": "Peak resident memory of the isolate in bytes."},
    )

    def render(self) -> str:
        lines = ["Execution succeeded." if self.success else "Execution failed."]
        if self.result is not None:
            lines.append(f"Result: {json.dumps(self.result, default=repr)}")
        if self.output:
            lines.extend(["Output:", self.output])
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)


__all__ = [
    "BYTES_PER_MB",
    "DEFAULT_MEMORY_LIMIT_MB",
    "DEFAULT_TIMEOUT_MS",
    "EXECUTION_TYPES",
    "SAFE_MODULES",
    "ContextOptions",
    "ExecutionResult",
    "ExecutionType",
]
