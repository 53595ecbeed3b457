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

"""Runtime state handed to tool handlers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from uuid import uuid4

from ..config import CommitFormat, Settings
from ..dataclasses import FrozenDataclass
from ..errors import IsolateStartupError, ToolValidationError
from ..filesystem import DEFAULT_MAX_FILE_SIZE, LocalFilesystem
from ..isolates import (
    SAFE_MODULES,
    ContextOptions,
    ExecutionResult,
    ExecutionType,
    IsolateRegistry,
    default_registry,
)
from ..runtime.clock import SYSTEM_CLOCK, Clock

DEFAULT_SESSION_ID = "default"


@FrozenDataclass()
class ToolRuntime:
    """Per-caller settings consulted by every tool.

    Build one from process settings with :meth:`from_settings`, then adjust
    it per caller with ``update``::

        runtime = ToolRuntime.from_settings(load_settings()).update(
            user_id="alice", session_id="chat-42"
        )
    """

    user_id: str | None = None
    session_id: str = DEFAULT_SESSION_ID
    execution_timeout_ms: int | None = None
    memory_limit_mb: int = 512
    enable_system_access: bool = False
    enable_linting: bool = True
    allowed_modules: tuple[str, ...] = ()
    base_path: Path | None = None
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    allowed_extensions: tuple[str, ...] = ()
    repo_path: Path | None = None
    default_branch: str = "main"
    commit_format: CommitFormat = "conventional"
    temp_dir: Path | None = None
    use_shared_isolate: bool = True
    debug: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        user_id: str | None = None,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> ToolRuntime:
        return cls(
            user_id=user_id,
            session_id=session_id,
            execution_timeout_ms=settings.execution_timeout_ms,
            memory_limit_mb=settings.memory_limit_mb,
            enable_system_access=settings.enable_system_access,
            enable_linting=settings.enable_linting,
            allowed_modules=settings.allowed_modules,
            base_path=settings.base_path,
            max_file_size=settings.max_file_size,
            allowed_extensions=settings.allowed_extensions,
            repo_path=settings.repo_path,
            default_branch=settings.default_branch,
            commit_format=settings.commit_format,
            temp_dir=settings.temp_dir,
            use_shared_isolate=settings.use_shared_isolate,
            debug=settings.debug,
        )

    def context_options(
        self, *extra_modules: str, system_access: bool | None = None
    ) -> ContextOptions:
        """Sandbox bindings for isolates created on behalf of this runtime.

        ``system_access=False`` withholds the ``require``, ``shell``, ``fs`` and
        ``path`` bindings even when the runtime allows them. It never grants
        access the runtime denies.
        """
        enabled = self.enable_system_access and system_access is not False
        return ContextOptions(
            enable_system_access=enabled,
            allowed_modules=(*SAFE_MODULES, *self.allowed_modules, *extra_modules),
            max_file_size=self.max_file_size,
        )

    def resolve_path(self, path: str) -> Path:
        """Resolve ``path`` under the base path.

        Raises:
            ToolValidationError: When the resolved path escapes the base path.
        """
        base = (self.base_path or Path.cwd()).expanduser().resolve()
        candidate = (base / Path(path).expanduser()).resolve()
        if not candidate.is_relative_to(base):
            raise ToolValidationError(f"Path escapes the base path: {path}")
        return candidate

    def check_extension(self, path: Path) -> None:
        if not self.allowed_extensions or path.is_dir():
            return
        allowed = {item.lower() for item in self.allowed_extensions}
        if path.suffix.lower() not in allowed:
            raise ToolValidationError(
                f"File extension '{path.suffix}' is not allowed "
                f"(allowed: {', '.join(sorted(allowed))})"
            )


@dataclass(slots=True, frozen=True)
class ToolContext:
    """Runtime settings plus the shared services a handler may use."""

    runtime: ToolRuntime = field(default_factory=ToolRuntime)
    registry: IsolateRegistry = field(default_factory=default_registry)
    clock: Clock = SYSTEM_CLOCK

    @property
    def session_id(self) -> str:
        return self.runtime.session_id

    def for_session(self, session_id: str) -> ToolContext:
        """Return a copy of this context bound to ``session_id``."""
        return replace(self, runtime=self.runtime.update(session_id=session_id))

    @property
    def filesystem(self) -> LocalFilesystem:
        return LocalFilesystem(max_file_size=self.runtime.max_file_size, clock=self.clock)

    def execute_shared(
        self,
        code: str,
        *,
        timeout_ms: int,
        execution_type: ExecutionType = "mixed",
        modules: tuple[str, ...] = (),
        system_access: bool | None = None,
    ) -> ExecutionResult:
        """Run ``code`` in the session isolate, creating it on first use.

        A new isolate gets this runtime's bindings (narrowed by
        ``system_access``) and memory limit; an existing one keeps the bindings
        it was created with.
        """
        try:
            _ = self.registry.get_or_create_isolate(
                self.session_id,
                memory_limit=self.runtime.memory_limit_mb,
                timeout=timeout_ms,
                context_options=self.runtime.context_options(
                    *modules, system_access=system_access
                ),
            )
            return self.registry.execute_in_shared_isolate(
                self.session_id, code, timeout=timeout_ms, execution_type=execution_type
            )
        except IsolateStartupError as error:
            return ExecutionResult(success=False, error=str(error))


class Stopwatch:
    """Measures elapsed milliseconds on a :class:`Clock`."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._started = clock.monotonic()

    def elapsed_ms(self) -> int:
        return int((self._clock.monotonic() - self._started) * 1000)


def new_request_id() -> str:
    return uuid4().hex


__all__ = [
    "DEFAULT_SESSION_ID",
    "Stopwatch",
    "ToolContext",
    "ToolRuntime",
    "new_request_id",
]
