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

"""The ``file_operation``, ``file_search`` and ``file_watch`` tools.

Paths are resolved under the runtime base path before anything runs; a path
that escapes it raises :class:`~agentsandbox.errors.ToolValidationError`.
Filesystem failures are reported as ``success=False``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import field
from typing import Final, cast

from ..dataclasses import FrozenDataclass
from ..errors import (
    SystemAccessDisabledError,
    ToolValidationError,
    UnsupportedOperationError,
)
from ..filesystem import WatchEventType
from ..runtime.logging import StructuredLogger, get_logger
from ..translators.files import (
    FileOperation,
    FileOptions,
    SearchOptions,
    WatchOptions,
    build_file_snippet,
    build_search_snippet,
    build_watch_snippet,
    run_file_operation,
)
from ..types import JSONValue
from ._runtime import Stopwatch, ToolContext, new_request_id

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "tools.files"})

DEFAULT_FILE_TIMEOUT_MS: Final[int] = 10_000
_SEARCH_TIMEOUT_MS: Final[int] = 30_000
_WATCH_GRACE_MS: Final[int] = 5_000
_EXTENSION_CHECKED: Final[frozenset[str]] = frozenset(
    {"read", "write", "append", "copy", "move", "chmod"}
)


@FrozenDataclass()
class FileOperationParams:
    """Parameters accepted by ``file_operation``."""

    operation: FileOperation = field(
        metadata={"description": "File operation to perform."}
    )
    file_path: str = field(
        metadata={
            "description": "Path relative to the base path.",
            "min_length": 1,
        }
    )
    content: str | None = field(
        default=None,
        metadata={"description": "Content for write and append."},
    )
    destination: str | None = field(
        default=None,
        metadata={"description": "Destination for copy, move, compress and extract."},
    )
    options: FileOptions = field(
        default_factory=FileOptions,
        metadata={"description": "Operation-specific options."},
    )
    timeout: int = field(
        default=DEFAULT_FILE_TIMEOUT_MS,
        metadata={
            "description": "Timeout in milliseconds for the sandbox route (1000-60000).",
            "ge": 1_000,
            "le": 60_000,
        },
    )
    use_shared_isolate: bool | None = field(
        default=None,
        metadata={
            "description": (
                "Run through the session isolate's fs binding. Defaults to the "
                "runtime setting."
            )
        },
    )


@FrozenDataclass()
class FileOperationResult:
    """Outcome of ``file_operation``."""

    success: bool
    operation: str
    file_path: str
    request_id: str
    output: str = ""
    result: JSONValue = None
    error: str | None = None
    execution_time_ms: int = 0
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        lines = [
            f"{self.operation} {self.file_path}: "
            f"{'ok' if self.success else 'failed'} ({self.execution_time_ms}ms)"
        ]
        if self.output:
            lines.append(self.output)
        if self.error:
            lines.append(f"Error: {self.error}")
        if self.result is not None and self.operation != "read":
            lines.append(json.dumps(self.result, indent=2, default=repr))
        elif isinstance(self.result, str):
            lines.extend(["Content:", self.result])
        return "\n".join(lines)


@FrozenDataclass()
class FileSearchParams:
    """Parameters accepted by ``file_search``."""

    search_path: str = field(
        metadata={"description": "Directory to search, relative to the base path."}
    )
    pattern: str = field(
        metadata={
            "description": "Regular expression matched against names (and content).",
            "min_length": 1,
        }
    )
    options: SearchOptions = field(
        default_factory=SearchOptions,
        metadata={"description": "Search options."},
    )
    use_shared_isolate: bool | None = field(
        default=None,
        metadata={"description": "Search through the session isolate."},
    )


@FrozenDataclass()
class FileSearchResult:
    """Outcome of ``file_search``."""

    success: bool
    request_id: str
    results: tuple[dict[str, JSONValue], ...] = ()
    total_found: int = 0
    search_time_ms: int = 0
    error: str | None = None
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        if not self.success:
            return f"Search failed: {self.error}"
        lines = [f"Found {self.total_found} result(s) in {self.search_time_ms}ms."]
        for hit in self.results:
            lines.append(f"- {hit.get('type')}: {hit.get('path')}")
            matches = hit.get("matches")
            if isinstance(matches, list):
                for match in cast(list[dict[str, JSONValue]], matches):
                    lines.append(f"    {match.get('line')}: {match.get('content')}")
        return "\n".join(lines)


@FrozenDataclass()
class FileWatchParams:
    """Parameters accepted by ``file_watch``."""

    watch_path: str = field(
        metadata={"description": "Path to watch, relative to the base path."}
    )
    events: tuple[WatchEventType, ...] = field(
        default=("create", "modify", "delete"),
        metadata={"description": "Event types to report."},
    )
    options: WatchOptions = field(
        default_factory=WatchOptions,
        metadata={"description": "Watch options."},
    )
    use_shared_isolate: bool | None = field(
        default=None,
        metadata={"description": "Watch from the session isolate."},
    )


@FrozenDataclass()
class FileWatchResult:
    """Outcome of ``file_watch``."""

    success: bool
    request_id: str
    events: tuple[dict[str, JSONValue], ...] = ()
    total_events: int = 0
    watch_duration_ms: int = 0
    error: str | None = None
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        if not self.success:
            return f"Watch failed: {self.error}"
        lines = [f"Captured {self.total_events} event(s) in {self.watch_duration_ms}ms."]
        lines.extend(
            f"- {event.get('timestamp')} {event.get('type')}: {event.get('path')}"
            for event in self.events
        )
        return "\n".join(lines)


def _shared(params_flag: bool | None, context: ToolContext) -> bool:
    runtime = context.runtime
    if params_flag is None:
        # The fs binding only exists with system access; fall back to the host.
        return runtime.use_shared_isolate and runtime.enable_system_access
    if params_flag and not runtime.enable_system_access:
        raise SystemAccessDisabledError(
            "The sandbox fs binding requires system access, which is disabled"
        )
    return params_flag


def _as_records(value: object) -> tuple[dict[str, JSONValue], ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return ()
    return tuple(
        cast(dict[str, JSONValue], item)
        for item in cast(Sequence[object], value)
        if isinstance(item, dict)
    )


def file_operation(
    params: FileOperationParams, *, context: ToolContext
) -> FileOperationResult:
    """Run one file operation directly or through the session isolate."""
    runtime = context.runtime
    stopwatch = Stopwatch(context.clock)
    request_id = new_request_id()

    target = runtime.resolve_path(params.file_path)
    destination = None
    if params.destination is not None:
        destination_path = runtime.resolve_path(params.destination)
        if params.operation in _EXTENSION_CHECKED:
            runtime.check_extension(destination_path)
        destination = str(destination_path)
    if params.operation in _EXTENSION_CHECKED:
        runtime.check_extension(target)

    output = ""
    value: JSONValue = None
    error: str | None = None
    try:
        if _shared(params.use_shared_isolate, context):
            if params.operation == "search":
                if params.options.pattern is None:
                    raise ToolValidationError("Pattern is required for search operation")
                snippet = build_search_snippet(
                    str(target),
                    params.options.pattern,
                    SearchOptions(recursive=params.options.recursive),
                )
            else:
                snippet = build_file_snippet(
                    params.operation,
                    str(target),
                    content=params.content,
                    destination=destination,
                    options=params.options,
                )
            outcome = context.execute_shared(
                snippet, timeout_ms=params.timeout, execution_type="mixed"
            )
            success, output, value, error = (
                outcome.success,
                outcome.output,
                outcome.result,
                outcome.error,
            )
        else:
            raw, output = run_file_operation(
                context.filesystem,
                params.operation,
                str(target),
                content=params.content,
                destination=destination,
                options=params.options,
            )
            value = cast(JSONValue, raw)
            success = True
    except (
        OSError,
        ValueError,
        SystemAccessDisabledError,
        UnsupportedOperationError,
    ) as exc:
        success, error = False, str(exc)
        _LOGGER.warning(
            "File operation failed.",
            event="tools.files.failed",
            context={
                "request_id": request_id,
                "operation": params.operation,
                "path": str(target),
                "error": error,
            },
        )

    return FileOperationResult(
        success=success,
        operation=params.operation,
        file_path=str(target),
        request_id=request_id,
        output=output,
        result=value,
        error=error,
        execution_time_ms=stopwatch.elapsed_ms(),
        user_id=runtime.user_id,
        session_id=runtime.session_id,
    )


def file_search(params: FileSearchParams, *, context: ToolContext) -> FileSearchResult:
    """Search names (and optionally content) under ``search_path``."""
    runtime = context.runtime
    stopwatch = Stopwatch(context.clock)
    request_id = new_request_id()
    root = runtime.resolve_path(params.search_path)

    try:
        if _shared(params.use_shared_isolate, context):
            outcome = context.execute_shared(
                build_search_snippet(str(root), params.pattern, params.options),
                timeout_ms=_SEARCH_TIMEOUT_MS,
            )
            if not outcome.success:
                raise OSError(outcome.error or "search failed")
            hits = _as_records(outcome.result)
        else:
            options = params.options
            hits = _as_records(
                context.filesystem.search(
                    str(root),
                    params.pattern,
                    recursive=options.recursive,
                    case_sensitive=options.case_sensitive,
                    include_content=options.include_content,
                    max_results=options.max_results,
                    file_types=options.file_types,
                    exclude_patterns=options.exclude_patterns,
                )
            )
    except (OSError, ValueError, SystemAccessDisabledError) as exc:
        _LOGGER.warning(
            "File search failed.",
            event="tools.files.search_failed",
            context={"request_id": request_id, "path": str(root), "error": str(exc)},
        )
        return FileSearchResult(
            success=False,
            request_id=request_id,
            search_time_ms=stopwatch.elapsed_ms(),
            error=str(exc),
            user_id=runtime.user_id,
            session_id=runtime.session_id,
        )

    return FileSearchResult(
        success=True,
        request_id=request_id,
        results=hits,
        total_found=len(hits),
        search_time_ms=stopwatch.elapsed_ms(),
        user_id=runtime.user_id,
        session_id=runtime.session_id,
    )


def file_watch(params: FileWatchParams, *, context: ToolContext) -> FileWatchResult:
    """Poll ``watch_path`` for changes for the configured duration."""
    runtime = context.runtime
    stopwatch = Stopwatch(context.clock)
    request_id = new_request_id()
    root = runtime.resolve_path(params.watch_path)
    options = params.options

    try:
        if _shared(params.use_shared_isolate, context):
            outcome = context.execute_shared(
                build_watch_snippet(str(root), params.events, options),
                timeout_ms=options.duration_ms + _WATCH_GRACE_MS,
            )
            if not outcome.success:
                raise OSError(outcome.error or "watch failed")
            events = _as_records(outcome.result)
        else:
            events = _as_records(
                context.filesystem.watch(
                    str(root),
                    events=params.events,
                    recursive=options.recursive,
                    duration_ms=options.duration_ms,
                    interval_ms=options.interval_ms,
                    max_events=options.max_events,
                )
            )
    except (OSError, ValueError, SystemAccessDisabledError) as exc:
        _LOGGER.warning(
            "File watch failed.",
            event="tools.files.watch_failed",
            context={"request_id": request_id, "path": str(root), "error": str(exc)},
        )
        return FileWatchResult(
            success=False,
            request_id=request_id,
            watch_duration_ms=stopwatch.elapsed_ms(),
            error=str(exc),
            user_id=runtime.user_id,
            session_id=runtime.session_id,
        )

    return FileWatchResult(
        success=True,
        request_id=request_id,
        events=events,
        total_events=len(events),
        watch_duration_ms=stopwatch.elapsed_ms(),
        user_id=runtime.user_id,
        session_id=runtime.session_id,
    )


__all__ = [
    "DEFAULT_FILE_TIMEOUT_MS",
    "FileOperationParams",
    "FileOperationResult",
    "FileSearchParams",
    "FileSearchResult",
    "FileWatchParams",
    "FileWatchResult",
    "file_operation",
    "file_search",
    "file_watch",
]
