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

"""File operation translation.

Two routes share one vocabulary of operations:

- the sandbox route, where :func:`build_file_snippet`,
  :func:`build_search_snippet` and :func:`build_watch_snippet` produce code
  that calls the ``fs`` binding inside an isolate;
- the direct route, where :func:`run_file_operation` calls a
  :class:`~agentsandbox.filesystem.LocalFilesystem` in process.

Snippets are built from ``repr`` literals only, so user supplied paths and
content never become code.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import field
from typing import Final, Literal, get_args

from ..dataclasses import FrozenDataclass
from ..errors import ToolValidationError, UnsupportedOperationError
from ..filesystem import (
    ARCHIVE_FORMATS,
    DEFAULT_MAX_EVENTS,
    DEFAULT_MAX_RESULTS,
    DEFAULT_WATCH_INTERVAL_MS,
    LocalFilesystem,
    WatchEventType,
)

type FileOperation = Literal[
    "read",
    "write",
    "append",
    "delete",
    "copy",
    "move",
    "mkdir",
    "rmdir",
    "list",
    "exists",
    "stat",
    "chmod",
    "search",
    "watch",
    "compress",
    "extract",
]
FILE_OPERATIONS: Final[tuple[str, ...]] = get_args(FileOperation.__value__)
SANDBOX_FILE_OPERATIONS: Final[tuple[str, ...]] = (
    "read",
    "write",
    "append",
    "delete",
    "copy",
    "move",
    "mkdir",
    "list",
    "exists",
    "stat",
)


@FrozenDataclass()
class FileOptions:
    """Switches shared by the file operations."""

    encoding: str = field(default="utf-8", metadata={"description": "Text encoding."})
    recursive: bool = field(
        default=False, metadata={"description": "Recurse into directories."}
    )
    force: bool = field(
        default=False,
        metadata={"description": "Ignore missing paths and overwrite destinations."},
    )
    pattern: str | None = field(
        default=None,
        metadata={"description": "Name pattern for the search operation."},
    )
    mode: str | None = field(
        default=None,
        metadata={
            "description": "Octal permissions for chmod, e.g. 644.",
            "pattern": r"^(0o)?[0-7]{3,4}$",
        },
    )
    create_dirs: bool = field(
        default=True,
        metadata={"description": "Create missing parent directories."},
    )
    archive_format: str = field(
        default="zip",
        metadata={
            "description": "Archive format for compress.",
            "in": list(ARCHIVE_FORMATS),
        },
    )


@FrozenDataclass()
class SearchOptions:
    """Options of a file search."""

    recursive: bool = field(default=True, metadata={"description": "Search recursively."})
    case_sensitive: bool = field(
        default=False, metadata={"description": "Case sensitive matching."}
    )
    include_content: bool = field(
        default=False, metadata={"description": "Also search inside file content."}
    )
    max_results: int = field(
        default=DEFAULT_MAX_RESULTS,
        metadata={"description": "Maximum number of results.", "ge": 1, "le": 10000},
    )
    file_types: tuple[str, ...] = field(
        default=(), metadata={"description": "File extensions to include."}
    )
    exclude_patterns: tuple[str, ...] = field(
        default=(), metadata={"description": "Glob patterns to exclude."}
    )


@FrozenDataclass()
class WatchOptions:
    """Options of a polling file watch."""

    recursive: bool = field(default=True, metadata={"description": "Watch recursively."})
    interval_ms: int = field(
        default=DEFAULT_WATCH_INTERVAL_MS,
        metadata={"description": "Polling interval in milliseconds.", "ge": 10, "le": 10000},
    )
    max_events: int = field(
        default=DEFAULT_MAX_EVENTS,
        metadata={"description": "Maximum events to capture.", "ge": 1, "le": 100000},
    )
    duration_ms: int = field(
        default=30000,
        metadata={"description": "Watch duration in milliseconds.", "ge": 100, "le": 300000},
    )


def is_file_operation(operation: str) -> bool:
    return operation in FILE_OPERATIONS


def _require(value: str | None, name: str, operation: str) -> str:
    if value is None:
        raise ToolValidationError(f"{name.capitalize()} is required for {operation} operation")
    return value


def _summary(operation: str) -> str:
    """Expression rendering the human readable line for ``operation``."""

    match operation:
        case "read":
            return "'Read ' + str(len(value.encode(encoding))) + ' bytes from ' + target"
        case "write":
            return "'Wrote ' + str(value['bytes_written']) + ' bytes to ' + target"
        case "append":
            return "'Appended ' + str(value['bytes_appended']) + ' bytes to ' + target"
        case "delete":
            return "'Deleted ' + str(value['type']) + ': ' + target"
        case "copy":
            return "'Copied ' + target + ' to ' + destination"
        case "move":
            return "'Moved ' + target + ' to ' + destination"
        case "mkdir":
            return "'Created directory: ' + target"
        case "list":
            return "'Listed ' + str(len(value)) + ' items in ' + target"
        case "exists":
            return (
                "'File ' + ('exists' if value['exists'] else 'does not exist') "
                "+ ': ' + target"
            )
        case _:
            return (
                "'File stats for ' + target + ': ' + str(value['size']) + ' bytes, ' "
                "+ ('directory' if value['is_directory'] else 'file')"
            )


def _call(operation: str, options: FileOptions) -> str:
    match operation:
        case "read":
            return "fs.read(target, encoding=encoding)"
        case "write" | "append":
            return (
                f"fs.{operation}(target, content, encoding=encoding, "
                f"create_dirs={options.create_dirs!r})"
            )
        case "delete":
            return (
                f"fs.delete(target, recursive={options.recursive!r}, "
                f"force={options.force!r})"
            )
        case "copy":
            return (
                f"fs.copy(target, destination, create_dirs={options.create_dirs!r}, "
                f"recursive={options.recursive!r}, force={options.force!r})"
            )
        case "move":
            return (
                f"fs.move(target, destination, create_dirs={options.create_dirs!r}, "
                f"force={options.force!r})"
            )
        case "mkdir":
            return f"fs.mkdir(target, recursive={options.recursive!r})"
        case _:
            return f"fs.{operation}(target)"


def build_file_snippet(
    operation: str,
    path: str,
    *,
    content: str | None = None,
    destination: str | None = None,
    options: FileOptions | None = None,
) -> str:
    """Return sandbox code performing ``operation`` through ``fs``.

    The snippet logs a one line summary and evaluates to the operation
    result.

    Raises:
        UnsupportedOperationError: For operations the sandbox route does not
            cover (``rmdir``, ``chmod``, ``search``, ``watch``, ``compress``,
            ``extract`` and unknown names).
        ToolValidationError: When ``content`` or ``destination`` is missing.
    """
    if operation not in SANDBOX_FILE_OPERATIONS:
        raise UnsupportedOperationError(
            f"Unsupported operation in sandbox: {operation}"
        )
    options = options or FileOptions()
    lines = [f"target = {path!r}", f"encoding = {options.encoding!r}"]
    if operation in {"write", "append"}:
        lines.append(f"content = {_require(content, 'content', operation)!r}")
    if operation in {"copy", "move"}:
        lines.append(f"destination = {_require(destination, 'destination', operation)!r}")
    lines.extend(
        [
            f"value = {_call(operation, options)}",
            f"console.log({_summary(operation)})",
            "value",
        ]
    )
    return "\n".join(lines) + "\n"


def build_search_snippet(
    path: str, pattern: str, options: SearchOptions | None = None
) -> str:
    """Return sandbox code evaluating to the list of search hits."""
    options = options or SearchOptions()
    return (
        f"fs.search({path!r}, {pattern!r}, recursive={options.recursive!r}, "
        f"case_sensitive={options.case_sensitive!r}, "
        f"include_content={options.include_content!r}, "
        f"max_results={options.max_results!r}, "
        f"file_types={list(options.file_types)!r}, "
        f"exclude_patterns={list(options.exclude_patterns)!r})\n"
    )


def build_watch_snippet(
    path: str,
    events: Sequence[WatchEventType] = ("create", "modify", "delete"),
    options: WatchOptions | None = None,
) -> str:
    """Return sandbox code evaluating to the list of captured events."""
    options = options or WatchOptions()
    return (
        f"fs.watch({path!r}, events={list(events)!r}, "
        f"recursive={options.recursive!r}, duration_ms={options.duration_ms!r}, "
        f"interval_ms={options.interval_ms!r}, max_events={options.max_events!r})\n"
    )


def run_file_operation(  # noqa: C901, PLR0911, PLR0912
    filesystem: LocalFilesystem,
    operation: str,
    path: str,
    *,
    content: str | None = None,
    destination: str | None = None,
    options: FileOptions | None = None,
) -> tuple[object, str]:
    """Run ``operation`` on the host and return ``(result, summary)``.

    Raises:
        UnsupportedOperationError: For unknown operation names and ``watch``,
            which has its own tool.
        ToolValidationError: When a required argument is missing.
        OSError, ValueError: Whatever the filesystem raises.
    """
    options = options or FileOptions()
    match operation:
        case "read":
            text = filesystem.read(path, encoding=options.encoding)
            size = len(text.encode(options.encoding))
            return text, f"Read {size} bytes from {path}"
        case "write":
            result = filesystem.write(
                path,
                _require(content, "content", operation),
                encoding=options.encoding,
                create_dirs=options.create_dirs,
            )
            return result, f"Wrote {result['bytes_written']} bytes to {path}"
        case "append":
            result = filesystem.append(
                path,
                _require(content, "content", operation),
                encoding=options.encoding,
                create_dirs=options.create_dirs,
            )
            return result, f"Appended {result['bytes_appended']} bytes to {path}"
        case "delete":
            result = filesystem.delete(
                path, recursive=options.recursive, force=options.force
            )
            if not result["deleted"]:
                return result, f"Nothing to delete: {path}"
            return result, f"Deleted {result['type']}: {path}"
        case "copy":
            target = _require(destination, "destination", operation)
            result = filesystem.copy(
                path,
                target,
                create_dirs=options.create_dirs,
                recursive=options.recursive,
                force=options.force,
            )
            return result, f"Copied {path} to {target}"
        case "move":
            target = _require(destination, "destination", operation)
            result = filesystem.move(
                path, target, create_dirs=options.create_dirs, force=options.force
            )
            return result, f"Moved {path} to {target}"
        case "mkdir":
            return (
                filesystem.mkdir(path, recursive=options.recursive),
                f"Created directory: {path}",
            )
        case "rmdir":
            return (
                filesystem.rmdir(path, recursive=options.recursive),
                f"Removed directory: {path}",
            )
        case "list":
            entries = filesystem.list(path)
            return entries, f"Listed {len(entries)} items in {path}"
        case "exists":
            result = filesystem.exists(path)
            state = "exists" if result["exists"] else "does not exist"
            return result, f"File {state}: {path}"
        case "stat":
            result = filesystem.stat(path)
            kind = "directory" if result["is_directory"] else "file"
            return result, f"File stats for {path}: {result['size']} bytes, {kind}"
        case "chmod":
            mode = _require(options.mode, "mode", operation)
            result = filesystem.chmod(path, mode)
            return result, f"Changed mode of {path} to {result['mode']}"
        case "search":
            pattern = _require(options.pattern, "pattern", operation)
            hits = filesystem.search(path, pattern, recursive=options.recursive)
            return hits, f"Found {len(hits)} matches for {pattern!r} in {path}"
        case "compress":
            target = _require(destination, "destination", operation)
            result = filesystem.compress(
                path, target, archive_format=options.archive_format
            )
            return result, f"Compressed {path} to {result['archive']}"
        case "extract":
            target = _require(destination, "destination", operation)
            result = filesystem.extract(path, target)
            return result, f"Extracted {path} to {target}"
        case _:
            raise UnsupportedOperationError(f"Unsupported operation: {operation}")


__all__ = [
    "FILE_OPERATIONS",
    "SANDBOX_FILE_OPERATIONS",
    "FileOperation",
    "FileOptions",
    "SearchOptions",
    "WatchEventType",
    "WatchOptions",
    "build_file_snippet",
    "build_search_snippet",
    "build_watch_snippet",
    "is_file_operation",
    "run_file_operation",
]
