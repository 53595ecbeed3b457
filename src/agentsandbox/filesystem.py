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

"""Host filesystem operations shared by the direct route and the sandbox.

:class:`LocalFilesystem` works on absolute host paths; callers resolve and
confine paths before they get here. The file tool calls it in process when
the shared isolate is not used, and every sandbox worker binds an instance as
``fs`` so generated snippets run the exact same code::

    fs = LocalFilesystem(max_file_size=1024)
    fs.write("/tmp/demo/notes.txt", "hello", create_dirs=True)
    assert fs.read("/tmp/demo/notes.txt") == "hello"

Every method returns JSON-compatible data so results can cross the worker
pipe unchanged. Failures raise the builtin ``OSError`` family or
``ValueError``.
"""

from __future__ import annotations

import fnmatch
import os
import re
import shutil
import stat as stat_module
import tarfile
import zipfile
from collections.abc import Iterator, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Literal

from .runtime.clock import SYSTEM_CLOCK, Clock

DEFAULT_MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024
DEFAULT_MAX_RESULTS: Final[int] = 100
DEFAULT_MAX_EVENTS: Final[int] = 1000
DEFAULT_WATCH_INTERVAL_MS: Final[int] = 100
ARCHIVE_FORMATS: Final[tuple[str, ...]] = ("zip", "tar", "gztar", "bztar", "xztar")

type WatchEventType = Literal["create", "modify", "delete", "rename"]
type _Snapshot = dict[str, tuple[int, int]]

__all__ = [
    "ARCHIVE_FORMATS",
    "DEFAULT_MAX_FILE_SIZE",
    "DEFAULT_MAX_EVENTS",
    "DEFAULT_MAX_RESULTS",
    "DEFAULT_WATCH_INTERVAL_MS",
    "LocalFilesystem",
    "WatchEventType",
]


def _entry_type(path: Path) -> str:
    return "directory" if path.is_dir() else "file"


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=UTC).isoformat()


def _strip_archive_suffix(destination: str) -> str:
    for suffix in (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tar", ".zip"):
        if destination.endswith(suffix):
            return destination[: -len(suffix)]
    return destination


def _normalize_extensions(file_types: Sequence[str]) -> frozenset[str]:
    return frozenset(
        (item if item.startswith(".") else f".{item}").lower()
        for item in file_types
        if item
    )


class LocalFilesystem:
    """File operations on the host filesystem."""

    def __init__(
        self,
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self.max_file_size = max_file_size
        self._clock = clock

    # -- content ---------------------------------------------------------

    def read(self, path: str, *, encoding: str = "utf-8") -> str:
        """Return the text content of ``path``.

        Raises:
            FileNotFoundError: When ``path`` does not exist.
            ValueError: When the file exceeds ``max_file_size``.
        """
        target = Path(path)
        if not target.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        size = target.stat().st_size
        if size > self.max_file_size:
            raise ValueError(
                f"File too large: {size} bytes (max: {self.max_file_size})"
            )
        return target.read_text(encoding=encoding)

    def write(
        self,
        path: str,
        content: str,
        *,
        encoding: str = "utf-8",
        create_dirs: bool = True,
    ) -> dict[str, object]:
        target = Path(path)
        if create_dirs:
            target.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode(encoding)
        _ = target.write_bytes(data)
        return {"bytes_written": len(data)}

    def append(
        self,
        path: str,
        content: str,
        *,
        encoding: str = "utf-8",
        create_dirs: bool = True,
    ) -> dict[str, object]:
        target = Path(path)
        if create_dirs:
            target.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode(encoding)
        with target.open("ab") as handle:
            _ = handle.write(data)
        return {"bytes_appended": len(data)}

    # -- tree ------------------------------------------------------------

    def delete(
        self, path: str, *, recursive: bool = False, force: bool = False
    ) -> dict[str, object]:
        target = Path(path)
        if not target.exists() and not target.is_symlink():
            if force:
                return {"deleted": False, "type": None}
            raise FileNotFoundError(f"File does not exist: {path}")
        kind = _entry_type(target)
        if target.is_dir() and not target.is_symlink():
            if recursive:
                shutil.rmtree(target, ignore_errors=force)
            else:
                target.rmdir()
        else:
            target.unlink()
        return {"deleted": True, "type": kind}

    def copy(
        self,
        path: str,
        destination: str,
        *,
        create_dirs: bool = True,
        recursive: bool = False,
        force: bool = False,
    ) -> dict[str, object]:
        source = Path(path)
        target = Path(destination)
        if not source.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        if target.exists() and not force and not target.is_dir():
            raise FileExistsError(f"Destination already exists: {destination}")
        if create_dirs:
            target.parent.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            if not recursive:
                raise IsADirectoryError(
                    f"Copying a directory requires the recursive option: {path}"
                )
            _ = shutil.copytree(source, target, dirs_exist_ok=force)
        else:
            _ = shutil.copy2(source, target)
        return {"copied": True, "source": path, "destination": destination}

    def move(
        self,
        path: str,
        destination: str,
        *,
        create_dirs: bool = True,
        force: bool = False,
    ) -> dict[str, object]:
        source = Path(path)
        target = Path(destination)
        if not source.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        if target.exists() and not force and not target.is_dir():
            raise FileExistsError(f"Destination already exists: {destination}")
        if create_dirs:
            target.parent.mkdir(parents=True, exist_ok=True)
        _ = shutil.move(str(source), str(target))
        return {"moved": True, "source": path, "destination": destination}

    def mkdir(self, path: str, *, recursive: bool = False) -> dict[str, object]:
        Path(path).mkdir(parents=recursive, exist_ok=recursive)
        return {"created": True, "path": path}

    def rmdir(self, path: str, *, recursive: bool = False) -> dict[str, object]:
        target = Path(path)
        if not target.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")
        if recursive:
            shutil.rmtree(target)
        else:
            target.rmdir()
        return {"removed": True, "path": path}

    def list(self, path: str) -> list[dict[str, object]]:
        target = Path(path)
        if not target.exists():
            raise FileNotFoundError(f"Directory does not exist: {path}")
        if not target.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")
        return [
            {"name": item.name, "type": _entry_type(item), "path": str(item)}
            for item in sorted(target.iterdir(), key=lambda entry: entry.name)
        ]

    # -- metadata --------------------------------------------------------

    def exists(self, path: str) -> dict[str, object]:
        return {"exists": Path(path).exists()}

    def stat(self, path: str) -> dict[str, object]:
        target = Path(path)
        if not target.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        info = target.stat()
        created = getattr(info, "st_birthtime", info.st_ctime)
        return {
            "size": info.st_size,
            "is_file": target.is_file(),
            "is_directory": target.is_dir(),
            "created": _timestamp(created),
            "modified": _timestamp(info.st_mtime),
            "accessed": _timestamp(info.st_atime),
            "mode": oct(stat_module.S_IMODE(info.st_mode)),
        }

    def chmod(self, path: str, mode: str) -> dict[str, object]:
        """Apply an octal permission string such as ``"644"`` or ``"0o755"``."""
        target = Path(path)
        if not target.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        try:
            bits = int(mode.removeprefix("0o"), 8)
        except ValueError:
            raise ValueError(f"Invalid file mode: {mode!r}") from None
        target.chmod(bits)
        return {"path": path, "mode": oct(bits)}

    # -- archives --------------------------------------------------------

    def compress(
        self, path: str, destination: str, *, archive_format: str = "zip"
    ) -> dict[str, object]:
        """Archive ``path`` into ``destination`` (extension added by format)."""
        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"File does not exist: {path}")
        if archive_format not in ARCHIVE_FORMATS:
            raise ValueError(f"Unsupported archive format: {archive_format}")
        base_name = _strip_archive_suffix(destination)
        if source.is_dir():
            archive = shutil.make_archive(base_name, archive_format, root_dir=source)
        else:
            archive = shutil.make_archive(
                base_name, archive_format, root_dir=source.parent, base_dir=source.name
            )
        return {"archive": archive, "format": archive_format}

    def extract(self, path: str, destination: str) -> dict[str, object]:
        source = Path(path)
        if not source.is_file():
            raise FileNotFoundError(f"Archive does not exist: {path}")
        target = Path(destination)
        target.mkdir(parents=True, exist_ok=True)
        # Zip extraction already skips absolute and parent-relative members.
        options: dict[str, str] = (
            {} if zipfile.is_zipfile(source) else {"filter": "data"}
        )
        try:
            shutil.unpack_archive(str(source), str(target), **options)
        except tarfile.FilterError as error:
            raise ValueError(f"Unsafe archive member: {error}") from error
        return {"extracted": True, "destination": destination}

    # -- search / watch --------------------------------------------------

    def search(
        self,
        path: str,
        pattern: str,
        *,
        recursive: bool = True,
        case_sensitive: bool = False,
        include_content: bool = False,
        max_results: int = DEFAULT_MAX_RESULTS,
        file_types: Sequence[str] = (),
        exclude_patterns: Sequence[str] = (),
    ) -> list[dict[str, object]]:
        """Find entries under ``path`` whose name matches ``pattern``.

        With ``include_content`` files whose text matches are included too and
        every hit carries ``matches`` with 1-based line and column numbers.
        ``file_types`` restricts files by extension; ``exclude_patterns`` are
        globs checked against names and paths relative to ``path`` and prune
        whole directories.
        """
        root = Path(path)
        if not root.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")
        try:
            regex = re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
        except re.error as error:
            raise ValueError(f"Invalid search pattern: {error}") from error
        extensions = _normalize_extensions(file_types)

        results: list[dict[str, object]] = []
        for entry in self._walk(root, recursive=recursive, exclude=exclude_patterns):
            if len(results) >= max_results:
                break
            is_dir = entry.is_dir()
            if not is_dir and extensions and entry.suffix.lower() not in extensions:
                continue
            name_hit = regex.search(entry.name) is not None
            matches = (
                self._content_matches(entry, regex)
                if include_content and not is_dir
                else []
            )
            if not name_hit and not matches:
                continue
            try:
                size = entry.stat().st_size
            except OSError:
                continue
            hit: dict[str, object] = {
                "path": str(entry),
                "type": "directory" if is_dir else "file",
                "size": size,
            }
            if matches:
                hit["matches"] = matches
            results.append(hit)
        return results

    def watch(
        self,
        path: str,
        *,
        events: Sequence[str] = ("create", "modify", "delete"),
        recursive: bool = True,
        duration_ms: int = 30000,
        interval_ms: int = DEFAULT_WATCH_INTERVAL_MS,
        max_events: int = DEFAULT_MAX_EVENTS,
    ) -> list[dict[str, object]]:
        """Poll ``path`` for ``duration_ms`` and report changes.

        The tree is snapshotted every ``interval_ms``; differences become
        ``create``, ``modify`` and ``delete`` events. A rename shows up as a
        ``delete`` of the old path plus a ``create`` of the new one.
        """
        root = Path(path)
        if not root.exists():
            raise FileNotFoundError(f"Watch path does not exist: {path}")
        wanted = frozenset(events)
        captured: list[dict[str, object]] = []
        previous = self._snapshot(root, recursive=recursive)
        deadline = self._clock.monotonic() + duration_ms / 1000
        while self._clock.monotonic() < deadline and len(captured) < max_events:
            self._clock.sleep(interval_ms / 1000)
            current = self._snapshot(root, recursive=recursive)
            for event_type, changed in _diff_snapshots(previous, current):
                if event_type not in wanted:
                    continue
                captured.append(
                    {
                        "type": event_type,
                        "path": changed,
                        "timestamp": self._clock.now().isoformat(),
                    }
                )
                if len(captured) >= max_events:
                    break
            previous = current
        return captured

    # -- helpers ---------------------------------------------------------

    def _walk(
        self, root: Path, *, recursive: bool, exclude: Sequence[str]
    ) -> Iterator[Path]:
        try:
            children = sorted(root.iterdir(), key=lambda entry: entry.name)
        except OSError:
            return
        for child in children:
            relative = child.relative_to(root).as_posix()
            if any(
                fnmatch.fnmatch(child.name, glob) or fnmatch.fnmatch(relative, glob)
                for glob in exclude
            ):
                continue
            yield child
            if recursive and child.is_dir() and not child.is_symlink():
                for nested in self._walk(child, recursive=True, exclude=exclude):
                    yield nested

    def _content_matches(
        self, path: Path, regex: re.Pattern[str]
    ) -> list[dict[str, object]]:
        try:
            if path.stat().st_size > self.max_file_size:
                return []
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            return []
        matches: list[dict[str, object]] = []
        for number, line in enumerate(lines, start=1):
            found = regex.search(line)
            if found is not None:
                matches.append(
                    {"line": number, "content": line, "column": found.start() + 1}
                )
        return matches

    @staticmethod
    def _snapshot(root: Path, *, recursive: bool) -> _Snapshot:
        snapshot: _Snapshot = {}
        if root.is_file():
            info = root.stat()
            return {str(root): (info.st_mtime_ns, info.st_size)}
        walker = root.rglob("*") if recursive else root.iterdir()
        for entry in walker:
            try:
                info = entry.stat()
            except OSError:
                continue
            snapshot[str(entry)] = (info.st_mtime_ns, info.st_size)
        return snapshot


def _diff_snapshots(
    previous: Mapping[str, tuple[int, int]], current: Mapping[str, tuple[int, int]]
) -> Iterator[tuple[str, str]]:
    for path in sorted(current.keys() - previous.keys()):
        yield "create", path
    for path in sorted(previous.keys() & current.keys()):
        if previous[path] != current[path] and not os.path.isdir(path):
            yield "modify", path
    for path in sorted(previous.keys() - current.keys()):
        yield "delete", path
