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

"""Globals installed into every sandbox interpreter.

:func:`install_context` populates an interpreter symbol table with the
execution context: a ``console`` shim writing into an :class:`OutputBuffer`,
``print`` routed to ``console.log``, ``get_output`` / ``clear_output`` and the
``execution_type`` marker. With system access enabled the sandbox also gets
``require`` (a :class:`RestrictedLoader`), ``shell`` (a :class:`ShellBinding`),
``fs`` (a :class:`~agentsandbox.filesystem.LocalFilesystem`) and ``path``
(:mod:`os.path`).

The bindings are plain Python objects so they can be exercised without a
worker process::

    symtable: dict[str, object] = {}
    buffer = install_context(symtable, options=ContextOptions())
    symtable["console"].warn("disk", "low")
    assert buffer.render() == "WARN: disk low"
"""

from __future__ import annotations

import os
import shutil
import subprocess  # nosec: B404
import sys
from collections.abc import Callable, Iterable, MutableMapping
from importlib import import_module
from types import ModuleType
from typing import Final

from ..errors import ModuleNotAllowedError, SandboxError
from ..filesystem import LocalFilesystem
from ._types import ContextOptions

DEFAULT_SHELL_TIMEOUT_SECONDS: Final[float] = 300.0

__all__ = [
    "Console",
    "OutputBuffer",
    "RestrictedLoader",
    "ShellBinding",
    "install_context",
]


class OutputBuffer:
    """Append-only list of captured console lines."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def append(self, line: str) -> None:
        self._lines.append(line)

    def clear(self) -> None:
        self._lines.clear()

    def render(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


def _join(args: Iterable[object]) -> str:
    return " ".join(str(arg) for arg in args)


class Console:
    """``console`` binding; every call appends one line to the buffer."""

    def __init__(self, buffer: OutputBuffer) -> None:
        self._buffer = buffer

    def log(self, *args: object) -> None:
        self._buffer.append(_join(args))

    def error(self, *args: object) -> None:
        self._buffer.append(f"ERROR: {_join(args)}")

    def warn(self, *args: object) -> None:
        self._buffer.append(f"WARN: {_join(args)}")

    def info(self, *args: object) -> None:
        self._buffer.append(f"INFO: {_join(args)}")

    def print(self, *args: object, sep: str | None = " ", **_: object) -> None:
        """Stand-in for the builtin ``print``; ``end`` and ``file`` are ignored."""
        self._buffer.append((" " if sep is None else sep).join(str(arg) for arg in args))


class RestrictedLoader:
    """``require`` binding that only imports allow-listed modules.

    The allow-list is checked before any import is attempted, so a module
    outside the list is never loaded, even partially.
    """

    def __init__(self, allowed_modules: Iterable[str]) -> None:
        self._allowed = frozenset(allowed_modules)

    @property
    def allowed_modules(self) -> frozenset[str]:
        return self._allowed

    def __call__(self, name: str) -> ModuleType:
        if name not in self._allowed:
            raise ModuleNotAllowedError(f"Module '{name}' is not allowed")
        try:
            return import_module(name)
        except ImportError as error:
            raise SandboxError(f"Failed to import module '{name}': {error}") from error


def _reset_address_space_limit() -> None:  # pragma: no cover - runs in the child
    import resource

    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    resource.setrlimit(resource.RLIMIT_AS, (hard, hard))


class ShellBinding:
    """``shell`` binding running commands through the host shell.

    Results are plain dictionaries with ``code``, ``stdout`` and ``stderr`` so
    snippets can inspect them with item access.
    """

    def __init__(
        self,
        *,
        cwd: str | None = None,
        timeout: float = DEFAULT_SHELL_TIMEOUT_SECONDS,
        env: Callable[[], dict[str, str]] | None = None,
    ) -> None:
        self._cwd = cwd
        self._timeout = timeout
        self._env = env

    def run(self, command: str, cwd: str | None = None) -> dict[str, object]:
        preexec = None if sys.platform == "win32" else _reset_address_space_limit
        try:
            completed = subprocess.run(  # nosec B602
                command,
                shell=True,
                cwd=cwd or self._cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env=self._env() if self._env is not None else None,
                preexec_fn=preexec,  # noqa: PLW1509
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            return {
                "code": -1,
                "stdout": _decode(error.stdout),
                "stderr": f"Command timed out after {self._timeout:g}s",
            }
        return {
            "code": completed.returncode,
            "stdout": completed.stdout,
            "stderr": completed.stderr,
        }

    exec = run

    def which(self, program: str) -> str | None:
        return shutil.which(program)


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def install_context(
    symtable: MutableMapping[str, object],
    *,
    options: ContextOptions,
    buffer: OutputBuffer | None = None,
    shell_env: Callable[[], dict[str, str]] | None = None,
) -> OutputBuffer:
    """Populate ``symtable`` with the sandbox globals and return the buffer."""

    buffer = buffer if buffer is not None else OutputBuffer()
    console = Console(buffer)

    symtable["console"] = console
    symtable["print"] = console.print
    symtable["get_output"] = buffer.render
    symtable["clear_output"] = buffer.clear
    symtable["execution_type"] = "mixed"
    _ = symtable.pop("open", None)

    if options.enable_system_access:
        symtable["require"] = RestrictedLoader(options.allowed_modules)
        symtable["shell"] = ShellBinding(env=shell_env)
        symtable["fs"] = LocalFilesystem(max_file_size=options.max_file_size)
        symtable["path"] = os.path
    else:
        for name in ("require", "shell", "fs", "path"):
            _ = symtable.pop(name, None)
    return buffer
