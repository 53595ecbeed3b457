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

"""Entry point of the sandbox worker process.

The host starts :func:`serve_isolate` in a spawned process and talks to it
over a :func:`multiprocessing.Pipe`. Every message is a plain dictionary with
an ``op`` key:

- ``execute``: evaluate ``code`` with asteval and reply with ``success``,
  ``result``, ``output``, ``error`` and ``memory_usage``;
- ``get_output`` / ``clear_output``: read or reset the output buffer;
- ``shutdown``: leave the loop.

The first message the worker sends is ``{"op": "ready", "ok": ...}`` once the
interpreter is bootstrapped and the memory ceiling is in place.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, MutableMapping
from contextlib import suppress
from multiprocessing.connection import Connection
from typing import Final, Protocol, cast

from ..types import JSONValue
from ._types import ContextOptions
from .bootstrap import OutputBuffer, install_context

_MAX_WIRE_DEPTH: Final[int] = 32
# asteval keys its handlers by lower-cased node name.
_DISALLOWED_NODES: Final[tuple[str, ...]] = ("import", "importfrom")


class InterpreterProtocol(Protocol):
    symtable: MutableMapping[str, object]
    error: list[object]

    def eval(
        self, expr: str, lineno: int = 0, show_errors: bool = True
    ) -> object: ...


def create_interpreter() -> InterpreterProtocol:
    """Return an asteval interpreter with module imports disabled."""

    from asteval import Interpreter

    interpreter = cast(InterpreterProtocol, Interpreter(use_numpy=False))
    node_handlers = getattr(interpreter, "node_handlers", None)
    if isinstance(node_handlers, MutableMapping):
        handlers = cast(MutableMapping[str, object], node_handlers)
        for key in _DISALLOWED_NODES:
            _ = handlers.pop(key, None)
    return interpreter


def apply_memory_limit(limit_bytes: int) -> int | None:
    """Cap the address space at the current footprint plus ``limit_bytes``.

    Returns the ceiling in bytes, or ``None`` where ``RLIMIT_AS`` is not
    available.
    """

    if sys.platform == "win32" or limit_bytes <= 0:
        return None
    import resource

    baseline = _current_address_space()
    if baseline is None:
        return None
    ceiling = baseline + limit_bytes
    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY:
        ceiling = min(ceiling, hard)
    with suppress(ValueError, OSError):
        resource.setrlimit(resource.RLIMIT_AS, (ceiling, hard))
        return ceiling
    return None


def _current_address_space() -> int | None:
    try:
        with open("/proc/self/statm", encoding="ascii") as handle:
            pages = int(handle.read().split()[0])
    except (OSError, ValueError, IndexError):
        return None
    return pages * os.sysconf("SC_PAGE_SIZE")


def peak_memory_usage() -> int | None:
    if sys.platform == "win32":
        return None
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return peak if sys.platform == "darwin" else peak * 1024


def to_wire(value: object, depth: int = 0) -> JSONValue:
    """Convert ``value`` into data that can cross the pipe and JSON encoding."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth >= _MAX_WIRE_DEPTH:
        return repr(value)
    if isinstance(value, Mapping):
        items = cast(Mapping[object, object], value)
        return {str(key): to_wire(item, depth + 1) for key, item in items.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item, depth + 1) for item in value]
    return repr(value)


def _last_error(interpreter: InterpreterProtocol) -> str:
    messages: list[str] = []
    for holder in interpreter.error:
        get_error = getattr(holder, "get_error", None)
        if callable(get_error):
            _, detail = cast(tuple[str, str], get_error())
            lines = [line for line in str(detail).splitlines() if line.strip()]
            messages.append(lines[-1].strip() if lines else str(detail))
        else:
            messages.append(str(holder))
    return messages[-1] if messages else "Unknown error"


class _Worker:
    def __init__(self, options: ContextOptions) -> None:
        self.interpreter = create_interpreter()
        self.buffer = OutputBuffer()
        _ = install_context(self.interpreter.symtable, options=options, buffer=self.buffer)

    def execute(self, message: Mapping[str, object]) -> dict[str, JSONValue]:
        self.buffer.clear()
        self.interpreter.symtable["execution_type"] = message.get(
            "execution_type", "mixed"
        )
        self.interpreter.error = []
        value = self.interpreter.eval(str(message.get("code", "")), show_errors=False)
        failed = bool(self.interpreter.error)
        return {
            "op": "result",
            "success": not failed,
            "result": None if failed else to_wire(value),
            "output": self.buffer.render(),
            "error": _last_error(self.interpreter) if failed else None,
            "memory_usage": peak_memory_usage(),
        }

    def handle(self, message: Mapping[str, object]) -> dict[str, JSONValue]:
        match message.get("op"):
            case "execute":
                return self.execute(message)
            case "get_output":
                return {"op": "output", "output": self.buffer.render()}
            case "clear_output":
                self.buffer.clear()
                return {"op": "cleared"}
            case other:
                return {"op": "error", "error": f"Unknown operation: {other!r}"}


def serve_isolate(
    conn: Connection, memory_limit_bytes: int, options: Mapping[str, object]
) -> None:  # pragma: no cover - runs in the worker process
    """Bootstrap the sandbox and serve requests until shutdown or EOF."""

    try:
        worker = _Worker(ContextOptions.from_payload(options))
        ceiling = apply_memory_limit(memory_limit_bytes)
    except Exception as error:
        conn.send({"op": "ready", "ok": False, "error": f"{type(error).__name__}: {error}"})
        conn.close()
        return

    conn.send({"op": "ready", "ok": True, "pid": os.getpid(), "memory_ceiling": ceiling})
    while True:
        try:
            message = cast(Mapping[str, object], conn.recv())
        except (EOFError, OSError):
            break
        if message.get("op") == "shutdown":
            break
        try:
            reply = worker.handle(message)
        except MemoryError:
            worker.buffer.clear()
            reply = {"op": "result", "success": False, "error": "MemoryError: memory limit exceeded"}
        try:
            conn.send(reply)
        except (BrokenPipeError, OSError):
            break
    conn.close()


__all__ = [
    "InterpreterProtocol",
    "apply_memory_limit",
    "create_interpreter",
    "peak_memory_usage",
    "serve_isolate",
    "to_wire",
]
