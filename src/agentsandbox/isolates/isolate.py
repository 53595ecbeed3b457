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

"""Host side of a sandbox worker process.

An :class:`Isolate` owns one spawned worker running :func:`serve_isolate`.
Requests are serialized over a single pipe; the host enforces timeouts by
polling the pipe and terminating the worker when the deadline passes.
"""

from __future__ import annotations

import multiprocessing
import threading
from collections.abc import Mapping
from contextlib import suppress
from multiprocessing.connection import Connection
from multiprocessing.process import BaseProcess
from types import TracebackType
from typing import Final, Self, cast

from ..errors import (
    IsolateCrashedError,
    IsolateDisposedError,
    IsolateStartupError,
    IsolateTimeoutError,
)
from ..runtime.logging import StructuredLogger, get_logger
from ..types import JSONValue
from ._types import (
    BYTES_PER_MB,
    DEFAULT_MEMORY_LIMIT_MB,
    ContextOptions,
    ExecutionResult,
    ExecutionType,
)
from ._worker import serve_isolate

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "isolate"})

DEFAULT_STARTUP_TIMEOUT_SECONDS: Final[float] = 30.0
_CONTROL_TIMEOUT_SECONDS: Final[float] = 5.0
_JOIN_TIMEOUT_SECONDS: Final[float] = 2.0


class ExecutionContext:
    """Handle on the globals installed in an isolate's interpreter."""

    def __init__(self, isolate: Isolate) -> None:
        self._isolate = isolate
        self._released = False

    @property
    def isolate(self) -> Isolate:
        return self._isolate

    @property
    def released(self) -> bool:
        return self._released or self._isolate.is_disposed

    def get_output(self) -> str:
        self._ensure_live()
        reply = self._isolate.request({"op": "get_output"})
        return str(reply.get("output", ""))

    def clear_output(self) -> None:
        self._ensure_live()
        _ = self._isolate.request({"op": "clear_output"})

    def release(self) -> None:
        self._released = True

    def _ensure_live(self) -> None:
        if self.released:
            raise IsolateDisposedError(
                f"Execution context for session '{self._isolate.session_id}' was released"
            )


class Isolate:
    """A memory-bounded sandbox worker process owned by one session."""

    def __init__(
        self,
        session_id: str,
        *,
        memory_limit_mb: int = DEFAULT_MEMORY_LIMIT_MB,
        context_options: ContextOptions | None = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT_SECONDS,
    ) -> None:
        self.session_id = session_id
        self.memory_limit_mb = memory_limit_mb
        self.context_options = context_options or ContextOptions()
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._disposed = False
        self._pid: int | None = None

        mp_context = multiprocessing.get_context("spawn")
        parent_conn, child_conn = mp_context.Pipe(duplex=True)
        self._conn: Connection = parent_conn
        self._process: BaseProcess = mp_context.Process(
            target=serve_isolate,
            args=(
                child_conn,
                memory_limit_mb * BYTES_PER_MB,
                self.context_options.to_payload(),
            ),
            name=f"isolate-{session_id}",
            daemon=True,
        )
        try:
            self._process.start()
        except OSError as error:
            self._disposed = True
            raise IsolateStartupError(f"Failed to start isolate: {error}") from error
        finally:
            child_conn.close()

        self._handshake(startup_timeout)
        self.context = ExecutionContext(self)

    def _handshake(self, startup_timeout: float) -> None:
        try:
            ready = self._conn.poll(startup_timeout)
            reply = cast(Mapping[str, object], self._conn.recv()) if ready else None
        except (EOFError, OSError) as error:
            self.dispose()
            raise IsolateStartupError(
                f"Isolate exited during startup: {error}"
            ) from error
        if reply is None:
            self.dispose()
            raise IsolateStartupError(
                f"Isolate did not start within {startup_timeout:g}s"
            )
        if not reply.get("ok"):
            self.dispose()
            raise IsolateStartupError(
                f"Isolate bootstrap failed: {reply.get('error', 'unknown error')}"
            )
        pid = reply.get("pid")
        self._pid = pid if isinstance(pid, int) else None

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def memory_limit(self) -> int:
        """Configured memory ceiling above the bootstrap footprint, in bytes."""
        return self.memory_limit_mb * BYTES_PER_MB

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def is_alive(self) -> bool:
        return not self._disposed and self._process.is_alive()

    def request(
        self, message: Mapping[str, object], *, timeout: float = _CONTROL_TIMEOUT_SECONDS
    ) -> Mapping[str, object]:
        """Send ``message`` and wait up to ``timeout`` seconds for the reply.

        Raises:
            IsolateDisposedError: When the isolate was disposed.
            IsolateTimeoutError: When no reply arrives in time. The isolate is
                disposed first.
            IsolateCrashedError: When the worker exits mid-request.
        """
        with self._lock:
            if self._disposed:
                raise IsolateDisposedError(
                    f"Isolate for session '{self.session_id}' is disposed"
                )
            try:
                self._conn.send(dict(message))
                answered = self._conn.poll(timeout)
                reply = (
                    cast(Mapping[str, object], self._conn.recv()) if answered else None
                )
            except (EOFError, OSError) as error:
                disposed = self._disposed
                self.dispose()
                if disposed:
                    raise IsolateDisposedError(
                        f"Isolate for session '{self.session_id}' is disposed"
                    ) from error
                raise IsolateCrashedError(
                    f"Isolate worker exited unexpectedly (exit code "
                    f"{self._process.exitcode})"
                ) from error
            if reply is None:
                self.dispose()
                raise IsolateTimeoutError(
                    f"Execution timed out after {int(timeout * 1000)}ms"
                )
            return reply

    def run(
        self,
        code: str,
        *,
        timeout_ms: int,
        execution_type: ExecutionType = "mixed",
    ) -> ExecutionResult:
        """Evaluate ``code`` in the worker and return its result.

        Errors raised by the snippet come back as ``success=False``; only
        isolate failures (timeout, crash, disposal) raise.
        """
        reply = self.request(
            {"op": "execute", "code": code, "execution_type": execution_type},
            timeout=timeout_ms / 1000,
        )
        error = reply.get("error")
        memory = reply.get("memory_usage")
        return ExecutionResult(
            success=bool(reply.get("success")),
            result=cast(JSONValue, reply.get("result")),
            output=str(reply.get("output") or ""),
            error=None if error is None else str(error),
            memory_usage=memory if isinstance(memory, int) else None,
        )

    def dispose(self) -> None:
        """Terminate the worker and free its memory. Safe to call twice.

        Disposal does not wait for a running request; the request fails with
        :class:`IsolateDisposedError` once the worker is gone.
        """
        with self._state_lock:
            if self._disposed and not self._process.is_alive():
                return
            self._disposed = True
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(_JOIN_TIMEOUT_SECONDS)
        if self._process.is_alive():  # pragma: no cover - terminate is honored
            self._process.kill()
            self._process.join(_JOIN_TIMEOUT_SECONDS)
        with suppress(OSError):
            self._conn.close()
        _LOGGER.debug(
            "Isolate worker stopped.",
            event="isolate.stopped",
            context={
                "session_id": self.session_id,
                "pid": self._pid,
                "exit_code": self._process.exitcode,
            },
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"Isolate(session_id={self.session_id!r}, pid={self._pid}, {state})"


__all__ = [
    "DEFAULT_STARTUP_TIMEOUT_SECONDS",
    "ExecutionContext",
    "Isolate",
]
