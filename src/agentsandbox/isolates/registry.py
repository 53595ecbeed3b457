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

"""Session-keyed registry of sandbox isolates.

The registry multiplexes one :class:`~agentsandbox.isolates.isolate.Isolate`
per session id across many tool invocations. Creation is serialized per
session, so concurrent first calls for the same id share a single worker.
Isolates that time out or crash are disposed and forgotten; the next call for
the session starts from a fresh interpreter.

Example::

    registry = IsolateRegistry(max_sessions=8, idle_ttl=600)
    result = registry.execute_in_shared_isolate("session-1", "x = 2\\nx * 21")
    assert result.result == 42
    registry.cleanup("session-1")
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

from ..errors import (
    IsolateCrashedError,
    IsolateDisposedError,
    IsolateTimeoutError,
    ToolValidationError,
)
from ..runtime.clock import SYSTEM_CLOCK, Clock
from ..runtime.logging import StructuredLogger, get_logger
from ._types import (
    DEFAULT_MEMORY_LIMIT_MB,
    DEFAULT_TIMEOUT_MS,
    EXECUTION_TYPES,
    ContextOptions,
    ExecutionResult,
    ExecutionType,
)
from .isolate import ExecutionContext, Isolate

_LOGGER: StructuredLogger = get_logger(
    __name__, context={"component": "isolate_registry"}
)


class IsolateFactory(Protocol):
    def __call__(
        self,
        session_id: str,
        *,
        memory_limit_mb: int,
        context_options: ContextOptions | None,
    ) -> Isolate: ...


@dataclass(slots=True)
class _Session:
    isolate: Isolate
    context: ExecutionContext
    last_used: float
    default_timeout: int


def _validate_session_id(session_id: object) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ToolValidationError("session_id must be a non-empty string")
    return session_id


def _validate_positive_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ToolValidationError(f"{name} must be a positive integer")
    return value


class IsolateRegistry:
    """Owns every live isolate, keyed by session id.

    ``max_sessions`` bounds the number of live isolates; creating one more
    evicts the least recently used session. ``idle_ttl`` (seconds) evicts
    sessions that were not used for that long; idle sessions are swept on
    every registry call. ``on_evict`` is called with the session id after an
    evicted isolate is disposed.
    """

    def __init__(
        self,
        *,
        max_sessions: int | None = None,
        idle_ttl: float | None = None,
        clock: Clock = SYSTEM_CLOCK,
        default_context: ContextOptions | None = None,
        on_evict: Callable[[str], None] | None = None,
        isolate_factory: IsolateFactory = Isolate,
    ) -> None:
        if max_sessions is not None:
            _ = _validate_positive_int("max_sessions", max_sessions)
        if idle_ttl is not None and idle_ttl <= 0:
            raise ToolValidationError("idle_ttl must be positive")
        self.max_sessions = max_sessions
        self.idle_ttl = idle_ttl
        self.default_context = default_context or ContextOptions()
        self._clock = clock
        self._on_evict = on_evict
        self._factory = isolate_factory
        self._sessions: OrderedDict[str, _Session] = OrderedDict()
        self._lock = threading.RLock()
        self._creation_locks: dict[str, threading.Lock] = {}

    # -- lookup ----------------------------------------------------------

    def get_or_create_isolate(
        self,
        session_id: str,
        *,
        memory_limit: int = DEFAULT_MEMORY_LIMIT_MB,
        timeout: int = DEFAULT_TIMEOUT_MS,
        context_options: ContextOptions | None = None,
    ) -> Isolate:
        """Return the live isolate for ``session_id``, starting one if needed.

        ``memory_limit`` is in megabytes and only applies when a new isolate is
        created; ``timeout`` (milliseconds) becomes the session's default
        execution timeout.

        Raises:
            ToolValidationError: For an empty session id or non-positive limits.
            IsolateStartupError: When the worker cannot be started.
        """
        session_id = _validate_session_id(session_id)
        _ = _validate_positive_int("memory_limit", memory_limit)
        _ = _validate_positive_int("timeout", timeout)
        self.evict_idle()

        session = self._touch(session_id)
        if session is not None:
            return session.isolate

        with self._creation_lock(session_id):
            session = self._touch(session_id)
            if session is not None:
                return session.isolate
            isolate = self._factory(
                session_id,
                memory_limit_mb=memory_limit,
                context_options=context_options or self.default_context,
            )
            evicted: list[tuple[str, _Session]] = []
            with self._lock:
                current = self._sessions.get(session_id)
                if current is not None and not current.isolate.is_disposed:
                    winner = current.isolate
                else:
                    winner = None
                    self._sessions[session_id] = _Session(
                        isolate=isolate,
                        context=isolate.context,
                        last_used=self._clock.monotonic(),
                        default_timeout=timeout,
                    )
                    while (
                        self.max_sessions is not None
                        and len(self._sessions) > self.max_sessions
                    ):
                        evicted.append(self._sessions.popitem(last=False))
            if winner is not None:
                isolate.dispose()
                return winner
        _LOGGER.info(
            "Isolate created.",
            event="isolate.created",
            context={
                "session_id": session_id,
                "memory_limit_mb": memory_limit,
                "pid": isolate.pid,
            },
        )
        for evicted_id, evicted_session in evicted:
            self._evict(evicted_id, evicted_session, reason="lru")
        return isolate

    def get_context(self, session_id: str) -> ExecutionContext | None:
        """Return the context paired with the session's isolate, if any."""
        with self._lock:
            session = self._sessions.get(session_id)
            return None if session is None else session.context

    # -- execution -------------------------------------------------------

    def execute_in_shared_isolate(
        self,
        session_id: str,
        code: str,
        *,
        timeout: int | None = None,
        execution_type: ExecutionType = "mixed",
    ) -> ExecutionResult:
        """Run ``code`` in the session's isolate.

        The output buffer is cleared before the snippet runs. Failures raised
        by the snippet, timeouts and worker crashes are reported as
        ``success=False``; a timed-out or crashed isolate is disposed and the
        session forgotten.

        Raises:
            ToolValidationError: For invalid arguments.
            IsolateStartupError: When a new isolate cannot be started.
        """
        if execution_type not in EXECUTION_TYPES:
            raise ToolValidationError(
                f"execution_type must be one of {', '.join(EXECUTION_TYPES)}"
            )
        if not isinstance(code, str):
            raise ToolValidationError("code must be a string")
        if timeout is not None:
            _ = _validate_positive_int("timeout", timeout)
        isolate = self.get_or_create_isolate(
            session_id, timeout=timeout or DEFAULT_TIMEOUT_MS
        )
        with self._lock:
            session = self._sessions.get(session_id)
            timeout_ms = timeout or (
                session.default_timeout if session else DEFAULT_TIMEOUT_MS
            )

        _LOGGER.debug(
            "Executing snippet.",
            event="isolate.execute",
            context={
                "session_id": session_id,
                "execution_type": execution_type,
                "timeout_ms": timeout_ms,
                "code_length": len(code),
            },
        )
        try:
            result = isolate.run(
                code, timeout_ms=timeout_ms, execution_type=execution_type
            )
        except (IsolateTimeoutError, IsolateCrashedError, IsolateDisposedError) as error:
            _LOGGER.warning(
                "Isolate execution failed.",
                event="isolate.execute.failed",
                context={
                    "session_id": session_id,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            self._discard(session_id, isolate)
            return ExecutionResult(success=False, error=str(error))

        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.isolate is isolate:
                session.last_used = self._clock.monotonic()
        return result

    # -- teardown --------------------------------------------------------

    def cleanup(self, session_id: str) -> bool:
        """Release the session's context and dispose its isolate.

        Returns ``True`` when the session existed.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            creation_lock = self._creation_locks.get(session_id)
            # A held lock means a creation is in flight for this id.
            if creation_lock is not None and not creation_lock.locked():
                del self._creation_locks[session_id]
        if session is None:
            return False
        self._dispose(session)
        _LOGGER.info(
            "Isolate disposed.",
            event="isolate.disposed",
            context={"session_id": session_id},
        )
        return True

    def cleanup_all(self) -> int:
        """Dispose every isolate; returns how many sessions were cleaned."""
        with self._lock:
            session_ids = list(self._sessions)
        return sum(1 for session_id in session_ids if self.cleanup(session_id))

    def evict_idle(self) -> list[str]:
        """Dispose sessions idle for longer than ``idle_ttl``."""
        if self.idle_ttl is None:
            return []
        cutoff = self._clock.monotonic() - self.idle_ttl
        with self._lock:
            stale = [
                (session_id, session)
                for session_id, session in self._sessions.items()
                if session.last_used <= cutoff
            ]
            for session_id, _ in stale:
                del self._sessions[session_id]
        for session_id, session in stale:
            self._evict(session_id, session, reason="idle")
        return [session_id for session_id, _ in stale]

    # -- introspection ---------------------------------------------------

    def sessions(self) -> tuple[str, ...]:
        """Live session ids, least recently used first."""
        with self._lock:
            return tuple(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter(self.sessions())

    # -- internals -------------------------------------------------------

    def _touch(self, session_id: str) -> _Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.isolate.is_disposed:
                del self._sessions[session_id]
                return None
            session.last_used = self._clock.monotonic()
            self._sessions.move_to_end(session_id)
            return session

    def _creation_lock(self, session_id: str) -> threading.Lock:
        with self._lock:
            return self._creation_locks.setdefault(session_id, threading.Lock())

    def _discard(self, session_id: str, isolate: Isolate) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.isolate is not isolate:
                session = None
            else:
                del self._sessions[session_id]
        if session is not None:
            self._dispose(session)
        else:
            isolate.dispose()

    def _evict(self, session_id: str, session: _Session, *, reason: str) -> None:
        self._dispose(session)
        _LOGGER.info(
            "Isolate evicted.",
            event="isolate.evicted",
            context={"session_id": session_id, "reason": reason},
        )
        if self._on_evict is not None:
            self._on_evict(session_id)

    @staticmethod
    def _dispose(session: _Session) -> None:
        session.context.release()
        session.isolate.dispose()


_default_registry: IsolateRegistry | None = None
_default_registry_lock = threading.Lock()


def default_registry() -> IsolateRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = IsolateRegistry()
        return _default_registry


__all__ = [
    "IsolateFactory",
    "IsolateRegistry",
    "default_registry",
]
