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

"""The ``cleanup_session`` tool."""

from __future__ import annotations

from ..dataclasses import FrozenDataclass
from ..runtime.logging import StructuredLogger, get_logger
from ._runtime import ToolContext, new_request_id

_LOGGER: StructuredLogger = get_logger(__name__, context={"component": "tools.session"})


@FrozenDataclass()
class CleanupSessionParams:
    """``cleanup_session`` takes no arguments; it acts on the caller's session."""


@FrozenDataclass()
class CleanupSessionResult:
    """Outcome of ``cleanup_session``."""

    success: bool
    request_id: str
    cleaned: bool = False
    user_id: str | None = None
    session_id: str | None = None

    def render(self) -> str:
        if self.cleaned:
            return f"Session '{self.session_id}' released."
        return f"Session '{self.session_id}' had no isolate to release."


def cleanup_session(
    params: CleanupSessionParams, *, context: ToolContext
) -> CleanupSessionResult:
    """Dispose the session isolate, dropping every binding it held."""
    del params
    request_id = new_request_id()
    cleaned = context.registry.cleanup(context.session_id)
    _LOGGER.info(
        "Session cleanup requested.",
        event="tools.session.cleanup",
        context={
            "request_id": request_id,
            "session_id": context.session_id,
            "cleaned": cleaned,
        },
    )
    return CleanupSessionResult(
        success=True,
        request_id=request_id,
        cleaned=cleaned,
        user_id=context.runtime.user_id,
        session_id=context.session_id,
    )


__all__ = ["CleanupSessionParams", "CleanupSessionResult", "cleanup_session"]
