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

"""Base exception hierarchy for :mod:`agentsandbox`."""

from __future__ import annotations

from collections.abc import Iterable


class SandboxError(Exception):
    """Base class for all agentsandbox exceptions.

    Callers can catch every library-specific failure with a single handler
    while standard Python exceptions keep propagating normally. Subclasses
    also inherit from a matching builtin (``ValueError``, ``ImportError``,
    ...) so generic handlers keep working.

    Example:
        Catch any agentsandbox error::

            try:
                registry.get_or_create_isolate(session_id)
            except SandboxError as e:
                logger.error("Sandbox failure: %s", e)
    """


class ToolValidationError(SandboxError, ValueError):
    """Raised when tool parameters fail validation checks.

    Common causes include missing required fields, values of the wrong type
    and values outside the declared ``ge`` / ``le`` / length bounds.
    """


class UnsupportedOperationError(SandboxError, ValueError):
    """Raised when a translator receives an operation it cannot express.

    Translators raise this synchronously, before any process or sandbox is
    touched.
    """


class ModuleNotAllowedError(SandboxError, ImportError):
    """Raised by the restricted loader for modules outside the allow-list."""


class SystemAccessDisabledError(SandboxError, PermissionError):
    """Raised when an operation needs host access but it is disabled."""


class IsolateError(SandboxError, RuntimeError):
    """Base class for isolate lifecycle failures."""


class IsolateStartupError(IsolateError):
    """Raised when a sandbox worker fails to start or bootstrap."""


class IsolateTimeoutError(IsolateError):
    """Raised when a snippet does not finish within its timeout.

    The isolate that ran the snippet is disposed before this is raised.
    """


class IsolateCrashedError(IsolateError):
    """Raised when the sandbox worker exits while a request is in flight."""


class IsolateDisposedError(IsolateError):
    """Raised when an isolate or its context is used after disposal."""


class ConfigError(SandboxError, ValueError):
    """Raised when the environment configuration is invalid.

    ``violations`` lists every problem found, so a single startup attempt
    reports all of them at once.
    """

    def __init__(self, violations: Iterable[str]) -> None:
        self.violations: tuple[str, ...] = tuple(violations)
        summary = "; ".join(self.violations) or "invalid configuration"
        super().__init__(f"Invalid configuration: {summary}")


__all__ = [
    "ConfigError",
    "IsolateCrashedError",
    "IsolateDisposedError",
    "IsolateError",
    "IsolateStartupError",
    "IsolateTimeoutError",
    "ModuleNotAllowedError",
    "SandboxError",
    "SystemAccessDisabledError",
    "ToolValidationError",
    "UnsupportedOperationError",
]
