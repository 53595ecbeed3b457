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

"""Structured logging helpers for :mod:`agentsandbox`.

Every record emitted through :class:`StructuredLogger` carries an ``event``
name and a ``context`` mapping. Components bind their own baseline context
(``component``, ``session_id``, ``request_id``) and add per-call details
through the ``context=`` keyword::

    logger = get_logger(__name__, context={"component": "isolates.registry"})
    logger.info(
        "Created shared isolate.",
        event="isolate.created",
        context={"session_id": session_id},
    )
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any, cast, override

__all__ = [
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

_LOG_LEVEL_ENV = "AGENTSANDBOX_LOG_LEVEL"
_LOG_FORMAT_ENV = "AGENTSANDBOX_LOG_FORMAT"
_LEVEL_NAMES = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


class StructuredLogger(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter enforcing an ``event`` + ``context`` record schema."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(logger, dict(context) if context is not None else {})

    @property
    def context(self) -> Mapping[str, object]:
        """Baseline context merged into every record."""

        return cast(Mapping[str, object], self.extra)

    def bind(self, **context: object) -> StructuredLogger:
        """Return a new adapter with ``context`` merged into the baseline."""

        return type(self)(self.logger, context={**self.context, **context})

    @override
    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        event = kwargs.pop("event", None)
        if not isinstance(event, str):
            raise TypeError("Structured logs require an 'event' field.")

        payload: dict[str, object] = dict(self.context)
        inline_context = kwargs.pop("context", None)
        if inline_context is not None:
            if not isinstance(inline_context, Mapping):
                raise TypeError("context must be a mapping when provided.")
            payload.update(cast(Mapping[str, object], inline_context))

        extra = kwargs.get("extra")
        if isinstance(extra, Mapping):
            payload.update(cast(Mapping[str, object], extra))

        kwargs["extra"] = {"event": event, "context": payload}
        return msg, kwargs


def get_logger(
    name: str,
    *,
    context: Mapping[str, object] | None = None,
) -> StructuredLogger:
    """Return a :class:`StructuredLogger` scoped to ``name``."""

    return StructuredLogger(logging.getLogger(name), context=context)


def configure_logging(
    *,
    level: int | str | None = None,
    json_mode: bool | None = None,
    env: Mapping[str, str] | None = None,
    force: bool = False,
) -> None:
    """Configure the root logger for the CLI and the MCP server.

    ``level`` and ``json_mode`` can be supplied directly or through the
    ``AGENTSANDBOX_LOG_LEVEL`` and ``AGENTSANDBOX_LOG_FORMAT`` environment
    variables (``json`` enables structured output, ``text`` keeps the plain
    formatter). Logs always go to stderr so stdio transports stay clean.

    Handlers installed by a host application are kept unless ``force=True``.
    """

    env = os.environ if env is None else env

    resolved_level = _coerce_level(level or env.get(_LOG_LEVEL_ENV) or logging.INFO)
    if json_mode is None:
        json_mode = env.get(_LOG_FORMAT_ENV, "text").lower() == "json"

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {
                    "()": "agentsandbox.runtime.logging._TextFormatter",
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": "agentsandbox.runtime.logging._JsonFormatter",
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "json" if json_mode else "text",
                }
            },
            "root": {
                "handlers": ["stderr"],
                "level": resolved_level,
            },
        }
    )


class _TextFormatter(logging.Formatter):
    """Plain formatter that appends the event name and context when present."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        rendered = super().format(record)
        event = getattr(record, "event", None)
        if event is None:
            return rendered
        context = getattr(record, "context", None) or {}
        return f"{rendered} [{event}] {json.dumps(context, default=repr)}"


class _JsonFormatter(logging.Formatter):
    """Formatter that renders structured records as compact JSON."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=repr, separators=(",", ":"))


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVEL_NAMES[level.upper()]
    except KeyError:
        raise TypeError(f"Unknown log level: {level!r}") from None
