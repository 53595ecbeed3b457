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

"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from agentsandbox.runtime.logging import (
    _coerce_level,
    _JsonFormatter,
    _TextFormatter,
    configure_logging,
    get_logger,
)


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@contextmanager
def _capture(logger: logging.Logger) -> Iterator[list[logging.LogRecord]]:
    handler = _CaptureHandler()
    logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture(autouse=True)
def reset_logging_state() -> Iterator[None]:
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    try:
        yield
    finally:
        for handler in root.handlers:
            if handler not in original_handlers:
                handler.close()
        root.handlers = original_handlers
        root.setLevel(original_level)


def test_structured_logger_emits_event_and_merged_context() -> None:
    logger = get_logger("tests.logging", context={"component": "registry"})
    logger.logger.setLevel(logging.INFO)

    with _capture(logger.logger) as records:
        logger.info(
            "Isolate created.",
            event="isolate.created",
            context={"session_id": "s1"},
        )

    assert len(records) == 1
    record = records[0]
    assert record.event == "isolate.created"  # type: ignore[attr-defined]
    assert record.context == {"component": "registry", "session_id": "s1"}  # type: ignore[attr-defined]
    assert record.getMessage() == "Isolate created."


def test_bind_returns_new_adapter_with_extra_context() -> None:
    base = get_logger("tests.logging.bind", context={"component": "a"})
    bound = base.bind(session_id="s2")

    assert bound is not base
    assert bound.context == {"component": "a", "session_id": "s2"}
    assert base.context == {"component": "a"}


def test_logging_without_event_is_rejected() -> None:
    logger = get_logger("tests.logging.missing")

    with pytest.raises(TypeError, match="event"):
        logger.warning("no event")


def test_non_mapping_context_is_rejected() -> None:
    logger = get_logger("tests.logging.context")

    with pytest.raises(TypeError, match="mapping"):
        logger.warning("bad", event="tests.bad", context=["not", "a", "mapping"])


def test_text_formatter_appends_event_and_context() -> None:
    logger = get_logger("tests.logging.text")
    logger.logger.setLevel(logging.INFO)

    with _capture(logger.logger) as records:
        logger.info("hello", event="tests.text", context={"n": 1})

    rendered = _TextFormatter("%(message)s").format(records[0])
    assert rendered == 'hello [tests.text] {"n": 1}'


def test_json_formatter_renders_payload() -> None:
    logger = get_logger("tests.logging.json")
    logger.logger.setLevel(logging.INFO)

    with _capture(logger.logger) as records:
        logger.info("hello", event="tests.json", context={"pid": 42})

    payload = json.loads(_JsonFormatter().format(records[0]))
    assert payload["event"] == "tests.json"
    assert payload["context"] == {"pid": 42}
    assert payload["level"] == "INFO"
    assert payload["logger"] == "tests.logging.json"
    assert payload["message"] == "hello"


def test_configure_logging_reads_environment() -> None:
    configure_logging(
        env={"AGENTSANDBOX_LOG_LEVEL": "debug", "AGENTSANDBOX_LOG_FORMAT": "json"},
        force=True,
    )

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h.formatter, _JsonFormatter) for h in root.handlers)


def test_configure_logging_keeps_existing_handlers_without_force() -> None:
    root = logging.getLogger()
    sentinel = _CaptureHandler()
    root.addHandler(sentinel)

    configure_logging(level="ERROR", env={})

    assert sentinel in root.handlers
    assert root.level == logging.ERROR


def test_coerce_level_handles_names_and_numbers() -> None:
    assert _coerce_level("warning") == logging.WARNING
    assert _coerce_level(logging.INFO) == logging.INFO
    with pytest.raises(TypeError, match="Unknown log level"):
        _ = _coerce_level("LOUD")
