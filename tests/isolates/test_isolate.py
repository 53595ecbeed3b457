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

"""Tests for isolate worker processes."""

from __future__ import annotations

import sys
from collections.abc import Iterator

import pytest

from agentsandbox.errors import IsolateDisposedError, IsolateTimeoutError
from agentsandbox.isolates import BYTES_PER_MB, ContextOptions, Isolate

pytestmark = pytest.mark.slow


@pytest.fixture
def isolate() -> Iterator[Isolate]:
    with Isolate("isolate-test", memory_limit_mb=128) as live:
        yield live


def test_runs_code_and_reports_result(isolate: Isolate) -> None:
    result = isolate.run("console.log('hi')\n6 * 7", timeout_ms=5000)

    assert result.success is True
    assert result.result == 42
    assert result.output == "hi"
    assert isolate.pid is not None
    assert isolate.is_alive()


def test_memory_limit_is_reported_in_bytes(isolate: Isolate) -> None:
    assert isolate.memory_limit == 128 * BYTES_PER_MB


def test_context_reads_and_clears_output(isolate: Isolate) -> None:
    _ = isolate.run("console.log('a')\nconsole.log('b')", timeout_ms=5000)

    assert isolate.context.get_output() == "a\nb"
    isolate.context.clear_output()
    assert isolate.context.get_output() == ""


def test_released_context_rejects_calls(isolate: Isolate) -> None:
    isolate.context.release()

    assert isolate.context.released
    with pytest.raises(IsolateDisposedError):
        _ = isolate.context.get_output()


def test_timeout_disposes_the_isolate() -> None:
    isolate = Isolate("isolate-timeout")
    try:
        with pytest.raises(IsolateTimeoutError, match="timed out after 300ms"):
            _ = isolate.run("while True:\n    pass", timeout_ms=300)

        assert isolate.is_disposed
        assert not isolate.is_alive()
        with pytest.raises(IsolateDisposedError):
            _ = isolate.run("1", timeout_ms=1000)
    finally:
        isolate.dispose()


def test_dispose_is_idempotent() -> None:
    isolate = Isolate("isolate-dispose")

    isolate.dispose()
    isolate.dispose()

    assert isolate.is_disposed
    assert "disposed" in repr(isolate)


def test_system_bindings_follow_context_options() -> None:
    with Isolate(
        "isolate-system",
        context_options=ContextOptions(enable_system_access=True),
    ) as isolate:
        result = isolate.run("path.join('a', 'b')", timeout_ms=5000)

    assert result.success is True
    assert result.result in {"a/b", "a\\b"}


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="RLIMIT_AS on Linux")
def test_memory_ceiling_stops_large_allocations() -> None:
    with Isolate("isolate-memory", memory_limit_mb=64) as isolate:
        result = isolate.run("blob = [0] * (200 * 1024 * 1024)\nlen(blob)", timeout_ms=10000)
        follow_up = isolate.run("1 + 1", timeout_ms=5000)

    assert result.success is False
    assert result.error is not None
    assert follow_up.result == 2
