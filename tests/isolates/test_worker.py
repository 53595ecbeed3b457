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

"""In-process tests for the sandbox worker's request handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentsandbox.isolates import ContextOptions
from agentsandbox.isolates._worker import _Worker, to_wire


@pytest.fixture
def worker() -> _Worker:
    return _Worker(ContextOptions())


def _run(worker: _Worker, code: str, **extra: object) -> dict[str, object]:
    return dict(worker.handle({"op": "execute", "code": code, **extra}))


class TestExecute:
    def test_final_expression_is_the_result(self, worker: _Worker) -> None:
        reply = _run(worker, "x = 2\nx * 21")

        assert reply["success"] is True
        assert reply["result"] == 42
        assert reply["error"] is None

    def test_statements_only_yield_none(self, worker: _Worker) -> None:
        assert _run(worker, "y = 1")["result"] is None

    def test_state_persists_between_requests(self, worker: _Worker) -> None:
        _ = _run(worker, "counter = 10")
        _ = _run(worker, "counter = counter + 5")

        assert _run(worker, "counter")["result"] == 15

    def test_output_is_captured_and_reset_per_execution(self, worker: _Worker) -> None:
        first = _run(worker, "console.log('one')\nprint('two', 2)")
        second = _run(worker, "console.warn('three')")

        assert first["output"] == "one\ntwo 2"
        assert second["output"] == "WARN: three"

    def test_errors_are_reported(self, worker: _Worker) -> None:
        reply = _run(worker, "console.log('before')\n1 / 0")

        assert reply["success"] is False
        assert reply["result"] is None
        assert "ZeroDivisionError" in str(reply["error"])
        assert reply["output"] == "before"

    def test_import_statements_fail(self, worker: _Worker) -> None:
        reply = _run(worker, "import os\nos.getcwd()")

        assert reply["success"] is False
        assert reply["error"]

    def test_execution_type_is_visible(self, worker: _Worker) -> None:
        assert _run(worker, "execution_type", execution_type="git")["result"] == "git"

    def test_system_bindings_are_absent_by_default(self, worker: _Worker) -> None:
        reply = _run(worker, "shell.run('echo hi')")

        assert reply["success"] is False

    def test_require_loads_allowed_modules(self) -> None:
        worker = _Worker(ContextOptions(enable_system_access=True))

        reply = _run(worker, "json = require('json')\njson.dumps({'a': 1})")
        denied = _run(worker, "require('socket')")

        assert reply["result"] == '{"a": 1}'
        assert denied["success"] is False
        assert "not allowed" in str(denied["error"])

    def test_fs_binding_reads_host_files(self, tmp_path: Path) -> None:
        target = tmp_path / "data.txt"
        _ = target.write_text("payload")
        worker = _Worker(ContextOptions(enable_system_access=True))

        reply = _run(worker, f"fs.read({str(target)!r})")

        assert reply["result"] == "payload"


class TestControlMessages:
    def test_get_and_clear_output(self, worker: _Worker) -> None:
        _ = _run(worker, "console.log('kept')")

        assert worker.handle({"op": "get_output"}) == {"op": "output", "output": "kept"}
        assert worker.handle({"op": "clear_output"}) == {"op": "cleared"}
        assert worker.handle({"op": "get_output"})["output"] == ""

    def test_unknown_operation(self, worker: _Worker) -> None:
        reply = worker.handle({"op": "explode"})

        assert reply == {"op": "error", "error": "Unknown operation: 'explode'"}


def test_to_wire_converts_nested_values() -> None:
    value = {"items": (1, 2.5, None), 3: {"ok": True}, "obj": object}

    wired = to_wire(value)

    assert wired == {"items": [1, 2.5, None], "3": {"ok": True}, "obj": repr(object)}


def test_to_wire_caps_depth() -> None:
    nested: list[object] = []
    cursor = nested
    for _ in range(40):
        child: list[object] = []
        cursor.append(child)
        cursor = child

    wired = to_wire(nested)

    depth = 0
    node: object = wired
    while isinstance(node, list) and node:
        node = node[0]
        depth += 1
    assert isinstance(node, str)
    assert depth == 32
