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

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

import pytest

from agentsandbox.isolates import IsolateRegistry
from agentsandbox.runtime.clock import FakeClock
from agentsandbox.tools import ToolContext, ToolRuntime


class ContextFactory(Protocol):
    def __call__(self, **runtime_changes: object) -> ToolContext:
        """Return a tool context whose runtime has ``runtime_changes`` applied."""


@pytest.fixture
def registry() -> Iterator[IsolateRegistry]:
    """Registry backed by real worker processes, cleaned after the test."""

    registry = IsolateRegistry()
    try:
        yield registry
    finally:
        _ = registry.cleanup_all()


@pytest.fixture
def sandbox_root(tmp_path: Path) -> Path:
    root = tmp_path / "sandbox"
    root.mkdir()
    return root


@pytest.fixture
def make_context(
    sandbox_root: Path, registry: IsolateRegistry
) -> ContextFactory:
    """Build contexts rooted at ``sandbox_root`` sharing one registry."""

    def factory(**runtime_changes: object) -> ToolContext:
        runtime = ToolRuntime(
            user_id="tester",
            session_id="test-session",
            base_path=sandbox_root,
            use_shared_isolate=False,
        ).update(**runtime_changes)
        return ToolContext(runtime=runtime, registry=registry, clock=FakeClock())

    return factory
