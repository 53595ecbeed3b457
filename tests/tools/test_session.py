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

from collections.abc import Callable

import pytest

from agentsandbox.tools import (
    CleanupSessionParams,
    CodeExecutionParams,
    ToolContext,
    cleanup_session,
    execute_code,
    invoke,
)

type MakeContext = Callable[..., ToolContext]


def test_cleanup_without_isolate(make_context: MakeContext) -> None:
    result = cleanup_session(
        CleanupSessionParams(), context=make_context(user_id="alice")
    )

    assert result.success is True
    assert result.cleaned is False
    assert result.user_id == "alice"
    assert result.render() == "Session 'test-session' had no isolate to release."


def test_cleanup_takes_no_arguments(make_context: MakeContext) -> None:
    result = invoke("cleanup_session", {}, make_context())

    assert "no isolate" in result.render()


@pytest.mark.slow
def test_cleanup_discards_session_state(make_context: MakeContext) -> None:
    context = make_context(use_shared_isolate=True)
    _ = execute_code(CodeExecutionParams(code="kept = 1"), context=context)

    result = cleanup_session(CleanupSessionParams(), context=context)

    assert result.cleaned is True
    assert result.render() == "Session 'test-session' released."
    assert context.session_id not in context.registry
    after = execute_code(CodeExecutionParams(code="kept"), context=context)
    assert after.success is False


@pytest.mark.slow
def test_sessions_are_released_independently(make_context: MakeContext) -> None:
    context = make_context(use_shared_isolate=True)
    other = context.for_session("other")
    _ = execute_code(CodeExecutionParams(code="kept = 2"), context=context)
    _ = execute_code(CodeExecutionParams(code="kept = 3"), context=other)

    _ = cleanup_session(CleanupSessionParams(), context=other)

    survivor = execute_code(CodeExecutionParams(code="kept"), context=context)
    assert survivor.result == 2
    assert "other" not in context.registry
