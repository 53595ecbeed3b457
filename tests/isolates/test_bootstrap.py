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

"""Tests for the globals installed into sandbox interpreters."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import cast

import pytest

from agentsandbox.errors import ModuleNotAllowedError, SandboxError
from agentsandbox.filesystem import LocalFilesystem
from agentsandbox.isolates import (
    Console,
    ContextOptions,
    OutputBuffer,
    RestrictedLoader,
    ShellBinding,
    install_context,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


class TestConsole:
    def test_levels_are_prefixed(self) -> None:
        buffer = OutputBuffer()
        console = Console(buffer)

        console.log("plain", 1)
        console.info("fyi")
        console.warn("careful")
        console.error("broken", {"code": 2})

        assert buffer.render() == (
            "plain 1\nINFO: fyi\nWARN: careful\nERROR: broken {'code': 2}"
        )
        assert len(buffer) == 4

    def test_print_honors_separator(self) -> None:
        buffer = OutputBuffer()
        console = Console(buffer)

        console.print("a", "b", sep="-", end="")
        console.print("c", "d", sep=None)

        assert buffer.render() == "a-b\nc d"

    def test_clear_empties_buffer(self) -> None:
        buffer = OutputBuffer()
        Console(buffer).log("x")

        buffer.clear()

        assert buffer.render() == ""


class TestRestrictedLoader:
    def test_loads_allowed_modules(self) -> None:
        loader = RestrictedLoader(["json"])

        assert loader("json") is json
        assert loader.allowed_modules == frozenset({"json"})

    def test_rejects_modules_outside_the_list(self) -> None:
        loader = RestrictedLoader(["json"])

        with pytest.raises(ModuleNotAllowedError, match="Module 'subprocess' is not allowed"):
            _ = loader("subprocess")

    def test_reports_allowed_but_missing_modules(self) -> None:
        loader = RestrictedLoader(["definitely_not_installed_module"])

        with pytest.raises(SandboxError, match="Failed to import module"):
            _ = loader("definitely_not_installed_module")


@posix_only
class TestShellBinding:
    def test_run_captures_streams_and_code(self, tmp_path: Path) -> None:
        shell = ShellBinding(cwd=str(tmp_path))

        result = shell.run("echo out; echo err >&2; exit 3")

        assert result == {"code": 3, "stdout": "out\n", "stderr": "err\n"}

    def test_cwd_override(self, tmp_path: Path) -> None:
        shell = ShellBinding()

        result = shell.exec("pwd", cwd=str(tmp_path))

        assert Path(str(result["stdout"]).strip()).resolve() == tmp_path.resolve()

    def test_timeout_reports_negative_code(self) -> None:
        shell = ShellBinding(timeout=0.2)

        result = shell.run("sleep 5")

        assert result["code"] == -1
        assert "timed out" in str(result["stderr"])

    def test_env_callable_is_used(self) -> None:
        shell = ShellBinding(env=lambda: {"PATH": os.environ.get("PATH", ""), "GREETING": "hi"})

        assert shell.run("echo $GREETING")["stdout"] == "hi\n"

    def test_which(self) -> None:
        assert ShellBinding().which("sh") is not None
        assert ShellBinding().which("no-such-program-here") is None


def test_install_context_without_system_access() -> None:
    symtable: dict[str, object] = {"open": open, "require": object()}

    buffer = install_context(symtable, options=ContextOptions())

    assert "open" not in symtable
    assert "require" not in symtable
    assert "shell" not in symtable
    assert symtable["execution_type"] == "mixed"
    console = cast(Console, symtable["console"])
    console.log("hello")
    assert cast(object, symtable["get_output"])() == "hello"  # type: ignore[operator]
    cast(object, symtable["clear_output"])()  # type: ignore[operator]
    assert buffer.render() == ""


def test_install_context_with_system_access() -> None:
    symtable: dict[str, object] = {}
    options = ContextOptions(enable_system_access=True, max_file_size=99)

    _ = install_context(symtable, options=options)

    loader = symtable["require"]
    assert isinstance(loader, RestrictedLoader)
    assert loader.allowed_modules == frozenset(options.allowed_modules)
    assert isinstance(symtable["shell"], ShellBinding)
    fs = symtable["fs"]
    assert isinstance(fs, LocalFilesystem)
    assert fs.max_file_size == 99
    assert symtable["path"] is os.path
