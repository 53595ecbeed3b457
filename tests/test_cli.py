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

import io
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import pytest

from agentsandbox.cli import main

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")


@dataclass(slots=True)
class Outcome:
    code: int
    stdout: str
    stderr: str


def run_cli(argv: Sequence[str], env: Mapping[str, str] | None = None) -> Outcome:
    out, err = io.StringIO(), io.StringIO()
    code = main(argv, env=env or {}, stdout=out, stderr=err)
    return Outcome(code, out.getvalue(), err.getvalue())


class TestCheckConfig:
    def test_prints_resolved_settings(self) -> None:
        outcome = run_cli(
            ["check-config"],
            {
                "AGENTSANDBOX_MEMORY_LIMIT_MB": "256",
                "AGENTSANDBOX_ALLOWED_MODULES": "math, re",
            },
        )

        assert outcome.code == 0
        settings = json.loads(outcome.stdout)
        assert settings["memory_limit_mb"] == 256
        assert settings["allowed_modules"] == ["math", "re"]
        assert settings["enable_system_access"] is False

    def test_reports_every_violation(self) -> None:
        outcome = run_cli(
            ["check-config"],
            {
                "AGENTSANDBOX_MEMORY_LIMIT_MB": "-1",
                "AGENTSANDBOX_COMMIT_FORMAT": "haiku",
            },
        )

        assert outcome.code == 1
        assert outcome.stdout == ""
        assert outcome.stderr.startswith("Invalid configuration:\n")
        assert "  - AGENTSANDBOX_MEMORY_LIMIT_MB: must be a positive integer" in outcome.stderr
        assert "AGENTSANDBOX_COMMIT_FORMAT" in outcome.stderr


class TestArgumentErrors:
    def test_missing_subcommand(self) -> None:
        assert run_cli([]).code == 2

    def test_unknown_language(self) -> None:
        assert run_cli(["exec", "echo", "--language", "ruby"]).code == 2

    def test_help_exits_cleanly(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli(["--help"]).code == 0
        assert "check-config" in capsys.readouterr().out


class TestExec:
    def test_invalid_timeout_is_rejected(self) -> None:
        outcome = run_cli(["exec", "1 + 1", "--timeout", "5"])

        assert outcome.code == 2
        assert outcome.stderr.startswith("execute_code: timeout")

    def test_shell_without_system_access_fails(self) -> None:
        outcome = run_cli(["exec", "echo hi", "--language", "shell"])

        assert outcome.code == 1
        assert "System access is required" in outcome.stdout

    @posix_only
    def test_shell_with_system_access(self) -> None:
        outcome = run_cli(
            ["exec", "echo from-shell", "--language", "bash", "--json"],
            {"AGENTSANDBOX_ENABLE_SYSTEM_ACCESS": "true"},
        )

        assert outcome.code == 0
        payload = json.loads(outcome.stdout)
        assert payload["success"] is True
        assert payload["output"] == "from-shell\n"
        assert payload["session_id"] == "cli"

    @pytest.mark.slow
    def test_python_from_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "stdin", io.StringIO("console.log('hey')\n6 * 7"))

        outcome = run_cli(["exec", "-"])

        assert outcome.code == 0
        assert "Result: 42" in outcome.stdout
        assert "Output:\nhey" in outcome.stdout
