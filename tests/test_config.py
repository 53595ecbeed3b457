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

"""Tests for environment driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentsandbox.config import ENV_SCHEMA, Settings, load_settings
from agentsandbox.errors import ConfigError
from agentsandbox.tools import ToolRuntime


def test_defaults_when_environment_is_empty() -> None:
    settings = load_settings({})

    assert settings == Settings()
    assert settings.memory_limit_mb == 512
    assert settings.enable_system_access is False
    assert settings.commit_format == "conventional"


def test_environment_values_are_parsed() -> None:
    settings = load_settings(
        {
            "AGENTSANDBOX_MEMORY_LIMIT_MB": "256",
            "AGENTSANDBOX_ENABLE_SYSTEM_ACCESS": "yes",
            "AGENTSANDBOX_ALLOWED_MODULES": "math, statistics",
            "AGENTSANDBOX_ALLOWED_EXTENSIONS": "TXT,.md",
            "AGENTSANDBOX_BASE_PATH": "/srv/data",
            "AGENTSANDBOX_COMMIT_FORMAT": "Standard",
            "AGENTSANDBOX_SESSION_TTL_SECONDS": "1.5",
        }
    )

    assert settings.memory_limit_mb == 256
    assert settings.enable_system_access is True
    assert settings.allowed_modules == ("math", "statistics")
    assert settings.allowed_extensions == (".txt", ".md")
    assert settings.base_path == Path("/srv/data")
    assert settings.commit_format == "standard"
    assert settings.session_ttl_seconds == 1.5


def test_every_violation_is_reported_at_once() -> None:
    with pytest.raises(ConfigError) as excinfo:
        _ = load_settings(
            {
                "AGENTSANDBOX_MEMORY_LIMIT_MB": "-1",
                "AGENTSANDBOX_ENABLE_LINTING": "maybe",
                "AGENTSANDBOX_COMMIT_FORMAT": "poetry",
            }
        )

    violations = excinfo.value.violations
    assert len(violations) == 3
    assert violations[0].startswith("AGENTSANDBOX_MEMORY_LIMIT_MB:")
    assert any("AGENTSANDBOX_ENABLE_LINTING" in item for item in violations)
    assert any("conventional, standard, custom" in item for item in violations)


def test_empty_values_fall_back_to_defaults() -> None:
    settings = load_settings({"AGENTSANDBOX_DEFAULT_BRANCH": ""})

    assert settings.default_branch == "main"


def test_toml_file_is_overridden_by_environment(tmp_path: Path) -> None:
    config = tmp_path / "agentsandbox.toml"
    _ = config.write_text(
        'memory_limit_mb = 128\nallowed_modules = ["math"]\ndebug = true\n',
        encoding="utf-8",
    )

    settings = load_settings(
        {
            "AGENTSANDBOX_CONFIG": str(config),
            "AGENTSANDBOX_MEMORY_LIMIT_MB": "64",
        }
    )

    assert settings.memory_limit_mb == 64
    assert settings.allowed_modules == ("math",)
    assert settings.debug is True


def test_yaml_file_is_supported(tmp_path: Path) -> None:
    config = tmp_path / "agentsandbox.yaml"
    _ = config.write_text(
        "enable_system_access: true\nmax_sessions: 4\n", encoding="utf-8"
    )

    settings = load_settings({"AGENTSANDBOX_CONFIG": str(config)})

    assert settings.enable_system_access is True
    assert settings.max_sessions == 4


def test_config_file_problems_are_violations(tmp_path: Path) -> None:
    config = tmp_path / "agentsandbox.toml"
    _ = config.write_text("unknown_key = 1\nmemory_limit_mb = 0\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        _ = load_settings({"AGENTSANDBOX_CONFIG": str(config)})

    assert excinfo.value.violations == (
        "AGENTSANDBOX_CONFIG: unknown setting 'unknown_key'",
        "AGENTSANDBOX_CONFIG: memory_limit_mb: must be a positive integer",
    )


def test_missing_config_file_is_a_violation(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="configuration file not found"):
        _ = load_settings({"AGENTSANDBOX_CONFIG": str(tmp_path / "absent.toml")})


def test_schema_covers_every_setting() -> None:
    assert {item.field for item in ENV_SCHEMA} == set(Settings.__dataclass_fields__)


def test_tool_runtime_from_settings() -> None:
    settings = load_settings(
        {
            "AGENTSANDBOX_EXECUTION_TIMEOUT_MS": "2500",
            "AGENTSANDBOX_REPO_PATH": "/srv/repo",
            "AGENTSANDBOX_USE_SHARED_ISOLATE": "false",
        }
    )

    runtime = ToolRuntime.from_settings(settings, user_id="alice", session_id="s1")

    assert runtime.user_id == "alice"
    assert runtime.session_id == "s1"
    assert runtime.execution_timeout_ms == 2500
    assert runtime.repo_path == Path("/srv/repo")
    assert runtime.use_shared_isolate is False
