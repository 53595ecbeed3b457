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

"""Environment driven settings for the sandbox server and CLI.

Every tunable is declared once in :data:`ENV_SCHEMA`. :func:`load_settings`
reads an optional TOML or YAML file named by ``AGENTSANDBOX_CONFIG``, lets the
environment override it, and reports every invalid value in a single
:class:`~agentsandbox.errors.ConfigError`.

File keys are the lower-case setting names without the prefix::

    # agentsandbox.toml
    memory_limit_mb = 256
    enable_system_access = true
    allowed_modules = ["math", "statistics"]
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Final, Literal, cast

import yaml

from .dataclasses import FrozenDataclass
from .errors import ConfigError
from .serde import bool_from_str

ENV_PREFIX: Final = "AGENTSANDBOX_"
ENV_CONFIG_FILE: Final = f"{ENV_PREFIX}CONFIG"

type CommitFormat = Literal["conventional", "standard", "custom"]
COMMIT_FORMATS: Final[tuple[str, ...]] = ("conventional", "standard", "custom")

__all__ = [
    "COMMIT_FORMATS",
    "ENV_SCHEMA",
    "CommitFormat",
    "EnvSetting",
    "Settings",
    "load_settings",
]


@FrozenDataclass()
class Settings:
    """Resolved process-wide settings."""

    memory_limit_mb: int = 512
    execution_timeout_ms: int | None = None
    enable_system_access: bool = False
    enable_linting: bool = True
    allowed_modules: tuple[str, ...] = ()
    base_path: Path | None = None
    repo_path: Path | None = None
    default_branch: str = "main"
    commit_format: CommitFormat = "conventional"
    max_file_size: int = 10 * 1024 * 1024
    allowed_extensions: tuple[str, ...] = ()
    max_sessions: int | None = None
    session_ttl_seconds: float | None = None
    temp_dir: Path | None = None
    use_shared_isolate: bool = True
    debug: bool = False


@dataclass(frozen=True, slots=True)
class EnvSetting:
    """One environment variable and how to read it."""

    name: str
    field: str
    parser: Callable[[str], object]
    description: str
    required: bool = False
    default: object = None

    @property
    def env_var(self) -> str:
        return f"{ENV_PREFIX}{self.name}"


def _positive_int(raw: str) -> int:
    value = int(raw.strip())
    if value <= 0:
        raise ValueError("must be a positive integer")
    return value


def _positive_float(raw: str) -> float:
    value = float(raw.strip())
    if value <= 0:
        raise ValueError("must be a positive number")
    return value


def _non_empty(raw: str) -> str:
    value = raw.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _path(raw: str) -> Path:
    return Path(_non_empty(raw)).expanduser()


def _commit_format(raw: str) -> str:
    value = raw.strip().lower()
    if value not in COMMIT_FORMATS:
        raise ValueError(f"must be one of {', '.join(COMMIT_FORMATS)}")
    return value


def _extensions(raw: str) -> tuple[str, ...]:
    return tuple(
        item if item.startswith(".") else f".{item}" for item in _csv(raw.lower())
    )


ENV_SCHEMA: Final[tuple[EnvSetting, ...]] = (
    EnvSetting("MEMORY_LIMIT_MB", "memory_limit_mb", _positive_int,
               "Memory ceiling per session isolate in megabytes.", default=512),
    EnvSetting("EXECUTION_TIMEOUT_MS", "execution_timeout_ms", _positive_int,
               "Timeout applied to every execution, overriding per-call values."),
    EnvSetting("ENABLE_SYSTEM_ACCESS", "enable_system_access", bool_from_str,
               "Expose shell, filesystem and module loading to sandboxed code.",
               default=False),
    EnvSetting("ENABLE_LINTING", "enable_linting", bool_from_str,
               "Run the advisory syntax check before Python executions.",
               default=True),
    EnvSetting("ALLOWED_MODULES", "allowed_modules", _csv,
               "Comma separated modules added to the loader allow-list."),
    EnvSetting("BASE_PATH", "base_path", _path,
               "Root directory file operations are confined to."),
    EnvSetting("REPO_PATH", "repo_path", _path,
               "Repository Git operations run against."),
    EnvSetting("DEFAULT_BRANCH", "default_branch", _non_empty,
               "Branch used when a Git operation names none.", default="main"),
    EnvSetting("COMMIT_FORMAT", "commit_format", _commit_format,
               "Commit message style: conventional, standard or custom.",
               default="conventional"),
    EnvSetting("MAX_FILE_SIZE", "max_file_size", _positive_int,
               "Largest file in bytes that read operations return.",
               default=10 * 1024 * 1024),
    EnvSetting("ALLOWED_EXTENSIONS", "allowed_extensions", _extensions,
               "Comma separated file extensions; empty allows all."),
    EnvSetting("MAX_SESSIONS", "max_sessions", _positive_int,
               "Live isolates kept before the least recently used is evicted."),
    EnvSetting("SESSION_TTL_SECONDS", "session_ttl_seconds", _positive_float,
               "Idle seconds after which a session isolate is evicted."),
    EnvSetting("TEMP_DIR", "temp_dir", _path,
               "Scratch directory for temporary files."),
    EnvSetting("USE_SHARED_ISOLATE", "use_shared_isolate", bool_from_str,
               "Route tool calls through the per-session isolate.", default=True),
    EnvSetting("DEBUG", "debug", bool_from_str,
               "Log every tool request and completion.", default=False),
)  # fmt: skip


def load_settings(
    env: Mapping[str, str] | None = None,
    *,
    schema: Sequence[EnvSetting] = ENV_SCHEMA,
) -> Settings:
    """Resolve :class:`Settings` from the config file and the environment.

    Raises:
        ConfigError: Listing every missing or malformed variable.
    """

    env_map = dict(os.environ if env is None else env)
    violations: list[str] = []
    values: dict[str, object] = {}

    config_file = env_map.get(ENV_CONFIG_FILE)
    if config_file:
        try:
            file_values = _load_config_file(Path(config_file).expanduser())
        except ConfigError as error:
            violations.extend(f"{ENV_CONFIG_FILE}: {item}" for item in error.violations)
        except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as error:
            violations.append(f"{ENV_CONFIG_FILE}: {error}")
        else:
            values.update(_coerce_file_values(file_values, schema, violations))

    for setting in schema:
        raw = env_map.get(setting.env_var)
        if raw is None or raw == "":
            if setting.required and setting.field not in values:
                violations.append(f"{setting.env_var}: required but not set")
            continue
        try:
            values[setting.field] = setting.parser(raw)
        except (TypeError, ValueError) as error:
            violations.append(f"{setting.env_var}: {error}")

    if violations:
        raise ConfigError(violations)

    known = {item.name for item in fields(Settings)}
    return Settings(**{key: value for key, value in values.items() if key in known})  # type: ignore[arg-type]


def _load_config_file(path: Path) -> dict[str, object]:
    if not path.exists():
        raise ConfigError([f"configuration file not found: {path}"])

    suffix = path.suffix.lower()
    data: object
    if suffix == ".toml" or not suffix:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    elif suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        raise ConfigError([f"unsupported configuration format: {path.suffix}"])

    if not isinstance(data, MutableMapping):
        raise ConfigError(["configuration file must contain a mapping at the root"])
    return {str(key): value for key, value in cast(MutableMapping[object, object], data).items()}


def _coerce_file_values(
    raw: Mapping[str, object],
    schema: Sequence[EnvSetting],
    violations: list[str],
) -> dict[str, object]:
    by_field = {setting.field: setting for setting in schema}
    values: dict[str, object] = {}
    for key, value in raw.items():
        setting = by_field.get(key)
        if setting is None:
            violations.append(f"{ENV_CONFIG_FILE}: unknown setting '{key}'")
            continue
        text = (
            ",".join(str(item) for item in cast(Sequence[object], value))
            if isinstance(value, list)
            else str(value).lower()
            if isinstance(value, bool)
            else str(value)
        )
        try:
            values[key] = setting.parser(text)
        except (TypeError, ValueError) as error:
            violations.append(f"{ENV_CONFIG_FILE}: {key}: {error}")
    return values
