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

"""Command line entry points for the ``agentsandbox`` executable."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from typing import TextIO, cast

from .config import Settings, load_settings
from .errors import ConfigError, ToolValidationError
from .isolates import IsolateRegistry
from .runtime.logging import StructuredLogger, configure_logging, get_logger
from .serde import dump
from .tools import (
    CodeExecutionParams,
    ToolContext,
    ToolRuntime,
    execute_code,
    get_tool,
)


def main(
    argv: Sequence[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run the agentsandbox CLI."""

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:  # argparse exits with code 2 on errors
        code = exc.code if isinstance(exc.code, int) else 2
        return int(code)

    configure_logging(level=args.log_level, json_mode=args.json_logs, env=env)
    logger = get_logger(__name__, context={"component": "cli"})

    try:
        settings = load_settings(env)
    except ConfigError as error:
        _ = err.write("Invalid configuration:\n")
        for violation in error.violations:
            _ = err.write(f"  - {violation}\n")
        logger.error(
            "Configuration rejected.",
            event="cli.config_error",
            context={"violations": list(error.violations)},
        )
        return 1

    if args.command == "check-config":
        _ = out.write(json.dumps(dump(settings), indent=2) + "\n")
        return 0
    if args.command == "exec":
        return _run_exec(args, settings, out=out, err=err, logger=logger)
    return _run_serve(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentsandbox",
        description="Sandboxed code, file and Git execution for agent tools.",
    )
    _ = parser.add_argument(
        "--log-level",
        choices=("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"),
        default=None,
        help="Override the log level (default: AGENTSANDBOX_LOG_LEVEL or INFO).",
    )
    _ = parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit structured JSON logs (default: AGENTSANDBOX_LOG_FORMAT).",
    )

    subcommands = parser.add_subparsers(dest="command", required=True)

    serve_parser = subcommands.add_parser(
        "serve", help="Serve the tool catalog over MCP on stdio."
    )
    _ = serve_parser.add_argument(
        "--session",
        default="default",
        help=(
            "Session id for tool calls that do not pass session_id "
            "(default: default)."
        ),
    )
    _ = serve_parser.add_argument(
        "--user", default=None, help="User id attached to tool results."
    )

    exec_parser = subcommands.add_parser(
        "exec", help="Run one snippet and print the result."
    )
    _ = exec_parser.add_argument(
        "code", help="Code to run, or '-' to read it from standard input."
    )
    _ = exec_parser.add_argument(
        "--language",
        choices=("python", "shell", "bash"),
        default="python",
        help="Language of the snippet (default: python).",
    )
    _ = exec_parser.add_argument(
        "--timeout",
        type=int,
        default=5000,
        help="Timeout in milliseconds (default: 5000).",
    )
    _ = exec_parser.add_argument(
        "--module",
        action="append",
        default=[],
        dest="modules",
        help="Extra module require() may load; repeat for more.",
    )
    _ = exec_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON.",
    )

    _ = subcommands.add_parser(
        "check-config", help="Validate the configuration and print the settings."
    )
    return parser


def _run_exec(
    args: argparse.Namespace,
    settings: Settings,
    *,
    out: TextIO,
    err: TextIO,
    logger: StructuredLogger,
) -> int:
    code = sys.stdin.read() if args.code == "-" else args.code
    registry = IsolateRegistry()
    context = ToolContext(
        runtime=ToolRuntime.from_settings(settings, session_id="cli"),
        registry=registry,
    )
    try:
        params = get_tool("execute_code").parse_arguments(
            {
                "code": code,
                "language": args.language,
                "timeout": args.timeout,
                "modules": list(args.modules),
                "use_shared_isolate": False,
            }
        )
        result = execute_code(cast(CodeExecutionParams, params), context=context)
    except ToolValidationError as error:
        _ = err.write(f"{error}\n")
        logger.warning(
            "Snippet rejected.", event="cli.exec_rejected", context={"error": str(error)}
        )
        return 2
    finally:
        _ = registry.cleanup_all()

    if args.json:
        _ = out.write(json.dumps(dump(result), indent=2, default=repr) + "\n")
    else:
        _ = out.write(result.render() + "\n")
    return 0 if result.success else 1


def _run_serve(args: argparse.Namespace, settings: Settings) -> int:
    from .server import serve_stdio

    registry = IsolateRegistry(
        max_sessions=settings.max_sessions,
        idle_ttl=settings.session_ttl_seconds,
    )
    runtime = ToolRuntime.from_settings(
        settings, user_id=args.user, session_id=args.session
    )
    serve_stdio(ToolContext(runtime=runtime, registry=registry))
    return 0


__all__ = ["main"]
