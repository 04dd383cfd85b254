"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TextIO

from .config import load_config
from .errors import ExitCode, SplitMuxError, user_facing_error
from .host.main import run_host
from .host.policy import PLATFORM_POLICIES, policy_for_platform
from .host.supervisor import HostSupervisor, SpawnRejected
from .logging import configure_logging, default_log_path, normalize_level

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_VALID_PLATFORMS = tuple(sorted(PLATFORM_POLICIES))


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="splitmux")
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("host", help="Run the process host on stdin/stdout")

    check = commands.add_parser("check", help="Validate a spawn request without starting a shell")
    check.add_argument("--shell", required=True)
    check.add_argument("--cwd", required=True)
    check.add_argument("--boundary", default=None)
    check.add_argument("--platform", choices=_VALID_PLATFORMS, default=None)

    config = commands.add_parser("config", help="Print the resolved configuration as JSON")
    config.add_argument("--config", type=Path, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def run_check(namespace: argparse.Namespace, *, out: TextIO | None = None) -> int:
    stream = out or sys.stdout
    supervisor = HostSupervisor(
        lambda _type, _data: None,
        policy=policy_for_platform(namespace.platform),
    )
    if namespace.boundary is not None:
        supervisor.set_boundary({"path": namespace.boundary})
        if supervisor.boundary is None:
            raise SplitMuxError(
                f"Invalid boundary directory: {namespace.boundary}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Pass an existing directory to --boundary.",
            )

    try:
        supervisor.validate({"shell": namespace.shell, "cwd": namespace.cwd})
    except SpawnRejected as exc:
        print(f"{exc.code.value}: {exc.message}", file=stream)
        return int(ExitCode.VALIDATION_ERROR)
    print("allowed", file=stream)
    return int(ExitCode.SUCCESS)


def run_config(namespace: argparse.Namespace, *, out: TextIO | None = None) -> int:
    config = load_config(namespace.config)
    print(config.model_dump_json(indent=2), file=out or sys.stdout)
    return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    host_runner: Callable[..., int] | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_level is None:
        namespace.log_level = load_config(getattr(namespace, "config", None)).log_level
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        if namespace.command == "host":
            logger.debug("Starting process host")
            runner = host_runner or run_host
            return runner(log_level=namespace.log_level, log_file=log_path)
        if namespace.command == "check":
            return run_check(namespace)
        return run_config(namespace)
    except SplitMuxError as exc:
        logger.error(
            "Handled SplitMuxError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        hint = f"Inspect logs: {log_path}"
        print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
