"""hermetic CLI: resolve a registered command and run it."""

from __future__ import annotations

import argparse
import inspect
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence

from hermetic_core.commands import register_builtin_commands
from hermetic_core.registry import AmbiguousCommandError, CommandNotFoundError, CommandRegistry, RegistryEntry

CLI_VERSION = "0.1.0"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_registry() -> CommandRegistry:
    registry = CommandRegistry()
    register_builtin_commands(registry)
    return registry


def main(
    argv: Sequence[str] | None = None,
    *,
    start_dir: Path | str | None = None,
) -> int:
    """Resolve and run a hermetic command."""

    tokens = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        level, tokens = _extract_log_level(tokens)
    except ValueError as exc:
        print(f"[hermetic] {exc}")
        return 2
    logging.basicConfig(level=getattr(logging, level), format="%(levelname)s %(name)s: %(message)s")

    registry = build_registry()
    if not tokens or tokens[0] in ("-h", "--help"):
        return _print_overview(registry.entries())
    if tokens[0] == "--version":
        print(f"hermetic v{CLI_VERSION}")
        return 0

    spec, command_args = tokens[0], tokens[1:]
    try:
        entry = registry.resolve(spec)
    except CommandNotFoundError as exc:
        print(str(exc))
        return 1
    except AmbiguousCommandError as exc:
        print(f"Command is ambiguous ({', '.join(exc.candidates)}); use group:name to disambiguate.")
        return 1

    parser = argparse.ArgumentParser(
        prog=f"hermetic {entry.name}",
        description=_command_description(entry),
    )
    entry.target.configure(parser)
    parser.set_defaults(start_dir=str(start_dir) if start_dir is not None else None)

    try:
        parsed_args = parser.parse_args(command_args)
    except SystemExit as exc:
        return exc.code or 0

    command = entry.target()
    result = command.run(parsed_args)

    if entry.name == "help":
        return _print_overview(registry.entries(), include_long=getattr(command, "long_format", False))
    return 0 if result is None else result


def _extract_log_level(tokens: list[str]) -> tuple[str, list[str]]:
    """Pull a leading ``--log-level LEVEL`` (or ``--log-level=LEVEL``) off the argv."""
    level = "WARNING"
    remaining = list(tokens)
    while remaining and remaining[0].startswith("--log-level"):
        head = remaining.pop(0)
        if "=" in head:
            value = head.split("=", 1)[1]
        elif remaining:
            value = remaining.pop(0)
        else:
            raise ValueError("--log-level requires a value")
        if value.upper() not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}; choose from {', '.join(LOG_LEVELS)}")
        level = value.upper()
    return level, remaining


def _print_overview(entries: Iterable[RegistryEntry], *, include_long: bool = False) -> int:
    print("Usage: hermetic [--log-level LEVEL] <command> [args...]\n")
    print("Commands:")
    for entry in entries:
        lines = _command_description(entry).splitlines()
        short = lines[0] if lines else ""
        print(f"  {entry.name:<12} {short}")
        if include_long:
            for extra in lines[1:]:
                print(f"    {extra}")
    return 0


def _command_description(entry: RegistryEntry) -> str:
    return (inspect.getdoc(entry.target) or "").strip()
