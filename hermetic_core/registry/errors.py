"""Errors raised by the command registry."""

from __future__ import annotations

from typing import Sequence


class CommandRegistryError(Exception):
    """Base class for registry errors."""


class CommandCollisionError(CommandRegistryError):
    """Raised when an entry already exists for a qualified name."""


class CommandNotFoundError(CommandRegistryError):
    """Raised when a command cannot be resolved."""


class AmbiguousCommandError(CommandRegistryError):
    def __init__(self, name: str, candidates: Sequence[str]) -> None:
        super().__init__(f"{name!r} matches multiple entries: {', '.join(candidates)}")
        self.name = name
        self.candidates = tuple(candidates)
