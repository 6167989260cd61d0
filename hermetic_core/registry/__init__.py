"""Command registry exports."""

from .entry import RegistryEntry
from .errors import (
    AmbiguousCommandError,
    CommandCollisionError,
    CommandNotFoundError,
    CommandRegistryError,
)
from .registry import CommandRegistry

__all__ = [
    "RegistryEntry",
    "CommandRegistry",
    "CommandRegistryError",
    "CommandCollisionError",
    "CommandNotFoundError",
    "AmbiguousCommandError",
]
