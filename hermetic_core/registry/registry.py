"""In-memory registry of CLI commands."""

from __future__ import annotations

from .entry import RegistryEntry
from .errors import AmbiguousCommandError, CommandCollisionError, CommandNotFoundError


class CommandRegistry:
    """Track commands by qualified ``group:name`` and by simple name."""

    def __init__(self) -> None:
        self._by_qualified: dict[str, RegistryEntry] = {}
        self._by_name: dict[str, list[RegistryEntry]] = {}

    def register(self, entry: RegistryEntry) -> None:
        qualified = entry.qualified_name
        if qualified in self._by_qualified:
            raise CommandCollisionError(f"{qualified} is already registered.")
        self._by_qualified[qualified] = entry
        self._by_name.setdefault(entry.name, []).append(entry)

    def resolve(self, name_or_qualified: str) -> RegistryEntry:
        """Resolve either a simple name or a qualified ``group:name``."""
        if ":" in name_or_qualified:
            entry = self._by_qualified.get(name_or_qualified)
            if entry is None:
                raise CommandNotFoundError(f"{name_or_qualified} is not registered.")
            return entry
        candidates = self._by_name.get(name_or_qualified)
        if not candidates:
            raise CommandNotFoundError(f"{name_or_qualified} is not registered.")
        if len(candidates) > 1:
            raise AmbiguousCommandError(
                name_or_qualified, sorted(entry.qualified_name for entry in candidates)
            )
        return candidates[0]

    def entries(self) -> tuple[RegistryEntry, ...]:
        return tuple(sorted(self._by_qualified.values(), key=lambda entry: entry.qualified_name))
