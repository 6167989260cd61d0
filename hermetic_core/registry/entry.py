"""One registered CLI command."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Type


@dataclass(frozen=True)
class RegistryEntry:
    group: str
    name: str
    target: Type[Any]
    kind: str = "command"

    def __post_init__(self) -> None:
        for label, value in (("group", self.group), ("name", self.name), ("kind", self.kind)):
            if not value or ":" in value:
                raise ValueError(f"registry {label} must be non-empty and free of ':' (got {value!r})")
        if not isinstance(self.target, type):
            raise TypeError(f"registry target for {self.name!r} must be a class")

    @property
    def qualified_name(self) -> str:
        return f"{self.group}:{self.name}"
