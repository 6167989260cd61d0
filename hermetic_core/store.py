"""The store capability consumed by the engine."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

__all__ = ["ContentStore"]


@runtime_checkable
class ContentStore(Protocol):
    """Anything that maps a content identity to a local location."""

    def fetch(self, identity: str) -> Path:
        ...
