"""Store client configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CommandStoreConfig:
    command: tuple[str, ...]
    timeout_seconds: float | None = 60.0
    max_retries: int = 2
    backoff_seconds: float = 0.2
