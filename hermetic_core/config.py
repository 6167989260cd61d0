"""Engine settings resolved from the layered workspace configuration."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError
from .paths import UserDirs
from .workspace import CONFIG_FILE_NAME, WorkspaceResolver

__all__ = ["EngineSettings", "default_config_path"]


def default_config_path(user_dirs: UserDirs | None = None) -> Path:
    """Return the platform-specific user config file."""
    return (user_dirs or UserDirs()).config_dir() / CONFIG_FILE_NAME


@dataclass(frozen=True)
class EngineSettings:
    store_dir: Path
    timeout_seconds: float | None = 300.0
    max_workers: int = 4
    fetch_command: tuple[str, ...] = ()
    descriptor: Path | None = None

    @classmethod
    def resolve(cls, resolver: WorkspaceResolver, start_dir: Path | None = None) -> "EngineSettings":
        user_dirs = resolver.user_dirs or UserDirs()
        store_raw = resolver.resolve_setting("store_dir", start_dir)
        descriptor_raw = resolver.resolve_setting("descriptor", start_dir)
        fetch_raw = resolver.resolve_setting("fetch_command", start_dir)
        return cls(
            store_dir=Path(store_raw).expanduser() if store_raw else user_dirs.store_dir(),
            timeout_seconds=_timeout(resolver.resolve_setting("timeout_seconds", start_dir)),
            max_workers=_positive_int("max_workers", resolver.resolve_setting("max_workers", start_dir)),
            fetch_command=tuple(shlex.split(fetch_raw)) if fetch_raw else (),
            descriptor=Path(descriptor_raw).expanduser() if descriptor_raw else None,
        )


def _timeout(raw: str | None) -> float | None:
    if raw is None or raw.strip().lower() in ("", "none", "0"):
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"timeout_seconds must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError("timeout_seconds cannot be negative")
    return value


def _positive_int(label: str, raw: str | None) -> int:
    try:
        value = int(raw or "4")
    except ValueError:
        raise ConfigurationError(f"{label} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigurationError(f"{label} must be >= 1")
    return value
