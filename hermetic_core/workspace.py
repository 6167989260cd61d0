"""Project workspace (``.hermetic``) discovery and layered settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

import tomllib

from .paths import UserDirs

DEFAULT_WORKSPACE_NAME = ".hermetic"
CONFIG_FILE_NAME = "config.toml"
CONFIG_SECTION = "hermetic"

_DEFAULTS: dict[str, str] = {
    "timeout_seconds": "300",
    "max_workers": "4",
}
_ENV_KEY_MAP: dict[str, str] = {
    "workspace_dir": "HERMETIC_DIR",
    "store_dir": "HERMETIC_STORE",
    "descriptor": "HERMETIC_DESCRIPTOR",
    "timeout_seconds": "HERMETIC_TIMEOUT",
    "max_workers": "HERMETIC_MAX_WORKERS",
    "fetch_command": "HERMETIC_FETCH_COMMAND",
}


def read_settings_file(path: Path) -> dict[str, str]:
    """Flatten a settings TOML file; keys under ``[hermetic]`` win over top-level ones.

    Unreadable or malformed files contribute nothing.
    """
    try:
        raw = path.read_bytes()
    except OSError:
        return {}
    try:
        document = tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError):
        return {}
    merged = {key: value for key, value in document.items() if not isinstance(value, dict)}
    section = document.get(CONFIG_SECTION)
    if isinstance(section, dict):
        merged.update({key: value for key, value in section.items() if not isinstance(value, dict)})
    return {key: str(value) for key, value in merged.items()}


@dataclass(frozen=True)
class WorkspaceLayout:
    """Directories kept under a project's ``.hermetic`` root."""

    root: Path
    artifacts_dir: Path
    config_file: Path

    @classmethod
    def from_root(cls, root: Path, config_filename: str = CONFIG_FILE_NAME) -> "WorkspaceLayout":
        base = Path(root).resolve()
        return cls(
            root=base,
            artifacts_dir=base / "artifacts",
            config_file=base / config_filename,
        )

    def directories(self) -> tuple[Path, ...]:
        return (self.root, self.artifacts_dir)

    def ensure(self) -> None:
        for path in self.directories():
            path.mkdir(parents=True, exist_ok=True)
        if not self.config_file.exists():
            self.config_file.write_text("", encoding="utf-8")

    def artifact_dir(self, name: str, version: str) -> Path:
        return self.artifacts_dir / f"{name}-{version}"


@dataclass
class WorkspaceResolver:
    """Locate the workspace and answer settings from CLI, env, workspace, user, defaults."""

    workspace_name: str = DEFAULT_WORKSPACE_NAME
    config_filename: str = CONFIG_FILE_NAME
    user_dirs: UserDirs | None = None
    cli_overrides: Mapping[str, str | None] | None = None
    env: Mapping[str, str] | None = None
    defaults: Mapping[str, str] | None = None
    _cli: dict[str, str] = field(init=False, repr=False)
    _fallbacks: dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.user_dirs is None:
            self.user_dirs = UserDirs()
        if self.env is None:
            self.env = os.environ
        self._cli = {key: str(value) for key, value in (self.cli_overrides or {}).items() if value is not None}
        self._fallbacks = {**_DEFAULTS, **dict(self.defaults or {})}

    def find_workspace(self, start_dir: Path | None = None) -> Path | None:
        """Return the pinned workspace if it exists, else the nearest ``.hermetic`` upwards."""
        pinned = self._pinned_root()
        if pinned is not None:
            return pinned if pinned.is_dir() else None
        origin = self._origin(start_dir)
        return next(
            (directory / self.workspace_name for directory in (origin, *origin.parents)
             if (directory / self.workspace_name).is_dir()),
            None,
        )

    def ensure_workspace(self, start_dir: Path | None = None) -> Path:
        root = self._pinned_root() or self.find_workspace(start_dir)
        if root is None:
            root = self._origin(start_dir) / self.workspace_name
        layout = WorkspaceLayout.from_root(root, self.config_filename)
        layout.ensure()
        return layout.root

    def resolve_setting(self, key: str, start_dir: Path | None = None) -> str | None:
        layers: tuple[Callable[[], Mapping[str, str]], ...] = (
            lambda: self._cli,
            self._env_layer,
            lambda: self._workspace_layer(start_dir),
            self._user_layer,
            lambda: self._fallbacks,
        )
        for layer in layers:
            value = layer().get(key)
            if value:
                return value
        return None

    def _origin(self, start_dir: Path | None) -> Path:
        return Path(start_dir).resolve() if start_dir else Path.cwd().resolve()

    def _pinned_root(self) -> Path | None:
        raw = self._cli.get("workspace_dir") or self._env_layer().get("workspace_dir")
        return Path(raw).expanduser().resolve() if raw else None

    def _env_layer(self) -> dict[str, str]:
        return {key: self.env[name] for key, name in _ENV_KEY_MAP.items() if self.env.get(name)}

    def _workspace_layer(self, start_dir: Path | None) -> dict[str, str]:
        root = self.find_workspace(start_dir)
        return read_settings_file(root / self.config_filename) if root is not None else {}

    def _user_layer(self) -> dict[str, str]:
        return read_settings_file(self.user_dirs.config_dir() / self.config_filename)
