"""Project a build closure into search paths for a shell or a wrapped artifact."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .closure import BuildClosure, ResolvedDependency

__all__ = [
    "EnvironmentView",
    "Mode",
    "dedupe",
    "materialize",
    "render_exports",
]

LIBRARY_PATH_VAR = "LD_LIBRARY_PATH"
PKG_CONFIG_PATH_VAR = "PKG_CONFIG_PATH"
BIN_PATH_VAR = "PATH"


class Mode(str, Enum):
    DEV_SHELL = "devshell"
    RUNTIME_WRAP = "runtime"

    @classmethod
    def parse(cls, value: str) -> "Mode":
        text = (value or "").strip().lower().replace("_", "-")
        if text in ("devshell", "dev-shell", "shell", "dev"):
            return cls.DEV_SHELL
        if text in ("runtime", "runtime-wrap", "wrap"):
            return cls.RUNTIME_WRAP
        raise ValueError(f"unknown environment mode {value!r}")


@dataclass(frozen=True)
class EnvironmentView:
    """Read-only path lists derived from one closure."""

    mode: Mode
    identities: tuple[str, ...] = ()
    library_path: tuple[str, ...] = ()
    pkg_config_path: tuple[str, ...] = ()
    bin_path: tuple[str, ...] = ()
    hints: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash((self.mode, self.identities, self.library_path, self.pkg_config_path, self.bin_path))

    def path_lists(self) -> dict[str, tuple[str, ...]]:
        lists: dict[str, tuple[str, ...]] = {
            LIBRARY_PATH_VAR: self.library_path,
            PKG_CONFIG_PATH_VAR: self.pkg_config_path,
            BIN_PATH_VAR: self.bin_path,
        }
        for name in sorted(self.hints):
            lists[name] = self.hints[name]
        return {name: entries for name, entries in lists.items() if entries}

    def as_env(self) -> dict[str, str]:
        return {name: os.pathsep.join(entries) for name, entries in self.path_lists().items()}


def dedupe(entries: Iterable[str]) -> tuple[str, ...]:
    """Drop repeats and blanks, keeping the first occurrence."""
    seen: set[str] = set()
    out: list[str] = []
    for entry in entries:
        if not entry or entry in seen:
            continue
        seen.add(entry)
        out.append(entry)
    return tuple(out)


def _joined(location: Path, relatives: Sequence[str]) -> list[str]:
    return [(location / rel).as_posix() for rel in relatives]


def materialize(closure: BuildClosure, mode: Mode) -> EnvironmentView:
    if mode is Mode.DEV_SHELL:
        members: Sequence[ResolvedDependency] = closure.dependencies
    else:
        members = closure.runtime_dependencies()

    library: list[str] = []
    pkg_config: list[str] = []
    binaries: list[str] = []
    hints: dict[str, list[str]] = {}
    for item in members:
        dependency = item.dependency
        library.extend(_joined(item.location, dependency.lib_dirs))
        pkg_config.extend(_joined(item.location, dependency.pkgconfig_dirs))
        binaries.extend(_joined(item.location, dependency.bin_dirs))
        for variable, relative in dependency.env.items():
            hints.setdefault(variable, []).append((item.location / relative).as_posix())

    if mode is Mode.DEV_SHELL:
        binaries.insert(0, closure.toolchain.bin_dir.as_posix())
    else:
        binaries = []

    return EnvironmentView(
        mode=mode,
        identities=dedupe(item.identity for item in members),
        library_path=dedupe(library),
        pkg_config_path=dedupe(pkg_config),
        bin_path=dedupe(binaries),
        hints={name: dedupe(entries) for name, entries in hints.items()},
    )


def render_exports(view: EnvironmentView, *, extra: Mapping[str, str] | None = None) -> str:
    """Render POSIX ``export`` lines; ``PATH`` keeps the caller's entries after ours."""
    lines: list[str] = []
    for name, value in view.as_env().items():
        if name == BIN_PATH_VAR:
            lines.append(f'export PATH={shlex.quote(value)}"${{PATH:+:$PATH}}"')
            continue
        lines.append(f"export {name}={shlex.quote(value)}")
    for name in sorted(extra or {}):
        lines.append(f"export {name}={shlex.quote(str((extra or {})[name]))}")
    return "\n".join(lines) + ("\n" if lines else "")
