"""Post-build wrapping so a binary finds its runtime libraries by itself."""

from __future__ import annotations

import hashlib
import logging
import os
import shlex
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .environment import LIBRARY_PATH_VAR, EnvironmentView, dedupe
from .errors import WrapFailureError

__all__ = [
    "Artifact",
    "CompiledBinary",
    "compose_search_path",
    "render_wrapper",
    "wrap",
    "wrapped_path_for",
]

logger = logging.getLogger(__name__)

WRAPPER_MARKER = "# hermetic-wrapper v1"


@dataclass(frozen=True)
class CompiledBinary:
    path: Path


@dataclass(frozen=True)
class Artifact:
    """A wrapper entry point plus the original binary it execs."""

    path: Path
    wrapped: Path
    prefixes: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    digest: str = ""

    def __hash__(self) -> int:
        return hash((self.path, self.wrapped, self.digest))

    @property
    def library_path(self) -> tuple[str, ...]:
        return tuple(self.prefixes.get(LIBRARY_PATH_VAR, ()))

    def environment(self, ambient: Mapping[str, str]) -> dict[str, str]:
        """The variables the wrapper exports when started under ``ambient``."""
        out: dict[str, str] = {}
        for name, entries in self.prefixes.items():
            out[name] = os.pathsep.join(compose_search_path(entries, ambient.get(name)))
        return out


def compose_search_path(entries: Iterable[str], ambient: str | None) -> tuple[str, ...]:
    """Prefix ``entries`` ahead of an ambient ``:``-separated value.

    Ambient entries follow ours; repeats are dropped first-seen.
    """
    ambient_entries = (ambient or "").split(os.pathsep)
    return dedupe([*entries, *ambient_entries])


def wrapped_path_for(binary: Path) -> Path:
    return binary.with_name(f".{binary.name}-wrapped")


def render_wrapper(target: Path, prefixes: Mapping[str, tuple[str, ...]]) -> str:
    lines = ["#!/bin/sh", WRAPPER_MARKER]
    for name in sorted(prefixes):
        entries = prefixes[name]
        if not entries:
            continue
        value = shlex.quote(os.pathsep.join(entries))
        lines.append(f'{name}={value}"${{{name}:+{os.pathsep}${name}}}"')
        lines.append(f"export {name}")
    lines.append(f'exec {shlex.quote(str(target))} "$@"')
    return "\n".join(lines) + "\n"


def _is_wrapper(path: Path) -> bool:
    try:
        with path.open("rb") as handle:
            head = handle.read(256)
    except OSError:
        return False
    return WRAPPER_MARKER.encode("utf-8") in head


def _sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def wrap(binary: CompiledBinary, view: EnvironmentView) -> Artifact:
    source = Path(binary.path)
    wrapped = wrapped_path_for(source)
    if not source.is_file():
        raise WrapFailureError(f"compiled binary not found: {source}")
    rewrapping = _is_wrapper(source)
    if rewrapping and not wrapped.is_file():
        raise WrapFailureError(f"{source} is a wrapper but the binary it wraps ({wrapped.name}) is missing")

    prefixes = {
        name: entries
        for name, entries in view.path_lists().items()
        if name == LIBRARY_PATH_VAR or name in view.hints
    }
    script = render_wrapper(source.parent.resolve() / wrapped.name, prefixes)
    try:
        digest = _sha256_file(wrapped if rewrapping else source)
    except OSError as exc:
        raise WrapFailureError(f"cannot read {source}: {exc}") from exc

    moved = False
    tmp_name: str | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{source.name}-", suffix=".tmp", dir=source.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(script)
        mode = source.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        os.chmod(tmp_name, mode | stat.S_IRUSR)
        if not rewrapping:
            os.replace(source, wrapped)
            moved = True
        os.replace(tmp_name, source)
        tmp_name = None
    except OSError as exc:
        if moved and not source.exists():
            try:
                os.replace(wrapped, source)
            except OSError:
                logger.error("could not restore %s from %s", source, wrapped)
        raise WrapFailureError(f"failed to wrap {source}: {exc}") from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.info("wrapped %s (%d library entries)", source, len(prefixes.get(LIBRARY_PATH_VAR, ())))
    return Artifact(path=source, wrapped=wrapped, prefixes=prefixes, digest=digest)
