"""Directory-backed content-addressed store."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any

import tomllib

from hermetic_core.errors import ConfigurationError, DependencyUnavailableError, StoreError
from hermetic_core.toolchain import ToolchainIndex

logger = logging.getLogger(__name__)

TOOLCHAIN_INDEX_NAME = "toolchains.toml"
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._+\-]+")


def store_name(identity: str) -> str:
    """``<hash>-<name>-<version>`` directory name for an identity."""
    text = (identity or "").strip()
    if not text:
        raise ValueError("empty store identity")
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
    readable = _UNSAFE_RE.sub("-", text.replace("@", "-")).strip("-")
    return f"{digest}-{readable}"


class LocalStore:
    """Append-only store rooted at a directory; entries are never rewritten."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, identity: str) -> Path:
        return self.root / store_name(identity)

    def contains(self, identity: str) -> bool:
        return self.path_for(identity).is_dir()

    def fetch(self, identity: str) -> Path:
        if not self.contains(identity):
            raise DependencyUnavailableError(f"{identity} is not present in store {self.root}")
        return self.path_for(identity)

    def add(self, identity: str, source: Path | None = None) -> Path:
        """Insert ``source`` (or an empty tree) under ``identity`` if absent."""
        target = self.path_for(identity)
        if self.contains(identity):
            return target
        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.root))
        try:
            if source is not None:
                shutil.copytree(source, staging, dirs_exist_ok=True)
            try:
                os.rename(staging, target)
            except OSError:
                if not target.is_dir():
                    raise
                # another writer published the same identity first
                shutil.rmtree(staging, ignore_errors=True)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise StoreError(f"unable to add {identity} to {self.root}: {exc}") from exc
        logger.debug("store add %s -> %s", identity, target)
        return target

    def toolchain_index(self) -> ToolchainIndex:
        path = self.root / TOOLCHAIN_INDEX_NAME
        if not path.exists():
            return ToolchainIndex()
        try:
            with path.open("rb") as handle:
                document: dict[str, Any] = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigurationError(f"unable to read toolchain index at {path}") from exc
        return ToolchainIndex.from_mapping(document)
