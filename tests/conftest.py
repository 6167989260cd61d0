"""Shared fixtures: a small project backed by a populated local store."""

from __future__ import annotations

import stat
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

from hermetic_builtin.store import LocalStore

DESCRIPTOR = """
[project]
name = "demo"
version = "0.1.0"
binary = "target/release/demo"
build_command = ["cargo", "build", "--release"]
default_features = ["windowing:wayland"]

[project.feature_flags]
"windowing:wayland" = "wayland"
"windowing:x11" = "x11"

[toolchain]
name = "rust"
channel = "stable"
components = ["rust-src"]

[dependencies.pkg-config]
category = "build"

[dependencies.wayland]
tags = ["windowing:wayland"]

[dependencies.libX11]
tags = ["windowing:x11"]

[dependencies.libGL]

[shell]
banner = ["demo dev shell"]
env = { DEMO_SHELL = "1" }
"""

TOOLCHAINS = """
[[rust]]
version = "1.77.2"
channel = "stable"
components = { rust-src = "sha256:old" }

[[rust]]
version = "1.78.0"
channel = "stable"
components = { rust-src = "sha256:src" }
"""

# only shell builtins: PATH inside the build holds store directories alone
FAKE_CARGO = r"""#!/bin/sh
printf '%s\n' "$PATH" > build-path.txt
printf '%s\n' "$PKG_CONFIG_PATH" > build-pkgconfig.txt
printf '%s\n' "$DEMO_SHELL" > build-shell-env.txt
printf '#!/bin/sh\necho "args=%s"\necho "lib=$LD_LIBRARY_PATH"\necho "argv=$*"\n' "$*" > target/release/demo
"""


@dataclass(frozen=True)
class DemoProject:
    root: Path
    descriptor_path: Path
    store: LocalStore

    def location(self, identity: str) -> Path:
        return self.store.path_for(identity)


def _write_toolchain(tmp_path: Path) -> Path:
    source = tmp_path / "toolchain-src"
    (source / "bin").mkdir(parents=True)
    cargo = source / "bin" / "cargo"
    cargo.write_text(FAKE_CARGO, encoding="utf-8")
    cargo.chmod(cargo.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return source


@pytest.fixture
def demo_project(tmp_path: Path) -> DemoProject:
    store = LocalStore(tmp_path / "store")
    store.add("rust@1.78.0", _write_toolchain(tmp_path))
    for identity in ("pkg-config", "wayland", "libX11", "libGL"):
        store.add(identity)
    (store.root / "toolchains.toml").write_text(textwrap.dedent(TOOLCHAINS), encoding="utf-8")

    root = tmp_path / "demo"
    (root / "target" / "release").mkdir(parents=True)
    descriptor_path = root / "hermetic.toml"
    descriptor_path.write_text(textwrap.dedent(DESCRIPTOR).lstrip(), encoding="utf-8")
    return DemoProject(root=root, descriptor_path=descriptor_path, store=store)
