"""Tests for the provisioner pipeline."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from hermetic_builtin.store import CommandStore, LocalStore
from hermetic_core.app import Provisioner, store_from_settings
from hermetic_core.config import EngineSettings
from hermetic_core.descriptor import load_descriptor
from hermetic_core.environment import Mode
from hermetic_core.errors import ConfigurationError, UnknownFeatureError
from hermetic_core.events import STANDARD_EVENTS, EventBus


def _provisioner(demo_project, events: EventBus | None = None) -> Provisioner:
    return Provisioner(demo_project.store, index=demo_project.store.toolchain_index(), events=events)


def test_plan_resolves_everything(demo_project) -> None:
    descriptor = load_descriptor(demo_project.descriptor_path)
    plan = _provisioner(demo_project).plan(descriptor)

    assert plan.features.sorted() == ["windowing:wayland"]
    assert plan.toolchain.version == "1.78.0"
    assert plan.toolchain.location == demo_project.location("rust@1.78.0")
    assert plan.closure.identities() == ("pkg-config", "wayland", "libGL")
    assert plan.dev_shell.identities == ("pkg-config", "wayland", "libGL")
    assert plan.runtime.identities == ("wayland", "libGL")
    assert plan.view(Mode.RUNTIME_WRAP) is plan.runtime


def test_plan_override_swaps_gated_dependencies(demo_project) -> None:
    descriptor = load_descriptor(demo_project.descriptor_path)
    plan = _provisioner(demo_project).plan(descriptor, ["windowing:x11"])
    assert plan.closure.identities() == ("pkg-config", "libX11", "libGL")


def test_unknown_override_builds_nothing(demo_project, tmp_path: Path) -> None:
    descriptor = load_descriptor(demo_project.descriptor_path)
    out_dir = tmp_path / "out"
    with pytest.raises(UnknownFeatureError):
        _provisioner(demo_project).build(descriptor, ["gpu:metal"], out_dir=out_dir)
    assert not out_dir.exists()


def test_build_emits_events_wraps_and_locks(demo_project, tmp_path: Path) -> None:
    events = EventBus()
    seen: list[str] = []
    events.on_all(lambda event: seen.append(event.name))
    descriptor = load_descriptor(demo_project.descriptor_path)
    lock_path = demo_project.root / "hermetic.lock.json"

    result = _provisioner(demo_project, events).build(
        descriptor,
        out_dir=tmp_path / "out",
        lock_path=lock_path,
        ambient={},
    )

    assert seen == list(STANDARD_EVENTS)
    assert result.artifact.path == tmp_path / "out" / "bin" / "demo"
    assert result.lock_path == lock_path
    lock = json.loads(lock_path.read_text(encoding="utf-8"))
    assert lock["artifacts"] == {"binary": result.artifact.digest}
    assert [item["name"] for item in lock["dependencies"]] == ["pkg-config", "wayland", "libGL"]

    completed = subprocess.run([str(result.artifact.path)], env={}, capture_output=True, text=True, check=True)
    lines = completed.stdout.splitlines()
    assert lines[0] == "args=build --release --features wayland"
    assert lines[1] == "lib=" + ":".join(result.plan.runtime.library_path)


def test_locked_build_rejects_drift(demo_project, tmp_path: Path) -> None:
    descriptor = load_descriptor(demo_project.descriptor_path)
    provisioner = _provisioner(demo_project)
    lock_path = tmp_path / "hermetic.lock.json"

    with pytest.raises(ConfigurationError):
        provisioner.build(descriptor, out_dir=tmp_path / "out", lock_path=lock_path, locked=True)

    provisioner.lock(descriptor, lock_path)
    result = provisioner.build(descriptor, out_dir=tmp_path / "out", lock_path=lock_path, locked=True)
    assert result.artifact.path.exists()

    with pytest.raises(ConfigurationError) as excinfo:
        provisioner.build(descriptor, ["windowing:x11"], out_dir=tmp_path / "out2", lock_path=lock_path, locked=True)
    assert "features mismatch" in str(excinfo.value)
    assert not (tmp_path / "out2").exists()


def test_store_from_settings(tmp_path: Path) -> None:
    store, index = store_from_settings(EngineSettings(store_dir=tmp_path))
    assert isinstance(store, LocalStore)
    assert index.releases("rust") == ()

    store, _ = store_from_settings(EngineSettings(store_dir=tmp_path, fetch_command=("fetch-tool", "--quiet")))
    assert isinstance(store, CommandStore)
    assert store.config.command == ("fetch-tool", "--quiet")
    assert store.config.timeout_seconds == 300.0


def test_fetch_command_inherits_engine_timeout(tmp_path: Path) -> None:
    settings = EngineSettings(store_dir=tmp_path, timeout_seconds=7.5, fetch_command=("fetch-tool",))
    store, _ = store_from_settings(settings)
    assert store.config.timeout_seconds == 7.5

    unbounded, _ = store_from_settings(EngineSettings(store_dir=tmp_path, timeout_seconds=None, fetch_command=("fetch-tool",)))
    assert unbounded.config.timeout_seconds is None
