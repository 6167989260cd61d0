"""Tests for closure assembly and the end-to-end selection scenarios."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from hermetic_core.catalog import InputCatalog
from hermetic_core.closure import build_closure, select_dependencies
from hermetic_core.environment import Mode, materialize
from hermetic_core.errors import (
    DependencyConflictError,
    DependencyUnavailableError,
    ResolutionTimeoutError,
    StoreError,
    UnknownFeatureError,
)
from hermetic_core.features import FeatureSet, resolve_features
from hermetic_core.toolchain import ResolvedToolchain


class _DictStore:
    def __init__(self, root: Path, missing: tuple[str, ...] = ()) -> None:
        self.root = root
        self.missing = set(missing)

    def fetch(self, identity: str) -> Path:
        if identity in self.missing:
            raise DependencyUnavailableError(identity)
        return self.root / identity.replace("@", "-")


class _BrokenStore:
    def fetch(self, identity: str) -> Path:
        raise StoreError("transport closed")


class _BlockingStore:
    def __init__(self) -> None:
        self.release = threading.Event()

    def fetch(self, identity: str) -> Path:
        self.release.wait(5)
        return Path("/never")


def _toolchain(tmp_path: Path) -> ResolvedToolchain:
    return ResolvedToolchain(
        name="rust",
        version="1.78.0",
        channel="stable",
        identity="sha256:test",
        location=tmp_path / "rust-1.78.0",
    )


def _scenario_catalog() -> InputCatalog:
    return InputCatalog.from_entries(
        {
            "libFoo": {"category": "runtime", "tags": ["gpu:vk"]},
            "libBar": {"category": "runtime", "tags": ["gpu:gl"]},
            "cc": {"category": "build"},
        }
    )


def test_override_scenario_selects_gl_and_build_tools(tmp_path: Path) -> None:
    catalog = _scenario_catalog()
    features = resolve_features(["gpu:vk"], ["gpu:gl"], known_tags=catalog.tags())
    closure = build_closure(
        catalog.list_dependencies(),
        features,
        _toolchain(tmp_path),
        store=_DictStore(tmp_path),
    )

    assert closure.identities() == ("libBar", "cc")
    assert closure.get("libFoo") is None

    runtime = materialize(closure, Mode.RUNTIME_WRAP)
    dev = materialize(closure, Mode.DEV_SHELL)
    assert runtime.identities == ("libBar",)
    assert runtime.library_path == ((tmp_path / "libBar" / "lib").as_posix(),)
    assert dev.identities == ("libBar", "cc")
    assert dev.library_path == (
        (tmp_path / "libBar" / "lib").as_posix(),
        (tmp_path / "cc" / "lib").as_posix(),
    )


def test_unadvertised_override_fails_before_resolution() -> None:
    catalog = _scenario_catalog()
    with pytest.raises(UnknownFeatureError) as excinfo:
        resolve_features(["gpu:vk"], ["gpu:metal"], known_tags=catalog.tags())
    assert excinfo.value.tags == ("gpu:metal",)


def test_dangling_feature_is_rejected(tmp_path: Path) -> None:
    catalog = _scenario_catalog()
    with pytest.raises(UnknownFeatureError):
        build_closure(
            catalog.list_dependencies(),
            FeatureSet(frozenset({"gpu:metal"})),
            _toolchain(tmp_path),
            store=_DictStore(tmp_path),
        )


def test_enabled_features_are_backed_by_closure_members(tmp_path: Path) -> None:
    catalog = _scenario_catalog()
    features = FeatureSet(frozenset({"gpu:vk", "gpu:gl"}))
    closure = build_closure(catalog.list_dependencies(), features, _toolchain(tmp_path), store=_DictStore(tmp_path))
    provided: set[str] = set()
    for item in closure.dependencies:
        provided.update(item.dependency.tags)
    assert set(features) <= provided


def test_duplicates_collapse_first_seen() -> None:
    catalog = InputCatalog.from_entries([{"name": "A"}, {"name": "B"}, {"name": "A"}, {"name": "C"}])
    selected = select_dependencies(catalog.list_dependencies(), FeatureSet())
    assert [dep.name for dep in selected] == ["A", "B", "C"]


def test_version_conflict_is_reported() -> None:
    catalog = InputCatalog.from_entries(
        [
            {"name": "wayland", "version": "1.22.0"},
            {"name": "wayland", "version": "1.23.0"},
        ]
    )
    with pytest.raises(DependencyConflictError) as excinfo:
        select_dependencies(catalog.list_dependencies(), FeatureSet())
    assert excinfo.value.identity == "wayland"
    assert excinfo.value.versions == ("1.22.0", "1.23.0")


def test_gated_duplicate_at_other_version_is_ignored_when_disabled() -> None:
    catalog = InputCatalog.from_entries(
        [
            {"name": "libGL", "version": "1.7.0"},
            {"name": "libGL", "version": "1.6.0", "tags": ["gpu:legacy"]},
        ]
    )
    selected = select_dependencies(catalog.list_dependencies(), FeatureSet())
    assert [(dep.name, dep.version) for dep in selected] == [("libGL", "1.7.0")]


def test_store_miss_surfaces(tmp_path: Path) -> None:
    catalog = InputCatalog.from_entries({"libGL": {"version": "1.7.0"}})
    with pytest.raises(DependencyUnavailableError):
        build_closure(
            catalog.list_dependencies(),
            FeatureSet(),
            _toolchain(tmp_path),
            store=_DictStore(tmp_path, missing=("libGL@1.7.0",)),
        )


def test_store_failure_becomes_dependency_unavailable(tmp_path: Path) -> None:
    catalog = InputCatalog.from_entries({"libGL": {}})
    with pytest.raises(DependencyUnavailableError):
        build_closure(catalog.list_dependencies(), FeatureSet(), _toolchain(tmp_path), store=_BrokenStore())


def test_lookup_timeout(tmp_path: Path) -> None:
    catalog = InputCatalog.from_entries({"libGL": {}, "wayland": {}})
    store = _BlockingStore()
    try:
        with pytest.raises(ResolutionTimeoutError):
            build_closure(
                catalog.list_dependencies(),
                FeatureSet(),
                _toolchain(tmp_path),
                store=store,
                timeout=0.05,
            )
    finally:
        store.release.set()


def test_closure_is_deterministic(tmp_path: Path) -> None:
    catalog = InputCatalog.from_entries({name: {} for name in ("a", "b", "c", "d", "e", "f")})
    first = build_closure(catalog.list_dependencies(), FeatureSet(), _toolchain(tmp_path), store=_DictStore(tmp_path), max_workers=3)
    second = build_closure(catalog.list_dependencies(), FeatureSet(), _toolchain(tmp_path), store=_DictStore(tmp_path), max_workers=1)
    assert first == second
    assert first.identities() == ("a", "b", "c", "d", "e", "f")
