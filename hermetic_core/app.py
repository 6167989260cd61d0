"""Provisioner that glues descriptor, resolution, environment and wrapping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from hermetic_builtin.store import CommandStore, CommandStoreConfig, LocalStore

from .build import BuildRunner
from .closure import BuildClosure, DEFAULT_MAX_WORKERS, build_closure
from .config import EngineSettings
from .descriptor import Descriptor
from .environment import EnvironmentView, Mode, materialize
from .errors import ConfigurationError
from .events import EventBus
from .features import FeatureSet, resolve_features
from .lockfile import load_lock, render_lock, verify_lock_against_closure, write_lock
from .store import ContentStore
from .toolchain import ResolvedToolchain, ToolchainIndex, ToolchainResolver
from .wrapper import Artifact, wrap

__all__ = ["BuildResult", "Plan", "Provisioner", "store_from_settings"]


@dataclass(frozen=True)
class Plan:
    descriptor: Descriptor
    features: FeatureSet
    toolchain: ResolvedToolchain
    closure: BuildClosure
    dev_shell: EnvironmentView
    runtime: EnvironmentView

    def view(self, mode: Mode) -> EnvironmentView:
        return self.dev_shell if mode is Mode.DEV_SHELL else self.runtime


@dataclass(frozen=True)
class BuildResult:
    plan: Plan
    artifact: Artifact
    lock_path: Path | None = None


def store_from_settings(settings: EngineSettings) -> tuple[ContentStore, ToolchainIndex]:
    """Local store by default; an external fetch command when configured.

    The fetch command is bounded by the engine timeout so a lookup the
    resolver gives up on does not leave its subprocess running.
    """
    local = LocalStore(settings.store_dir)
    index = local.toolchain_index()
    if settings.fetch_command:
        config = CommandStoreConfig(command=settings.fetch_command, timeout_seconds=settings.timeout_seconds)
        return CommandStore(config), index
    return local, index


class Provisioner:
    """Run one provisioning request from scratch; nothing is shared between calls."""

    def __init__(
        self,
        store: ContentStore,
        *,
        index: ToolchainIndex,
        events: EventBus | None = None,
        logger: logging.Logger | None = None,
        timeout: float | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.store = store
        self.index = index
        self.events = events or EventBus()
        self.logger = logger or logging.getLogger("hermetic_core.app")
        self.timeout = timeout
        self.max_workers = max_workers

    def plan(self, descriptor: Descriptor, overrides: Iterable[str] | None = None) -> Plan:
        self.events.emit("descriptor_loaded", {"path": str(descriptor.path), "project": descriptor.project.name})
        catalog = descriptor.catalog
        features = resolve_features(
            descriptor.project.default_features,
            overrides,
            known_tags=catalog.tags(),
        )
        self.events.emit("features_resolved", {"features": features.sorted()})

        toolchain = ToolchainResolver(self.index, self.store).resolve(descriptor.toolchain, timeout=self.timeout)
        self.events.emit(
            "toolchain_resolved",
            {"name": toolchain.name, "version": toolchain.version, "identity": toolchain.identity},
        )

        closure = build_closure(
            catalog.list_dependencies(),
            features,
            toolchain,
            store=self.store,
            timeout=self.timeout,
            max_workers=self.max_workers,
        )
        self.events.emit("closure_resolved", {"identities": list(closure.identities())})

        dev_shell = materialize(closure, Mode.DEV_SHELL)
        runtime = materialize(closure, Mode.RUNTIME_WRAP)
        self.events.emit(
            "environment_materialized",
            {"devshell": list(dev_shell.identities), "runtime": list(runtime.identities)},
        )
        self.logger.debug("plan ready for %s", descriptor.project.name)
        return Plan(
            descriptor=descriptor,
            features=features,
            toolchain=toolchain,
            closure=closure,
            dev_shell=dev_shell,
            runtime=runtime,
        )

    def build(
        self,
        descriptor: Descriptor,
        overrides: Iterable[str] | None = None,
        *,
        out_dir: Path,
        runner: BuildRunner | None = None,
        lock_path: Path | None = None,
        locked: bool = False,
        ambient: Mapping[str, str] | None = None,
    ) -> BuildResult:
        plan = self.plan(descriptor, overrides)
        if locked:
            self.check_lock(plan, lock_path)

        runner = runner or BuildRunner(timeout_seconds=self.timeout)
        binary = runner.run(descriptor, plan.closure, plan.dev_shell, out_dir=out_dir, ambient=ambient)
        self.events.emit("build_finished", {"binary": str(binary.path)})

        artifact = wrap(binary, plan.runtime)
        self.events.emit("artifact_wrapped", {"path": str(artifact.path), "digest": artifact.digest})

        written: Path | None = None
        if lock_path is not None and not locked:
            write_lock(lock_path, render_lock(plan.closure, descriptor, artifacts={"binary": artifact.digest}))
            written = lock_path
        self.logger.info("built %s -> %s", descriptor.project.name, artifact.path)
        return BuildResult(plan=plan, artifact=artifact, lock_path=written or lock_path)

    def lock(self, descriptor: Descriptor, lock_path: Path, overrides: Iterable[str] | None = None) -> Plan:
        plan = self.plan(descriptor, overrides)
        write_lock(lock_path, render_lock(plan.closure, descriptor))
        return plan

    def check_lock(self, plan: Plan, lock_path: Path | None) -> None:
        if lock_path is None or not lock_path.exists():
            raise ConfigurationError(f"--locked requires an existing lockfile (looked for {lock_path})")
        try:
            payload = load_lock(lock_path)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"unable to read lockfile {lock_path}: {exc}") from exc
        result = verify_lock_against_closure(payload, plan.closure, plan.descriptor)
        if not result.ok:
            raise ConfigurationError(f"lockfile {lock_path} is out of date: {'; '.join(result.errors)}")
