"""Build graph assembly: filter, check and locate the dependency closure."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .catalog import Dependency
from .errors import (
    DependencyConflictError,
    DependencyUnavailableError,
    ResolutionTimeoutError,
    StoreError,
    UnknownFeatureError,
)
from .features import FeatureSet
from .store import ContentStore
from .toolchain import ResolvedToolchain

__all__ = ["BuildClosure", "ResolvedDependency", "build_closure", "select_dependencies"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class ResolvedDependency:
    dependency: Dependency
    location: Path

    @property
    def identity(self) -> str:
        return self.dependency.identity

    @property
    def runtime_linked(self) -> bool:
        return self.dependency.runtime_linked


@dataclass(frozen=True)
class BuildClosure:
    """Everything a build needs; downstream code reads nothing else."""

    dependencies: tuple[ResolvedDependency, ...]
    features: FeatureSet
    toolchain: ResolvedToolchain

    def identities(self) -> tuple[str, ...]:
        return tuple(item.identity for item in self.dependencies)

    def runtime_dependencies(self) -> tuple[ResolvedDependency, ...]:
        return tuple(item for item in self.dependencies if item.runtime_linked)

    def get(self, identity: str) -> ResolvedDependency | None:
        for item in self.dependencies:
            if item.identity == identity:
                return item
        return None


def select_dependencies(deps: Sequence[Dependency], features: FeatureSet) -> tuple[Dependency, ...]:
    """Keep untagged dependencies and those gated by an enabled feature.

    Repeated identities collapse to their first declaration; repeats at a
    different version raise :class:`DependencyConflictError`.
    """
    advertised: set[str] = set()
    for dependency in deps:
        advertised.update(dependency.tags)
    dangling = features.tags - advertised
    if dangling:
        raise UnknownFeatureError(dangling)

    retained: dict[str, Dependency] = {}
    for dependency in deps:
        if dependency.gated and not features.enables(dependency.tags):
            logger.debug("dropping %s: none of %s enabled", dependency.identity, sorted(dependency.tags))
            continue
        first = retained.get(dependency.identity)
        if first is None:
            retained[dependency.identity] = dependency
            continue
        if first.version != dependency.version:
            raise DependencyConflictError(dependency.identity, (first.version, dependency.version))
    return tuple(retained.values())


def build_closure(
    deps: Sequence[Dependency],
    features: FeatureSet,
    toolchain: ResolvedToolchain,
    *,
    store: ContentStore,
    timeout: float | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> BuildClosure:
    selected = select_dependencies(deps, features)
    locations = _locate(selected, store, timeout=timeout, max_workers=max_workers)
    resolved = tuple(
        ResolvedDependency(dependency=dependency, location=location)
        for dependency, location in zip(selected, locations)
    )
    logger.info(
        "closure resolved: %d dependencies, features=%s, toolchain=%s@%s",
        len(resolved),
        ",".join(features.sorted()) or "-",
        toolchain.name,
        toolchain.version,
    )
    return BuildClosure(dependencies=resolved, features=features, toolchain=toolchain)


def _locate(
    selected: Iterable[Dependency],
    store: ContentStore,
    *,
    timeout: float | None,
    max_workers: int,
) -> list[Path]:
    selected = list(selected)
    if not selected:
        return []
    workers = max(1, min(int(max_workers), len(selected)))
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hermetic-fetch")
    try:
        futures = [executor.submit(_fetch_one, store, dependency) for dependency in selected]
        done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
        for future in futures:
            if future in done and future.exception() is not None:
                raise future.exception()  # type: ignore[misc]
        if pending:
            names = [dep.store_ref for dep, fut in zip(selected, futures) if fut in pending]
            raise ResolutionTimeoutError(
                f"store lookups did not finish within {timeout}s: {', '.join(names)}"
            )
        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _fetch_one(store: ContentStore, dependency: Dependency) -> Path:
    try:
        location = store.fetch(dependency.store_ref)
    except (ResolutionTimeoutError, DependencyUnavailableError):
        raise
    except (StoreError, OSError) as exc:
        raise DependencyUnavailableError(f"store cannot provide {dependency.store_ref}: {exc}") from exc
    logger.debug("located %s at %s", dependency.store_ref, location)
    return Path(location)
