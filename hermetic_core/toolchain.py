"""Hermetic toolchain resolution against an explicit release index."""

from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from hermetic_builtin.versions import is_channel, latest_version

from .errors import (
    ConfigurationError,
    DependencyUnavailableError,
    ResolutionTimeoutError,
    StoreError,
    ToolchainUnavailableError,
)
from .store import ContentStore

__all__ = [
    "ResolvedToolchain",
    "ToolchainIndex",
    "ToolchainRelease",
    "ToolchainResolver",
    "ToolchainSpec",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolchainSpec:
    name: str
    channel: str = "stable"
    components: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not (self.name or "").strip():
            raise ConfigurationError("toolchain name cannot be empty")
        if not (self.channel or "").strip():
            raise ConfigurationError(f"toolchain {self.name!r} has an empty channel", identity=self.name)
        object.__setattr__(self, "components", tuple(self.components))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolchainSpec":
        components = data.get("components") or ()
        if isinstance(components, str) or not isinstance(components, (list, tuple)):
            raise ConfigurationError("toolchain.components must be a list of strings")
        return cls(
            name=str(data.get("name") or "").strip(),
            channel=str(data.get("channel") or data.get("version") or "stable").strip(),
            components=tuple(str(item).strip() for item in components if str(item).strip()),
        )


@dataclass(frozen=True)
class ToolchainRelease:
    """One published toolchain release as listed in the store index."""

    name: str
    version: str
    channel: str
    components: Mapping[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash((self.name, self.version, self.channel))

    @property
    def store_ref(self) -> str:
        return f"{self.name}@{self.version}"


class ToolchainIndex:
    """Explicit catalogue of toolchain releases available from the store."""

    def __init__(self, releases: Iterable[ToolchainRelease] = ()) -> None:
        self._releases: dict[str, list[ToolchainRelease]] = {}
        for release in releases:
            self._releases.setdefault(release.name, []).append(release)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ToolchainIndex":
        """Parse ``{name: [{version, channel, components: {name: digest}}]}``."""
        releases: list[ToolchainRelease] = []
        for name, entries in data.items():
            if not isinstance(entries, list):
                raise ConfigurationError(f"toolchain index entry {name!r} must be a list", identity=name)
            for entry in entries:
                if not isinstance(entry, Mapping) or not entry.get("version"):
                    raise ConfigurationError(f"toolchain index entry {name!r} is missing 'version'", identity=name)
                components = entry.get("components") or {}
                if not isinstance(components, Mapping):
                    raise ConfigurationError(f"toolchain {name!r}: components must be a table", identity=name)
                releases.append(
                    ToolchainRelease(
                        name=str(name),
                        version=str(entry["version"]),
                        channel=str(entry.get("channel") or "stable").lower(),
                        components={str(k): str(v) for k, v in components.items()},
                    )
                )
        return cls(releases)

    def releases(self, name: str) -> tuple[ToolchainRelease, ...]:
        return tuple(self._releases.get(name, ()))


@dataclass(frozen=True)
class ResolvedToolchain:
    name: str
    version: str
    channel: str
    identity: str
    location: Path
    components: tuple[tuple[str, str], ...] = ()

    @property
    def bin_dir(self) -> Path:
        return self.location / "bin"

    def component_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.components)


def toolchain_identity(name: str, version: str, components: Sequence[tuple[str, str]]) -> str:
    payload = {
        "name": name,
        "version": version,
        "components": [list(item) for item in sorted(components)],
    }
    text = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(text.encode("utf-8")).hexdigest()


class ToolchainResolver:
    """Pick a concrete release for a :class:`ToolchainSpec` without touching PATH."""

    def __init__(self, index: ToolchainIndex, store: ContentStore) -> None:
        self.index = index
        self.store = store

    def resolve(self, spec: ToolchainSpec, *, timeout: float | None = None) -> ResolvedToolchain:
        release = self._select(spec)
        missing = [component for component in spec.components if component not in release.components]
        if missing:
            raise ToolchainUnavailableError(
                f"{spec.name} {release.version} does not provide component(s): {', '.join(missing)}"
            )
        location = self._fetch(release, timeout)
        components = tuple((component, release.components[component]) for component in spec.components)
        resolved = ResolvedToolchain(
            name=release.name,
            version=release.version,
            channel=release.channel,
            identity=toolchain_identity(release.name, release.version, components),
            location=location,
            components=components,
        )
        logger.info("toolchain %s@%s resolved from channel %s", resolved.name, resolved.version, spec.channel)
        return resolved

    def _select(self, spec: ToolchainSpec) -> ToolchainRelease:
        releases = self.index.releases(spec.name)
        if not releases:
            raise ToolchainUnavailableError(f"no releases of {spec.name!r} in the toolchain index")
        channel = spec.channel.strip()
        if is_channel(channel):
            wanted = channel.lower()
            candidates = [r for r in releases if wanted == "latest" or r.channel == wanted]
            if not candidates:
                raise ToolchainUnavailableError(f"no {spec.name!r} release in channel {wanted!r}")
            newest = latest_version(release.version for release in candidates)
            return next(release for release in candidates if release.version == newest)
        for release in releases:
            if release.version == channel:
                return release
        raise ToolchainUnavailableError(f"{spec.name!r} release {channel!r} is not in the toolchain index")

    def _fetch(self, release: ToolchainRelease, timeout: float | None) -> Path:
        # the worker is abandoned, not joined, once the timeout expires
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hermetic-toolchain")
        future = executor.submit(self.store.fetch, release.store_ref)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise ResolutionTimeoutError(
                f"toolchain {release.store_ref} was not fetched within {timeout}s"
            ) from exc
        except ResolutionTimeoutError:
            raise
        except (DependencyUnavailableError, StoreError, OSError) as exc:
            raise ToolchainUnavailableError(f"store cannot provide {release.store_ref}: {exc}") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
