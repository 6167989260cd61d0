"""Load ``hermetic.toml`` / ``hermetic.yml`` build descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import tomllib
import yaml

from .catalog import InputCatalog
from .errors import ConfigurationError
from .features import FeatureSet
from .toolchain import ToolchainSpec

__all__ = [
    "DESCRIPTOR_NAMES",
    "Descriptor",
    "ProjectSpec",
    "ShellSpec",
    "find_descriptor",
    "load_descriptor",
    "parse_descriptor",
]

DESCRIPTOR_NAMES = ("hermetic.toml", "hermetic.yml", "hermetic.yaml")
DEFAULT_FEATURES_FLAG = "--features"


@dataclass(frozen=True)
class ProjectSpec:
    name: str
    version: str
    binary: str
    build_command: tuple[str, ...] = ()
    features_flag: str = DEFAULT_FEATURES_FLAG
    default_features: tuple[str, ...] = ()
    feature_flags: Mapping[str, str] = field(default_factory=dict)
    workdir: str = "."

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_flags", MappingProxyType(dict(self.feature_flags)))

    def __hash__(self) -> int:
        return hash((self.name, self.version, self.binary, self.build_command))

    def build_feature_names(self, features: FeatureSet) -> list[str]:
        """Map capability tags to the build tool's feature names."""
        names = []
        for tag in features:
            names.append(self.feature_flags.get(tag) or tag.split(":", 1)[-1])
        return sorted(set(names))

    @property
    def binary_name(self) -> str:
        return Path(self.binary).name


@dataclass(frozen=True)
class ShellSpec:
    banner: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    def __hash__(self) -> int:
        return hash(self.banner)


@dataclass(frozen=True)
class Descriptor:
    path: Path
    project: ProjectSpec
    toolchain: ToolchainSpec
    catalog: InputCatalog
    shell: ShellSpec = field(default_factory=ShellSpec)

    def __hash__(self) -> int:
        return hash((self.path, self.project, self.toolchain))

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def workdir(self) -> Path:
        return (self.root / self.project.workdir).resolve()


def find_descriptor(start: Path) -> Path | None:
    """Return the first descriptor in ``start`` or its parents."""
    start = start.resolve()
    if start.is_file():
        return start
    for current in (start, *start.parents):
        for name in DESCRIPTOR_NAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate
    return None


def load_descriptor(path: Path) -> Descriptor:
    path = Path(path)
    try:
        if path.suffix == ".toml":
            with path.open("rb") as handle:
                document = tomllib.load(handle)
        elif path.suffix in (".yml", ".yaml"):
            document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        else:
            raise ConfigurationError(f"unsupported descriptor format: {path.name}")
    except OSError as exc:
        raise ConfigurationError(f"unable to read descriptor at {path}") from exc
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"descriptor {path} is not valid: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"descriptor {path} must contain a table at the top level")
    return parse_descriptor(document, path=path)


def parse_descriptor(document: Mapping[str, Any], *, path: Path) -> Descriptor:
    project_raw = _section(document, "project", required=True)
    toolchain_raw = _section(document, "toolchain", required=True)
    shell_raw = _section(document, "shell", required=False)

    dependencies_raw = document.get("dependencies")
    if dependencies_raw is None:
        dependencies_raw = []
    catalog = InputCatalog.from_entries(dependencies_raw)

    project = _parse_project(project_raw)
    unknown = set(project.default_features) - catalog.tags()
    if unknown:
        raise ConfigurationError(
            f"project.default_features references unadvertised tag(s): {', '.join(sorted(unknown))}"
        )
    return Descriptor(
        path=path.resolve(),
        project=project,
        toolchain=ToolchainSpec.from_dict(toolchain_raw),
        catalog=catalog,
        shell=_parse_shell(shell_raw),
    )


def _section(document: Mapping[str, Any], key: str, *, required: bool) -> Mapping[str, Any]:
    value = document.get(key)
    if value is None:
        if required:
            raise ConfigurationError(f"missing [{key}] section")
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"[{key}] must be a table")
    return value


def _parse_project(raw: Mapping[str, Any]) -> ProjectSpec:
    fields: dict[str, str] = {}
    for key in ("name", "version", "binary"):
        value = raw.get(key)
        if value is None or not str(value).strip():
            raise ConfigurationError(f"missing 'project.{key}'")
        fields[key] = str(value).strip()

    command = raw.get("build_command") or ()
    if isinstance(command, str):
        command = command.split()
    if not isinstance(command, (list, tuple)):
        raise ConfigurationError("project.build_command must be a list or a string")

    flags = raw.get("feature_flags") or {}
    if not isinstance(flags, Mapping):
        raise ConfigurationError("project.feature_flags must be a table")

    defaults = raw.get("default_features") or ()
    if isinstance(defaults, str) or not isinstance(defaults, (list, tuple)):
        raise ConfigurationError("project.default_features must be a list")

    return ProjectSpec(
        name=fields["name"],
        version=fields["version"],
        binary=fields["binary"],
        build_command=tuple(str(part) for part in command),
        features_flag=str(raw.get("features_flag") or DEFAULT_FEATURES_FLAG),
        default_features=tuple(str(tag) for tag in defaults),
        feature_flags={str(k): str(v) for k, v in flags.items()},
        workdir=str(raw.get("workdir") or "."),
    )


def _parse_shell(raw: Mapping[str, Any]) -> ShellSpec:
    banner = raw.get("banner") or ()
    if isinstance(banner, str):
        banner = banner.splitlines()
    env = raw.get("env") or {}
    if not isinstance(env, Mapping):
        raise ConfigurationError("shell.env must be a table")
    return ShellSpec(
        banner=tuple(str(line) for line in banner),
        env={str(k): str(v) for k, v in env.items()},
    )
