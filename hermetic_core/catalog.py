"""Input catalog: declared dependencies and their capability tags."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from .errors import ConfigurationError

__all__ = ["Category", "Dependency", "InputCatalog"]


class Category(str, Enum):
    BUILD = "build"
    RUNTIME = "runtime"

    @classmethod
    def parse(cls, value: Any, *, identity: str | None = None) -> "Category":
        text = str(value or "").strip().lower()
        aliases = {
            "build": cls.BUILD,
            "build-only": cls.BUILD,
            "native": cls.BUILD,
            "runtime": cls.RUNTIME,
            "runtime-linked": cls.RUNTIME,
        }
        try:
            return aliases[text]
        except KeyError:
            raise ConfigurationError(
                f"unknown dependency category {value!r} for {identity!r}",
                identity=identity,
            ) from None


@dataclass(frozen=True)
class Dependency:
    """A declared native dependency or tool."""

    name: str
    category: Category
    version: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    lib_dirs: tuple[str, ...] = ("lib",)
    pkgconfig_dirs: tuple[str, ...] = ("lib/pkgconfig",)
    bin_dirs: tuple[str, ...] = ("bin",)
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        name = (self.name or "").strip()
        if not name:
            raise ConfigurationError("dependency name cannot be empty")
        if "@" in name:
            raise ConfigurationError(f"dependency name may not contain '@': {name!r}", identity=name)
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    def __hash__(self) -> int:
        return hash((self.name, self.category, self.version, self.tags))

    @property
    def identity(self) -> str:
        return self.name

    @property
    def store_ref(self) -> str:
        """Store identity, ``name@version`` when pinned."""
        return f"{self.name}@{self.version}" if self.version else self.name

    @property
    def runtime_linked(self) -> bool:
        return self.category is Category.RUNTIME

    @property
    def gated(self) -> bool:
        return bool(self.tags)

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "Dependency":
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"dependency {name!r} must be a table", identity=name)
        version = data.get("version")
        env_raw = data.get("env") or {}
        if not isinstance(env_raw, Mapping):
            raise ConfigurationError(f"dependency {name!r}: 'env' must be a table", identity=name)
        return cls(
            name=name,
            category=Category.parse(data.get("category", "runtime"), identity=name),
            version=str(version).strip() if version not in (None, "") else None,
            tags=frozenset(_string_list(data.get("tags"), label=f"{name}.tags")),
            lib_dirs=tuple(_string_list(data.get("lib_dirs"), label=f"{name}.lib_dirs") or ("lib",)),
            pkgconfig_dirs=tuple(
                _string_list(data.get("pkgconfig_dirs"), label=f"{name}.pkgconfig_dirs")
                or ("lib/pkgconfig",)
            ),
            bin_dirs=tuple(_string_list(data.get("bin_dirs"), label=f"{name}.bin_dirs") or ("bin",)),
            env={str(key): str(value) for key, value in env_raw.items()},
        )


class InputCatalog:
    """Ordered, validated set of declared dependencies."""

    def __init__(self, dependencies: Iterable[Dependency] = ()) -> None:
        self._dependencies: tuple[Dependency, ...] = tuple(dependencies)
        self._validate()

    @classmethod
    def from_entries(cls, entries: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> "InputCatalog":
        """Build a catalog from the decoded descriptor shape.

        Accepts either a mapping of identity to attributes or a sequence of
        entries that each carry a ``name`` key. The sequence form is the only
        way to repeat an identity.
        """
        dependencies: list[Dependency] = []
        if isinstance(entries, Mapping):
            for name, data in entries.items():
                dependencies.append(Dependency.from_dict(str(name), data))
        elif isinstance(entries, Sequence) and not isinstance(entries, (str, bytes)):
            for index, data in enumerate(entries):
                if not isinstance(data, Mapping) or not data.get("name"):
                    raise ConfigurationError(f"dependency entry #{index} is missing 'name'")
                dependencies.append(Dependency.from_dict(str(data["name"]), data))
        else:
            raise ConfigurationError("dependencies must be a table or an array of tables")
        return cls(dependencies)

    def list_dependencies(self) -> tuple[Dependency, ...]:
        return self._dependencies

    def tags(self) -> frozenset[str]:
        found: set[str] = set()
        for dependency in self._dependencies:
            found.update(dependency.tags)
        return frozenset(found)

    def __len__(self) -> int:
        return len(self._dependencies)

    def __iter__(self):
        return iter(self._dependencies)

    def _validate(self) -> None:
        categories: dict[str, Category] = {}
        for dependency in self._dependencies:
            seen = categories.setdefault(dependency.identity, dependency.category)
            if seen is not dependency.category:
                raise ConfigurationError(
                    f"{dependency.identity!r} is declared as both "
                    f"{seen.value} and {dependency.category.value}",
                    identity=dependency.identity,
                )


def _string_list(value: Any, *, label: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"{label} must be a list of strings")
    out: list[str] = []
    for item in value:
        text = str(item).strip()
        if text:
            out.append(text)
    return out
