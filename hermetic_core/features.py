"""Feature selection: which optional capabilities are compiled in."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, Iterator

from .errors import ConfigurationError, UnknownFeatureError

__all__ = ["FeatureSet", "parse_feature_list", "resolve_features"]


@dataclass(frozen=True)
class FeatureSet:
    """Immutable set of enabled capability tags."""

    tags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", frozenset(self.tags))

    def __contains__(self, tag: object) -> bool:
        return tag in self.tags

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.tags))

    def __len__(self) -> int:
        return len(self.tags)

    def enables(self, tags: AbstractSet[str]) -> bool:
        """True when any of ``tags`` is enabled."""
        return not self.tags.isdisjoint(tags)

    def sorted(self) -> list[str]:
        return sorted(self.tags)


def resolve_features(
    declared_defaults: Iterable[str],
    overrides: Iterable[str] | None,
    *,
    known_tags: AbstractSet[str],
) -> FeatureSet:
    """Return the active feature set for one build invocation.

    ``overrides`` replaces ``declared_defaults`` entirely when it is not
    ``None``; an empty override disables every optional feature.
    """
    defaults = frozenset(declared_defaults)
    unknown_defaults = defaults - known_tags
    if unknown_defaults:
        raise ConfigurationError(
            f"default features not advertised by any dependency: {', '.join(sorted(unknown_defaults))}"
        )
    if overrides is None:
        return FeatureSet(defaults)
    requested = frozenset(overrides)
    unknown = requested - known_tags
    if unknown:
        raise UnknownFeatureError(unknown)
    return FeatureSet(requested)


def parse_feature_list(raw: str | None) -> list[str] | None:
    """Split a ``--features a,b c`` style value; ``None`` stays ``None``."""
    if raw is None:
        return None
    parts = raw.replace(",", " ").split()
    return [part.strip() for part in parts if part.strip()]
