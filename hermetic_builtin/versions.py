"""Release ordering helpers used when picking a toolchain out of a channel."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple

__all__ = [
    "CHANNELS",
    "is_channel",
    "latest_version",
    "version_key",
]

CHANNELS = ("stable", "beta", "nightly", "latest")

# pre-release qualifiers sort below the bare release of the same number
_QUALIFIER_RANK: dict[str, int] = {
    "dev": 0,
    "nightly": 0,
    "alpha": 10,
    "a": 10,
    "beta": 20,
    "b": 20,
    "rc": 40,
}
_RELEASE_RANK = 100
_UNKNOWN_RANK = 50

_TOKEN_RE = re.compile(r"\d+|[A-Za-z]+")


def is_channel(value: str) -> bool:
    return (value or "").strip().lower() in CHANNELS


def _tokens(text: str) -> List[Tuple[int, Any]]:
    out: List[Tuple[int, Any]] = []
    for token in _TOKEN_RE.findall(text or ""):
        if token.isdigit():
            out.append((1, int(token)))
        else:
            out.append((0, token.lower()))
    return out


def _qualifier_rank(qualifier: str) -> Tuple[int, Tuple[Tuple[int, Any], ...]]:
    if not qualifier:
        return (_RELEASE_RANK, ())
    tokens = _tokens(qualifier)
    rank = _UNKNOWN_RANK
    rest: List[Tuple[int, Any]] = []
    for kind, value in tokens:
        if kind == 0 and value in _QUALIFIER_RANK and rank == _UNKNOWN_RANK:
            rank = _QUALIFIER_RANK[value]
            continue
        rest.append((kind, value))
    return (rank, tuple(rest))


def version_key(version: str) -> Tuple[Any, ...]:
    """Sort key for dotted releases such as ``1.78.0`` or ``1.79.0-beta.3``."""
    text = (version or "").strip()
    if not text:
        raise ValueError("empty version")
    base, _, qualifier = text.partition("-")
    numbers = tuple(_tokens(base))
    return (numbers, _qualifier_rank(qualifier))


def latest_version(versions: Iterable[str]) -> Optional[str]:
    candidates = [v for v in versions if (v or "").strip()]
    if not candidates:
        return None
    return max(candidates, key=version_key)
