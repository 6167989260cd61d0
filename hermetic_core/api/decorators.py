"""``@hcommand``: mark a command class for registration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

from .abc import HermeticAbstractCommand

FEATURE_ATTRIBUTE = "__hermetic_feature__"

C = TypeVar("C", bound=type)


@dataclass(frozen=True)
class CommandMarker:
    name: str
    group: str
    kind: str = "command"


def hcommand(
    cls: C | None = None,
    *,
    name: str | None = None,
    group: str | None = None,
) -> Callable[[C], C] | C:
    """Usable bare (``@hcommand``) or with ``name``/``group`` keywords.

    The group defaults to the top-level package of the decorated class.
    """

    def mark(target: C) -> C:
        if not (isinstance(target, type) and issubclass(target, HermeticAbstractCommand)):
            raise TypeError(f"@hcommand needs a HermeticAbstractCommand subclass, got {target!r}")
        package = (target.__module__ or "").partition(".")[0]
        marker = CommandMarker(name=name or target.__name__, group=group or package or "hermetic")
        setattr(target, FEATURE_ATTRIBUTE, marker)
        return target

    return mark if cls is None else mark(cls)
