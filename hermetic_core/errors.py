"""Typed errors raised by the provisioning engine."""

from __future__ import annotations

from typing import Iterable, Sequence


class HermeticError(RuntimeError):
    """Base engine error."""

    retryable = False


class ConfigurationError(HermeticError):
    """Malformed or conflicting declarations."""

    def __init__(self, message: str, *, identity: str | None = None) -> None:
        super().__init__(message)
        self.identity = identity


class UnknownFeatureError(HermeticError):
    """A requested feature tag is not advertised by any dependency."""

    def __init__(self, tags: Iterable[str]) -> None:
        self.tags = tuple(sorted(set(tags)))
        super().__init__(f"unknown feature tag(s): {', '.join(self.tags)}")


class ToolchainUnavailableError(HermeticError):
    """The requested toolchain channel/version/components cannot be located."""


class DependencyConflictError(HermeticError):
    """Two retained dependencies share an identity at different versions."""

    def __init__(self, identity: str, versions: Sequence[str | None]) -> None:
        self.identity = identity
        self.versions = tuple(versions)
        shown = ", ".join(version or "<unpinned>" for version in self.versions)
        super().__init__(f"{identity!r} is declared at conflicting versions: {shown}")


class DependencyUnavailableError(HermeticError):
    """The store has no entry for a dependency identity."""


class ResolutionTimeoutError(HermeticError):
    """An external lookup did not finish within the caller's timeout."""

    retryable = True


class WrapFailureError(HermeticError):
    """The compiled binary could not be wrapped."""


class StoreError(HermeticError):
    """The content-addressed store failed to answer a fetch."""


class BuildCommandError(HermeticError):
    """The external build command exited unsuccessfully."""

    def __init__(self, message: str, *, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode
