"""Abstract base class for hermetic commands."""

from __future__ import annotations

from abc import ABC, abstractmethod
from argparse import ArgumentParser, Namespace


class HermeticAbstractCommand(ABC):
    """Base interface for CLI commands."""

    @classmethod
    @abstractmethod
    def configure(cls, parser: ArgumentParser) -> None:
        """Let the command configure CLI arguments."""

    @abstractmethod
    def run(self, args: Namespace) -> int:
        """Execute the command with parsed arguments."""
