"""Command line entry point for hermetic."""

from .main import main

__all__ = ["main"]
