"""Command base class and registration decorator."""

from .abc import HermeticAbstractCommand
from .decorators import hcommand

__all__ = ["HermeticAbstractCommand", "hcommand"]
