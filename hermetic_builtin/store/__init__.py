"""Content-addressed store clients."""

from .command import CommandStore
from .local import LocalStore, store_name
from .types import CommandStoreConfig

__all__ = ["CommandStore", "CommandStoreConfig", "LocalStore", "store_name"]
