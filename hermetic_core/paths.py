"""Platform locations for the hermetic user config and store trees."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

_DEFAULT_APP_NAME = "hermetic"
_DEFAULT_APP_AUTHOR = "hermetic"
STORE_DIR_NAME = "store"


@dataclass(frozen=True)
class UserDirs:
    app_name: str = _DEFAULT_APP_NAME
    app_author: str = _DEFAULT_APP_AUTHOR
    config_dir_override: Path | None = None
    data_dir_override: Path | None = None

    def config_dir(self) -> Path:
        if self.config_dir_override:
            return self.config_dir_override
        return Path(user_config_dir(self.app_name, appauthor=self.app_author))

    def data_dir(self) -> Path:
        if self.data_dir_override:
            return self.data_dir_override
        return Path(user_data_dir(self.app_name, appauthor=self.app_author))

    def store_dir(self) -> Path:
        """Default location of the local content-addressed store."""
        return self.data_dir() / STORE_DIR_NAME
