"""Where the term store lives on disk."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var

APP_DIR_NAME: Final[str] = "termrequester"
DEFAULT_DB_FILENAME: Final[str] = "termrequester.db"

HOME_VAR: Final[str] = "TERMREQUESTER_HOME"
DATABASE_URI_VAR: Final[str] = "DATABASE_URI"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Store home directory; the SQLite file is created inside it on first use."""

    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def database_path(self) -> Path:
        data_dir = self.resolve_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


def _platform_data_dir() -> Path:
    if os.name == "nt":
        root = optional_env_var("LOCALAPPDATA")
        return Path(root) if root else Path.home() / "AppData" / "Local"
    root = optional_env_var("XDG_DATA_HOME")
    return Path(root) if root else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    home = optional_env_var(HOME_VAR)
    data_dir = Path(home) if home else _platform_data_dir() / APP_DIR_NAME
    return StorageConfig(data_dir=data_dir)


def get_database_uri(*, storage: StorageConfig | None = None) -> str:
    """``DATABASE_URI`` when set, otherwise the SQLite file under the store home."""

    override = optional_env_var(DATABASE_URI_VAR)
    if override:
        return override
    return (storage or get_storage_config()).database_uri()
