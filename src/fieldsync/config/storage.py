"""Local state directory and the SQL source connection."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import require_env_var

APP_DIR_NAME: Final[str] = "fieldsync"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path

    def http_cache_path(self) -> Path:
        """Sqlite file backing the optional HTTP cache; creates ``data_dir`` if needed."""

        directory = self.data_dir.expanduser().resolve()
        directory.mkdir(parents=True, exist_ok=True)
        return directory / HTTP_CACHE_FILENAME


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _platform_data_home() -> Path:
    if os.name == "nt":
        return Path(os.getenv("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    return Path(os.getenv("XDG_DATA_HOME") or Path.home() / ".local" / "share")


def get_storage_config() -> StorageConfig:
    override = os.getenv("FIELDSYNC_DATA_DIR")
    data_dir = Path(override) if override else _platform_data_home() / APP_DIR_NAME
    return StorageConfig(data_dir=data_dir)


def get_http_cache_path() -> Path:
    return get_storage_config().http_cache_path()


def get_database_config(*, uri: str | None = None) -> DatabaseConfig:
    """Connection URI of the SQL source: ``uri`` if given, else ``DATABASE_URI``."""

    return DatabaseConfig(uri=uri or require_env_var("DATABASE_URI"))
