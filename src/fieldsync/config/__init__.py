"""Application configuration helpers.

The schema loader (``fieldsync.config.schema``) depends on the domain model and
is imported from its own module.
"""

from __future__ import annotations

from .env import env_float, env_int, require_env_var, require_env_vars
from .errors import ConfigError, MissingConfigError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import (
    DatabaseConfig,
    StorageConfig,
    get_database_config,
    get_http_cache_path,
    get_storage_config,
)
from .sync import SyncConfig, get_sync_config
from .zoho import ZohoConfig, get_zoho_config

__all__ = [
    "CacheConfig",
    "ConfigError",
    "DatabaseConfig",
    "MissingConfigError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "ZohoConfig",
    "configure_logging",
    "env_float",
    "env_int",
    "get_database_config",
    "get_http_cache_path",
    "get_storage_config",
    "get_sync_config",
    "get_zoho_config",
    "require_env_var",
    "require_env_vars",
]
