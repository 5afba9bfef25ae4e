"""Runtime defaults for record synchronisation."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
DEFAULT_WRITE_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_CONCURRENT_RECORDS = 4


@dataclass(frozen=True, slots=True)
class SyncConfig:
    fetch_timeout_seconds: float | None = DEFAULT_FETCH_TIMEOUT_SECONDS
    write_timeout_seconds: float | None = DEFAULT_WRITE_TIMEOUT_SECONDS
    max_concurrent_records: int = DEFAULT_MAX_CONCURRENT_RECORDS


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        fetch_timeout_seconds=env_float("FIELDSYNC_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_SECONDS),
        write_timeout_seconds=env_float("FIELDSYNC_WRITE_TIMEOUT", DEFAULT_WRITE_TIMEOUT_SECONDS),
        max_concurrent_records=env_int("FIELDSYNC_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENT_RECORDS),
    )
