"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

from fieldsync.adapters.memory import build_memory_source
from fieldsync.adapters.sqlalchemy import build_sql_source
from fieldsync.adapters.zoho import ZohoCrmSource, build_zoho_source
from fieldsync.config.errors import ConfigError
from fieldsync.config.schema import build_registry, default_schema_config, load_schema_config
from fieldsync.config.storage import get_database_config
from fieldsync.config.sync import get_sync_config
from fieldsync.domain.reconciliation import RecordSyncEngine

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from fieldsync.adapters.http_resilience import ResilientClient
    from fieldsync.config.schema import SchemaConfig
    from fieldsync.config.sync import SyncConfig
    from fieldsync.config.zoho import ZohoConfig
    from fieldsync.domain.ports import RecordKey, SourceAdapter
    from fieldsync.domain.reconciliation import SyncReport
    from fieldsync.domain.schema import SchemaRegistry

log = getLogger(__name__)


def load_config(config_path: Path | None = None) -> SchemaConfig:
    """Read ``config_path``, or fall back to the built-in users/Contacts schema."""

    if config_path is None:
        log.debug("No schema file given; using the built-in schema")
        return default_schema_config()
    return load_schema_config(config_path)


def build_sources(
    config: SchemaConfig,
    *,
    engine: Engine | None = None,
    zoho_config: ZohoConfig | None = None,
    zoho_client: ResilientClient | None = None,
) -> dict[str, SourceAdapter]:
    """Instantiate one adapter per configured source, keyed by source id."""

    sources: dict[str, SourceAdapter] = {}
    for source_config in config.sources:
        match source_config.kind:
            case "sql":
                if engine is None:
                    raise ConfigError(f"Source {source_config.id!r} needs a database engine")
                sql_source = build_sql_source(engine, source_config.options, name=source_config.id)
                sql_source.require_columns(source_config.mapping.values())
                sources[source_config.id] = sql_source
            case "zoho":
                sources[source_config.id] = build_zoho_source(
                    source_config.options,
                    name=source_config.id,
                    config=zoho_config,
                    client=zoho_client,
                )
            case "memory":
                sources[source_config.id] = build_memory_source(
                    source_config.options, name=source_config.id
                )
    return sources


def sync_records(
    keys: Iterable[RecordKey],
    *,
    config_path: Path | None = None,
    dry_run: bool = False,
    sync_config: SyncConfig | None = None,
    database_uri: str | None = None,
) -> list[SyncReport]:
    """Reconcile every key across the configured sources and return one report per key."""

    config = load_config(config_path)
    registry = build_registry(config)
    effective = sync_config or get_sync_config()
    key_list = list(keys)

    engine: Engine | None = None
    if any(source.kind == "sql" for source in config.sources):
        engine = create_engine(get_database_config(uri=database_uri).uri)

    log.info(
        "Starting sync: keys=%s, sources=%s, dry_run=%s",
        len(key_list),
        ", ".join(registry.sources()),
        dry_run,
    )
    try:
        reports = asyncio.run(
            _run(config, registry, key_list, engine=engine, sync_config=effective, dry_run=dry_run)
        )
    finally:
        if engine is not None:
            engine.dispose()

    failures = sum(len(report.failures) for report in reports)
    writes = sum(len(report.writes) for report in reports)
    log.info(f"Finished sync: keys={len(reports)}, writes={writes}, failures={failures}")
    return reports


async def _run(
    config: SchemaConfig,
    registry: SchemaRegistry,
    keys: list[RecordKey],
    *,
    engine: Engine | None,
    sync_config: SyncConfig,
    dry_run: bool,
) -> list[SyncReport]:
    sources = build_sources(config, engine=engine)
    try:
        sync_engine = RecordSyncEngine.build(registry, sources, config=sync_config)
        return await sync_engine.sync_many(keys, dry_run=dry_run)
    finally:
        await _close_sources(sources)


async def _close_sources(sources: Mapping[str, SourceAdapter]) -> None:
    for source in sources.values():
        if isinstance(source, ZohoCrmSource):
            await source.client.aclose()
