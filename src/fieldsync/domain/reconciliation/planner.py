"""Fetch every source for one key and reconcile each canonical field.

Fetches run as one task per source. Sources exposing ``fetch_many`` are asked
for all their mapped fields in one round-trip; the others get one ``fetch`` per
field. Every field decision is made only after all fetch tasks have finished.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from fieldsync.config.errors import ConfigError
from fieldsync.domain.errors import (
    FieldUnresolved,
    FieldValueError,
    SourceUnavailable,
    SyncError,
    TimestampFormatError,
)
from fieldsync.domain.ports import BatchFetchingSource
from fieldsync.domain.snapshots import TimestampPrecision

from .plan import CallFailure, ReconciliationResult, SyncPlan
from .reconcile import Reconciler, reconcile_field

if TYPE_CHECKING:
    from collections.abc import Awaitable, Mapping, Sequence

    from fieldsync.domain.ports import RecordKey, SourceAdapter
    from fieldsync.domain.schema import SchemaRegistry
    from fieldsync.domain.snapshots import FieldSnapshot

log = getLogger(__name__)

type FetchOutcome = FieldSnapshot | None | SyncError
type SourceOutcomes = dict[str, FetchOutcome]


async def call_with_deadline[T](
    awaitable: Awaitable[T],
    timeout: float | None,
    *,
    source: str,
    field: str | None = None,
) -> T:
    """Await an adapter call, turning a missed deadline into ``SourceUnavailable``."""

    try:
        async with asyncio.timeout(timeout):
            return await awaitable
    except TimeoutError as exc:
        raise SourceUnavailable(
            f"{source} did not answer within {timeout}s",
            source=source,
            field=field,
        ) from exc
    except SyncError as exc:
        exc.source = exc.source or source
        exc.field = exc.field or field
        raise


def check_sources(registry: SchemaRegistry, sources: Mapping[str, SourceAdapter]) -> None:
    """Fail fast unless every configured source has exactly one adapter."""

    missing = sorted(set(registry.sources()) - set(sources))
    extra = sorted(set(sources) - set(registry.sources()))
    if missing:
        raise ConfigError(f"No adapter configured for sources: {', '.join(missing)}")
    if extra:
        raise ConfigError(f"Adapters given for undeclared sources: {', '.join(extra)}")


@dataclass(slots=True)
class SyncPlanner:
    """Build the read-only ``SyncPlan`` for one record key."""

    registry: SchemaRegistry
    sources: Mapping[str, SourceAdapter]
    fetch_timeout: float | None = None
    reconcile: Reconciler = field(default=reconcile_field)

    def __post_init__(self) -> None:
        check_sources(self.registry, self.sources)

    async def plan(self, key: RecordKey) -> SyncPlan:
        plan = SyncPlan(key=key)
        requested: dict[str, list[tuple[str, str]]] = {}
        for source in self.registry.sources():
            mapping = self.registry.mapping_for(source)
            plan.precisions[source] = self.sources[source].timestamp_precision
            pairs = [
                (canonical.name, native)
                for canonical in self.registry.canonical_fields()
                if (native := mapping.native_name_for(canonical.name)) is not None
            ]
            for canonical_name, native in pairs:
                plan.native_names[(source, canonical_name)] = native
            if pairs:
                requested[source] = pairs

        async with asyncio.TaskGroup() as group:
            tasks = {
                source: group.create_task(self._fetch_source(key, source, pairs))
                for source, pairs in requested.items()
            }
        outcomes = {source: task.result() for source, task in tasks.items()}

        for canonical in self.registry.canonical_fields():
            plan.add_result(self._resolve(canonical.name, outcomes))
        return plan

    async def _fetch_source(
        self,
        key: RecordKey,
        source: str,
        pairs: Sequence[tuple[str, str]],
    ) -> SourceOutcomes:
        adapter = self.sources[source]
        if isinstance(adapter, BatchFetchingSource):
            return await self._fetch_batch(adapter, key, source, pairs)

        async with asyncio.TaskGroup() as group:
            tasks = {
                canonical: group.create_task(self._fetch_one(adapter, key, source, canonical, native))
                for canonical, native in pairs
            }
        return {canonical: task.result() for canonical, task in tasks.items()}

    async def _fetch_batch(
        self,
        adapter: BatchFetchingSource,
        key: RecordKey,
        source: str,
        pairs: Sequence[tuple[str, str]],
    ) -> SourceOutcomes:
        natives = [native for _, native in pairs]
        try:
            snapshots = await call_with_deadline(
                adapter.fetch_many(key, natives),
                self.fetch_timeout,
                source=source,
            )
        except SyncError as exc:
            log.warning("Batch fetch from %s failed for %r: %s", source, key, exc)
            return {canonical: exc for canonical, _ in pairs}
        return {canonical: snapshots.get(native) for canonical, native in pairs}

    async def _fetch_one(
        self,
        adapter: SourceAdapter,
        key: RecordKey,
        source: str,
        canonical: str,
        native: str,
    ) -> FetchOutcome:
        try:
            return await call_with_deadline(
                adapter.fetch(key, native),
                self.fetch_timeout,
                source=source,
                field=canonical,
            )
        except SyncError as exc:
            log.warning("Fetching %s from %s failed for %r: %s", canonical, source, key, exc)
            return exc

    def _resolve(self, field_name: str, outcomes: Mapping[str, SourceOutcomes]) -> ReconciliationResult:
        participants = self.registry.participants(field_name)
        snapshots: dict[str, FieldSnapshot | None] = {}
        failures: list[CallFailure] = []
        for source in participants:
            outcome = outcomes[source][field_name]
            if isinstance(outcome, SyncError):
                failures.append(CallFailure(field=field_name, source=source, error=outcome))
            else:
                snapshots[source] = outcome

        result = ReconciliationResult(
            field=field_name,
            participants=participants,
            fetch_failures=tuple(failures),
        )
        if not participants:
            return result

        format_errors = [
            failure.error
            for failure in failures
            if isinstance(failure.error, TimestampFormatError | FieldValueError)
        ]
        if format_errors:
            result.error = format_errors[0]
            return result

        if not snapshots:
            result.error = FieldUnresolved(
                f"No source supplied a snapshot for {field_name!r}",
                field=field_name,
            )
            log.warning("Field %s unresolved: every participating source failed", field_name)
            return result

        try:
            resolution = self.reconcile(
                self.registry.field(field_name),
                snapshots,
                priority=participants,
                resolution=max(self.sources[source].timestamp_resolution for source in snapshots),
                record_level=[
                    source
                    for source in snapshots
                    if self.sources[source].timestamp_precision is TimestampPrecision.RECORD
                ],
            )
        except (TimestampFormatError, FieldValueError) as exc:
            log.warning("Cannot reconcile %s: %s", field_name, exc)
            result.error = exc
            return result

        result.winner = resolution.winner
        result.winner_source = resolution.winner_source
        result.targets = resolution.targets
        return result
