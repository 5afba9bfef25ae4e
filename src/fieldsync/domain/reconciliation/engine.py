"""Orchestrator for one-record synchronisation.

The engine composes the planner and executor but does not prescribe concrete
adapters; callers hand it a registry and one adapter per configured source.
Runs for different keys share nothing but the read-only registry, so
``sync_many`` may interleave them freely.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from fieldsync.config.sync import SyncConfig

from .executor import SyncExecutor
from .planner import SyncPlanner
from .report import build_report

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from fieldsync.domain.ports import RecordKey, SourceAdapter
    from fieldsync.domain.schema import SchemaRegistry

    from .report import SyncReport

log = getLogger(__name__)


@dataclass(slots=True)
class RecordSyncEngine:
    """Run planning and execution for record keys."""

    planner: SyncPlanner
    executor: SyncExecutor
    max_concurrent_records: int = 1

    @classmethod
    def build(
        cls,
        registry: SchemaRegistry,
        sources: Mapping[str, SourceAdapter],
        *,
        config: SyncConfig | None = None,
    ) -> RecordSyncEngine:
        effective = config or SyncConfig()
        return cls(
            planner=SyncPlanner(
                registry=registry,
                sources=sources,
                fetch_timeout=effective.fetch_timeout_seconds,
            ),
            executor=SyncExecutor(
                registry=registry,
                sources=sources,
                write_timeout=effective.write_timeout_seconds,
            ),
            max_concurrent_records=effective.max_concurrent_records,
        )

    async def plan(self, key: RecordKey) -> SyncReport:
        """Report what a sync of ``key`` would write, without writing."""

        plan = await self.planner.plan(key)
        return build_report(plan, dry_run=True)

    async def sync(self, key: RecordKey) -> SyncReport:
        """Reconcile ``key`` across all sources and write the winners back."""

        log.info("Syncing %r", key)
        plan = await self.planner.plan(key)
        outcomes = await self.executor.execute(plan)
        report = build_report(plan, outcomes)
        log.info(
            "Finished %r: writes=%s, failures=%s",
            key,
            len(report.writes),
            len(report.failures),
        )
        return report

    async def sync_many(
        self,
        keys: Iterable[RecordKey],
        *,
        dry_run: bool = False,
    ) -> list[SyncReport]:
        """Run independent syncs for ``keys``, returning reports in input order.

        A key whose run raises does not cancel the others; once every key has
        finished, the errors are raised together as an ``ExceptionGroup``.
        """

        semaphore = asyncio.Semaphore(max(1, self.max_concurrent_records))

        async def run(key: RecordKey) -> SyncReport | Exception:
            async with semaphore:
                try:
                    return await (self.plan(key) if dry_run else self.sync(key))
                except Exception as exc:  # noqa: BLE001
                    log.exception("Sync of %r failed", key)
                    return exc

        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(run(key)) for key in keys]
        results = [task.result() for task in tasks]
        failed = [result for result in results if isinstance(result, Exception)]
        if failed:
            raise ExceptionGroup(f"{len(failed)} of {len(results)} record syncs failed", failed)
        return [result for result in results if not isinstance(result, Exception)]
