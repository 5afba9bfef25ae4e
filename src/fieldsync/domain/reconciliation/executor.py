"""Apply a ``SyncPlan`` by writing winning values to stale sources.

Writes to different (field, source) pairs are independent: a failure is
recorded and the remaining writes carry on. Nothing is rolled back or retried
here; convergence is eventual and best-effort.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from fieldsync.domain.errors import Rejected, SyncError

from .plan import CallFailure
from .planner import call_with_deadline, check_sources

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fieldsync.domain.ports import RecordKey, SourceAdapter, WriteAck
    from fieldsync.domain.schema import SchemaRegistry

    from .plan import PlannedWrite, SyncPlan

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WriteOutcome:
    write: PlannedWrite
    ack: WriteAck | None = None
    failure: CallFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


@dataclass(slots=True)
class SyncExecutor:
    registry: SchemaRegistry
    sources: Mapping[str, SourceAdapter]
    write_timeout: float | None = None

    def __post_init__(self) -> None:
        check_sources(self.registry, self.sources)

    async def execute(self, plan: SyncPlan) -> list[WriteOutcome]:
        """Issue every planned write, each under the write deadline.

        Adapter failures become ``WriteOutcome.failure``. Any other exception is
        raised as an ``ExceptionGroup`` once every sibling write has finished.
        """

        writes = plan.writes()
        if not writes:
            return []
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(self._settle(plan.key, write)) for write in writes]
        results = [task.result() for task in tasks]
        unexpected = [result for result in results if isinstance(result, Exception)]
        if unexpected:
            raise ExceptionGroup(f"Unexpected errors while writing {plan.key!r}", unexpected)
        return [result for result in results if isinstance(result, WriteOutcome)]

    async def _settle(self, key: RecordKey, write: PlannedWrite) -> WriteOutcome | Exception:
        try:
            return await self._apply(key, write)
        except Exception as exc:  # noqa: BLE001
            log.exception(
                "Writing %s to %s failed unexpectedly for %r", write.field, write.source, key
            )
            return exc

    async def _apply(self, key: RecordKey, write: PlannedWrite) -> WriteOutcome:
        if self.registry.native_name_for(write.source, write.field) is None:
            error = Rejected(
                f"Refusing to write unmapped field {write.field!r} to {write.source}",
                source=write.source,
                field=write.field,
            )
            log.error("%s", error)
            return WriteOutcome(
                write=write,
                failure=CallFailure(field=write.field, source=write.source, error=error),
            )
        adapter = self.sources[write.source]
        try:
            ack = await call_with_deadline(
                adapter.write(key, write.native_field, write.value, write.timestamp),
                self.write_timeout,
                source=write.source,
                field=write.field,
            )
        except SyncError as exc:
            log.warning(
                "Writing %s to %s failed for %r: %s", write.field, write.source, key, exc
            )
            return WriteOutcome(
                write=write,
                failure=CallFailure(field=write.field, source=write.source, error=exc),
            )
        log.debug("Wrote %s to %s for %r", write.field, write.source, key)
        return WriteOutcome(write=write, ack=ack)
