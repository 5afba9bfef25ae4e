"""Per-record sync plan shared by the planner, executor and report.

The plan is the contract between the read-only planning step and the
executor: it is built by a single coordinating task once every fetch for the
key has completed, and it is discarded after the writes are applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from fieldsync.domain.errors import SyncError
    from fieldsync.domain.ports import RecordKey
    from fieldsync.domain.snapshots import FieldSnapshot, TimestampPrecision


@dataclass(frozen=True, slots=True)
class CallFailure:
    """A failed adapter call, reported at (field, source) granularity."""

    field: str
    source: str
    error: SyncError

    @property
    def kind(self) -> str:
        return type(self.error).__name__


@dataclass(slots=True, kw_only=True)
class ReconciliationResult:
    """Reconciliation outcome for one canonical field.

    ``winner`` holds a normalised snapshot (UTC timestamp, canonical value) or
    ``None`` when no source had a present value. ``targets`` lists the sources
    whose current value differs from the winner, in priority order.
    """

    field: str
    participants: tuple[str, ...] = ()
    winner: FieldSnapshot | None = None
    winner_source: str | None = None
    targets: tuple[str, ...] = ()
    fetch_failures: tuple[CallFailure, ...] = ()
    error: SyncError | None = None

    @property
    def resolved(self) -> bool:
        return self.error is None and self.winner is not None


@dataclass(frozen=True, slots=True)
class PlannedWrite:
    """One upsert the executor must issue."""

    field: str
    source: str
    native_field: str
    value: object
    timestamp: datetime


@dataclass(slots=True)
class SyncPlan:
    """All field results for one key, in catalog order."""

    key: RecordKey
    results: dict[str, ReconciliationResult] = field(
        default_factory=dict["str", "ReconciliationResult"]
    )
    precisions: dict[str, TimestampPrecision] = field(
        default_factory=dict["str", "TimestampPrecision"]
    )
    native_names: dict[tuple[str, str], str] = field(
        default_factory=dict["tuple[str, str]", "str"]
    )

    def add_result(self, result: ReconciliationResult) -> None:
        self.results[result.field] = result

    def writes(self) -> list[PlannedWrite]:
        planned: list[PlannedWrite] = []
        for result in self.results.values():
            if not result.resolved or result.winner is None:
                continue
            timestamp = result.winner.observed_at
            for source in result.targets:
                planned.append(
                    PlannedWrite(
                        field=result.field,
                        source=source,
                        native_field=self.native_names[(source, result.field)],
                        value=result.winner.value,
                        timestamp=timestamp,  # type: ignore[arg-type]
                    )
                )
        return planned
