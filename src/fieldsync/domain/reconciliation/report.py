"""Per-key sync report handed back to callers."""

from __future__ import annotations

import base64
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from fieldsync.domain.errors import FieldUnresolved

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from fieldsync.domain.errors import SyncError
    from fieldsync.domain.snapshots import TimestampPrecision

    from .executor import WriteOutcome
    from .plan import CallFailure, ReconciliationResult, SyncPlan


class FieldOutcome(StrEnum):
    """What happened to one canonical field during a run."""

    IN_SYNC = "in_sync"
    PLANNED = "planned"
    SYNCED = "synced"
    PARTIAL = "partial"
    NO_VALUE = "no_value"
    UNRESOLVED = "unresolved"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Failure:
    field: str
    source: str | None
    kind: str
    message: str

    @classmethod
    def from_call(cls, failure: CallFailure) -> Failure:
        return cls(
            field=failure.field,
            source=failure.source,
            kind=failure.kind,
            message=str(failure.error),
        )

    @classmethod
    def from_error(cls, field_name: str, error: SyncError) -> Failure:
        return cls(
            field=field_name,
            source=error.source,
            kind=type(error).__name__,
            message=str(error),
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldReport:
    field: str
    outcome: FieldOutcome
    value: object | None = None
    observed_at: datetime | None = None
    winner_source: str | None = None
    targets: tuple[str, ...] = ()
    written: tuple[str, ...] = ()
    write_failures: tuple[Failure, ...] = ()
    fetch_failures: tuple[Failure, ...] = ()
    error: Failure | None = None

    def failures(self) -> tuple[Failure, ...]:
        extra = (self.error,) if self.error is not None else ()
        return extra + self.fetch_failures + self.write_failures


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncReport:
    """Chosen value, writes and failures for every canonical field of one key."""

    key: Hashable
    fields: tuple[FieldReport, ...]
    precisions: Mapping[str, TimestampPrecision] = field(default_factory=dict)
    dry_run: bool = False

    def field_report(self, name: str) -> FieldReport:
        for report in self.fields:
            if report.field == name:
                return report
        raise KeyError(name)

    @property
    def failures(self) -> tuple[Failure, ...]:
        return tuple(failure for report in self.fields for failure in report.failures())

    @property
    def writes(self) -> tuple[tuple[str, str], ...]:
        """``(field, source)`` pairs that were written successfully."""

        return tuple((report.field, source) for report in self.fields for source in report.written)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, object]:
        return {
            "key": str(self.key),
            "dry_run": self.dry_run,
            "ok": self.ok,
            "precisions": {source: str(precision) for source, precision in self.precisions.items()},
            "fields": [_field_to_dict(report) for report in self.fields],
        }


def build_report(
    plan: SyncPlan,
    outcomes: Iterable[WriteOutcome] = (),
    *,
    dry_run: bool = False,
) -> SyncReport:
    by_field: dict[str, list[WriteOutcome]] = {}
    for outcome in outcomes:
        by_field.setdefault(outcome.write.field, []).append(outcome)

    reports = tuple(
        _field_report(result, by_field.get(name, []), dry_run=dry_run)
        for name, result in plan.results.items()
    )
    return SyncReport(
        key=plan.key,
        fields=reports,
        precisions=dict(plan.precisions),
        dry_run=dry_run,
    )


def _field_report(
    result: ReconciliationResult,
    outcomes: list[WriteOutcome],
    *,
    dry_run: bool,
) -> FieldReport:
    fetch_failures = tuple(Failure.from_call(failure) for failure in result.fetch_failures)
    if result.error is not None:
        return FieldReport(
            field=result.field,
            outcome=(
                FieldOutcome.UNRESOLVED
                if isinstance(result.error, FieldUnresolved)
                else FieldOutcome.FAILED
            ),
            fetch_failures=fetch_failures,
            error=Failure.from_error(result.field, result.error),
        )
    if result.winner is None:
        return FieldReport(
            field=result.field,
            outcome=FieldOutcome.NO_VALUE,
            fetch_failures=fetch_failures,
        )

    written = tuple(outcome.write.source for outcome in outcomes if outcome.succeeded)
    write_failures = tuple(
        Failure.from_call(outcome.failure) for outcome in outcomes if outcome.failure is not None
    )
    if not result.targets:
        outcome = FieldOutcome.IN_SYNC
    elif dry_run:
        outcome = FieldOutcome.PLANNED
    elif write_failures:
        outcome = FieldOutcome.PARTIAL
    else:
        outcome = FieldOutcome.SYNCED

    return FieldReport(
        field=result.field,
        outcome=outcome,
        value=result.winner.value,
        observed_at=result.winner.observed_at,  # type: ignore[arg-type]
        winner_source=result.winner_source,
        targets=result.targets,
        written=written,
        write_failures=write_failures,
        fetch_failures=fetch_failures,
    )


def _field_to_dict(report: FieldReport) -> dict[str, object]:
    return {
        "field": report.field,
        "outcome": str(report.outcome),
        "value": _jsonable(report.value),
        "observed_at": report.observed_at.isoformat() if report.observed_at else None,
        "winner_source": report.winner_source,
        "targets": list(report.targets),
        "written": list(report.written),
        "failures": [
            {
                "source": failure.source,
                "kind": failure.kind,
                "message": failure.message,
            }
            for failure in report.failures()
        ],
    }


def _jsonable(value: object) -> object:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, tuple | list):
        return [_jsonable(item) for item in value]  # type: ignore[reportUnknownVariableType]
    return value
