"""Ports implemented by external data stores taking part in a sync."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping, Sequence
    from datetime import datetime, timedelta

    from fieldsync.domain.snapshots import FieldSnapshot, TimestampPrecision

type RecordKey = Hashable


@dataclass(frozen=True, slots=True)
class WriteAck:
    """Acknowledgement returned by a source after an upsert."""

    source: str
    field: str
    detail: str | None = None


@runtime_checkable
class SourceAdapter(Protocol):
    """Read-one-field / write-one-field capability of a data source.

    ``fetch`` returns ``None`` when the record or field does not exist and
    raises ``SourceUnavailable`` on transport or auth failure. ``write`` must
    be an idempotent upsert and raises ``SourceUnavailable`` or ``Rejected``.
    ``timestamp_precision`` documents whether snapshots carry per-field or
    per-record modification times; ``timestamp_resolution`` is the smallest
    time step the source stores, so written timestamps come back floored to it.
    """

    @property
    def timestamp_precision(self) -> TimestampPrecision: ...

    @property
    def timestamp_resolution(self) -> timedelta: ...

    async def fetch(self, key: RecordKey, field: str) -> FieldSnapshot | None: ...

    async def write(
        self,
        key: RecordKey,
        field: str,
        value: object,
        timestamp: datetime,
    ) -> WriteAck: ...


@runtime_checkable
class BatchFetchingSource(SourceAdapter, Protocol):
    """Source that can return several fields of one record in one round-trip."""

    async def fetch_many(
        self,
        key: RecordKey,
        fields: Sequence[str],
    ) -> Mapping[str, FieldSnapshot | None]: ...


__all__ = ["BatchFetchingSource", "RecordKey", "SourceAdapter", "WriteAck"]
