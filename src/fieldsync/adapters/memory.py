"""Dict-backed source with per-field timestamps.

Useful for tests and for trying a schema file without touching real stores.
Failures can be injected per field to exercise partial-sync behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fieldsync.config.errors import ConfigError
from fieldsync.domain.errors import Rejected, SourceUnavailable
from fieldsync.domain.ports import SourceAdapter, WriteAck
from fieldsync.domain.snapshots import MILLISECOND, FieldSnapshot, Timestamp, TimestampPrecision

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime, timedelta

    from fieldsync.domain.ports import RecordKey


@dataclass(slots=True)
class InMemorySource:
    name: str = "memory"
    records: dict[RecordKey, dict[str, FieldSnapshot]] = field(
        default_factory=dict["RecordKey", "dict[str, FieldSnapshot]"]
    )
    timestamp_precision: TimestampPrecision = TimestampPrecision.FIELD
    timestamp_resolution: timedelta = MILLISECOND
    unavailable: bool = False
    failing_fields: set[str] = field(default_factory=set[str])
    rejected_fields: set[str] = field(default_factory=set[str])
    writes: list[tuple[RecordKey, str, object, datetime]] = field(
        default_factory=list["tuple[RecordKey, str, object, datetime]"]
    )

    def put(self, key: RecordKey, field: str, value: object, observed_at: Timestamp) -> None:
        self.records.setdefault(key, {})[field] = FieldSnapshot(value=value, observed_at=observed_at)

    def snapshot(self, key: RecordKey, field: str) -> FieldSnapshot | None:
        return self.records.get(key, {}).get(field)

    async def fetch(self, key: RecordKey, field: str) -> FieldSnapshot | None:
        if self.unavailable or field in self.failing_fields:
            raise SourceUnavailable(f"{self.name} is unavailable")
        return self.snapshot(key, field)

    async def write(
        self,
        key: RecordKey,
        field: str,
        value: object,
        timestamp: datetime,
    ) -> WriteAck:
        if self.unavailable:
            raise SourceUnavailable(f"{self.name} is unavailable")
        if field in self.rejected_fields:
            raise Rejected(f"{self.name} refuses writes to {field}")
        self.put(key, field, value, timestamp)
        self.writes.append((key, field, value, timestamp))
        return WriteAck(source=self.name, field=field)


def build_memory_source(options: Mapping[str, object], *, name: str = "memory") -> InMemorySource:
    """Build a source seeded from ``options.records``.

    ``records`` maps each key to ``{native_field: {value = ..., observed_at = ...}}``.
    """

    source = InMemorySource(name=name)
    records = options.get("records", {})
    if not isinstance(records, dict):
        raise ConfigError(f"Source {name!r}: records must be a table")
    for key, fields in records.items():  # type: ignore[reportUnknownVariableType]
        if not isinstance(fields, dict):
            raise ConfigError(f"Source {name!r}: record {key!r} must be a table")
        for native, entry in fields.items():  # type: ignore[reportUnknownVariableType]
            if not isinstance(entry, dict) or "observed_at" not in entry:
                raise ConfigError(
                    f"Source {name!r}: {key!r}.{native!r} needs value and observed_at"
                )
            source.put(key, str(native), entry.get("value"), entry["observed_at"])  # type: ignore[reportUnknownArgumentType]
    return source


if TYPE_CHECKING:
    _source_check: SourceAdapter = InMemorySource()
