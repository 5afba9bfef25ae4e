"""Relational table exposed as a sync source.

One row per record, addressed by ``key_column``. Modification times come from
``timestamp_column`` (whole-row precision) unless a field has its own column in
``field_timestamp_columns``. Rows are read with one SELECT per key, and writes
upsert the field together with its timestamp column(s). The record timestamp
only ever moves forward, since it also dates every sibling field.

The engine is owned by the caller. Blocking calls run in worker threads, gated
by ``max_concurrency`` (use 1 for SQLite).
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, MetaData, Table, case, insert, literal, or_, select, update
from sqlalchemy.exc import DataError, IntegrityError, NoSuchTableError, SQLAlchemyError

from fieldsync.config.errors import ConfigError
from fieldsync.domain.errors import Rejected, SourceUnavailable
from fieldsync.domain.ports import WriteAck
from fieldsync.domain.snapshots import MILLISECOND, FieldSnapshot, TimestampPrecision

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from datetime import tzinfo

    from sqlalchemy import Column
    from sqlalchemy.engine import Connection, Engine

    from fieldsync.domain.ports import RecordKey

log = getLogger(__name__)


@dataclass(slots=True)
class SqlTableSource:
    engine: Engine
    table: Table
    name: str = "sql"
    key_column: str = "email"
    timestamp_column: str = "updated_at"
    field_timestamp_columns: Mapping[str, str] = field(default_factory=dict[str, str])
    timezone: tzinfo = UTC
    timestamp_resolution: timedelta = MILLISECOND
    max_concurrency: int = 4
    _gate: threading.BoundedSemaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.require_columns(
            (self.key_column, self.timestamp_column, *self.field_timestamp_columns.values())
        )
        if self.timestamp_resolution <= timedelta(0):
            raise ConfigError(f"Source {self.name!r}: timestamp resolution must be positive")
        self._gate = threading.BoundedSemaphore(max(1, self.max_concurrency))

    @property
    def timestamp_precision(self) -> TimestampPrecision:
        return TimestampPrecision.FIELD if self.field_timestamp_columns else TimestampPrecision.RECORD

    def require_columns(self, columns: Iterable[str]) -> None:
        missing = sorted({column for column in columns if column not in self.table.c})
        if missing:
            raise ConfigError(
                f"Table {self.table.fullname!r} for source {self.name!r} has no columns: "
                f"{', '.join(missing)}"
            )

    async def fetch(self, key: RecordKey, field: str) -> FieldSnapshot | None:
        snapshots = await self.fetch_many(key, [field])
        return snapshots[field]

    async def fetch_many(
        self,
        key: RecordKey,
        fields: Sequence[str],
    ) -> Mapping[str, FieldSnapshot | None]:
        return await asyncio.to_thread(self._fetch_row, key, fields)

    async def write(
        self,
        key: RecordKey,
        field: str,
        value: object,
        timestamp: datetime,
    ) -> WriteAck:
        action = await asyncio.to_thread(self._upsert, key, field, value, timestamp)
        return WriteAck(source=self.name, field=field, detail=action)

    def _fetch_row(self, key: RecordKey, fields: Sequence[str]) -> dict[str, FieldSnapshot | None]:
        table = self.table
        names = dict.fromkeys(
            (self.timestamp_column, *fields, *self._timestamp_columns_for(fields))
        )
        stmt = (
            select(*(table.c[name] for name in names))
            .where(table.c[self.key_column] == key)
            .order_by(table.c[self.timestamp_column].desc())
            .limit(1)
        )
        try:
            with self._gate, self.engine.connect() as connection:
                row = connection.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Reading {self.table.fullname} failed: {exc}") from exc

        if row is None:
            return dict.fromkeys(fields)
        record_time = self._read_timestamp(row[self.timestamp_column])
        snapshots: dict[str, FieldSnapshot | None] = {}
        for native in fields:
            column = self.field_timestamp_columns.get(native)
            observed = self._read_timestamp(row[column]) if column else record_time
            snapshots[native] = FieldSnapshot(value=row[native], observed_at=observed)  # type: ignore[arg-type]
        return snapshots

    def _upsert(self, key: RecordKey, field: str, value: object, timestamp: datetime) -> str:
        if field not in self.table.c:
            raise Rejected(f"Table {self.table.fullname} has no column {field!r}")
        values = {field: _to_column(value), **self._field_timestamp_values(field, timestamp)}
        record_time = self._write_timestamp(self.timestamp_column, timestamp)
        try:
            with self._gate:
                try:
                    with self.engine.begin() as connection:
                        if self._update(connection, key, values, record_time):
                            return "updated"
                        connection.execute(
                            insert(self.table).values(
                                {self.key_column: key, self.timestamp_column: record_time, **values}
                            )
                        )
                        log.debug("Inserted %s row for %r", self.table.fullname, key)
                        return "inserted"
                except IntegrityError:
                    # a concurrent write inserted the row first
                    with self.engine.begin() as connection:
                        if self._update(connection, key, values, record_time):
                            return "updated"
                    raise
        except (IntegrityError, DataError) as exc:
            raise Rejected(f"{self.table.fullname} refused {field}: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Writing {self.table.fullname} failed: {exc}") from exc

    def _update(
        self,
        connection: Connection,
        key: RecordKey,
        values: dict[str, object],
        record_time: datetime,
    ) -> bool:
        column = self.table.c[self.timestamp_column]
        advanced = case(
            (or_(column.is_(None), column < record_time), literal(record_time, column.type)),
            else_=column,
        )
        result = connection.execute(
            update(self.table)
            .where(self.table.c[self.key_column] == key)
            .values({**values, self.timestamp_column: advanced})
        )
        return result.rowcount > 0

    def _timestamp_columns_for(self, fields: Iterable[str]) -> list[str]:
        return [
            self.field_timestamp_columns[native]
            for native in fields
            if native in self.field_timestamp_columns
        ]

    def _field_timestamp_values(self, field: str, timestamp: datetime) -> dict[str, object]:
        column = self.field_timestamp_columns.get(field)
        if column is None:
            return {}
        return {column: self._write_timestamp(column, timestamp)}

    def _read_timestamp(self, value: object) -> object:
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=self.timezone)
        return value

    def _write_timestamp(self, column_name: str, timestamp: datetime) -> datetime:
        column: Column[object] = self.table.c[column_name]
        local = timestamp.astimezone(self.timezone)
        if isinstance(column.type, DateTime) and column.type.timezone:
            return local
        return local.replace(tzinfo=None)


def reflect_table(engine: Engine, name: str, *, schema: str | None = None) -> Table:
    try:
        return Table(name, MetaData(), autoload_with=engine, schema=schema)
    except NoSuchTableError as exc:
        raise ConfigError(f"Table {name!r} does not exist") from exc


def build_sql_source(
    engine: Engine,
    options: Mapping[str, object],
    *,
    name: str = "sql",
) -> SqlTableSource:
    """Build a source from the ``[sources.options]`` table of a schema file."""

    schema = options.get("schema")
    raw_columns = options.get("field_timestamp_columns", {})
    if not isinstance(raw_columns, dict):
        raise ConfigError(f"Source {name!r}: field_timestamp_columns must be a table")
    return SqlTableSource(
        engine=engine,
        table=reflect_table(
            engine,
            str(options.get("table", "users")),
            schema=str(schema) if schema is not None else None,
        ),
        name=name,
        key_column=str(options.get("key_column", "email")),
        timestamp_column=str(options.get("timestamp_column", "updated_at")),
        field_timestamp_columns={str(k): str(v) for k, v in raw_columns.items()},  # type: ignore[reportUnknownVariableType]
        max_concurrency=int(options.get("max_concurrency", 4)),  # type: ignore[arg-type]
        timestamp_resolution=timedelta(
            milliseconds=float(options.get("timestamp_resolution_ms", 1))  # type: ignore[arg-type]
        ),
    )


def _to_column(value: object) -> object:
    if isinstance(value, tuple):
        return ", ".join(str(item) for item in value)  # type: ignore[reportUnknownVariableType]
    return value
