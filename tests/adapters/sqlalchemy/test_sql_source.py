from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.pool import StaticPool

from fieldsync.adapters.memory import InMemorySource
from fieldsync.adapters.sqlalchemy import SqlTableSource, build_sql_source, reflect_table
from fieldsync.config.errors import ConfigError
from fieldsync.domain import (
    CanonicalField,
    FieldSnapshot,
    Rejected,
    SchemaRegistry,
    SourceMapping,
    SourceUnavailable,
    TimestampPrecision,
)
from fieldsync.domain.ports import BatchFetchingSource
from fieldsync.domain.reconciliation import RecordSyncEngine
from tests.helpers.records import KEY, at

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine

UPDATED = datetime(2024, 1, 1, 12, 0)  # noqa: DTZ001


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def users(sqlite_engine: Engine) -> Table:
    metadata = MetaData()
    table = Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("email", String, unique=True),
        Column("name", String, nullable=False),
        Column("language", String),
        Column("interests", String),
        Column("updated_at", DateTime),
        Column("name_updated_at", DateTime),
    )
    metadata.create_all(sqlite_engine)
    with sqlite_engine.begin() as connection:
        connection.execute(
            table.insert().values(
                email=KEY,
                name="Alice",
                language=None,
                updated_at=UPDATED,
                name_updated_at=datetime(2023, 6, 1, 9, 30),  # noqa: DTZ001
            )
        )
    return table


def _source(engine: Engine, table: Table, **kwargs: object) -> SqlTableSource:
    return SqlTableSource(engine=engine, table=table, max_concurrency=1, **kwargs)  # type: ignore[arg-type]


def _row(engine: Engine, table: Table, key: str) -> dict[str, object]:
    with engine.connect() as connection:
        row = connection.execute(select(table).where(table.c.email == key)).mappings().one()
    return dict(row)


def test_fetch_many_reads_one_row_with_record_timestamps(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    source = _source(sqlite_engine, users)

    snapshots = asyncio.run(source.fetch_many(KEY, ["name", "language"]))

    expected_time = UPDATED.replace(tzinfo=UTC)
    assert isinstance(source, BatchFetchingSource)
    assert source.timestamp_precision is TimestampPrecision.RECORD
    assert snapshots == {
        "name": FieldSnapshot("Alice", expected_time),
        "language": FieldSnapshot(None, expected_time),
    }


def test_fetch_returns_none_for_unknown_key(sqlite_engine: Engine, users: Table) -> None:
    source = _source(sqlite_engine, users)

    assert asyncio.run(source.fetch("nobody@example.com", "name")) is None


def test_field_timestamp_columns_give_field_precision(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    source = _source(sqlite_engine, users, field_timestamp_columns={"name": "name_updated_at"})

    snapshots = asyncio.run(source.fetch_many(KEY, ["name", "language"]))

    assert source.timestamp_precision is TimestampPrecision.FIELD
    assert snapshots["name"] == FieldSnapshot("Alice", datetime(2023, 6, 1, 9, 30, tzinfo=UTC))
    assert snapshots["language"] == FieldSnapshot(None, UPDATED.replace(tzinfo=UTC))


def test_write_updates_value_and_timestamps(sqlite_engine: Engine, users: Table) -> None:
    source = _source(sqlite_engine, users, field_timestamp_columns={"name": "name_updated_at"})

    ack = asyncio.run(source.write(KEY, "name", "Alicia", at(30)))

    row = _row(sqlite_engine, users, KEY)
    assert ack.detail == "updated"
    assert row["name"] == "Alicia"
    assert row["updated_at"] == datetime(2024, 1, 1, 12, 0, 30)  # noqa: DTZ001
    assert row["name_updated_at"] == datetime(2024, 1, 1, 12, 0, 30)  # noqa: DTZ001


def test_older_write_does_not_move_the_record_timestamp_back(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    source = _source(sqlite_engine, users)

    asyncio.run(source.write(KEY, "language", "fr", at(-60)))

    row = _row(sqlite_engine, users, KEY)
    assert row["language"] == "fr"
    assert row["updated_at"] == UPDATED


def test_written_value_reads_back_with_the_same_timestamp(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    source = _source(sqlite_engine, users)

    asyncio.run(source.write(KEY, "interests", ("music", "hiking"), at(30)))
    snapshot = asyncio.run(source.fetch(KEY, "interests"))

    assert snapshot == FieldSnapshot("music, hiking", at(30))


def test_write_inserts_missing_row(sqlite_engine: Engine, users: Table) -> None:
    source = _source(sqlite_engine, users)

    ack = asyncio.run(source.write("bob@example.com", "name", "Bob", at(10)))

    assert ack.detail == "inserted"
    assert _row(sqlite_engine, users, "bob@example.com")["name"] == "Bob"


def test_write_violating_constraints_is_rejected(sqlite_engine: Engine, users: Table) -> None:
    source = _source(sqlite_engine, users)

    with pytest.raises(Rejected):
        asyncio.run(source.write("bob@example.com", "language", "en", at(10)))


def test_write_to_unknown_column_is_rejected(sqlite_engine: Engine, users: Table) -> None:
    source = _source(sqlite_engine, users)

    with pytest.raises(Rejected, match="phone"):
        asyncio.run(source.write(KEY, "phone", "+34 600", at(10)))


def test_database_errors_make_the_source_unavailable(sqlite_engine: Engine) -> None:
    ghost = Table(
        "ghost",
        MetaData(),
        Column("email", String),
        Column("name", String),
        Column("updated_at", DateTime),
    )
    source = _source(sqlite_engine, ghost)

    with pytest.raises(SourceUnavailable):
        asyncio.run(source.fetch(KEY, "name"))
    with pytest.raises(SourceUnavailable):
        asyncio.run(source.write(KEY, "name", "Alice", at(10)))


def test_missing_columns_are_config_errors(sqlite_engine: Engine, users: Table) -> None:
    with pytest.raises(ConfigError, match="modified_at"):
        _source(sqlite_engine, users, timestamp_column="modified_at")

    source = _source(sqlite_engine, users)
    with pytest.raises(ConfigError, match="phone"):
        source.require_columns(["name", "phone"])


def test_build_sql_source_reflects_the_table(sqlite_engine: Engine, users: Table) -> None:
    source = build_sql_source(
        sqlite_engine,
        {
            "table": "users",
            "key_column": "email",
            "field_timestamp_columns": {"name": "name_updated_at"},
            "max_concurrency": 1,
        },
        name="mysql",
    )

    assert source.name == "mysql"
    assert source.table.name == users.name
    assert source.timestamp_precision is TimestampPrecision.FIELD
    assert asyncio.run(source.fetch(KEY, "name")) is not None


def test_reflect_unknown_table_is_a_config_error(sqlite_engine: Engine) -> None:
    with pytest.raises(ConfigError, match="accounts"):
        reflect_table(sqlite_engine, "accounts")


def test_build_sql_source_reads_the_timestamp_resolution(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    source = build_sql_source(
        sqlite_engine,
        {"timestamp_resolution_ms": 1000, "max_concurrency": 1},
    )

    assert source.timestamp_resolution == timedelta(seconds=1)
    with pytest.raises(ConfigError, match="resolution"):
        build_sql_source(sqlite_engine, {"timestamp_resolution_ms": 0})


def test_engine_with_record_level_table_settles_after_one_run(
    sqlite_engine: Engine,
    users: Table,
) -> None:
    fields = (CanonicalField("email"), CanonicalField("name"), CanonicalField("language"))
    natives = {"email": "email", "name": "name", "language": "language"}
    registry = SchemaRegistry(
        fields,
        (SourceMapping("mysql", natives), SourceMapping("crm", natives)),
    )
    crm = InMemorySource(name="crm")
    crm.put(KEY, "email", KEY, at(-10))
    crm.put(KEY, "name", "Alice", at(0))
    crm.put(KEY, "language", "fr", at(-120))
    engine = RecordSyncEngine.build(
        registry,
        {"mysql": _source(sqlite_engine, users), "crm": crm},
    )

    first = asyncio.run(engine.sync(KEY))
    second = asyncio.run(engine.sync(KEY))

    assert first.writes == (("language", "mysql"),)
    assert second.writes == ()
    assert crm.writes == []
    row = _row(sqlite_engine, users, KEY)
    assert row["language"] == "fr"
    assert row["updated_at"] == UPDATED
