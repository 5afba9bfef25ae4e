from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import pytest

from fieldsync.config.sync import SyncConfig
from fieldsync.domain import FieldSnapshot
from fieldsync.domain.reconciliation import FieldOutcome, RecordSyncEngine
from tests.helpers.records import KEY, BrokenSource, at

if TYPE_CHECKING:
    from collections.abc import Callable

    from fieldsync.adapters.memory import InMemorySource
    from fieldsync.domain import SchemaRegistry


def _seed(mysql: InMemorySource, zoho: InMemorySource) -> None:
    mysql.put(KEY, "email", KEY, at(0))
    mysql.put(KEY, "name", "Alice", at(30))
    mysql.put(KEY, "interests", "music, hiking", at(10))
    zoho.put(KEY, "Email", KEY, at(0))
    zoho.put(KEY, "Last_Name", "Alicia", at(20))
    zoho.put(KEY, "Language", "en", at(5))


def test_sync_writes_winners_and_reports_each_field(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)

    report = asyncio.run(make_engine().sync(KEY))

    assert report.ok
    assert not report.dry_run
    assert set(report.writes) == {("name", "zoho"), ("language", "mysql")}
    name = report.field_report("name")
    assert name.outcome is FieldOutcome.SYNCED
    assert name.value == "Alice"
    assert name.observed_at == at(30)
    assert name.winner_source == "mysql"
    assert name.written == ("zoho",)
    assert report.field_report("email").outcome is FieldOutcome.IN_SYNC
    assert report.field_report("comment").outcome is FieldOutcome.NO_VALUE
    assert zoho.snapshot(KEY, "Last_Name") is not None
    assert mysql.snapshot(KEY, "language") is not None


def test_second_sync_without_changes_writes_nothing(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)
    engine = make_engine()

    first = asyncio.run(engine.sync(KEY))
    writes_after_first = len(mysql.writes) + len(zoho.writes)
    second = asyncio.run(engine.sync(KEY))

    assert first.writes
    assert second.writes == ()
    assert len(mysql.writes) + len(zoho.writes) == writes_after_first
    assert {report.outcome for report in second.fields} <= {
        FieldOutcome.IN_SYNC,
        FieldOutcome.NO_VALUE,
    }


def test_sources_never_receive_unmapped_fields(
    make_engine: Callable[..., RecordSyncEngine],
    registry: SchemaRegistry,
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)

    asyncio.run(make_engine().sync(KEY))

    zoho_natives = set(registry.mapping_for("zoho").fields.values())
    assert zoho.writes
    assert all(native in zoho_natives for _, native, _, _ in zoho.writes)
    assert zoho.snapshot(KEY, "interests") is None


def test_rejected_write_makes_field_partial(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)
    zoho.rejected_fields.add("Last_Name")

    report = asyncio.run(make_engine().sync(KEY))

    name = report.field_report("name")
    assert name.outcome is FieldOutcome.PARTIAL
    assert name.written == ()
    assert [(failure.source, failure.kind) for failure in name.write_failures] == [
        ("zoho", "Rejected")
    ]
    assert report.field_report("language").outcome is FieldOutcome.SYNCED
    assert not report.ok


def test_unresolved_field_does_not_block_the_record(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)
    mysql.failing_fields.add("comment")
    zoho.failing_fields.add("Description")

    report = asyncio.run(make_engine().sync(KEY))

    comment = report.field_report("comment")
    assert comment.outcome is FieldOutcome.UNRESOLVED
    assert comment.error is not None
    assert comment.error.kind == "FieldUnresolved"
    assert {failure.kind for failure in report.failures} == {
        "FieldUnresolved",
        "SourceUnavailable",
    }
    assert report.field_report("name").outcome is FieldOutcome.SYNCED


def test_dry_run_plans_without_writing(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)

    report = asyncio.run(make_engine().plan(KEY))

    assert report.dry_run
    assert report.field_report("name").outcome is FieldOutcome.PLANNED
    assert report.field_report("name").targets == ("zoho",)
    assert report.writes == ()
    assert mysql.writes == zoho.writes == []


def test_sync_many_returns_reports_in_key_order(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)
    keys = [KEY, "bob@example.com", "carol@example.com"]
    zoho.put("bob@example.com", "Last_Name", "Bob", at(1))

    reports = asyncio.run(make_engine(max_concurrent_records=2).sync_many(keys))

    assert [report.key for report in reports] == keys
    assert reports[1].writes == (("name", "mysql"),)
    assert reports[2].writes == ()
    assert mysql.snapshot("bob@example.com", "name") is not None


def test_report_serialises_to_json(
    make_engine: Callable[..., RecordSyncEngine],
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> None:
    _seed(mysql, zoho)

    payload = asyncio.run(make_engine().sync(KEY)).to_dict()

    decoded = json.loads(json.dumps(payload))
    assert decoded["key"] == KEY
    assert decoded["ok"] is True
    assert decoded["precisions"] == {"mysql": "field", "zoho": "field"}
    fields = {entry["field"]: entry for entry in decoded["fields"]}
    assert fields["interests"]["value"] == ["music", "hiking"]
    assert fields["name"]["outcome"] == "synced"
    assert fields["name"]["observed_at"] == "2024-01-01T12:00:30+00:00"
    assert fields["name"]["written"] == ["zoho"]


def test_sync_many_finishes_other_keys_when_one_run_breaks(
    registry: SchemaRegistry,
    mysql: InMemorySource,
) -> None:
    zoho = BrokenSource(name="zoho", broken_keys={"bob@example.com"}, delay=0.05)
    mysql.put(KEY, "name", "Alice", at(30))
    mysql.put("carol@example.com", "name", "Carol", at(30))
    engine = RecordSyncEngine.build(
        registry,
        {"mysql": mysql, "zoho": zoho},
        config=SyncConfig(max_concurrent_records=3),
    )

    with pytest.raises(ExceptionGroup) as excinfo:
        asyncio.run(engine.sync_many([KEY, "bob@example.com", "carol@example.com"]))

    assert excinfo.group_contains(RuntimeError, match="bob@example.com")
    assert zoho.snapshot(KEY, "Last_Name") == FieldSnapshot("Alice", at(30))
    assert zoho.snapshot("carol@example.com", "Last_Name") == FieldSnapshot("Carol", at(30))
