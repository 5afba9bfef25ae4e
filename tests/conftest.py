from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fieldsync.adapters.memory import InMemorySource
from fieldsync.config.sync import SyncConfig
from fieldsync.domain import CanonicalField, FieldType, SchemaRegistry, SourceMapping
from fieldsync.domain.reconciliation import RecordSyncEngine

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture
def registry() -> SchemaRegistry:
    fields = (
        CanonicalField("email"),
        CanonicalField("name"),
        CanonicalField("language"),
        CanonicalField("comment", FieldType.TEXT),
        CanonicalField("interests", FieldType.LIST),
    )
    mappings = (
        SourceMapping(
            "mysql",
            {
                "email": "email",
                "name": "name",
                "language": "language",
                "comment": "comment",
                "interests": "interests",
            },
        ),
        SourceMapping(
            "zoho",
            {
                "email": "Email",
                "name": "Last_Name",
                "language": "Language",
                "comment": "Description",
            },
        ),
    )
    return SchemaRegistry(fields, mappings)


@pytest.fixture
def mysql() -> InMemorySource:
    return InMemorySource(name="mysql")


@pytest.fixture
def zoho() -> InMemorySource:
    return InMemorySource(name="zoho")


@pytest.fixture
def make_engine(
    registry: SchemaRegistry,
    mysql: InMemorySource,
    zoho: InMemorySource,
) -> Callable[..., RecordSyncEngine]:
    def factory(**overrides: float | int | None) -> RecordSyncEngine:
        config = SyncConfig(**overrides)  # type: ignore[arg-type]
        return RecordSyncEngine.build(registry, {"mysql": mysql, "zoho": zoho}, config=config)

    return factory
