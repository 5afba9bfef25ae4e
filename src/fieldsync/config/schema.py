"""Canonical catalog and source configuration loaded from TOML.

The file shape is::

    [[fields]]
    name = "email"
    type = "string"

    [[sources]]
    id = "mysql"
    kind = "sql"
    priority = 1
    [sources.mapping]
    email = "email"
    [sources.options]
    table = "users"

Field order in the file is the catalog order; source order is the tie-break
priority unless ``priority`` ranks are given.
"""

from __future__ import annotations

import tomllib
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from fieldsync.domain.fields import CanonicalField, FieldType
from fieldsync.domain.schema import SchemaRegistry, SourceMapping

from .errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

SourceKind = Literal["sql", "zoho", "memory"]


class SchemaBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class FieldConfig(SchemaBaseModel):
    name: str = Field(min_length=1)
    type: FieldType = FieldType.STRING
    choices: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_choices(self) -> FieldConfig:
        if self.choices and self.type is not FieldType.ENUM:
            raise ValueError(f"Field {self.name!r}: choices are only allowed on enum fields")
        return self

    def to_field(self) -> CanonicalField:
        return CanonicalField(name=self.name, type=self.type, choices=self.choices)


class SourceConfig(SchemaBaseModel):
    id: str = Field(min_length=1)
    kind: SourceKind
    priority: int | None = None
    mapping: dict[str, str] = Field(default_factory=dict)
    options: dict[str, object] = Field(default_factory=dict)

    def to_mapping(self) -> SourceMapping:
        return SourceMapping(source=self.id, fields=self.mapping, priority=self.priority)


class SchemaConfig(SchemaBaseModel):
    fields: tuple[FieldConfig, ...]
    sources: tuple[SourceConfig, ...]

    def source(self, source_id: str) -> SourceConfig:
        for source in self.sources:
            if source.id == source_id:
                return source
        raise KeyError(f"Unknown source {source_id!r}")


def parse_schema_config(document: dict[str, object]) -> SchemaConfig:
    try:
        return SchemaConfig.model_validate(document)
    except ValidationError as exc:
        raise ConfigError(f"Invalid sync schema configuration:\n{exc}") from exc


def load_schema_config(path: Path) -> SchemaConfig:
    """Read and validate a TOML schema file."""

    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Schema configuration not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Schema configuration {path} is not valid TOML: {exc}") from exc
    return parse_schema_config(document)


def build_registry(config: SchemaConfig) -> SchemaRegistry:
    return SchemaRegistry(
        (field_config.to_field() for field_config in config.fields),
        (source_config.to_mapping() for source_config in config.sources),
    )


DEFAULT_FIELDS: tuple[FieldConfig, ...] = (
    FieldConfig(name="email"),
    FieldConfig(name="name"),
    FieldConfig(name="surname"),
    FieldConfig(name="language"),
    FieldConfig(name="specializations", type=FieldType.LIST),
    FieldConfig(name="comment", type=FieldType.TEXT),
    FieldConfig(name="speak_languages", type=FieldType.LIST),
    FieldConfig(name="email_verified", type=FieldType.BOOLEAN),
    FieldConfig(name="photo", type=FieldType.BINARY),
    FieldConfig(name="phone_call_availability"),
    FieldConfig(name="alto_arrival_date", type=FieldType.DATE),
    FieldConfig(name="job_experience", type=FieldType.TEXT),
    FieldConfig(name="date_of_birth", type=FieldType.DATE),
    FieldConfig(name="curriculum", type=FieldType.BINARY),
    FieldConfig(name="preferred_contact_time_str"),
    FieldConfig(name="phone"),
    FieldConfig(name="nationality"),
    FieldConfig(name="current_location"),
    FieldConfig(name="interests", type=FieldType.LIST),
)


def default_schema_config() -> SchemaConfig:
    """Users table in MySQL plus the Zoho CRM Contacts module, keyed by email."""

    return SchemaConfig(
        fields=DEFAULT_FIELDS,
        sources=(
            SourceConfig(
                id="mysql",
                kind="sql",
                priority=1,
                mapping={"email": "email", "name": "name"},
                options={"table": "users", "key_column": "email", "timestamp_column": "updated_at"},
            ),
            SourceConfig(
                id="zoho",
                kind="zoho",
                priority=2,
                mapping={"email": "Email", "name": "Last_Name", "language": "Language"},
                options={
                    "module": "Contacts",
                    "key_field": "Email",
                    "timestamp_field": "Modified_Time",
                },
            ),
        ),
    )
