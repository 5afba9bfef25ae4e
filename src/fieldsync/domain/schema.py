"""Canonical schema and per-source field name mappings.

The registry is built once at startup and is read-only afterwards, so a single
instance can be shared by any number of concurrent sync runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from fieldsync.config.errors import ConfigError

from .fields import CanonicalField, FieldType

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


@dataclass(frozen=True, slots=True)
class SourceMapping:
    """Canonical field name -> source-native field name for one source.

    A canonical field missing from ``fields`` means the source does not take
    part in syncing that field.
    """

    source: str
    fields: Mapping[str, str]
    priority: int | None = None
    _by_native: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        frozen = MappingProxyType(dict(self.fields))
        by_native: dict[str, str] = {}
        for canonical, native in frozen.items():
            if native in by_native:
                raise ConfigError(
                    f"Source {self.source!r} maps both {by_native[native]!r} and "
                    f"{canonical!r} to native field {native!r}"
                )
            by_native[native] = canonical
        object.__setattr__(self, "fields", frozen)
        object.__setattr__(self, "_by_native", MappingProxyType(by_native))

    def native_name_for(self, canonical: str) -> str | None:
        return self.fields.get(canonical)

    def canonical_name_for(self, native: str) -> str | None:
        return self._by_native.get(native)


class SchemaRegistry:
    """Canonical field catalog plus the mapping of every configured source.

    Source priority is the ascending explicit ``priority`` rank, falling back to
    declaration order; the first source in that order wins timestamp ties.
    """

    def __init__(
        self,
        fields: Iterable[CanonicalField],
        mappings: Iterable[SourceMapping],
    ) -> None:
        catalog = tuple(fields)
        if not catalog:
            raise ConfigError("Canonical field catalog is empty")

        by_name: dict[str, CanonicalField] = {}
        for canonical in catalog:
            if canonical.name in by_name:
                raise ConfigError(f"Duplicate canonical field {canonical.name!r}")
            if canonical.type is FieldType.ENUM and not canonical.choices:
                raise ConfigError(f"Enum field {canonical.name!r} declares no choices")
            by_name[canonical.name] = canonical

        declared: dict[str, tuple[int, SourceMapping]] = {}
        for position, mapping in enumerate(mappings):
            if mapping.source in declared:
                raise ConfigError(f"Duplicate source id {mapping.source!r}")
            unknown = sorted(name for name in mapping.fields if name not in by_name)
            if unknown:
                raise ConfigError(
                    f"Source {mapping.source!r} maps unknown canonical fields: {', '.join(unknown)}"
                )
            declared[mapping.source] = (position, mapping)

        ordered = sorted(
            declared.values(),
            key=lambda item: (
                item[1].priority if item[1].priority is not None else float("inf"),
                item[0],
            ),
        )

        self._fields = catalog
        self._by_name = MappingProxyType(by_name)
        self._mappings = MappingProxyType({mapping.source: mapping for _, mapping in ordered})
        self._sources = tuple(mapping.source for _, mapping in ordered)

    def __repr__(self) -> str:
        return f"SchemaRegistry(fields={len(self._fields)}, sources={self._sources!r})"

    def canonical_fields(self) -> tuple[CanonicalField, ...]:
        return self._fields

    def field(self, name: str) -> CanonicalField:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown canonical field {name!r}") from None

    def sources(self) -> tuple[str, ...]:
        """Source ids in priority order."""

        return self._sources

    def mapping_for(self, source: str) -> SourceMapping:
        try:
            return self._mappings[source]
        except KeyError:
            raise KeyError(f"Unknown source {source!r}") from None

    def native_name_for(self, source: str, field: str) -> str | None:
        mapping = self._mappings.get(source)
        return mapping.native_name_for(field) if mapping is not None else None

    def canonical_name_for(self, source: str, native_name: str) -> str | None:
        mapping = self._mappings.get(source)
        return mapping.canonical_name_for(native_name) if mapping is not None else None

    def participants(self, field: str) -> tuple[str, ...]:
        """Sources mapping ``field``, in priority order."""

        return tuple(
            source for source in self._sources if field in self._mappings[source].fields
        )

    def coerce(self, field: str, value: object) -> object:
        return self.field(field).coerce(value)
