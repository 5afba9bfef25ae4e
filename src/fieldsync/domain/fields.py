"""Canonical field catalog entries and value typing."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from .errors import FieldValueError

_LIST_SEPARATORS = (";", ",")
_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off"})


class FieldType(StrEnum):
    """Value type of a canonical field."""

    STRING = "string"
    TEXT = "text"
    DATE = "date"
    ENUM = "enum"
    BOOLEAN = "boolean"
    LIST = "list"
    BINARY = "binary"


@dataclass(frozen=True, slots=True)
class CanonicalField:
    """One logical attribute of a record, named independently of any source."""

    name: str
    type: FieldType = FieldType.STRING
    choices: tuple[str, ...] = ()

    def coerce(self, value: object) -> object:
        """Return ``value`` in this field's canonical representation.

        ``None`` passes through untouched: absence is not a value. Empty strings
        stay empty strings for textual types.
        """

        if value is None:
            return None
        match self.type:
            case FieldType.STRING | FieldType.TEXT:
                return self._coerce_text(value)
            case FieldType.ENUM:
                return self._coerce_enum(value)
            case FieldType.DATE:
                return self._coerce_date(value)
            case FieldType.BOOLEAN:
                return self._coerce_boolean(value)
            case FieldType.LIST:
                return self._coerce_list(value)
            case FieldType.BINARY:
                return self._coerce_binary(value)

    def _fail(self, value: object) -> FieldValueError:
        return FieldValueError(
            f"Value {value!r} is not a valid {self.type} for field {self.name!r}",
            field=self.name,
        )

    def _coerce_text(self, value: object) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise self._fail(value)
        return str(value)

    def _coerce_enum(self, value: object) -> str:
        if not isinstance(value, str) or value not in self.choices:
            raise self._fail(value)
        return value

    def _coerce_date(self, value: object) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError as exc:
                raise self._fail(value) from exc
        raise self._fail(value)

    def _coerce_boolean(self, value: object) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise self._fail(value)

    def _coerce_list(self, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            for separator in _LIST_SEPARATORS:
                if separator in value:
                    parts = value.split(separator)
                    break
            else:
                parts = [value]
            return tuple(part.strip() for part in parts if part.strip())
        if isinstance(value, Iterable) and not isinstance(value, bytes | bytearray | dict):
            items: list[str] = []
            for item in value:
                if not isinstance(item, str):
                    raise self._fail(value)
                items.append(item)
            return tuple(items)
        raise self._fail(value)

    def _coerce_binary(self, value: object) -> bytes:
        if isinstance(value, bytes | bytearray | memoryview):
            return bytes(value)
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise self._fail(value) from exc
        raise self._fail(value)
