"""Domain model for field-level record synchronisation."""

from __future__ import annotations

from .errors import (
    FieldUnresolved,
    FieldValueError,
    Rejected,
    SourceUnavailable,
    SyncError,
    TimestampFormatError,
)
from .fields import CanonicalField, FieldType
from .schema import SchemaRegistry, SourceMapping
from .snapshots import FieldSnapshot, TimestampPrecision, normalize_timestamp

__all__ = [
    "CanonicalField",
    "FieldSnapshot",
    "FieldType",
    "FieldUnresolved",
    "FieldValueError",
    "Rejected",
    "SchemaRegistry",
    "SourceMapping",
    "SourceUnavailable",
    "SyncError",
    "TimestampFormatError",
    "TimestampPrecision",
    "normalize_timestamp",
]
