"""Run-time errors raised while synchronising one record.

None of these abort a sync run on their own. Adapters raise
``SourceUnavailable``/``Rejected``; the reconciler raises the format errors;
the planner records ``FieldUnresolved``. Startup problems are
``fieldsync.config.errors.ConfigError`` instead.
"""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for per-call and per-field sync failures."""

    def __init__(self, message: str, *, source: str | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.source = source
        self.field = field


class SourceUnavailable(SyncError):
    """A source could not be reached (transport, auth or timeout failure)."""


class Rejected(SyncError):
    """A source refused a write, e.g. because of downstream validation."""


class TimestampFormatError(SyncError):
    """A source reported a timestamp that cannot be normalised."""


class FieldValueError(SyncError):
    """A source reported a value that does not match the canonical field type."""


class FieldUnresolved(SyncError):
    """No participating source supplied a usable snapshot for a field."""
