"""Field snapshots and timestamp normalisation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from .errors import TimestampFormatError

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

MILLISECOND = timedelta(milliseconds=1)
SECOND = timedelta(seconds=1)

type Timestamp = datetime | int | float | str


class TimestampPrecision(StrEnum):
    """Granularity of the modification timestamps a source can report.

    ``RECORD`` sources only know when the whole record changed and report that
    time for every field; reconciliation then treats an untouched field as
    modified whenever any sibling field changed.
    """

    FIELD = "field"
    RECORD = "record"


@dataclass(frozen=True, slots=True)
class FieldSnapshot:
    """A field's value in one source plus the time it was last modified.

    ``value is None`` means the field is unset in that source, which is not the
    same as an empty string.
    """

    value: object | None
    observed_at: Timestamp

    @property
    def is_present(self) -> bool:
        return self.value is not None


def normalize_timestamp(raw: Timestamp) -> datetime:
    """Return ``raw`` as an aware UTC datetime truncated to milliseconds.

    Accepted inputs: aware ``datetime``, ISO-8601 string with an offset (or
    ``Z``), and numbers interpreted as epoch milliseconds.
    """

    if isinstance(raw, bool):
        raise TimestampFormatError(f"Boolean is not a timestamp: {raw!r}")
    if isinstance(raw, datetime):
        if raw.tzinfo is None or raw.utcoffset() is None:
            raise TimestampFormatError(f"Timestamp lacks timezone information: {raw!r}")
        return floor_timestamp(raw.astimezone(UTC), MILLISECOND)
    if isinstance(raw, int | float):
        try:
            return floor_timestamp(_EPOCH + timedelta(milliseconds=raw), MILLISECOND)
        except (OverflowError, ValueError) as exc:
            raise TimestampFormatError(f"Epoch value out of range: {raw!r}") from exc
    if isinstance(raw, str):
        return normalize_timestamp(_parse_iso(raw))
    raise TimestampFormatError(f"Unsupported timestamp type {type(raw).__name__}: {raw!r}")


def floor_timestamp(value: datetime, resolution: timedelta) -> datetime:
    """Round an aware ``value`` down to a whole multiple of ``resolution``."""

    return value - (value - _EPOCH) % resolution


def _parse_iso(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise TimestampFormatError(f"Invalid ISO timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        raise TimestampFormatError(f"Timestamp lacks timezone information: {value!r}")
    return parsed
