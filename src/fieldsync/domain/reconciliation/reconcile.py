"""Last-writer-wins resolution of a single canonical field.

Steps for one field and ``{source: snapshot | None}``:
- normalise every timestamp and coerce every value to the canonical type
- drop missing records and absent values
- pick the greatest timestamp, first source in priority order on ties
- mark every source whose (value, timestamp) differs from the winner

Timestamps are compared at the coarsest resolution among the participants, so
a source that stores whole seconds matches a millisecond winner it was given.
A record-level timestamp only bounds when a field last changed: when the values
agree and either side dates the field by its record, no write is needed.

The function is pure: it never touches adapters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from fieldsync.domain.errors import FieldValueError, TimestampFormatError
from fieldsync.domain.snapshots import (
    MILLISECOND,
    FieldSnapshot,
    floor_timestamp,
    normalize_timestamp,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping, Sequence
    from datetime import datetime, timedelta

    from fieldsync.domain.fields import CanonicalField


@dataclass(frozen=True, slots=True)
class FieldResolution:
    winner: FieldSnapshot | None
    winner_source: str | None
    targets: tuple[str, ...]


class Reconciler(Protocol):
    """Resolve one field from the snapshots of every participating source."""

    def __call__(
        self,
        field: CanonicalField,
        snapshots: Mapping[str, FieldSnapshot | None],
        *,
        priority: Sequence[str],
        resolution: timedelta = MILLISECOND,
        record_level: Collection[str] = (),
    ) -> FieldResolution: ...


def reconcile_field(
    field: CanonicalField,
    snapshots: Mapping[str, FieldSnapshot | None],
    *,
    priority: Sequence[str],
    resolution: timedelta = MILLISECOND,
    record_level: Collection[str] = (),
) -> FieldResolution:
    """Pick the winning snapshot for ``field`` and the sources that must be updated.

    ``priority`` orders the sources for tie-breaking; sources in ``snapshots``
    that are missing from it are ignored. ``resolution`` is the step at which
    timestamps are compared and ``record_level`` names the sources whose
    timestamps date the whole record. Raises ``TimestampFormatError`` or
    ``FieldValueError`` if any snapshot cannot be normalised.
    """

    ordered = [source for source in priority if source in snapshots]
    current: dict[str, FieldSnapshot | None] = {
        source: _normalize(field, source, snapshots[source]) for source in ordered
    }

    def moment(snapshot: FieldSnapshot) -> datetime:
        return floor_timestamp(snapshot.observed_at, resolution)  # type: ignore[arg-type]

    winner: FieldSnapshot | None = None
    winner_source: str | None = None
    for source in ordered:
        snapshot = current[source]
        if snapshot is None or not snapshot.is_present:
            continue
        if winner is None or moment(snapshot) > moment(winner):
            winner = snapshot
            winner_source = source

    if winner is None:
        return FieldResolution(winner=None, winner_source=None, targets=())

    chosen, chosen_source = winner, winner_source

    def stale(source: str) -> bool:
        snapshot = current[source]
        if snapshot is None or snapshot.value != chosen.value:
            return True
        if source in record_level or chosen_source in record_level:
            return False
        return moment(snapshot) != moment(chosen)

    targets = tuple(source for source in ordered if stale(source))
    return FieldResolution(winner=winner, winner_source=winner_source, targets=targets)


def _normalize(
    field: CanonicalField,
    source: str,
    snapshot: FieldSnapshot | None,
) -> FieldSnapshot | None:
    if snapshot is None:
        return None
    try:
        observed_at = normalize_timestamp(snapshot.observed_at)
    except TimestampFormatError as exc:
        raise TimestampFormatError(str(exc), source=source, field=field.name) from exc
    try:
        value = field.coerce(snapshot.value)
    except FieldValueError as exc:
        raise FieldValueError(str(exc), source=source, field=field.name) from exc
    return FieldSnapshot(value=value, observed_at=observed_at)
