"""Room and participant conflict detection on half-open intervals.

Two windows [s1, e1) and [s2, e2) intersect iff s1 < e2 and s2 < e1, so
back-to-back bookings (e1 == s2) never conflict. Cancelled occurrences are
inactive and never conflict with anything.
"""

from collections.abc import Iterable, Sequence

from src.timetable.models import (
    Conflict,
    ConflictKind,
    Occurrence,
    OccurrenceStatus,
    TimeWindow,
)

INACTIVE_STATUSES: frozenset[OccurrenceStatus] = frozenset(
    {OccurrenceStatus.CANCELLED}
)

_KIND_ORDER = {ConflictKind.ROOM: 0, ConflictKind.PARTICIPANT: 1}


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.start < b.end and b.start < a.end


def overlap_window(a: TimeWindow, b: TimeWindow) -> TimeWindow | None:
    """Intersection of two windows in a's timezone, or None if disjoint."""
    if not overlaps(a, b):
        return None
    return TimeWindow(
        start=max(a.start, b.start), end=min(a.end, b.end), timezone=a.timezone
    )


def is_active(occurrence: Occurrence) -> bool:
    return occurrence.status not in INACTIVE_STATUSES


def _same_occurrence(a: Occurrence, b: Occurrence) -> bool:
    if a is b:
        return True
    return a.id is not None and a.id == b.id


def sort_conflicts(conflicts: Iterable[Conflict]) -> list[Conflict]:
    """Order by candidate, then conflicting start, room before participant."""
    return sorted(
        conflicts,
        key=lambda c: (
            c.candidate_start or c.with_start,
            c.with_start,
            _KIND_ORDER[c.kind],
            c.participant_id or "",
        ),
    )


def detect_conflicts(
    candidate: Occurrence, existing: Iterable[Occurrence]
) -> list[Conflict]:
    """Find every room and participant conflict of `candidate`.

    Args:
        candidate: Occurrence about to be committed.
        existing: Occurrences to check against; inactive ones and the
            candidate itself (same id) are ignored.

    Returns:
        All conflicts, ordered by the conflicting occurrence's start time with
        room conflicts before participant conflicts for the same pair.
    """
    candidate_ids = set(candidate.participant_ids)
    found: list[Conflict] = []

    for other in existing:
        if _same_occurrence(candidate, other) or not is_active(other):
            continue
        shared = overlap_window(candidate.window, other.window)
        if shared is None:
            continue

        if other.room == candidate.room:
            found.append(
                Conflict(
                    kind=ConflictKind.ROOM,
                    with_occurrence_id=other.id,
                    with_start=other.start,
                    overlap_window=shared,
                    candidate_start=candidate.start,
                )
            )
        for pid in other.participant_ids:
            if pid in candidate_ids:
                found.append(
                    Conflict(
                        kind=ConflictKind.PARTICIPANT,
                        with_occurrence_id=other.id,
                        with_start=other.start,
                        overlap_window=shared,
                        participant_id=pid,
                        candidate_start=candidate.start,
                    )
                )

    return sort_conflicts(found)


def detect_batch_conflicts(
    candidates: Sequence[Occurrence], existing: Iterable[Occurrence]
) -> list[Conflict]:
    """Check a batch in ascending start order, including self-conflicts.

    Each candidate is checked against `existing` plus every earlier
    candidate of the same batch, so two occurrences of one series that
    collide with each other are reported too.
    """
    existing = list(existing)
    accepted: list[Occurrence] = []
    found: list[Conflict] = []
    for candidate in sorted(candidates, key=lambda o: o.start):
        found.extend(detect_conflicts(candidate, [*existing, *accepted]))
        accepted.append(candidate)
    return sort_conflicts(found)
