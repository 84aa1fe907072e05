"""Tests for half-open overlap and room/participant conflict detection."""

import pytest

from src.timetable.conflicts import (
    detect_batch_conflicts,
    detect_conflicts,
    overlap_window,
    overlaps,
)
from src.timetable.models import ConflictKind, OccurrenceStatus, TimeWindow
from tests.conftest import make_occurrence, utc


def window(start_hour: int, end_hour: int) -> TimeWindow:
    return TimeWindow(start=utc(2024, 3, 4, start_hour), end=utc(2024, 3, 4, end_hour))


def occ(occurrence_id, start_hour, end_hour, **kwargs):
    return make_occurrence(
        occurrence_id, utc(2024, 3, 4, start_hour), utc(2024, 3, 4, end_hour), **kwargs
    )


class TestOverlap:
    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ((9, 11), (10, 12), True),
            ((9, 12), (10, 11), True),
            ((9, 10), (10, 11), False),
            ((9, 10), (11, 12), False),
            ((9, 10), (9, 10), True),
        ],
    )
    def test_overlap_is_symmetric(self, a, b, expected):
        assert overlaps(window(*a), window(*b)) is expected
        assert overlaps(window(*b), window(*a)) is expected

    def test_overlap_window_is_the_intersection(self):
        shared = overlap_window(window(9, 11), window(10, 12))
        assert (shared.start, shared.end) == (utc(2024, 3, 4, 10), utc(2024, 3, 4, 11))

    def test_overlap_window_none_when_back_to_back(self):
        assert overlap_window(window(9, 10), window(10, 11)) is None


class TestDetectConflicts:
    def test_room_conflict(self):
        existing = occ("a", 9, 11, instructor_id="t-a")
        candidate = occ(None, 10, 12, instructor_id="t-b")

        conflicts = detect_conflicts(candidate, [existing])

        assert len(conflicts) == 1
        assert conflicts[0].kind == ConflictKind.ROOM
        assert conflicts[0].with_occurrence_id == "a"
        assert conflicts[0].overlap_window.start == utc(2024, 3, 4, 10)
        assert conflicts[0].overlap_window.end == utc(2024, 3, 4, 11)

    def test_different_room_and_people_is_not_a_conflict(self):
        existing = occ("a", 9, 11, room="A101", instructor_id="t-a")
        candidate = occ(None, 9, 11, room="B202", instructor_id="t-b")
        assert detect_conflicts(candidate, [existing]) == []

    def test_back_to_back_in_same_room_is_allowed(self):
        existing = occ("a", 9, 10, instructor_id="t-a")
        candidate = occ(None, 10, 11, instructor_id="t-a")
        assert detect_conflicts(candidate, [existing]) == []

    def test_instructor_double_booking_in_another_room(self):
        existing = occ("a", 9, 11, room="A101", instructor_id="t-1")
        candidate = occ(None, 10, 12, room="B202", instructor_id="t-1")

        conflicts = detect_conflicts(candidate, [existing])

        assert [(c.kind, c.participant_id) for c in conflicts] == [
            (ConflictKind.PARTICIPANT, "t-1")
        ]

    def test_student_double_booking(self):
        existing = occ("a", 9, 11, room="A101", instructor_id="t-a", students=("s-1", "s-2"))
        candidate = occ(None, 10, 12, room="B202", instructor_id="t-b", students=("s-2",))

        conflicts = detect_conflicts(candidate, [existing])

        assert [(c.kind, c.participant_id) for c in conflicts] == [
            (ConflictKind.PARTICIPANT, "s-2")
        ]

    def test_student_booked_as_instructor_elsewhere(self):
        existing = occ("a", 9, 11, room="A101", instructor_id="p-1")
        candidate = occ(None, 9, 11, room="B202", instructor_id="t-b", students=("p-1",))

        conflicts = detect_conflicts(candidate, [existing])

        assert conflicts[0].participant_id == "p-1"

    def test_cancelled_occurrences_are_ignored(self):
        existing = occ("a", 9, 11, status=OccurrenceStatus.CANCELLED)
        assert detect_conflicts(occ(None, 9, 11), [existing]) == []

    @pytest.mark.parametrize(
        "status",
        [
            OccurrenceStatus.SCHEDULED,
            OccurrenceStatus.ONGOING,
            OccurrenceStatus.POSTPONED,
            OccurrenceStatus.COMPLETED,
        ],
    )
    def test_non_cancelled_occurrences_are_active(self, status):
        existing = occ("a", 9, 11, instructor_id="t-a", status=status)
        candidate = occ(None, 9, 11, instructor_id="t-b")
        assert len(detect_conflicts(candidate, [existing])) == 1

    def test_occurrence_never_conflicts_with_itself(self):
        stored = occ("a", 9, 11)
        assert detect_conflicts(stored, [stored.model_copy()]) == []

    def test_reports_all_conflicts_in_start_order(self):
        later = occ("later", 11, 13, instructor_id="t-x")
        earlier = occ("earlier", 8, 10, instructor_id="t-y")
        candidate = occ(None, 9, 12, instructor_id="t-z")

        conflicts = detect_conflicts(candidate, [later, earlier])

        assert [c.with_occurrence_id for c in conflicts] == ["earlier", "later"]

    def test_room_listed_before_participant_for_same_pair(self):
        existing = occ("a", 9, 11, instructor_id="t-1", students=("s-1",))
        candidate = occ(None, 10, 12, instructor_id="t-1", students=("s-1",))

        conflicts = detect_conflicts(candidate, [existing])

        assert [(c.kind, c.participant_id) for c in conflicts] == [
            (ConflictKind.ROOM, None),
            (ConflictKind.PARTICIPANT, "s-1"),
            (ConflictKind.PARTICIPANT, "t-1"),
        ]
        assert all(c.with_occurrence_id == "a" for c in conflicts)


class TestBatchConflicts:
    def test_detects_conflicts_within_the_batch(self):
        first = occ(None, 9, 11)
        second = occ(None, 10, 12)

        conflicts = detect_batch_conflicts([second, first], [])

        kinds = {c.kind for c in conflicts}
        assert kinds == {ConflictKind.ROOM, ConflictKind.PARTICIPANT}
        assert all(c.with_occurrence_id is None for c in conflicts)
        assert all(c.candidate_start == utc(2024, 3, 4, 10) for c in conflicts)

    def test_collects_conflicts_for_every_candidate(self):
        stored = [occ("a", 9, 10, instructor_id="t-a"), occ("b", 14, 15, instructor_id="t-b")]
        batch = [occ(None, 9, 10, instructor_id="t-c"), occ(None, 14, 15, instructor_id="t-c")]

        conflicts = detect_batch_conflicts(batch, stored)

        assert [c.with_occurrence_id for c in conflicts] == ["a", "b"]

    def test_clean_batch_has_no_conflicts(self):
        batch = [occ(None, 9, 10), occ(None, 10, 11), occ(None, 11, 12)]
        assert detect_batch_conflicts(batch, []) == []
