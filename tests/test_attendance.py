"""Tests for attendance recording and rates."""

import pytest

from src.timetable.attendance import attendance_rate, attendance_stats, record_attendance
from src.timetable.errors import InvalidOccurrenceState, UnknownParticipant
from src.timetable.models import AttendanceRecord, AttendanceStatus as A
from src.timetable.models import OccurrenceStatus as S
from tests.conftest import make_occurrence, utc


def occ(status: S = S.ONGOING):
    return make_occurrence(
        "o-1",
        utc(2024, 3, 4, 9),
        utc(2024, 3, 4, 10),
        students=("s-1", "s-2", "s-3"),
        status=status,
    )


def records(*statuses: A) -> list[AttendanceRecord]:
    return [AttendanceRecord(participant_id=f"s-{i}", status=s) for i, s in enumerate(statuses)]


@pytest.mark.parametrize("status", [S.ONGOING, S.COMPLETED])
def test_records_on_eligible_occurrences(status):
    updated = record_attendance(occ(status), "s-1", A.PRESENT, check_in=utc(2024, 3, 4, 9, 2))

    assert len(updated.attendance) == 1
    assert updated.attendance[0].participant_id == "s-1"
    assert updated.attendance[0].check_in == utc(2024, 3, 4, 9, 2)


@pytest.mark.parametrize("status", [S.SCHEDULED, S.POSTPONED, S.CANCELLED])
def test_rejects_ineligible_occurrences(status):
    with pytest.raises(InvalidOccurrenceState):
        record_attendance(occ(status), "s-1", A.PRESENT)


def test_rejects_unknown_participant():
    with pytest.raises(UnknownParticipant):
        record_attendance(occ(), "stranger", A.PRESENT)


def test_instructor_is_not_an_attendance_participant():
    with pytest.raises(UnknownParticipant):
        record_attendance(occ(), "teacher-1", A.PRESENT)


def test_resubmission_overwrites():
    first = record_attendance(occ(), "s-1", A.ABSENT)
    second = record_attendance(first, "s-1", A.LATE, note="bus delay")

    assert len(second.attendance) == 1
    assert second.attendance[0].status == A.LATE
    assert second.attendance[0].note == "bus delay"


class TestRate:
    def test_zero_without_records(self):
        assert attendance_rate([]) == 0

    def test_present_and_late_count_as_attended(self):
        assert attendance_rate(records(A.PRESENT, A.LATE, A.ABSENT, A.EXCUSED)) == 50

    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ((A.PRESENT, A.PRESENT, A.ABSENT), 67),
            ((A.PRESENT, A.ABSENT, A.ABSENT), 33),
            ((A.PRESENT,) + (A.ABSENT,) * 7, 13),
            ((A.LATE,) * 4, 100),
            ((A.ABSENT,) * 4, 0),
        ],
    )
    def test_rounds_to_nearest_percent(self, statuses, expected):
        rate = attendance_rate(records(*statuses))
        assert rate == expected
        assert 0 <= rate <= 100

    def test_stats_break_down_by_status(self):
        stats = attendance_stats(records(A.PRESENT, A.LATE, A.LATE, A.ABSENT, A.EXCUSED))

        assert (stats.total, stats.present, stats.late, stats.absent, stats.excused) == (
            5,
            1,
            2,
            1,
            1,
        )
        assert stats.attendance_rate == 60
