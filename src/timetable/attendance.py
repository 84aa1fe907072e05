"""Per-participant attendance for a single occurrence."""

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from src.timetable.errors import InvalidOccurrenceState, UnknownParticipant
from src.timetable.lifecycle import ATTENDANCE_STATUSES
from src.timetable.models import (
    AttendanceRecord,
    AttendanceStats,
    AttendanceStatus,
    Occurrence,
)

COUNTED_PRESENT: frozenset[AttendanceStatus] = frozenset(
    {AttendanceStatus.PRESENT, AttendanceStatus.LATE}
)


def record_attendance(
    occurrence: Occurrence,
    participant_id: str,
    status: AttendanceStatus,
    check_in: datetime | None = None,
    check_out: datetime | None = None,
    note: str | None = None,
) -> Occurrence:
    """Upsert one participant's attendance record.

    Re-submitting for the same participant replaces the previous record.

    Returns:
        Copy of the occurrence with the updated attendance list.

    Raises:
        InvalidOccurrenceState: If the occurrence is not ongoing or completed.
        UnknownParticipant: If the participant is not on the occurrence.
    """
    if occurrence.status not in ATTENDANCE_STATUSES:
        raise InvalidOccurrenceState(
            f"Attendance needs an ongoing or completed occurrence, "
            f"occurrence {occurrence.id} is {occurrence.status.value}"
        )
    if participant_id not in occurrence.student_ids:
        raise UnknownParticipant(
            f"Participant {participant_id!r} is not on occurrence {occurrence.id}"
        )

    record = AttendanceRecord(
        participant_id=participant_id,
        status=AttendanceStatus(status),
        check_in=check_in,
        check_out=check_out,
        note=note,
    )
    records = [r for r in occurrence.attendance if r.participant_id != participant_id]
    records.append(record)
    return occurrence.model_copy(update={"attendance": records}, deep=True)


def attendance_rate(records: Sequence[AttendanceRecord]) -> int:
    """Percent of records that are present or late, rounded; 0 when empty."""
    if not records:
        return 0
    attended = sum(1 for r in records if r.status in COUNTED_PRESENT)
    # Integer round-half-up of attended / total * 100
    total = len(records)
    return (attended * 200 + total) // (2 * total)


def attendance_stats(records: Sequence[AttendanceRecord]) -> AttendanceStats:
    counts = Counter(r.status for r in records)
    return AttendanceStats(
        total=len(records),
        present=counts[AttendanceStatus.PRESENT],
        absent=counts[AttendanceStatus.ABSENT],
        late=counts[AttendanceStatus.LATE],
        excused=counts[AttendanceStatus.EXCUSED],
        attendance_rate=attendance_rate(records),
    )
