"""Shared fixtures for the timetable test suite."""

from datetime import datetime, timezone

import pytest

from src.timetable.config import TimetableConfig
from src.timetable.models import (
    Occurrence,
    OccurrenceStatus,
    Participant,
    RecurrenceRule,
    SessionTemplate,
    TimeWindow,
)
from src.timetable.scheduler import TimetableScheduler
from src.timetable.store import InMemoryScheduleStore

HCM = "Asia/Ho_Chi_Minh"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_occurrence(
    occurrence_id: str | None,
    start: datetime,
    end: datetime,
    *,
    room: str = "A101",
    instructor_id: str = "teacher-1",
    students: tuple[str, ...] = (),
    status: OccurrenceStatus = OccurrenceStatus.SCHEDULED,
) -> Occurrence:
    return Occurrence(
        id=occurrence_id,
        title="Session",
        window=TimeWindow(start=start, end=end, timezone="UTC"),
        room=room,
        instructor_id=instructor_id,
        participants=[Participant(participant_id=s) for s in students],
        status=status,
    )


def make_template(**overrides) -> SessionTemplate:
    fields = {
        "title": "Algorithms",
        "instructor_id": "teacher-1",
        "room": "B201",
        "start": datetime(2024, 3, 4, 9, 0),
        "end": datetime(2024, 3, 4, 10, 30),
        "timezone": HCM,
        "participants": [
            Participant(participant_id="student-1"),
            Participant(participant_id="student-2"),
        ],
    }
    fields.update(overrides)
    return SessionTemplate(**fields)


def weekly_template(**overrides) -> SessionTemplate:
    """Mondays 09:00-10:30 from 2024-03-04 to 2024-03-25, skipping 2024-03-18."""
    fields = {
        "recurrence": RecurrenceRule(
            pattern="weekly",
            days_of_week=["monday"],
            end_date="2024-03-25",
            exceptions=["2024-03-18"],
        )
    }
    fields.update(overrides)
    return make_template(**fields)


@pytest.fixture
def config() -> TimetableConfig:
    return TimetableConfig(default_timezone=HCM, max_occurrences=366)


@pytest.fixture
def store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def scheduler(store, config) -> TimetableScheduler:
    return TimetableScheduler(store, config=config)
