"""Timetable scheduling and conflict-detection engine.

Turns session templates into validated, non-conflicting occurrences,
expands recurrences, tracks occurrence lifecycle and attendance.
"""

from src.timetable.models import (
    Conflict,
    Occurrence,
    OccurrenceStatus,
    RecurrenceRule,
    SessionTemplate,
    TimeWindow,
)
from src.timetable.scheduler import TimetableScheduler
from src.timetable.store import InMemoryScheduleStore, ScheduleStore

__all__ = [
    "TimetableScheduler",
    "ScheduleStore",
    "InMemoryScheduleStore",
    "SessionTemplate",
    "Occurrence",
    "OccurrenceStatus",
    "RecurrenceRule",
    "TimeWindow",
    "Conflict",
]
