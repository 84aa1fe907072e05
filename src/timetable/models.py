"""Pydantic models for timetable data.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Derived values (duration, participant ids) are plain properties computed from
the stored fields; nothing is recomputed behind the caller's back.
"""

from datetime import date, datetime, timezone as dt_timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, model_validator


class SessionType(str, Enum):
    CLASS = "class"
    EXAM = "exam"
    EVENT = "event"
    MEETING = "meeting"
    HOLIDAY = "holiday"


class RecurrencePattern(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def weekday(self) -> int:
        """Index matching date.weekday() (Monday == 0)."""
        return list(DayOfWeek).index(self)


class OccurrenceStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class ParticipantStatus(str, Enum):
    ENROLLED = "enrolled"
    ATTENDING = "attending"
    ABSENT = "absent"
    EXCUSED = "excused"


class ConflictKind(str, Enum):
    ROOM = "room"
    PARTICIPANT = "participant"


class ReminderChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class TimeWindow(BaseModel):
    """Absolute, zone-independent time window.

    start/end are UTC-aware instants; timezone records the zone the window
    was authored in so local projections (dates, weekdays) stay possible.
    Build these through timeutils.normalize_window, which enforces end > start.
    Naive values given directly are read as wall-clock time in `timezone`.
    """

    start: datetime
    end: datetime
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _localize_naive(self) -> "TimeWindow":
        """Read naive start/end as wall-clock time in `timezone`, stored as UTC."""
        if self.start.tzinfo is not None and self.end.tzinfo is not None:
            return self
        try:
            zone = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"Unknown timezone {self.timezone!r}") from e
        if self.start.tzinfo is None:
            self.start = self.start.replace(tzinfo=zone).astimezone(dt_timezone.utc)
        if self.end.tzinfo is None:
            self.end = self.end.replace(tzinfo=zone).astimezone(dt_timezone.utc)
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class RecurrenceRule(BaseModel):
    """How a base window repeats.

    end_date and exceptions are local calendar dates in the template timezone.
    """

    pattern: RecurrencePattern = RecurrencePattern.NONE
    days_of_week: list[DayOfWeek] = Field(default_factory=list)
    end_date: date | None = None
    exceptions: list[date] = Field(default_factory=list)


class Participant(BaseModel):
    participant_id: str
    name: str | None = None
    email: str | None = None
    status: ParticipantStatus = ParticipantStatus.ENROLLED


class ReminderSettings(BaseModel):
    """Per-session reminder preferences (email on by default, SMS off)."""

    email_enabled: bool = True
    email_minutes_before: int = Field(default=30, ge=0)
    sms_enabled: bool = False
    sms_minutes_before: int = Field(default=15, ge=0)


class AttendanceRecord(BaseModel):
    participant_id: str
    status: AttendanceStatus = AttendanceStatus.ABSENT
    check_in: datetime | None = None
    check_out: datetime | None = None
    note: str | None = None


class SessionTemplate(BaseModel):
    """User-authored definition of a one-off or recurring booking.

    start/end form the base window; naive values are wall-clock time in
    `timezone`. Leaving timezone unset uses the configured default zone.
    """

    id: str | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    session_type: SessionType = SessionType.CLASS
    course_id: str | None = None
    instructor_id: str
    room: str = Field(min_length=1)
    capacity: int | None = Field(default=None, ge=0)
    participants: list[Participant] = Field(default_factory=list)
    recurrence: RecurrenceRule = Field(default_factory=RecurrenceRule)
    start: datetime
    end: datetime
    timezone: str | None = None
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)


class Occurrence(BaseModel):
    """One concrete, dated instance of a session template."""

    id: str | None = None
    template_id: str | None = None
    title: str = ""
    session_type: SessionType = SessionType.CLASS
    course_id: str | None = None
    window: TimeWindow
    room: str
    instructor_id: str
    participants: list[Participant] = Field(default_factory=list)
    status: OccurrenceStatus = OccurrenceStatus.SCHEDULED
    attendance: list[AttendanceRecord] = Field(default_factory=list)
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)

    @property
    def start(self) -> datetime:
        return self.window.start

    @property
    def end(self) -> datetime:
        return self.window.end

    @property
    def duration_minutes(self) -> int:
        return self.window.duration_minutes

    @property
    def student_ids(self) -> list[str]:
        return [p.participant_id for p in self.participants]

    @property
    def participant_ids(self) -> list[str]:
        """Instructor followed by students, without duplicates."""
        seen: dict[str, None] = {self.instructor_id: None}
        for pid in self.student_ids:
            seen.setdefault(pid, None)
        return list(seen)


class Conflict(BaseModel):
    """Computed overlap between a candidate and an active occurrence.

    Never persisted. with_occurrence_id is None when the other side is an
    uncommitted candidate from the same batch.
    """

    kind: ConflictKind
    with_occurrence_id: str | None
    with_start: datetime
    overlap_window: TimeWindow
    participant_id: str | None = None
    candidate_start: datetime | None = None


class AttendanceStats(BaseModel):
    total: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    attendance_rate: int = 0


class ReminderFact(BaseModel):
    """Reminder-eligible fact for an external notifier to act on."""

    occurrence_id: str
    channel: ReminderChannel
    lead_minutes: int
    remind_at: datetime
    starts_at: datetime


class FormattedTime(BaseModel):
    start: str  # "2024-03-04 09:00" local
    end: str
    date: str  # "2024-03-04"
    day: str  # "Monday"
    time_range: str  # "09:00 - 10:30"


class SchedulePlan(BaseModel):
    """Result of the advisory pass: expanded occurrences plus every conflict."""

    occurrences: list[Occurrence] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


class ScheduleStats(BaseModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    total_participants: int = 0
    average_attendance: float | None = None
