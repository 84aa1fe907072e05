"""TimetableScheduler - turns session templates into committed occurrences.

Flow for a new template:
  normalize base window -> expand recurrence (ascending start order)
  -> advisory conflict pass against the store, batch included
  -> store.commit_many(), which re-checks atomically before inserting.

The scheduler keeps no mutable state of its own; everything lives in the
injected ScheduleStore, so one instance can serve concurrent requests.
"""

import uuid
from collections import Counter
from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta

from src.timetable import lifecycle
from src.timetable.attendance import attendance_rate, attendance_stats
from src.timetable.config import TimetableConfig, get_config
from src.timetable.conflicts import detect_batch_conflicts, detect_conflicts, overlaps
from src.timetable.directory import CourseDirectory
from src.timetable.errors import ConflictDetected, InvalidTransition, OccurrenceNotFound
from src.timetable.logging import get_logger
from src.timetable.models import (
    AttendanceStats,
    AttendanceStatus,
    Conflict,
    Occurrence,
    OccurrenceStatus,
    ReminderChannel,
    ReminderFact,
    ReminderSettings,
    SchedulePlan,
    ScheduleStats,
    SessionTemplate,
    TimeWindow,
)
from src.timetable.recurrence import expand
from src.timetable.store import ScheduleStore
from src.timetable.timeutils import (
    day_bounds,
    get_zone,
    local_date,
    normalize_window,
    to_utc,
)

logger = get_logger(__name__)


class TimetableScheduler:
    """Scheduling operations over an injected ScheduleStore.

    Args:
        store: Schedule store; its commit path performs the atomic re-check.
        directory: Optional course directory used to seed participant lists.
        config: Settings; defaults to the environment-loaded singleton.
    """

    def __init__(
        self,
        store: ScheduleStore,
        directory: CourseDirectory | None = None,
        config: TimetableConfig | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.config = config or get_config()

    # ---- template -> occurrences ----
    def populate_participants(self, template: SessionTemplate) -> SessionTemplate:
        """Fill an empty participant list from the course roster."""
        if template.participants or not template.course_id or self.directory is None:
            return template
        roster = self.directory.roster(template.course_id)
        return template.model_copy(update={"participants": roster}, deep=True)

    def base_window(self, template: SessionTemplate) -> TimeWindow:
        timezone = template.timezone or self.config.default_timezone
        return normalize_window(template.start, template.end, timezone)

    def reminders_for(self, template: SessionTemplate) -> ReminderSettings:
        """Template reminders, or the configured lead times when none were given."""
        if "reminders" in template.model_fields_set:
            return template.reminders
        return ReminderSettings(
            email_minutes_before=self.config.email_reminder_minutes,
            sms_minutes_before=self.config.sms_reminder_minutes,
        )

    def iter_occurrences(self, template: SessionTemplate) -> Iterator[Occurrence]:
        """Lazily expand a template into uncommitted occurrences."""
        expansion = expand(
            self.base_window(template),
            template.recurrence,
            max_occurrences=self.config.max_occurrences,
        )
        reminders = self.reminders_for(template)
        for window in expansion:
            yield Occurrence(
                template_id=template.id,
                title=template.title,
                session_type=template.session_type,
                course_id=template.course_id,
                window=window,
                room=template.room,
                instructor_id=template.instructor_id,
                participants=[p.model_copy() for p in template.participants],
                reminders=reminders.model_copy(),
            )

    def _existing_for(
        self, candidates: Iterable[Occurrence], exclude: Iterable[str] = ()
    ) -> list[Occurrence]:
        """Active stored occurrences sharing a room or participant with any candidate."""
        excluded = set(exclude)
        found: dict[str, Occurrence] = {}
        for candidate in candidates:
            related = self.store.find_active_by_room(candidate.room, candidate.window)
            for pid in candidate.participant_ids:
                related.extend(
                    self.store.find_active_by_participant(pid, candidate.window)
                )
            for occurrence in related:
                if occurrence.id not in excluded:
                    found.setdefault(occurrence.id, occurrence)
        return sorted(found.values(), key=lambda o: o.start)

    def check_conflicts(
        self, candidates: list[Occurrence], exclude: Iterable[str] = ()
    ) -> list[Conflict]:
        """Advisory conflict pass for a batch against the current store state."""
        return detect_batch_conflicts(candidates, self._existing_for(candidates, exclude))

    def plan(
        self, template: SessionTemplate, exclude: Iterable[str] = ()
    ) -> SchedulePlan:
        """Expand a template and collect every conflict without committing.

        Raises:
            InvalidWindow, InvalidTimezone, InvalidRecurrence,
            RecurrenceLimitExceeded: On structural errors (whole batch aborted).
        """
        template = self.populate_participants(template)
        occurrences = list(self.iter_occurrences(template))
        conflicts = self.check_conflicts(occurrences, exclude)
        logger.info(
            "plan_built",
            template_id=template.id,
            title=template.title,
            occurrences=len(occurrences),
            conflicts=len(conflicts),
        )
        return SchedulePlan(occurrences=occurrences, conflicts=conflicts)

    def schedule(self, template: SessionTemplate, *, force: bool = False) -> list[Occurrence]:
        """Plan and commit a template's occurrences.

        Args:
            template: Template to schedule; an id is assigned if missing.
            force: Skip the advisory conflict pass. The store's atomic
                re-check still runs and can still reject the batch.

        Returns:
            The committed occurrences in ascending start order.

        Raises:
            ConflictDetected: With the full conflict list of the batch.
        """
        if template.id is None:
            template = template.model_copy(update={"id": uuid.uuid4().hex})
        plan = self.plan(template)
        if plan.conflicts and not force:
            logger.warning(
                "schedule_conflicts",
                template_id=template.id,
                conflicts=len(plan.conflicts),
            )
            raise ConflictDetected(plan.conflicts)
        ids = self.store.commit_many(plan.occurrences)
        logger.info("template_scheduled", template_id=template.id, occurrences=len(ids))
        return [self.store.get(oid) for oid in ids]

    def update_template(
        self, template_id: str, template: SessionTemplate, *, force: bool = False
    ) -> list[Occurrence]:
        """Replace a template's pending occurrences with a re-expanded series.

        Scheduled and postponed occurrences of the template are cancelled and
        the new series committed in one atomic store write. Ongoing and
        completed occurrences are kept as history.
        """
        existing = self.store.find_by_template(template_id)
        if not existing:
            raise OccurrenceNotFound(f"No occurrences for template {template_id}")
        superseded = [
            o.id for o in existing if o.status in lifecycle.RESCHEDULABLE_STATUSES
        ]
        template = template.model_copy(update={"id": template_id})
        plan = self.plan(template, exclude=superseded)
        if plan.conflicts and not force:
            raise ConflictDetected(plan.conflicts)
        ids = self.store.commit_many(plan.occurrences, supersede=superseded)
        logger.info(
            "template_updated",
            template_id=template_id,
            superseded=len(superseded),
            occurrences=len(ids),
        )
        return [self.store.get(oid) for oid in ids]

    # ---- lifecycle ----
    def reschedule(
        self,
        occurrence_id: str,
        start: datetime,
        end: datetime,
        timezone: str | None = None,
        *,
        force: bool = False,
    ) -> Occurrence:
        """Move a scheduled or postponed occurrence to a new window."""
        current = self.store.get(occurrence_id)
        lifecycle.check_reschedule(current)
        window = normalize_window(start, end, timezone or current.window.timezone)
        if not force:
            candidate = lifecycle.reschedule(current, window)
            conflicts = detect_conflicts(
                candidate, self._existing_for([candidate], exclude=[occurrence_id])
            )
            if conflicts:
                raise ConflictDetected(conflicts)
        return self.store.update_window(occurrence_id, window)

    def postpone(self, occurrence_id: str) -> Occurrence:
        return self.store.update_status(occurrence_id, OccurrenceStatus.POSTPONED)

    def cancel(self, occurrence_id: str) -> Occurrence:
        return self.store.update_status(occurrence_id, OccurrenceStatus.CANCELLED)

    def start(self, occurrence_id: str) -> Occurrence:
        return self.store.update_status(occurrence_id, OccurrenceStatus.ONGOING)

    def complete(self, occurrence_id: str) -> Occurrence:
        return self.store.update_status(occurrence_id, OccurrenceStatus.COMPLETED)

    def sweep(self, now: datetime) -> list[Occurrence]:
        """Apply clock-driven transitions as of `now`.

        Returns:
            Occurrences whose status changed.
        """
        now = self._instant(now)
        changed: list[Occurrence] = []
        for occurrence in self.store.all():
            target = lifecycle.sweep_status(occurrence, now)
            if target == occurrence.status:
                continue
            try:
                updated = occurrence
                while updated.status != target:
                    step = (
                        OccurrenceStatus.ONGOING
                        if updated.status == OccurrenceStatus.SCHEDULED
                        else OccurrenceStatus.COMPLETED
                    )
                    updated = self.store.update_status(occurrence.id, step)
            except InvalidTransition as e:
                # Status changed concurrently (e.g. cancelled); leave it alone
                logger.info("sweep_skipped", occurrence_id=occurrence.id, reason=str(e))
                continue
            changed.append(updated)
        if changed:
            logger.info("sweep_applied", now=now.isoformat(), changed=len(changed))
        return changed

    # ---- attendance ----
    def record_attendance(
        self,
        occurrence_id: str,
        participant_id: str,
        status: AttendanceStatus,
        check_in: datetime | None = None,
        check_out: datetime | None = None,
        note: str | None = None,
    ) -> Occurrence:
        return self.store.record_attendance(
            occurrence_id,
            participant_id,
            status,
            check_in=check_in,
            check_out=check_out,
            note=note,
        )

    def attendance_stats(self, occurrence_id: str) -> AttendanceStats:
        return attendance_stats(self.store.get(occurrence_id).attendance)

    # ---- notifications ----
    def reminders_due(self, now: datetime) -> list[ReminderFact]:
        """Reminder-eligible facts at `now`, one per enabled channel.

        A fact is due once start - lead has passed and until the occurrence
        starts. Only scheduled occurrences are considered.
        """
        now = self._instant(now)
        facts: list[ReminderFact] = []
        for occurrence in self.store.all():
            if occurrence.status != OccurrenceStatus.SCHEDULED:
                continue
            settings = occurrence.reminders
            channels = []
            if settings.email_enabled:
                channels.append((ReminderChannel.EMAIL, settings.email_minutes_before))
            if settings.sms_enabled:
                channels.append((ReminderChannel.SMS, settings.sms_minutes_before))
            for channel, lead in channels:
                remind_at = occurrence.start - timedelta(minutes=lead)
                if remind_at <= now < occurrence.start:
                    facts.append(
                        ReminderFact(
                            occurrence_id=occurrence.id,
                            channel=channel,
                            lead_minutes=lead,
                            remind_at=remind_at,
                            starts_at=occurrence.start,
                        )
                    )
        return sorted(facts, key=lambda f: (f.remind_at, f.occurrence_id, f.channel.value))

    # ---- query surface ----
    def find_by_time_range(self, start: datetime, end: datetime) -> list[Occurrence]:
        """Occurrences lying entirely within [start, end]."""
        window = normalize_window(start, end, self.config.default_timezone)
        return [
            o for o in self.store.all() if o.start >= window.start and o.end <= window.end
        ]

    def find_by_room(
        self, room: str, day: date, timezone: str | None = None
    ) -> list[Occurrence]:
        """Occurrences in `room` starting on local calendar day `day`."""
        bounds = day_bounds(day, timezone or self.config.default_timezone)
        return [
            o
            for o in self.store.all()
            if o.room == room and bounds.start <= o.start < bounds.end
        ]

    def find_conflicts(
        self, window: TimeWindow, room: str, participant_ids: Iterable[str] = ()
    ) -> list[Occurrence]:
        """Active occurrences that would collide with a booking of `window`."""
        related = self.store.find_active_by_room(room, window)
        for pid in participant_ids:
            related.extend(self.store.find_active_by_participant(pid, window))
        unique = {o.id: o for o in related if overlaps(o.window, window)}
        return sorted(unique.values(), key=lambda o: o.start)

    def find_by_instructor(
        self, instructor_id: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[Occurrence]:
        return self._filter_range(
            (o for o in self.store.all() if o.instructor_id == instructor_id), start, end
        )

    def find_by_participant(
        self, participant_id: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[Occurrence]:
        return self._filter_range(
            (o for o in self.store.all() if participant_id in o.student_ids), start, end
        )

    def _instant(self, value: datetime) -> datetime:
        """UTC instant for a caller-supplied time; naive means the default zone."""
        return to_utc(value, get_zone(self.config.default_timezone))

    def _filter_range(
        self,
        occurrences: Iterable[Occurrence],
        start: datetime | None,
        end: datetime | None,
    ) -> list[Occurrence]:
        start = None if start is None else self._instant(start)
        end = None if end is None else self._instant(end)
        found = [
            o
            for o in occurrences
            if (start is None or o.start >= start) and (end is None or o.start <= end)
        ]
        return sorted(found, key=lambda o: o.start)

    # ---- reporting ----
    def stats(
        self,
        instructor_id: str | None = None,
        course_id: str | None = None,
        year: int | None = None,
    ) -> ScheduleStats:
        """Totals over stored occurrences, optionally narrowed.

        Args:
            instructor_id: Only occurrences taught by this instructor.
            course_id: Only occurrences of this course.
            year: Only occurrences starting in this calendar year, local to
                each occurrence's own timezone.
        """
        occurrences = [
            o
            for o in self.store.all()
            if (instructor_id is None or o.instructor_id == instructor_id)
            and (course_id is None or o.course_id == course_id)
            and (year is None or local_date(o.start, o.window.timezone).year == year)
        ]
        rates = [attendance_rate(o.attendance) for o in occurrences if o.attendance]
        return ScheduleStats(
            total=len(occurrences),
            by_type=dict(Counter(o.session_type.value for o in occurrences)),
            by_status=dict(Counter(o.status.value for o in occurrences)),
            total_participants=sum(len(o.participants) for o in occurrences),
            average_attendance=sum(rates) / len(rates) if rates else None,
        )
