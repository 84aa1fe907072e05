"""Error hierarchy for the timetable engine.

Scheduling errors are raised to the caller and never swallowed or retried by
the core. Directory errors follow a transient/permanent split so that
tenacity retry decorators can classify failures of the course and enrollment
services automatically.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def fetch_roster(course_id: str):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.timetable.models import Conflict


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    pass


class InvalidWindow(SchedulingError):
    """Time window end is not strictly after its start."""

    pass


class InvalidTimezone(SchedulingError):
    """Timezone name is not a known IANA zone."""

    pass


class InvalidRecurrence(SchedulingError):
    """Recurrence rule is structurally invalid.

    Examples: days of week given for a non-weekly pattern, end date before
    the base start.
    """

    pass


class RecurrenceLimitExceeded(SchedulingError):
    """Expanding the recurrence would produce more occurrences than allowed."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Recurrence expansion exceeds {limit} occurrences")
        self.limit = limit


class ConflictDetected(SchedulingError):
    """One or more room or participant conflicts were found.

    Carries the full conflict list so the caller can decide to override,
    reschedule, or cancel.
    """

    def __init__(self, conflicts: list[Conflict], message: str | None = None) -> None:
        self.conflicts = list(conflicts)
        if message is None:
            kinds = sorted({c.kind.value for c in self.conflicts})
            message = (
                f"{len(self.conflicts)} schedule conflict(s) detected "
                f"({', '.join(kinds)})"
            )
        super().__init__(message)

    @property
    def kind(self):
        """Kind of the first reported conflict, or None if empty."""
        return self.conflicts[0].kind if self.conflicts else None


class InvalidTransition(SchedulingError):
    """Status change or mutation not allowed from the current status."""

    pass


class InvalidOccurrenceState(SchedulingError):
    """Operation requires a different occurrence status.

    Raised when attendance is taken on an occurrence that is not ongoing or
    completed.
    """

    pass


class UnknownParticipant(SchedulingError):
    """Participant id is not on the occurrence's participant list."""

    pass


class OccurrenceNotFound(SchedulingError):
    """No stored occurrence has the requested id."""

    pass


class DirectoryError(Exception):
    """Base exception for course/enrollment directory lookups."""

    pass


class TransientError(DirectoryError):
    """Temporary failure that may succeed on retry.

    Examples: connection errors, timeouts, 5xx responses.
    """

    pass


class PermanentError(DirectoryError):
    """Failure that won't succeed on retry.

    Examples: malformed response payload, 4xx responses.
    """

    pass


class CourseNotFound(PermanentError):
    """Course id is unknown to the course service."""

    pass
