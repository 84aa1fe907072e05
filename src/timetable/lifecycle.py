"""Occurrence lifecycle state machine.

    scheduled -> ongoing -> completed
    scheduled | ongoing -> cancelled
    scheduled -> postponed -> scheduled (only with a new, re-validated window)
    scheduled | postponed -> cancelled (only when superseded by a template update)

completed and cancelled are terminal. Time-driven moves are computed by
sweep_status() for a clock the caller supplies; nothing here runs on a timer.
"""

from datetime import datetime

from src.timetable.errors import InvalidTransition
from src.timetable.models import Occurrence, OccurrenceStatus, TimeWindow

S = OccurrenceStatus

TERMINAL_STATUSES: frozenset[OccurrenceStatus] = frozenset({S.COMPLETED, S.CANCELLED})

RESCHEDULABLE_STATUSES: frozenset[OccurrenceStatus] = frozenset(
    {S.SCHEDULED, S.POSTPONED}
)

ATTENDANCE_STATUSES: frozenset[OccurrenceStatus] = frozenset({S.ONGOING, S.COMPLETED})

TRANSITIONS: dict[OccurrenceStatus, frozenset[OccurrenceStatus]] = {
    S.SCHEDULED: frozenset({S.ONGOING, S.CANCELLED, S.POSTPONED}),
    S.ONGOING: frozenset({S.COMPLETED, S.CANCELLED}),
    S.POSTPONED: frozenset({S.SCHEDULED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Re-entering scheduled from postponed needs a new window; see reschedule()
_WINDOW_REQUIRED = {(S.POSTPONED, S.SCHEDULED)}


def ensure_mutable(occurrence: Occurrence) -> None:
    """Raise InvalidTransition if the occurrence is in a terminal state."""
    if occurrence.status in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Occurrence {occurrence.id} is {occurrence.status.value}; "
            "no further changes are allowed"
        )


def can_transition(current: OccurrenceStatus, target: OccurrenceStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: OccurrenceStatus, target: OccurrenceStatus) -> None:
    """Validate a bare status change (no window change).

    Raises:
        InvalidTransition: If the move is not in the transition table or
            needs a new window.
    """
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Cannot leave terminal status {current.value!r}")
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move from {current.value!r} to {target.value!r}"
        )
    if (current, target) in _WINDOW_REQUIRED:
        raise InvalidTransition(
            f"Moving from {current.value!r} to {target.value!r} requires a new "
            "time window; reschedule the occurrence instead"
        )


def transition(occurrence: Occurrence, target: OccurrenceStatus) -> Occurrence:
    """Return a copy of `occurrence` moved to `target`."""
    check_transition(occurrence.status, target)
    return occurrence.model_copy(update={"status": target}, deep=True)


def check_reschedule(occurrence: Occurrence) -> None:
    ensure_mutable(occurrence)
    if occurrence.status not in RESCHEDULABLE_STATUSES:
        raise InvalidTransition(
            f"Only scheduled or postponed occurrences can be rescheduled, "
            f"occurrence {occurrence.id} is {occurrence.status.value}"
        )


def reschedule(occurrence: Occurrence, window: TimeWindow) -> Occurrence:
    """Return a copy with the new window and status scheduled.

    Conflict detection for the new window is the caller's job (and the
    store's, atomically, at commit).
    """
    check_reschedule(occurrence)
    return occurrence.model_copy(
        update={"window": window, "status": S.SCHEDULED}, deep=True
    )


def sweep_status(occurrence: Occurrence, now: datetime) -> OccurrenceStatus:
    """Status the clock implies for `occurrence` at `now`.

    A scheduled occurrence whose end already passed goes through ongoing
    straight to completed. Postponed and terminal occurrences are untouched.
    """
    status = occurrence.status
    if status == S.SCHEDULED and now >= occurrence.start:
        status = S.ONGOING
    if status == S.ONGOING and now >= occurrence.end:
        status = S.COMPLETED
    return status


def supersede(occurrence: Occurrence) -> Occurrence:
    """Return a cancelled copy of a pending occurrence replaced by a template update.

    This is the only path from postponed to cancelled; update_status() still
    refuses that move. Ongoing and terminal occurrences stay as history.
    """
    if occurrence.status not in RESCHEDULABLE_STATUSES:
        raise InvalidTransition(
            f"Only scheduled or postponed occurrences can be superseded, "
            f"occurrence {occurrence.id} is {occurrence.status.value}"
        )
    return occurrence.model_copy(update={"status": S.CANCELLED}, deep=True)
