"""Schedule Store contract and an in-memory implementation.

The write path of every store must re-run the room and participant overlap
checks against the latest stored state inside one critical section, and
reject the write with ConflictDetected if anything collides. Reads done
earlier by the caller are advisory only.

InMemoryScheduleStore serializes writes with one lock per room and one per
participant id. Two writes can only conflict if they share a room or a
participant, so they always contend for at least one common lock; locks are
taken in sorted key order to rule out deadlocks.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime

from src.timetable import attendance, lifecycle
from src.timetable.conflicts import (
    detect_batch_conflicts,
    detect_conflicts,
    is_active,
    overlaps,
)
from src.timetable.errors import ConflictDetected, OccurrenceNotFound, SchedulingError
from src.timetable.logging import get_logger
from src.timetable.models import (
    AttendanceStatus,
    Occurrence,
    OccurrenceStatus,
    TimeWindow,
)

logger = get_logger(__name__)


class ScheduleStore(ABC):
    """Durable storage of occurrences used by the scheduling core."""

    @abstractmethod
    def find_active_by_room(self, room: str, window: TimeWindow) -> list[Occurrence]:
        """Non-cancelled occurrences in `room` overlapping `window`."""
        ...

    @abstractmethod
    def find_active_by_participant(
        self, participant_id: str, window: TimeWindow
    ) -> list[Occurrence]:
        """Non-cancelled occurrences including `participant_id` overlapping `window`."""
        ...

    @abstractmethod
    def commit_many(
        self, occurrences: Sequence[Occurrence], supersede: Iterable[str] = ()
    ) -> list[str]:
        """Atomically re-check and insert a batch, all or nothing.

        Occurrences listed in `supersede` are cancelled in the same critical
        section and ignored by the re-check. They must be scheduled or
        postponed (see lifecycle.supersede).

        Returns:
            Ids of the inserted occurrences, in ascending start order.

        Raises:
            ConflictDetected: If the latest stored state conflicts with the batch.
            InvalidTransition: If a superseded occurrence is ongoing or terminal.
        """
        ...

    def commit(self, occurrence: Occurrence) -> str:
        """Atomically re-check and insert one occurrence."""
        return self.commit_many([occurrence])[0]

    @abstractmethod
    def update_status(self, occurrence_id: str, status: OccurrenceStatus) -> Occurrence:
        """Apply a lifecycle transition.

        Raises:
            InvalidTransition: If the state machine forbids the move.
        """
        ...

    @abstractmethod
    def update_window(self, occurrence_id: str, window: TimeWindow) -> Occurrence:
        """Move an occurrence to a new window, re-checking conflicts atomically.

        The occurrence ends up scheduled.
        """
        ...

    @abstractmethod
    def record_attendance(
        self,
        occurrence_id: str,
        participant_id: str,
        status: AttendanceStatus,
        check_in: datetime | None = None,
        check_out: datetime | None = None,
        note: str | None = None,
    ) -> Occurrence:
        """Upsert one attendance record atomically.

        Raises:
            InvalidOccurrenceState: If the occurrence is not ongoing or completed.
            UnknownParticipant: If the participant is not on the occurrence.
        """
        ...

    @abstractmethod
    def get(self, occurrence_id: str) -> Occurrence:
        """Raises OccurrenceNotFound if the id is unknown."""
        ...

    @abstractmethod
    def all(self) -> list[Occurrence]:
        """Every stored occurrence (cancelled included), by start time."""
        ...

    def find_by_template(self, template_id: str) -> list[Occurrence]:
        return [o for o in self.all() if o.template_id == template_id]


def _lock_keys(occurrence: Occurrence) -> set[str]:
    keys = {f"room:{occurrence.room}"}
    keys.update(f"participant:{pid}" for pid in occurrence.participant_ids)
    return keys


class InMemoryScheduleStore(ScheduleStore):
    """Thread-safe in-process store; returned occurrences are copies."""

    def __init__(self, occurrences: Iterable[Occurrence] = ()) -> None:
        self._occurrences: dict[str, Occurrence] = {}
        self._data_lock = threading.RLock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

        for occurrence in occurrences:
            occurrence = occurrence.model_copy(deep=True)
            if occurrence.id is None:
                occurrence.id = uuid.uuid4().hex
            self._occurrences[occurrence.id] = occurrence

    # ---- locking ----
    def _key_lock(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, keys: Iterable[str]) -> Iterator[None]:
        locks = [self._key_lock(key) for key in sorted(set(keys))]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def _snapshot(self, exclude: Iterable[str] = ()) -> list[Occurrence]:
        excluded = set(exclude)
        with self._data_lock:
            return [o for oid, o in self._occurrences.items() if oid not in excluded]

    def _require(self, occurrence_id: str) -> Occurrence:
        try:
            return self._occurrences[occurrence_id]
        except KeyError:
            raise OccurrenceNotFound(f"Occurrence {occurrence_id} not found") from None

    # ---- reads ----
    def find_active_by_room(self, room: str, window: TimeWindow) -> list[Occurrence]:
        with self._data_lock:
            found = [
                o.model_copy(deep=True)
                for o in self._occurrences.values()
                if o.room == room and is_active(o) and overlaps(o.window, window)
            ]
        return sorted(found, key=lambda o: o.start)

    def find_active_by_participant(
        self, participant_id: str, window: TimeWindow
    ) -> list[Occurrence]:
        with self._data_lock:
            found = [
                o.model_copy(deep=True)
                for o in self._occurrences.values()
                if participant_id in o.participant_ids
                and is_active(o)
                and overlaps(o.window, window)
            ]
        return sorted(found, key=lambda o: o.start)

    def get(self, occurrence_id: str) -> Occurrence:
        with self._data_lock:
            return self._require(occurrence_id).model_copy(deep=True)

    def all(self) -> list[Occurrence]:
        with self._data_lock:
            found = [o.model_copy(deep=True) for o in self._occurrences.values()]
        return sorted(found, key=lambda o: o.start)

    # ---- writes ----
    def commit_many(
        self, occurrences: Sequence[Occurrence], supersede: Iterable[str] = ()
    ) -> list[str]:
        batch = sorted(
            (o.model_copy(deep=True) for o in occurrences), key=lambda o: o.start
        )
        superseded = list(supersede)
        keys: set[str] = set()
        for occurrence in batch:
            keys |= _lock_keys(occurrence)
        with self._data_lock:
            for oid in superseded:
                if oid in self._occurrences:
                    keys |= _lock_keys(self._occurrences[oid])

        with self._locked(keys), self._data_lock:
            latest = self._snapshot(exclude=superseded)
            conflicts = detect_batch_conflicts(batch, latest)
            if conflicts:
                logger.warning(
                    "commit_rejected",
                    occurrences=len(batch),
                    conflicts=len(conflicts),
                )
                raise ConflictDetected(conflicts)

            for occurrence in batch:
                if occurrence.id is None:
                    occurrence.id = uuid.uuid4().hex
                elif occurrence.id in self._occurrences:
                    raise SchedulingError(
                        f"Occurrence {occurrence.id} is already committed"
                    )
            cancelled = [
                lifecycle.supersede(self._require(oid)) for oid in superseded
            ]
            for current in cancelled:
                self._occurrences[current.id] = current
            for occurrence in batch:
                self._occurrences[occurrence.id] = occurrence

        ids = [o.id for o in batch]
        logger.info(
            "occurrences_committed",
            count=len(ids),
            superseded=len(superseded),
        )
        return ids

    def update_status(self, occurrence_id: str, status: OccurrenceStatus) -> Occurrence:
        with self._data_lock:
            current = self._require(occurrence_id)
            updated = lifecycle.transition(current, status)
            self._occurrences[occurrence_id] = updated
            logger.info(
                "status_updated",
                occurrence_id=occurrence_id,
                from_status=current.status.value,
                to_status=status.value,
            )
            return updated.model_copy(deep=True)

    def update_window(self, occurrence_id: str, window: TimeWindow) -> Occurrence:
        with self._data_lock:
            keys = _lock_keys(self._require(occurrence_id))

        # Status writes only take the data lock, so it is held from the
        # re-read to the write
        with self._locked(keys), self._data_lock:
            updated = lifecycle.reschedule(self._require(occurrence_id), window)
            conflicts = detect_conflicts(updated, self._snapshot(exclude=[occurrence_id]))
            if conflicts:
                logger.warning(
                    "reschedule_rejected",
                    occurrence_id=occurrence_id,
                    conflicts=len(conflicts),
                )
                raise ConflictDetected(conflicts)
            self._occurrences[occurrence_id] = updated

        logger.info(
            "occurrence_rescheduled",
            occurrence_id=occurrence_id,
            start=updated.start.isoformat(),
            end=updated.end.isoformat(),
        )
        return updated.model_copy(deep=True)

    def record_attendance(
        self,
        occurrence_id: str,
        participant_id: str,
        status: AttendanceStatus,
        check_in: datetime | None = None,
        check_out: datetime | None = None,
        note: str | None = None,
    ) -> Occurrence:
        with self._data_lock:
            updated = attendance.record_attendance(
                self._require(occurrence_id),
                participant_id,
                status,
                check_in=check_in,
                check_out=check_out,
                note=note,
            )
            self._occurrences[occurrence_id] = updated
        logger.info(
            "attendance_recorded",
            occurrence_id=occurrence_id,
            participant_id=participant_id,
            status=updated.attendance[-1].status.value,
        )
        return updated.model_copy(deep=True)
