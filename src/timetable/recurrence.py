"""Recurrence expansion: base window + rule -> ordered concrete windows.

Stepping happens on local calendar dates in the template's timezone; every
occurrence keeps the base wall-clock start time and the base duration, so a
09:00 class stays at 09:00 across DST changes.

The expansion is lazy and restartable: iterating a RecurrenceExpansion twice
yields the same windows, and a caller may stop consuming at any point without
side effects.
"""

import calendar
from collections.abc import Iterator
from datetime import date, timedelta
from itertools import count

from src.timetable.errors import InvalidRecurrence, RecurrenceLimitExceeded
from src.timetable.models import RecurrencePattern, RecurrenceRule, TimeWindow
from src.timetable.timeutils import combine_local, to_local

DEFAULT_MAX_OCCURRENCES = 366

_WEEKLY_STEP_DAYS: dict[RecurrencePattern, int] = {
    RecurrencePattern.WEEKLY: 7,
    RecurrencePattern.BIWEEKLY: 14,
}


class RecurrenceExpansion:
    """Lazy, restartable sequence of occurrence windows for one rule.

    The rule is validated when the expansion is built. RecurrenceLimitExceeded
    is raised during iteration, as soon as one more window than the cap
    allows would be produced.
    """

    def __init__(
        self,
        base: TimeWindow,
        rule: RecurrenceRule,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ) -> None:
        self.base = base
        self.rule = rule
        self.max_occurrences = max_occurrences

        local_start = to_local(base.start, base.timezone)
        self._base_date = local_start.date()
        self._wall_time = local_start.time().replace(tzinfo=None)
        self._duration = base.end - base.start
        self._exceptions = frozenset(rule.exceptions)

        self._validate()

    def _validate(self) -> None:
        rule = self.rule
        if rule.days_of_week and rule.pattern not in _WEEKLY_STEP_DAYS:
            raise InvalidRecurrence(
                f"days_of_week is only valid for weekly or biweekly patterns, "
                f"not {rule.pattern.value!r}"
            )
        if rule.end_date is not None and rule.end_date < self._base_date:
            raise InvalidRecurrence(
                f"end_date {rule.end_date.isoformat()} precedes base start "
                f"{self._base_date.isoformat()}"
            )
        if self.max_occurrences < 1:
            raise InvalidRecurrence("max_occurrences must be at least 1")

    def __iter__(self) -> Iterator[TimeWindow]:
        produced = 0
        for day in self._candidate_dates():
            if self.rule.end_date is not None and day > self.rule.end_date:
                return
            if day in self._exceptions:
                continue
            produced += 1
            if produced > self.max_occurrences:
                raise RecurrenceLimitExceeded(self.max_occurrences)
            yield self._window_on(day)

    def materialize(self) -> list[TimeWindow]:
        """Expand fully into a list."""
        return list(self)

    def _window_on(self, day: date) -> TimeWindow:
        if day == self._base_date:
            return self.base
        start = combine_local(day, self._wall_time, self.base.timezone)
        return TimeWindow(
            start=start, end=start + self._duration, timezone=self.base.timezone
        )

    def _candidate_dates(self) -> Iterator[date]:
        """Ascending dates before end_date/exception filtering."""
        pattern = self.rule.pattern
        if pattern == RecurrencePattern.NONE:
            yield self._base_date
        elif pattern == RecurrencePattern.DAILY:
            for offset in range((date.max - self._base_date).days + 1):
                yield self._base_date + timedelta(days=offset)
        elif pattern in _WEEKLY_STEP_DAYS:
            yield from self._weekly_dates(_WEEKLY_STEP_DAYS[pattern])
        elif pattern == RecurrencePattern.MONTHLY:
            yield from self._monthly_dates()

    def _weekly_dates(self, step_days: int) -> Iterator[date]:
        weekdays = sorted({d.weekday for d in self.rule.days_of_week}) or [
            self._base_date.weekday()
        ]
        # Weeks are anchored on the Monday of the base week
        anchor = self._base_date - timedelta(days=self._base_date.weekday())
        last_offset = (date.max - anchor).days
        for week in count():
            for weekday in weekdays:
                offset = week * step_days + weekday
                if offset > last_offset:
                    return
                day = anchor + timedelta(days=offset)
                if day >= self._base_date:
                    yield day

    def _monthly_dates(self) -> Iterator[date]:
        base = self._base_date
        for months in count():
            years, month_index = divmod(base.month - 1 + months, 12)
            year, month = base.year + years, month_index + 1
            if year > date.max.year:
                return
            # Months without the base day (the 31st in April) are skipped
            if base.day <= calendar.monthrange(year, month)[1]:
                yield date(year, month, base.day)


def expand(
    base: TimeWindow,
    rule: RecurrenceRule,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> RecurrenceExpansion:
    """Build the lazy expansion of `rule` starting from `base`.

    Raises:
        InvalidRecurrence: If the rule is structurally invalid.
    """
    return RecurrenceExpansion(base, rule, max_occurrences=max_occurrences)
