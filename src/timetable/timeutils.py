"""Time normalization and local-time projections.

normalize_window is the single entry point that turns a requested
(start, end, timezone) into a canonical UTC TimeWindow. Everything here is
pure: no logging, no clock reads.
"""

from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.timetable.errors import InvalidTimezone, InvalidWindow
from src.timetable.models import FormattedTime, TimeWindow


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name.

    Raises:
        InvalidTimezone: If the name is empty or unknown.
    """
    if not name or not isinstance(name, str):
        raise InvalidTimezone(f"Invalid timezone {name!r}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimezone(f"Unknown timezone {name!r}") from e


def to_utc(value: datetime, zone: ZoneInfo) -> datetime:
    """Convert to UTC, reading naive values as wall-clock time in `zone`."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(dt_timezone.utc)


def normalize_window(start: datetime, end: datetime, timezone: str) -> TimeWindow:
    """Canonicalize a requested window into absolute UTC instants.

    Args:
        start: Window start; naive values are local to `timezone`.
        end: Window end; naive values are local to `timezone`.
        timezone: IANA zone name, e.g. "Asia/Ho_Chi_Minh".

    Returns:
        TimeWindow with UTC start/end and the authoring timezone.

    Raises:
        InvalidTimezone: If the zone name is unknown.
        InvalidWindow: If end is not strictly after start.
    """
    zone = get_zone(timezone)
    start_utc = to_utc(start, zone)
    end_utc = to_utc(end, zone)
    if end_utc <= start_utc:
        raise InvalidWindow(
            f"Window end {end_utc.isoformat()} must be after start {start_utc.isoformat()}"
        )
    return TimeWindow(start=start_utc, end=end_utc, timezone=timezone)


def to_local(instant: datetime, timezone: str) -> datetime:
    return instant.astimezone(get_zone(timezone))


def local_date(instant: datetime, timezone: str) -> date:
    return to_local(instant, timezone).date()


def combine_local(day: date, wall_time: time, timezone: str) -> datetime:
    """Build the UTC instant for a local wall-clock time on a given day."""
    zone = get_zone(timezone)
    return datetime.combine(day, wall_time, tzinfo=zone).astimezone(dt_timezone.utc)


def day_bounds(day: date, timezone: str) -> TimeWindow:
    """Half-open UTC window covering one local calendar day."""
    start = combine_local(day, time(0, 0), timezone)
    end = combine_local(day + timedelta(days=1), time(0, 0), timezone)
    return TimeWindow(start=start, end=end, timezone=timezone)


def week_number(window: TimeWindow) -> int:
    """ISO week number of the window's local start (semester week)."""
    return local_date(window.start, window.timezone).isocalendar()[1]


def format_window(window: TimeWindow) -> FormattedTime:
    """Human-readable projection of a window in its authoring timezone."""
    start = to_local(window.start, window.timezone)
    end = to_local(window.end, window.timezone)
    return FormattedTime(
        start=start.strftime("%Y-%m-%d %H:%M"),
        end=end.strftime("%Y-%m-%d %H:%M"),
        date=start.strftime("%Y-%m-%d"),
        day=start.strftime("%A"),
        time_range=f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')}",
    )
