"""Expand a session template and report conflicts, as JSON or a table.

Standalone CLI script for checking a timetable request before it is booked.
Reads a template JSON file, expands its recurrence, checks every occurrence
against an optional file of existing occurrences (and against the other
occurrences of the same series), and prints the result. Nothing is written.

Run with: python scripts/plan_schedule.py template.json
Existing: python scripts/plan_schedule.py template.json --existing data/occurrences.json
Table:    python scripts/plan_schedule.py template.json --table
Roster:   python scripts/plan_schedule.py template.json --roster
          (fills an empty participant list from the enrollment service)

Template JSON uses the SessionTemplate field names, e.g.:
  {"title": "Algorithms", "instructor_id": "t-1", "room": "B201",
   "start": "2024-03-04T09:00:00", "end": "2024-03-04T10:30:00",
   "timezone": "Asia/Ho_Chi_Minh",
   "recurrence": {"pattern": "weekly", "days_of_week": ["monday"],
                  "end_date": "2024-03-25", "exceptions": ["2024-03-18"]}}

Exit codes:
  0 = no conflicts
  1 = error (message on stderr)
  2 = conflicts found
"""

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.config import get_config  # noqa: E402
from src.timetable.directory import HttpCourseDirectory  # noqa: E402
from src.timetable.logging import setup_logging  # noqa: E402
from src.timetable.models import (  # noqa: E402
    Occurrence,
    SchedulePlan,
    SessionTemplate,
)
from src.timetable.scheduler import TimetableScheduler  # noqa: E402
from src.timetable.store import InMemoryScheduleStore  # noqa: E402
from src.timetable.timeutils import format_window  # noqa: E402


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Expand a session template and report conflicts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("template", help="Path to the template JSON file.")
    parser.add_argument(
        "--existing",
        default=None,
        help="Path to a JSON list of already-booked occurrences.",
    )
    parser.add_argument(
        "--table",
        action="store_true",
        help="Print a human-readable table instead of JSON.",
    )
    parser.add_argument(
        "--roster",
        action="store_true",
        help="Fill an empty participant list from the course roster.",
    )
    return parser.parse_args(argv)


def _load_existing(path: str | None) -> list[Occurrence]:
    if path is None:
        return []
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return [Occurrence.model_validate(item) for item in raw]


def _format_table(plan: SchedulePlan) -> str:
    """Format planned occurrences as an aligned text table."""
    conflicted = {c.candidate_start for c in plan.conflicts}
    headers = ["Date", "Day", "Time", "Room", "Minutes", "Conflict"]
    rows: list[list[str]] = []
    for occurrence in plan.occurrences:
        shown = format_window(occurrence.window)
        rows.append(
            [
                shown.date,
                shown.day,
                shown.time_range,
                occurrence.room,
                str(occurrence.duration_minutes),
                "YES" if occurrence.start in conflicted else "",
            ]
        )

    if not rows:
        return "No occurrences."

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [
        " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows
    ]
    return "\n".join([header_line, separator, *row_lines])


def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    template = SessionTemplate.model_validate_json(
        Path(args.template).read_text(encoding="utf-8")
    )
    store = InMemoryScheduleStore(_load_existing(args.existing))
    directory = HttpCourseDirectory.from_config(config) if args.roster else None
    scheduler = TimetableScheduler(store, directory=directory, config=config)

    plan = scheduler.plan(template)
    _log(
        f"plan_schedule: {len(plan.occurrences)} occurrences, "
        f"{len(plan.conflicts)} conflicts"
    )

    if args.table:
        print(_format_table(plan))
    else:
        print(json.dumps(plan.model_dump(mode="json"), indent=2, ensure_ascii=False))

    return 2 if plan.has_conflicts else 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(main(args))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
