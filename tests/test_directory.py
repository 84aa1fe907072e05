"""Tests for the course directories, with a fake HTTP session."""

import pytest
import requests

from src.timetable.config import TimetableConfig
from src.timetable.directory import HttpCourseDirectory, StaticCourseDirectory
from src.timetable.errors import CourseNotFound, PermanentError, TransientError
from src.timetable.models import Participant

COURSE_OK = {"success": True, "data": {"course": {"id": "CS101", "name": "Algorithms"}}}


def enrollments(*students):
    return {
        "success": True,
        "data": {
            "enrollments": [
                {"student": {"studentId": sid, "name": name, "email": f"{sid}@uni.edu"}}
                for sid, name in students
            ]
        },
    }


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class FakeSession:
    """Replays queued responses or exceptions, one per GET."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_directory(*replies, attempts=3):
    session = FakeSession(*replies)
    directory = HttpCourseDirectory(
        "http://courses/",
        "http://enrollments",
        retry_attempts=attempts,
        retry_wait_seconds=0,
        session=session,
    )
    return directory, session


class TestStaticCourseDirectory:
    def test_roster_accepts_ids_and_participants(self):
        directory = StaticCourseDirectory(
            {"CS101": ["s-1", Participant(participant_id="s-2", name="Lan")]}
        )

        roster = directory.roster("CS101")

        assert [p.participant_id for p in roster] == ["s-1", "s-2"]
        assert roster[1].name == "Lan"

    def test_unknown_course(self):
        with pytest.raises(CourseNotFound):
            StaticCourseDirectory({}).roster("CS101")


class TestHttpCourseDirectory:
    def test_roster_is_parsed_and_deduplicated(self):
        directory, session = make_directory(
            FakeResponse(200, COURSE_OK),
            FakeResponse(200, enrollments(("s-1", "An"), ("s-2", "Binh"), ("s-1", "An"))),
        )

        roster = directory.roster("CS101")

        assert [p.participant_id for p in roster] == ["s-1", "s-2"]
        assert roster[0].email == "s-1@uni.edu"
        assert session.calls == [
            ("http://courses/api/courses/CS101", None),
            ("http://enrollments/api/enrollments", {"courseId": "CS101", "status": "enrolled"}),
        ]

    def test_transient_failure_is_retried(self):
        directory, session = make_directory(
            FakeResponse(503),
            FakeResponse(200, COURSE_OK),
        )

        assert directory.validate_course("CS101") == COURSE_OK["data"]["course"]
        assert len(session.calls) == 2

    def test_not_found_is_not_retried(self):
        directory, session = make_directory(FakeResponse(404))

        with pytest.raises(CourseNotFound):
            directory.roster("CS404")
        assert len(session.calls) == 1

    def test_unsuccessful_course_payload(self):
        directory, _ = make_directory(FakeResponse(200, {"success": False}))

        with pytest.raises(CourseNotFound):
            directory.validate_course("CS101")

    def test_retries_exhausted(self):
        directory, session = make_directory(
            requests.ConnectionError("refused"),
            requests.Timeout("slow"),
            requests.ConnectionError("refused"),
        )

        with pytest.raises(TransientError):
            directory.roster("CS101")
        assert len(session.calls) == 3

    @pytest.mark.parametrize(
        "response",
        [FakeResponse(400), FakeResponse(200, None)],
        ids=["bad-request", "invalid-json"],
    )
    def test_permanent_errors(self, response):
        directory, session = make_directory(response)

        with pytest.raises(PermanentError):
            directory.validate_course("CS101")
        assert len(session.calls) == 1

    def test_from_config(self):
        config = TimetableConfig(
            course_service_url="http://c:1",
            enrollment_service_url="http://e:2",
            directory_retry_attempts=5,
        )

        directory = HttpCourseDirectory.from_config(config)

        assert directory.course_service_url == "http://c:1"
        assert directory.retry_attempts == 5
