"""Course/enrollment directory used to seed a template's participant list.

The directory is read-only: it maps a course id to the roster of enrolled
students. Enrollment business rules (capacity, waitlists, prerequisites) stay
with the enrollment service.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.timetable.config import TimetableConfig
from src.timetable.errors import CourseNotFound, PermanentError, TransientError
from src.timetable.logging import get_logger
from src.timetable.models import Participant

logger = get_logger(__name__)


class CourseDirectory(ABC):
    @abstractmethod
    def roster(self, course_id: str) -> list[Participant]:
        """Participants enrolled in `course_id`.

        Raises:
            CourseNotFound: If the course does not exist.
        """
        ...


class StaticCourseDirectory(CourseDirectory):
    """Directory backed by a fixed mapping of course id -> participants."""

    def __init__(self, rosters: Mapping[str, Sequence[Participant | str]]) -> None:
        self._rosters = {
            course_id: [
                p if isinstance(p, Participant) else Participant(participant_id=p)
                for p in members
            ]
            for course_id, members in rosters.items()
        }

    def roster(self, course_id: str) -> list[Participant]:
        if course_id not in self._rosters:
            raise CourseNotFound(f"Course {course_id} not found")
        return [p.model_copy() for p in self._rosters[course_id]]


class HttpCourseDirectory(CourseDirectory):
    """Directory that asks the course and enrollment services over HTTP.

    Connection errors, timeouts, 429 and 5xx responses are transient and
    retried; other failures are permanent.
    """

    def __init__(
        self,
        course_service_url: str,
        enrollment_service_url: str,
        *,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 1.0,
        session: requests.Session | None = None,
    ) -> None:
        self.course_service_url = course_service_url.rstrip("/")
        self.enrollment_service_url = enrollment_service_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: TimetableConfig) -> "HttpCourseDirectory":
        return cls(
            config.course_service_url,
            config.enrollment_service_url,
            timeout=config.directory_timeout_seconds,
            retry_attempts=config.directory_retry_attempts,
        )

    def _get_once(self, url: str, params: dict[str, str] | None = None) -> Any:
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("directory_request_failed", url=url, error=str(e))
            raise TransientError(f"Request to {url} failed: {e}") from e

        if resp.status_code == 404:
            raise CourseNotFound(f"Not found: {url}")
        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning("directory_unavailable", url=url, status=resp.status_code)
            raise TransientError(f"{url} returned {resp.status_code}")
        if resp.status_code != 200:
            raise PermanentError(f"{url} returned {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            raise PermanentError(f"{url} returned invalid JSON") from e

    def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        for attempt in Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        ):
            with attempt:
                return self._get_once(url, params)

    def validate_course(self, course_id: str) -> dict[str, Any]:
        """Fetch the course record, raising CourseNotFound if it is unknown."""
        payload = self._get_json(f"{self.course_service_url}/api/courses/{course_id}")
        if not isinstance(payload, dict) or not payload.get("success"):
            raise CourseNotFound(f"Course {course_id} not found")
        return (payload.get("data") or {}).get("course") or {}

    def roster(self, course_id: str) -> list[Participant]:
        self.validate_course(course_id)
        payload = self._get_json(
            f"{self.enrollment_service_url}/api/enrollments",
            params={"courseId": course_id, "status": "enrolled"},
        )
        data = payload.get("data", {}) if isinstance(payload, dict) else payload
        enrollments = data.get("enrollments", []) if isinstance(data, dict) else data
        if not isinstance(enrollments, list):
            raise PermanentError("Enrollment response has no enrollment list")

        participants: list[Participant] = []
        seen: set[str] = set()
        for item in enrollments:
            student = item.get("student") or {}
            student_id = student.get("studentId")
            if not student_id or student_id in seen:
                continue
            seen.add(student_id)
            participants.append(
                Participant(
                    participant_id=str(student_id),
                    name=student.get("name"),
                    email=student.get("email"),
                )
            )

        logger.info("roster_loaded", course_id=course_id, participants=len(participants))
        return participants
