"""Timetable configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Timetable configuration loaded from environment variables.

    Settings are loaded from TIMETABLE_-prefixed environment variables with
    sensible defaults. For local development, create a .env file in the
    project root.
    """

    # Scheduling
    default_timezone: str = Field(
        default="Asia/Ho_Chi_Minh",
        description="IANA timezone used when a template does not name one",
    )
    max_occurrences: int = Field(
        default=366,
        ge=1,
        description="Hard cap on occurrences produced by one recurrence expansion",
    )

    # Course / enrollment services (roster lookups only)
    course_service_url: str = Field(
        default="http://localhost:3002",
        description="Course service base URL",
    )
    enrollment_service_url: str = Field(
        default="http://localhost:3003",
        description="Enrollment service base URL",
    )
    directory_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single directory HTTP request",
    )
    directory_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for a directory lookup before giving up",
    )

    # Reminder lead times
    email_reminder_minutes: int = Field(
        default=30,
        ge=0,
        description="Default email reminder lead time in minutes",
    )
    sms_reminder_minutes: int = Field(
        default=15,
        ge=0,
        description="Default SMS reminder lead time in minutes",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "TIMETABLE_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Get the timetable configuration singleton.

    Returns:
        TimetableConfig: Timetable configuration instance
    """
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the env."""
    global _config
    _config = None
