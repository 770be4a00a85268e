"""Constants and configuration used across the Study Tracker backend."""

from __future__ import annotations

from typing import Final

# Meeting sources
SOURCE_MANUAL: Final[str] = "manual"
SOURCE_ADVISOR_MANUAL: Final[str] = "advisor-manual"
SOURCE_CALENDLY: Final[str] = "calendly"

# Who wrote the meeting row
LOGGED_BY_STUDENT: Final[str] = "student"
LOGGED_BY_ADVISOR: Final[str] = "advisor"

# Defaults for advisor meeting logs
ADVISOR_LOG_TITLE: Final[str] = "Meeting Log"
DEFAULT_MEETING_DURATION: Final[int] = 30  # minutes

UNKNOWN_STUDENT_NAME: Final[str] = "Unknown"
DEFAULT_NOTE_TITLE: Final[str] = "Untitled Note"
DEFAULT_CANCELATION_REASON: Final[str] = "Student canceled"

# Media attachments
MAX_MEDIA_BYTES: Final[int] = 10 * 1024 * 1024  # 10MB
ALLOWED_MEDIA_TYPES: Final[frozenset[str]] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    }
)

# Reflections
MIN_PROGRESS_RATING: Final[int] = 1
MAX_PROGRESS_RATING: Final[int] = 5
DEFAULT_PROGRESS_RATING: Final[int] = 3
