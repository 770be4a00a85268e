from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class MeetingStatus(str, enum.Enum):
    """Meeting status vocabulary, including the legacy spellings still found in stored rows."""

    SCHEDULED = "scheduled"
    PENDING_REVIEW = "pending-review"
    ATTENDED = "attended"
    COMPLETED = "completed"  # legacy spelling of ATTENDED
    MISSED = "missed"
    NO_SHOW = "no-show"  # legacy spelling of MISSED
    CANCELLED = "cancelled"

    @property
    def canonical(self) -> MeetingStatus:
        return _CANONICAL.get(self, self)

    @property
    def is_attended(self) -> bool:
        return self.canonical is MeetingStatus.ATTENDED

    @property
    def is_missed(self) -> bool:
        return self.canonical is MeetingStatus.MISSED


_CANONICAL = {
    MeetingStatus.COMPLETED: MeetingStatus.ATTENDED,
    MeetingStatus.NO_SHOW: MeetingStatus.MISSED,
}


def normalize_status(raw: Any) -> Any:
    """
    Map a stored status onto its canonical spelling.

    Values outside the known vocabulary are returned untouched so that
    callers can still count them.
    """
    try:
        return MeetingStatus(raw).canonical
    except ValueError:
        return raw


class MeetingRecord(BaseModel):
    """A meeting as read back from the store, with its status normalized."""

    id: Optional[str] = None
    student_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str = MeetingStatus.SCHEDULED.value
    title: str = ""
    description: str = ""
    duration: Optional[int] = None
    meeting_link: str = ""
    source: Optional[str] = None
    logged_by: Optional[str] = None
    advisor_id: Optional[str] = None
    advisor_name: Optional[str] = None

    attendance_marked: bool = False
    student_attended: Optional[bool] = None
    advisor_attended: Optional[bool] = None
    attendance_marked_at: Optional[datetime] = None
    student_self_reported: bool = False
    student_attendance_marked_at: Optional[datetime] = None

    attendance_notes: str = ""
    advisor_feedback: str = ""
    action_items: list[str] = Field(default_factory=list)
    next_steps: str = ""
    feedback_added_at: Optional[datetime] = None

    overridden_by: Optional[str] = None
    overridden_at: Optional[datetime] = None

    calendly_event_uuid: Optional[str] = None
    calendly_event_uri: Optional[str] = None
    student_email: Optional[str] = None
    student_name: Optional[str] = None
    event_name: Optional[str] = None
    canceled_at: Optional[datetime] = None
    cancelation_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        normalized = normalize_status(value)
        if isinstance(normalized, MeetingStatus):
            return normalized.value
        return normalized

    @field_validator("action_items", mode="before")
    @classmethod
    def _default_action_items(cls, value: Any) -> Any:
        return value or []

    @field_validator("attendance_notes", "advisor_feedback", "next_steps", "title", "description", "meeting_link", mode="before")
    @classmethod
    def _default_text(cls, value: Any) -> Any:
        return value or ""

    @property
    def is_active(self) -> bool:
        return self.overridden_by is None


class Student(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    advisor_id: Optional[str] = None

    model_config = {"from_attributes": True}


class Team(BaseModel):
    """A project group of students."""

    id: str
    name: str
    description: str = ""
    advisor_id: Optional[str] = None
    student_ids: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SelectionSet(BaseModel):
    """Resolved tagging target: which students (and optionally which team) an action applies to."""

    student_ids: list[str] = Field(default_factory=list)
    student_names: list[str] = Field(default_factory=list)
    team_id: Optional[str] = None
    team_name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.student_ids


class AttendanceCounts(BaseModel):
    total: int = 0
    completed: int = 0
    missed: int = 0
    scheduled: int = 0
    pending_review: int = 0
    cancelled: int = 0


class MeetingCounts(BaseModel):
    total: int = 0
    upcoming: int = 0
    past: int = 0
    today: int = 0
    overdue: int = 0


class AttendanceUpdate(BaseModel):
    """Advisor confirmation of a meeting's outcome."""

    student_attended: bool
    advisor_attended: bool = True
    notes: str = ""


class FeedbackUpdate(BaseModel):
    feedback: str = ""
    action_items: list[str] = Field(default_factory=list)
    next_steps: str = ""


class UserRole(str, enum.Enum):
    STUDENT = "student"
    ADVISOR = "advisor"


class CurrentUser(BaseModel):
    """The caller of a request, with the role stored on their profile."""

    id: str
    role: str = UserRole.STUDENT.value

    @property
    def is_advisor(self) -> bool:
        return self.role == UserRole.ADVISOR.value


class GoalStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"


class ReflectionType(str, enum.Enum):
    PRE_MEETING = "pre-meeting"
    POST_MEETING = "post-meeting"
