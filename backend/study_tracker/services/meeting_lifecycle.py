"""Meeting status transitions and the derived views built on top of them."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from ..database import MeetingNotFoundError, MeetingStore
from ..models import (
    AttendanceCounts,
    AttendanceUpdate,
    FeedbackUpdate,
    MeetingCounts,
    MeetingRecord,
    MeetingStatus,
    normalize_status,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

BUCKET_UPCOMING = "upcoming"
BUCKET_PAST = "past"
BUCKET_TODAY = "today"


class AttendanceConfirmedError(Exception):
    """Raised when a student reports on a meeting an advisor has already confirmed."""

    def __init__(self, meeting_id: str):
        super().__init__(f"Attendance for meeting {meeting_id} was already confirmed by an advisor")
        self.meeting_id = meeting_id


def meeting_day(meeting: MeetingRecord) -> Optional[date]:
    """Calendar day of a meeting in local time."""
    scheduled = meeting.scheduled_date
    if scheduled is None:
        return None
    if scheduled.tzinfo is not None:
        scheduled = scheduled.astimezone()
    return scheduled.date()


def _sort_key(meeting: MeetingRecord) -> datetime:
    scheduled = meeting.scheduled_date or datetime.min
    if scheduled.tzinfo is not None:
        scheduled = scheduled.astimezone().replace(tzinfo=None)
    return scheduled


def active_meetings(meetings: Iterable[MeetingRecord]) -> list[MeetingRecord]:
    """Drop meetings superseded by a later advisor log."""
    return [m for m in meetings if m.overridden_by is None]


class MeetingLifecycle:
    """
    Attendance state machine for meetings.

    scheduled -> pending-review -> attended | missed | cancelled

    The store-backed methods write through a MeetingStore and let store
    errors propagate. Everything else is a pure view over a list of
    MeetingRecords, using the injected clock as the only notion of "today".
    """

    def __init__(self, store: Optional[MeetingStore] = None, clock: Clock = datetime.now):
        self.store = store
        self.clock = clock

    def today(self) -> date:
        now = self.clock()
        if now.tzinfo is not None:
            now = now.astimezone()
        return now.date()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def mark_attendance(self, meeting_id: str, update: AttendanceUpdate) -> None:
        """Advisor confirmation. Re-marking is allowed; the latest call wins."""
        status = MeetingStatus.COMPLETED if update.student_attended else MeetingStatus.NO_SHOW
        await self._require_store().update_meeting(
            meeting_id,
            {
                "status": status,
                "attendance_marked": True,
                "student_attended": update.student_attended,
                "advisor_attended": update.advisor_attended,
                "attendance_notes": update.notes or "",
                "attendance_marked_at": self.clock(),
            },
        )
        logger.info(f"Attendance marked for meeting {meeting_id}: {status.value}")

    async def mark_student_attendance(self, meeting_id: str, status: MeetingStatus | str) -> None:
        """
        Student self-report.

        Accepts either spelling of attended/missed and writes the canonical
        one. Does not confirm attendance; that stays an advisor action,
        and once an advisor has confirmed, the student can no longer change it.
        """
        canonical = normalize_status(status)
        if canonical not in (MeetingStatus.ATTENDED, MeetingStatus.MISSED):
            raise ValueError(f"Invalid self-reported status: {status}")

        store = self._require_store()
        meeting = await store.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        if meeting.attendance_marked:
            raise AttendanceConfirmedError(meeting_id)

        now = self.clock()
        await store.update_meeting(
            meeting_id,
            {
                "status": canonical,
                "student_self_reported": True,
                "student_attendance_marked_at": now,
            },
        )
        logger.info(f"Student self-reported meeting {meeting_id} as {canonical.value}")

    async def add_feedback(self, meeting_id: str, feedback: FeedbackUpdate) -> None:
        await self._require_store().update_meeting(
            meeting_id,
            {
                "advisor_feedback": feedback.feedback,
                "action_items": list(feedback.action_items or []),
                "next_steps": feedback.next_steps or "",
                "feedback_added_at": self.clock(),
            },
        )

    def _require_store(self) -> MeetingStore:
        if self.store is None:
            raise RuntimeError("MeetingLifecycle has no store configured")
        return self.store

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def filter_by_bucket(self, meetings: Iterable[MeetingRecord], bucket: str) -> list[MeetingRecord]:
        """
        Filter meetings by day relative to today.

        upcoming: today and later, ascending
        past: before today, descending
        today: today only, ascending

        Any other bucket returns every meeting sorted newest first.
        """
        meetings = list(meetings)
        today = self.today()
        dated = [(m, meeting_day(m)) for m in meetings]

        if bucket == BUCKET_UPCOMING:
            selected = [m for m, day in dated if day is not None and day >= today]
            return sorted(selected, key=_sort_key)
        if bucket == BUCKET_PAST:
            selected = [m for m, day in dated if day is not None and day < today]
            return sorted(selected, key=_sort_key, reverse=True)
        if bucket == BUCKET_TODAY:
            selected = [m for m, day in dated if day == today]
            return sorted(selected, key=_sort_key)

        return sorted(meetings, key=_sort_key, reverse=True)

    def is_today(self, meeting: MeetingRecord) -> bool:
        return meeting_day(meeting) == self.today()

    def is_overdue(self, meeting: MeetingRecord) -> bool:
        """Past its day and neither attended nor cancelled. Display label only."""
        day = meeting_day(meeting)
        if day is None or day >= self.today():
            return False
        status = normalize_status(meeting.status)
        return status not in (MeetingStatus.ATTENDED, MeetingStatus.CANCELLED)

    @staticmethod
    def needs_attention(meetings: Iterable[MeetingRecord]) -> list[MeetingRecord]:
        """
        Meetings waiting for advisor confirmation, whatever their date.

        Legacy rows that students logged as "scheduled" still count.
        """
        pending = []
        for meeting in meetings:
            status = normalize_status(meeting.status)
            if status == MeetingStatus.CANCELLED or meeting.attendance_marked:
                continue
            if status == MeetingStatus.PENDING_REVIEW:
                pending.append(meeting)
            elif status == MeetingStatus.SCHEDULED and meeting.student_self_reported:
                pending.append(meeting)
        return pending

    @staticmethod
    def attendance_counts(meetings: Iterable[MeetingRecord]) -> AttendanceCounts:
        meetings = list(meetings)
        counts = AttendanceCounts(total=len(meetings))

        for meeting in meetings:
            match normalize_status(meeting.status):
                case MeetingStatus.ATTENDED:
                    counts.completed += 1
                case MeetingStatus.MISSED:
                    counts.missed += 1
                case MeetingStatus.SCHEDULED:
                    counts.scheduled += 1
                case MeetingStatus.PENDING_REVIEW:
                    counts.pending_review += 1
                case MeetingStatus.CANCELLED:
                    counts.cancelled += 1
                case _:
                    pass

        return counts

    def meeting_counts(self, meetings: Iterable[MeetingRecord]) -> MeetingCounts:
        meetings = list(meetings)
        return MeetingCounts(
            total=len(meetings),
            upcoming=len(self.filter_by_bucket(meetings, BUCKET_UPCOMING)),
            past=len(self.filter_by_bucket(meetings, BUCKET_PAST)),
            today=len(self.filter_by_bucket(meetings, BUCKET_TODAY)),
            overdue=sum(1 for m in meetings if self.is_overdue(m)),
        )
