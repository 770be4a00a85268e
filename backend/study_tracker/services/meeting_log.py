"""Meetings logged by advisors on behalf of students."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Callable, Sequence

from ..constants import ADVISOR_LOG_TITLE, DEFAULT_MEETING_DURATION, SOURCE_ADVISOR_MANUAL
from ..database import MeetingStore
from ..models import MeetingStatus
from .fanout import FanOutReport

logger = logging.getLogger(__name__)


def parse_meeting_date(meeting_date_iso: str) -> datetime:
    """Parse a YYYY-MM-DD string into midnight local time."""
    try:
        day = date.fromisoformat(meeting_date_iso)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Meeting date must be YYYY-MM-DD, got {meeting_date_iso!r}") from e
    return datetime.combine(day, time.min)


def build_advisor_log(
    student_id: str,
    scheduled_date: datetime,
    advisor_name: str,
    attended: bool,
    marked_at: datetime,
) -> dict:
    """Row data for an advisor-confirmed meeting."""
    notes = f"Logged by {advisor_name}"
    if not attended:
        notes += " - Student did not attend"

    return {
        "title": ADVISOR_LOG_TITLE,
        "description": f"Meeting logged by advisor {advisor_name}",
        "scheduled_date": scheduled_date,
        "duration": DEFAULT_MEETING_DURATION,
        "meeting_link": "",
        "status": MeetingStatus.COMPLETED if attended else MeetingStatus.NO_SHOW,
        "source": SOURCE_ADVISOR_MANUAL,
        "attendance_marked": True,
        "student_attended": attended,
        "advisor_attended": True,
        "attendance_notes": notes,
        "attendance_marked_at": marked_at,
        "student_id": student_id,
        "advisor_name": advisor_name,
        "advisor_feedback": "",
    }


class AdvisorMeetingLogger:
    """Creates advisor meeting logs and links the logs they supersede."""

    def __init__(self, store: MeetingStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    async def log_meeting(
        self,
        student_id: str,
        meeting_date_iso: str,
        advisor_id: str,
        advisor_name: str,
        attended: bool = True,
    ) -> str:
        """
        Log one meeting for one student and return the new meeting id.

        Any active meeting already on that day for the student is marked
        as overridden by the new one. Concurrent logs for the same day are
        not serialized; the last write decides which record stays active.
        """
        scheduled_date = parse_meeting_date(meeting_date_iso)
        existing = await self.store.find_active_meetings_on_day(student_id, scheduled_date.date())

        now = self.clock()
        data = build_advisor_log(student_id, scheduled_date, advisor_name, attended, now)
        meeting_id = await self.store.create_advisor_meeting_log(data, advisor_id)

        for previous in existing:
            await self.store.update_meeting(
                previous.id,
                {"overridden_by": meeting_id, "overridden_at": now},
            )
            logger.info(f"Meeting {previous.id} overridden by advisor log {meeting_id}")

        logger.info(
            f"Advisor {advisor_id} logged meeting {meeting_id} for student {student_id} "
            f"on {meeting_date_iso} (attended={attended})"
        )
        return meeting_id

    async def log_meetings(
        self,
        student_ids: Sequence[str],
        meeting_date_iso: str,
        advisor_id: str,
        advisor_name: str,
        attended: bool = True,
        stop_on_error: bool = False,
    ) -> FanOutReport:
        """
        Log the same meeting for several students, one write at a time.

        Failures are collected in the report and the loop moves on, unless
        stop_on_error is set, in which case the first failure is re-raised.
        Successful logs are never rolled back.
        """
        parse_meeting_date(meeting_date_iso)

        report = FanOutReport()
        for student_id in student_ids:
            try:
                meeting_id = await self.log_meeting(
                    student_id, meeting_date_iso, advisor_id, advisor_name, attended
                )
            except Exception as e:
                logger.error(f"Failed to log meeting for student {student_id}: {e}", exc_info=True)
                if stop_on_error:
                    raise
                report.record_failure(student_id, e)
                continue
            report.record_success(student_id, meeting_id)

        logger.info(
            f"Advisor log fan-out: {len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report
