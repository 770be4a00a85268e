"""Meetings API router: listing, attendance, feedback and advisor logs."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import ensure_owner_or_advisor, get_caller, require_advisor
from ..constants import SOURCE_MANUAL
from ..database import MeetingNotFoundError, MeetingStore, get_db, get_project_groups, get_students
from ..models import (
    AttendanceCounts,
    AttendanceUpdate,
    CurrentUser,
    FeedbackUpdate,
    MeetingCounts,
    MeetingRecord,
    MeetingStatus,
    Student,
    Team,
)
from ..selection import resolve
from ..services.meeting_lifecycle import AttendanceConfirmedError, MeetingLifecycle, active_meetings
from ..services.meeting_log import AdvisorMeetingLogger, parse_meeting_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meetings", tags=["meetings"])


# Request/Response Models
class MeetingListResponse(BaseModel):
    meetings: list[MeetingRecord]
    attendance_counts: AttendanceCounts
    meeting_counts: MeetingCounts


class CreateMeetingRequest(BaseModel):
    scheduled_date: date
    title: str = "Meeting"
    description: str = ""
    duration: int = 30
    meeting_link: str = ""


class StudentAttendanceRequest(BaseModel):
    status: str  # 'attended' / 'completed' or 'missed' / 'no-show'


class AdvisorLogRequest(BaseModel):
    mode: str = "single"
    student_ids: list[str] = Field(default_factory=list)
    team_id: Optional[str] = None
    meeting_date: str  # YYYY-MM-DD
    advisor_name: str
    attended: bool = True


class LoggedMeeting(BaseModel):
    student_id: str
    meeting_id: str


class FailedLog(BaseModel):
    student_id: str
    error: str


class AdvisorLogResponse(BaseModel):
    logged: list[LoggedMeeting]
    failed: list[FailedLog]
    team_id: Optional[str] = None
    team_name: Optional[str] = None


def get_store(db: AsyncSession = Depends(get_db)) -> MeetingStore:
    return MeetingStore(db)


def get_lifecycle(store: MeetingStore = Depends(get_store)) -> MeetingLifecycle:
    return MeetingLifecycle(store)


async def _get_meeting_or_404(store: MeetingStore, meeting_id: str) -> MeetingRecord:
    meeting = await store.get_meeting(meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


def _listing(meetings: list[MeetingRecord], bucket: Optional[str], lifecycle: MeetingLifecycle) -> MeetingListResponse:
    return MeetingListResponse(
        meetings=lifecycle.filter_by_bucket(meetings, bucket or ""),
        attendance_counts=lifecycle.attendance_counts(meetings),
        meeting_counts=lifecycle.meeting_counts(meetings),
    )


# Endpoints
@router.get("", response_model=MeetingListResponse)
async def list_meetings(
    bucket: Optional[str] = None,
    student_id: Optional[str] = None,
    user: CurrentUser = Depends(get_caller),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """
    Active meetings for the caller, optionally filtered by bucket.

    Args:
        bucket: 'upcoming', 'past' or 'today'; anything else lists everything newest first
        student_id: Another student's meetings; advisors only
    """
    target = student_id or user.id
    ensure_owner_or_advisor(user, target)

    meetings = active_meetings(await store.get_user_meetings(target))
    logger.info(f"Listing {len(meetings)} active meetings for {target} (bucket={bucket})")
    return _listing(meetings, bucket, lifecycle)


@router.get("/advisor", response_model=MeetingListResponse)
async def list_advisor_meetings(
    bucket: Optional[str] = None,
    advisor: CurrentUser = Depends(require_advisor),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """Active meetings the advisor logged or that belong to their students."""
    meetings = active_meetings(await store.get_advisor_meetings(advisor.id))
    return _listing(meetings, bucket, lifecycle)


@router.get("/needs-attention", response_model=list[MeetingRecord])
async def list_meetings_needing_attention(
    advisor: CurrentUser = Depends(require_advisor),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """Meetings waiting for an advisor to confirm attendance, regardless of date."""
    meetings = active_meetings(await store.get_all_meetings())
    return lifecycle.needs_attention(meetings)


@router.post("", response_model=MeetingRecord)
async def create_meeting(
    request: CreateMeetingRequest,
    user: CurrentUser = Depends(get_caller),
    store: MeetingStore = Depends(get_store),
):
    """Student self-logs a meeting; it waits in pending-review until an advisor confirms it."""
    meeting_id = await store.create_meeting(
        {
            "student_id": user.id,
            "scheduled_date": parse_meeting_date(request.scheduled_date.isoformat()),
            "title": request.title,
            "description": request.description,
            "duration": request.duration,
            "meeting_link": request.meeting_link,
            "status": MeetingStatus.PENDING_REVIEW,
            "source": SOURCE_MANUAL,
            "student_self_reported": True,
        }
    )
    return await store.get_meeting(meeting_id)


@router.post("/{meeting_id}/attendance", response_model=MeetingRecord)
async def mark_attendance(
    meeting_id: str,
    request: AttendanceUpdate,
    advisor: CurrentUser = Depends(require_advisor),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """Advisor confirms whether the student attended."""
    try:
        await lifecycle.mark_attendance(meeting_id, request)
    except MeetingNotFoundError:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return await store.get_meeting(meeting_id)


@router.post("/{meeting_id}/student-attendance", response_model=MeetingRecord)
async def mark_student_attendance(
    meeting_id: str,
    request: StudentAttendanceRequest,
    user: CurrentUser = Depends(get_caller),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """Student reports whether they attended one of their own meetings."""
    meeting = await _get_meeting_or_404(store, meeting_id)
    if meeting.student_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to report on another student's meeting")

    try:
        await lifecycle.mark_student_attendance(meeting_id, request.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AttendanceConfirmedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await store.get_meeting(meeting_id)


@router.post("/{meeting_id}/feedback", response_model=MeetingRecord)
async def add_feedback(
    meeting_id: str,
    request: FeedbackUpdate,
    advisor: CurrentUser = Depends(require_advisor),
    store: MeetingStore = Depends(get_store),
    lifecycle: MeetingLifecycle = Depends(get_lifecycle),
):
    """Advisor feedback, action items and next steps."""
    try:
        await lifecycle.add_feedback(meeting_id, request)
    except MeetingNotFoundError:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return await store.get_meeting(meeting_id)


@router.post("/advisor-log", response_model=AdvisorLogResponse)
async def advisor_log(
    request: AdvisorLogRequest,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
    store: MeetingStore = Depends(get_store),
) -> Any:
    """
    Log a meeting on behalf of one student, several students or a team.

    One record is written per selected entry, so a student picked twice
    gets two entries in the response. Failures for individual students
    are reported back without undoing the logs that succeeded.
    """
    students = [Student.model_validate(s) for s in await get_students(db)]
    teams = [Team.model_validate(t) for t in await get_project_groups(db)]
    selection = resolve(request.mode, request.student_ids, request.team_id, students, teams)

    if selection.is_empty:
        raise HTTPException(status_code=400, detail="Select at least one student")

    try:
        report = await AdvisorMeetingLogger(store).log_meetings(
            selection.student_ids,
            request.meeting_date,
            advisor.id,
            request.advisor_name,
            attended=request.attended,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return AdvisorLogResponse(
        logged=[LoggedMeeting(student_id=s.target, meeting_id=s.result) for s in report.succeeded],
        failed=[FailedLog(student_id=f.target, error=f.error) for f in report.failed],
        team_id=selection.team_id,
        team_name=selection.team_name,
    )
