from __future__ import annotations

import logging
import os
import uuid
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .constants import LOGGED_BY_ADVISOR, LOGGED_BY_STUDENT
from .models import GoalStatus, MeetingRecord, MeetingStatus, ReflectionType, UserRole

# Load environment variables from .env file
load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    logger.warning(
        "DATABASE_URL not set. Database features will be unavailable. "
        "Use a postgresql+asyncpg:// connection string."
    )
    DATABASE_URL = None


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Meeting(Base):
    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    student_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=MeetingStatus.SCHEDULED.value)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meeting_link: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    logged_by: Mapped[str] = mapped_column(String(20), nullable=False, default=LOGGED_BY_STUDENT)
    advisor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    advisor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    attendance_marked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    student_attended: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    advisor_attended: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    attendance_marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    student_self_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    student_attendance_marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    attendance_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    advisor_feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    action_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    next_steps: Mapped[str] = mapped_column(Text, nullable=False, default="")
    feedback_added_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    overridden_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    overridden_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    calendly_event_uuid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    calendly_event_uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    student_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    student_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    event_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_meetings_student_date", "student_id", "scheduled_date"),
    )


class UserProfile(Base):
    """A student or advisor. The id is the auth provider's user id."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)
    advisor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Goal(Base):
    __tablename__ = "goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    target_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    success_metrics: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=GoalStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Reflection(Base):
    """Pre- or post-meeting reflection written by a student."""

    __tablename__ = "reflections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=ReflectionType.PRE_MEETING.value)
    meeting_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Pre-meeting
    accomplishments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    challenges: Mapped[str] = mapped_column(Text, nullable=False, default="")
    progress_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    questions_to_discuss: Mapped[str] = mapped_column(Text, nullable=False, default="")
    help_needed: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priorities: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Post-meeting
    key_insights: Mapped[str] = mapped_column(Text, nullable=False, default="")
    action_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    resources: Mapped[str] = mapped_column(Text, nullable=False, default="")
    next_goals: Mapped[str] = mapped_column(Text, nullable=False, default="")
    target_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    success_metrics: Mapped[str] = mapped_column(Text, nullable=False, default="")

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ProjectGroup(Base):
    __tablename__ = "project_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    advisor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    student_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class AdvisorNote(Base):
    __tablename__ = "advisor_notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    advisor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    student_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    student_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    student_names: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    team_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    team_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CalendlyEvent(Base):
    """Raw webhook events, kept for audit."""

    __tablename__ = "calendly_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# Create async engine (if URL is configured)
engine = None
async_session_maker = None

if DATABASE_URL:
    engine = create_async_engine(DATABASE_URL, echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Initialize database by creating all tables."""
    if not engine:
        logger.warning("Database not configured, skipping initialization")
        return

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def get_db() -> AsyncSession:
    """Dependency for FastAPI routes to get database session."""
    if not async_session_maker:
        from fastapi import HTTPException
        raise HTTPException(
            status_code=503,
            detail="Database not configured. Set DATABASE_URL environment variable."
        )
    async with async_session_maker() as session:
        yield session


class MeetingNotFoundError(LookupError):
    """Raised when a meeting id does not exist in the store."""

    def __init__(self, meeting_id: str):
        super().__init__(f"Meeting not found: {meeting_id}")
        self.meeting_id = meeting_id


def _storable(data: dict[str, Any]) -> dict[str, Any]:
    """Unwrap enum values so rows hold plain strings."""
    return {key: value.value if isinstance(value, MeetingStatus) else value for key, value in data.items()}


class MeetingStore:
    """
    Pass-through access to the meetings table.

    Reads come back as MeetingRecord objects with normalized statuses.
    A failed commit rolls the session back and re-raises.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def create_meeting(self, data: dict[str, Any]) -> str:
        """Insert a meeting row and return its id."""
        values = _storable(data)
        values.setdefault("logged_by", LOGGED_BY_STUDENT)
        meeting = Meeting(**values)
        self.db.add(meeting)
        await self._commit()
        await self.db.refresh(meeting)
        logger.info(f"Created meeting {meeting.id} for student {meeting.student_id}")
        return meeting.id

    async def update_meeting(self, meeting_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update to a meeting."""
        meeting = await self.db.get(Meeting, meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)

        for key, value in _storable(patch).items():
            setattr(meeting, key, value)
        meeting.updated_at = datetime.now()
        await self._commit()
        logger.debug(f"Updated meeting {meeting_id}: {sorted(patch)}")

    async def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        meeting = await self.db.get(Meeting, meeting_id)
        return MeetingRecord.model_validate(meeting) if meeting else None

    async def get_user_meetings(self, user_id: str) -> list[MeetingRecord]:
        """All meetings for a student, newest first, overridden ones included."""
        stmt = (
            select(Meeting)
            .where(Meeting.student_id == user_id)
            .order_by(Meeting.scheduled_date.desc())
        )
        result = await self.db.execute(stmt)
        return [MeetingRecord.model_validate(m) for m in result.scalars().all()]

    async def get_all_meetings(self) -> list[MeetingRecord]:
        stmt = select(Meeting).order_by(Meeting.scheduled_date.desc())
        result = await self.db.execute(stmt)
        return [MeetingRecord.model_validate(m) for m in result.scalars().all()]

    async def get_advisor_meetings(self, advisor_id: str) -> list[MeetingRecord]:
        """Meetings an advisor logged, plus meetings of the students assigned to them."""
        assigned = select(UserProfile.id).where(UserProfile.advisor_id == advisor_id)
        stmt = (
            select(Meeting)
            .where(or_(Meeting.advisor_id == advisor_id, Meeting.student_id.in_(assigned)))
            .order_by(Meeting.scheduled_date.desc())
        )
        result = await self.db.execute(stmt)
        return [MeetingRecord.model_validate(m) for m in result.scalars().all()]

    async def create_advisor_meeting_log(self, data: dict[str, Any], advisor_id: str) -> str:
        """Insert a meeting written by an advisor on a student's behalf."""
        return await self.create_meeting(
            {**data, "logged_by": LOGGED_BY_ADVISOR, "advisor_id": advisor_id}
        )

    async def find_active_meetings_on_day(self, student_id: str, day: date) -> list[MeetingRecord]:
        """Non-overridden meetings for a student whose date falls on the given day."""
        start_of_day = datetime.combine(day, time.min)
        end_of_day = datetime.combine(day, time.max)
        stmt = select(Meeting).where(
            Meeting.student_id == student_id,
            Meeting.scheduled_date >= start_of_day,
            Meeting.scheduled_date <= end_of_day,
            Meeting.overridden_by.is_(None),
        )
        result = await self.db.execute(stmt)
        return [MeetingRecord.model_validate(m) for m in result.scalars().all()]

    async def get_meeting_by_calendly_uuid(self, event_uuid: str) -> Optional[MeetingRecord]:
        stmt = select(Meeting).where(Meeting.calendly_event_uuid == event_uuid).limit(1)
        result = await self.db.execute(stmt)
        meeting = result.scalar_one_or_none()
        return MeetingRecord.model_validate(meeting) if meeting else None


async def get_students(session: AsyncSession, advisor_id: Optional[str] = None) -> list[UserProfile]:
    """Student profiles ordered by name, optionally only those assigned to an advisor."""
    stmt = (
        select(UserProfile)
        .where(UserProfile.user_type == UserRole.STUDENT.value)
        .order_by(UserProfile.name)
    )
    if advisor_id:
        stmt = stmt.where(UserProfile.advisor_id == advisor_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_student_by_email(session: AsyncSession, email: str) -> Optional[UserProfile]:
    stmt = (
        select(UserProfile)
        .where(UserProfile.email == email, UserProfile.user_type == UserRole.STUDENT.value)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_project_groups(session: AsyncSession, advisor_id: Optional[str] = None) -> list[ProjectGroup]:
    """Project groups, newest first."""
    stmt = select(ProjectGroup).order_by(ProjectGroup.created_at.desc())
    if advisor_id:
        stmt = stmt.where(ProjectGroup.advisor_id == advisor_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_user_profile(session: AsyncSession, user_id: str) -> Optional[UserProfile]:
    return await session.get(UserProfile, user_id)
