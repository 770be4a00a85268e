"""Pre- and post-meeting reflections written by students."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import DEFAULT_PROGRESS_RATING, MAX_PROGRESS_RATING, MIN_PROGRESS_RATING
from ..database import Reflection
from ..models import ReflectionType

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "type",
    "meeting_id",
    "accomplishments",
    "challenges",
    "progress_rating",
    "questions_to_discuss",
    "help_needed",
    "priorities",
    "key_insights",
    "action_items",
    "resources",
    "next_goals",
    "target_date",
    "success_metrics",
)


class ReflectionNotFoundError(LookupError):
    pass


def validate_reflection(values: dict[str, Any]) -> list[str]:
    """
    Problems with a reflection, empty when it can be saved.

    Pre-meeting reflections need accomplishments and at least one
    question; post-meeting ones need key insights and at least one
    action item.
    """
    errors = []
    try:
        kind = ReflectionType(values.get("type") or ReflectionType.PRE_MEETING.value)
    except ValueError:
        return [f"Unknown reflection type: {values.get('type')}"]

    if kind is ReflectionType.PRE_MEETING:
        if not (values.get("accomplishments") or "").strip():
            errors.append("Please describe what you accomplished")
        if not (values.get("questions_to_discuss") or "").strip():
            errors.append("Please add at least one question to discuss")
    else:
        if not (values.get("key_insights") or "").strip():
            errors.append("Please capture key insights from the meeting")
        if not [item for item in values.get("action_items") or [] if item.strip()]:
            errors.append("Please add at least one action item")

    rating = values.get("progress_rating")
    if rating is not None and not MIN_PROGRESS_RATING <= rating <= MAX_PROGRESS_RATING:
        errors.append(f"Progress rating must be between {MIN_PROGRESS_RATING} and {MAX_PROGRESS_RATING}")
    return errors


def _editable(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}


async def create_reflection(
    db: AsyncSession,
    user_id: str,
    data: dict[str, Any],
    clock: Callable[[], datetime] = datetime.now,
) -> Reflection:
    """
    Save a reflection for a student.

    Raises:
        ValueError: If validate_reflection reports any problem
    """
    values = _editable(data)
    values.setdefault("type", ReflectionType.PRE_MEETING.value)
    if values["type"] == ReflectionType.PRE_MEETING.value:
        values.setdefault("progress_rating", DEFAULT_PROGRESS_RATING)

    errors = validate_reflection(values)
    if errors:
        raise ValueError("; ".join(errors))

    reflection = Reflection(user_id=user_id, completed_at=clock(), **values)
    db.add(reflection)
    await db.commit()
    await db.refresh(reflection)

    logger.info(f"Created {reflection.type} reflection {reflection.id} for {user_id}")
    return reflection


async def get_reflection(db: AsyncSession, reflection_id: str) -> Optional[Reflection]:
    return await db.get(Reflection, reflection_id)


async def update_reflection(db: AsyncSession, reflection_id: str, patch: dict[str, Any]) -> Reflection:
    """Partial update; the merged reflection must still pass validation."""
    reflection = await db.get(Reflection, reflection_id)
    if reflection is None:
        raise ReflectionNotFoundError(f"Reflection not found: {reflection_id}")

    changes = _editable(patch)
    merged = {field: getattr(reflection, field) for field in EDITABLE_FIELDS}
    merged.update(changes)
    errors = validate_reflection(merged)
    if errors:
        raise ValueError("; ".join(errors))

    for key, value in changes.items():
        setattr(reflection, key, value)
    reflection.updated_at = datetime.now()
    await db.commit()
    await db.refresh(reflection)
    return reflection


async def get_user_reflections(db: AsyncSession, user_id: str) -> list[Reflection]:
    """A student's reflections, newest first."""
    stmt = (
        select(Reflection)
        .where(Reflection.user_id == user_id)
        .order_by(Reflection.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_all_reflections(db: AsyncSession) -> list[Reflection]:
    result = await db.execute(select(Reflection).order_by(Reflection.created_at.desc()))
    return list(result.scalars().all())
