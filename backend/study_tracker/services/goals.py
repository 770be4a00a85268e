"""Student goals and their display status."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import Goal
from ..models import GoalStatus

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "category", "target_date", "success_metrics", "status")

# Display labels, overdue first
LABEL_OVERDUE = "Overdue"
LABEL_UNKNOWN = "Unknown"
STATUS_LABELS = {
    GoalStatus.NOT_STARTED: "Not Started",
    GoalStatus.ACTIVE: "Active",
    GoalStatus.COMPLETED: "Done",
}


class GoalNotFoundError(LookupError):
    pass


def _status_of(goal: Goal) -> str:
    return goal.status or GoalStatus.ACTIVE.value


def is_goal_overdue(goal: Goal, today: date) -> bool:
    """A goal is overdue once its target day has passed without being completed."""
    if goal.target_date is None:
        return False
    return goal.target_date.date() < today and _status_of(goal) != GoalStatus.COMPLETED.value


def goal_display_status(goal: Goal, today: date) -> str:
    if is_goal_overdue(goal, today):
        return LABEL_OVERDUE
    try:
        return STATUS_LABELS[GoalStatus(_status_of(goal))]
    except ValueError:
        return LABEL_UNKNOWN


def _check_fields(values: dict[str, Any], today: date) -> dict[str, Any]:
    if "title" in values:
        title = (values["title"] or "").strip()
        if not title:
            raise ValueError("Goal title is required")
        values["title"] = title

    if values.get("status") is not None:
        values["status"] = GoalStatus(values["status"]).value

    target = values.get("target_date")
    if isinstance(target, date) and not isinstance(target, datetime):
        target = datetime.combine(target, datetime.min.time())
        values["target_date"] = target
    if target is not None and target.date() < today:
        raise ValueError("Target date cannot be in the past")
    return values


async def create_goal(db: AsyncSession, user_id: str, data: dict[str, Any], today: Optional[date] = None) -> Goal:
    """
    Create a goal for a student.

    Raises:
        ValueError: If the title is blank, the status is unknown or the
            target date is before today
    """
    values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    values.setdefault("title", "")
    values = _check_fields(values, today or date.today())

    goal = Goal(user_id=user_id, **values)
    db.add(goal)
    await db.commit()
    await db.refresh(goal)

    logger.info(f"Created goal {goal.id} for {user_id}")
    return goal


async def get_goal(db: AsyncSession, goal_id: str) -> Optional[Goal]:
    return await db.get(Goal, goal_id)


async def update_goal(db: AsyncSession, goal_id: str, patch: dict[str, Any], today: Optional[date] = None) -> Goal:
    """Partial update. A new target date is held to the same not-in-the-past rule."""
    goal = await db.get(Goal, goal_id)
    if goal is None:
        raise GoalNotFoundError(f"Goal not found: {goal_id}")

    values = {k: v for k, v in patch.items() if k in EDITABLE_FIELDS and v is not None}
    for key, value in _check_fields(values, today or date.today()).items():
        setattr(goal, key, value)

    goal.updated_at = datetime.now()
    await db.commit()
    await db.refresh(goal)
    return goal


async def delete_goal(db: AsyncSession, goal_id: str) -> None:
    goal = await db.get(Goal, goal_id)
    if goal is None:
        raise GoalNotFoundError(f"Goal not found: {goal_id}")

    await db.delete(goal)
    await db.commit()
    logger.info(f"Deleted goal {goal_id}")


async def get_user_goals(db: AsyncSession, user_id: str) -> list[Goal]:
    """A student's goals by target date, soonest first; undated goals last."""
    stmt = (
        select(Goal)
        .where(Goal.user_id == user_id)
        .order_by(Goal.target_date.is_(None), Goal.target_date.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_all_goals(db: AsyncSession) -> list[Goal]:
    """Every student's goals, newest first."""
    result = await db.execute(select(Goal).order_by(Goal.created_at.desc()))
    return list(result.scalars().all())
