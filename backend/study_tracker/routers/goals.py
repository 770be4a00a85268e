"""Student goals API router."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import ensure_owner_or_advisor, get_caller, require_advisor
from ..database import Goal, get_db
from ..models import CurrentUser, GoalStatus
from ..services.goals import (
    create_goal,
    delete_goal,
    get_all_goals,
    get_goal,
    get_user_goals,
    goal_display_status,
    update_goal,
)

router = APIRouter(prefix="/api/goals", tags=["goals"])


class CreateGoalRequest(BaseModel):
    title: str
    description: str = ""
    category: str = ""
    target_date: Optional[date] = None
    success_metrics: str = ""
    status: GoalStatus = GoalStatus.ACTIVE


class UpdateGoalRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    success_metrics: Optional[str] = None
    status: Optional[GoalStatus] = None


class GoalResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    category: str
    target_date: Optional[datetime]
    success_metrics: str
    status: str
    display_status: str = ""
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def _to_response(goal: Goal) -> GoalResponse:
    response = GoalResponse.model_validate(goal)
    return response.model_copy(update={"display_status": goal_display_status(goal, date.today())})


async def _get_own_goal(db: AsyncSession, goal_id: str, user: CurrentUser) -> Goal:
    goal = await get_goal(db, goal_id)
    if goal is None:
        raise HTTPException(status_code=404, detail="Goal not found")
    if goal.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to change another student's goal")
    return goal


@router.get("", response_model=list[GoalResponse])
async def list_goals(
    student_id: Optional[str] = None,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """The caller's goals, or another student's for advisors."""
    target = student_id or user.id
    ensure_owner_or_advisor(user, target)
    return [_to_response(g) for g in await get_user_goals(db, target)]


@router.get("/all", response_model=list[GoalResponse])
async def list_all_goals(
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    return [_to_response(g) for g in await get_all_goals(db)]


@router.post("", response_model=GoalResponse)
async def create_student_goal(
    request: CreateGoalRequest,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    try:
        goal = await create_goal(db, user.id, request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(goal)


@router.patch("/{goal_id}", response_model=GoalResponse)
async def update_student_goal(
    goal_id: str,
    request: UpdateGoalRequest,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Partial update of one of the caller's goals."""
    await _get_own_goal(db, goal_id, user)
    try:
        goal = await update_goal(db, goal_id, request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(goal)


@router.delete("/{goal_id}")
async def delete_student_goal(
    goal_id: str,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    await _get_own_goal(db, goal_id, user)
    await delete_goal(db, goal_id)
    return {"message": "Goal deleted successfully"}
