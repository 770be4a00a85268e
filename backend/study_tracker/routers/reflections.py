"""Student reflections API router."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import ensure_owner_or_advisor, get_caller, require_advisor
from ..database import get_db
from ..models import CurrentUser, ReflectionType
from ..services.reflections import (
    create_reflection,
    get_all_reflections,
    get_reflection,
    get_user_reflections,
    update_reflection,
)

router = APIRouter(prefix="/api/reflections", tags=["reflections"])


class ReflectionFields(BaseModel):
    meeting_id: Optional[str] = None
    accomplishments: Optional[str] = None
    challenges: Optional[str] = None
    progress_rating: Optional[int] = Field(default=None, ge=1, le=5)
    questions_to_discuss: Optional[str] = None
    help_needed: Optional[str] = None
    priorities: Optional[str] = None
    key_insights: Optional[str] = None
    action_items: Optional[list[str]] = None
    resources: Optional[str] = None
    next_goals: Optional[str] = None
    target_date: Optional[datetime] = None
    success_metrics: Optional[str] = None


class CreateReflectionRequest(ReflectionFields):
    type: ReflectionType = ReflectionType.PRE_MEETING


class ReflectionResponse(BaseModel):
    id: str
    user_id: str
    type: str
    meeting_id: Optional[str]
    accomplishments: str
    challenges: str
    progress_rating: Optional[int]
    questions_to_discuss: str
    help_needed: str
    priorities: str
    key_insights: str
    action_items: list[str]
    resources: str
    next_goals: str
    target_date: Optional[datetime]
    success_metrics: str
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=list[ReflectionResponse])
async def list_reflections(
    student_id: Optional[str] = None,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """The caller's reflections, newest first, or another student's for advisors."""
    target = student_id or user.id
    ensure_owner_or_advisor(user, target)
    return [ReflectionResponse.model_validate(r) for r in await get_user_reflections(db, target)]


@router.get("/all", response_model=list[ReflectionResponse])
async def list_all_reflections(
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    return [ReflectionResponse.model_validate(r) for r in await get_all_reflections(db)]


@router.post("", response_model=ReflectionResponse)
async def create_student_reflection(
    request: CreateReflectionRequest,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    data = request.model_dump()
    data["type"] = request.type.value
    try:
        reflection = await create_reflection(db, user.id, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ReflectionResponse.model_validate(reflection)


@router.patch("/{reflection_id}", response_model=ReflectionResponse)
async def update_student_reflection(
    reflection_id: str,
    request: ReflectionFields,
    user: CurrentUser = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Partial update of one of the caller's reflections."""
    reflection = await get_reflection(db, reflection_id)
    if reflection is None:
        raise HTTPException(status_code=404, detail="Reflection not found")
    if reflection.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed to change another student's reflection")

    try:
        reflection = await update_reflection(db, reflection_id, request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ReflectionResponse.model_validate(reflection)
