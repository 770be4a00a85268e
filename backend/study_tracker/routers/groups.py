"""Project groups API router (advisors only)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import require_advisor
from ..database import ProjectGroup, get_db, get_project_groups
from ..models import CurrentUser
from ..services.groups import create_group, delete_group, get_group, update_group

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["groups"])


class CreateGroupRequest(BaseModel):
    name: str
    description: str = ""
    student_ids: list[str] = Field(default_factory=list)


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    student_ids: Optional[list[str]] = None


class GroupResponse(BaseModel):
    id: str
    name: str
    description: str
    advisor_id: Optional[str]
    student_ids: list[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def _get_own_group(db: AsyncSession, group_id: str, advisor: CurrentUser) -> ProjectGroup:
    group = await get_group(db, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Project group not found")
    if group.advisor_id != advisor.id:
        raise HTTPException(status_code=403, detail="Not allowed to change another advisor's group")
    return group


@router.get("", response_model=list[GroupResponse])
async def list_groups(
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    """The caller's project groups, newest first."""
    return [GroupResponse.model_validate(g) for g in await get_project_groups(db, advisor.id)]


@router.get("/{group_id}", response_model=GroupResponse)
async def get_project_group(
    group_id: str,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    group = await get_group(db, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Project group not found")
    return GroupResponse.model_validate(group)


@router.post("", response_model=GroupResponse)
async def create_project_group(
    request: CreateGroupRequest,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    try:
        group = await create_group(db, advisor.id, request.name, request.description, request.student_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return GroupResponse.model_validate(group)


@router.patch("/{group_id}", response_model=GroupResponse)
async def update_project_group(
    group_id: str,
    request: UpdateGroupRequest,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    """Rename a group, change its description or replace its members."""
    await _get_own_group(db, group_id, advisor)
    try:
        group = await update_group(db, group_id, request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return GroupResponse.model_validate(group)


@router.delete("/{group_id}")
async def delete_project_group(
    group_id: str,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    await _get_own_group(db, group_id, advisor)
    await delete_group(db, group_id)
    logger.info(f"Advisor {advisor.id} deleted project group {group_id}")
    return {"message": "Project group deleted successfully"}
