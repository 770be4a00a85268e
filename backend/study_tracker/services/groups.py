"""Project groups: named sets of students an advisor can tag notes and logs to."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import ProjectGroup

logger = logging.getLogger(__name__)

# Fields an update may touch
EDITABLE_FIELDS = ("name", "description", "student_ids")


class GroupNotFoundError(LookupError):
    pass


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Project group name is required")
    return name


def _dedupe(student_ids: list[str]) -> list[str]:
    return list(dict.fromkeys(student_ids))


async def create_group(
    db: AsyncSession,
    advisor_id: str,
    name: str,
    description: str = "",
    student_ids: Optional[list[str]] = None,
) -> ProjectGroup:
    """
    Create a project group owned by an advisor.

    Member ids keep their order; repeats are dropped.

    Raises:
        ValueError: If the name is blank
    """
    group = ProjectGroup(
        name=_clean_name(name),
        description=description or "",
        advisor_id=advisor_id,
        student_ids=_dedupe(student_ids or []),
    )
    db.add(group)
    await db.commit()
    await db.refresh(group)

    logger.info(f"Created project group {group.id} ({group.name}) with {len(group.student_ids)} student(s)")
    return group


async def get_group(db: AsyncSession, group_id: str) -> Optional[ProjectGroup]:
    return await db.get(ProjectGroup, group_id)


async def update_group(db: AsyncSession, group_id: str, patch: dict[str, Any]) -> ProjectGroup:
    """Apply a partial update; keys outside EDITABLE_FIELDS are ignored."""
    group = await db.get(ProjectGroup, group_id)
    if group is None:
        raise GroupNotFoundError(f"Project group not found: {group_id}")

    for key, value in patch.items():
        if key not in EDITABLE_FIELDS or value is None:
            continue
        if key == "name":
            value = _clean_name(value)
        elif key == "student_ids":
            value = _dedupe(value)
        setattr(group, key, value)

    group.updated_at = datetime.now()
    await db.commit()
    await db.refresh(group)
    return group


async def delete_group(db: AsyncSession, group_id: str) -> None:
    """Delete a group. Notes already tagged to it keep their copied team fields."""
    group = await db.get(ProjectGroup, group_id)
    if group is None:
        raise GroupNotFoundError(f"Project group not found: {group_id}")

    await db.delete(group)
    await db.commit()
    logger.info(f"Deleted project group {group_id}")
