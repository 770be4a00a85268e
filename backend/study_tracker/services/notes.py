"""Advisor notes tagged to one student, several students or a team."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import DEFAULT_NOTE_TITLE
from ..database import AdvisorNote
from ..models import SelectionSet
from .media import MediaItem

logger = logging.getLogger(__name__)


class NoteNotFoundError(LookupError):
    pass


async def create_note(
    db: AsyncSession,
    advisor_id: str,
    selection: SelectionSet,
    title: Optional[str] = None,
    content: Optional[str] = None,
) -> AdvisorNote:
    """
    Create a note for every student in the selection.

    The selection is flattened onto the note; the first student is also
    kept in student_id for single-student lookups.

    Raises:
        ValueError: If the selection targets no students
    """
    if selection.is_empty:
        raise ValueError("Select at least one student to tag this note to")

    note = AdvisorNote(
        advisor_id=advisor_id,
        student_id=selection.student_ids[0],
        student_ids=list(selection.student_ids),
        student_names=list(selection.student_names),
        team_id=selection.team_id,
        team_name=selection.team_name,
        title=title or DEFAULT_NOTE_TITLE,
        content=content or "",
        media=[],
    )
    db.add(note)
    await db.commit()
    await db.refresh(note)

    logger.info(f"Created note {note.id} for {len(selection.student_ids)} student(s)")
    return note


async def attach_media(db: AsyncSession, note_id: str, items: Sequence[MediaItem]) -> AdvisorNote:
    """Append uploaded media metadata to a note."""
    note = await db.get(AdvisorNote, note_id)
    if note is None:
        raise NoteNotFoundError(f"Note not found: {note_id}")

    # Reassign so the JSON column is flagged as modified
    note.media = [*(note.media or []), *(item.model_dump() for item in items)]
    note.updated_at = datetime.now()
    await db.commit()
    await db.refresh(note)
    return note


async def get_advisor_notes(
    db: AsyncSession,
    advisor_id: str,
    student_id: Optional[str] = None,
) -> list[AdvisorNote]:
    """Notes written by an advisor, newest first, optionally only those tagged to a student."""
    stmt = (
        select(AdvisorNote)
        .where(AdvisorNote.advisor_id == advisor_id)
        .order_by(AdvisorNote.updated_at.desc())
    )
    result = await db.execute(stmt)
    notes = list(result.scalars().all())

    if student_id:
        notes = [n for n in notes if student_id in (n.student_ids or [])]
    return notes


async def update_note(
    db: AsyncSession,
    note_id: str,
    title: Optional[str] = None,
    content: Optional[str] = None,
    selection: Optional[SelectionSet] = None,
) -> AdvisorNote:
    """
    Edit a note's text and, when a selection is given, re-tag it.

    Fields left as None are unchanged. Re-tagging replaces the whole
    tag set, team included.

    Raises:
        NoteNotFoundError: If the note does not exist
        ValueError: If the new selection targets no students
    """
    note = await db.get(AdvisorNote, note_id)
    if note is None:
        raise NoteNotFoundError(f"Note not found: {note_id}")

    if selection is not None:
        if selection.is_empty:
            raise ValueError("Select at least one student to tag this note to")
        note.student_id = selection.student_ids[0]
        note.student_ids = list(selection.student_ids)
        note.student_names = list(selection.student_names)
        note.team_id = selection.team_id
        note.team_name = selection.team_name
    if title is not None:
        note.title = title or DEFAULT_NOTE_TITLE
    if content is not None:
        note.content = content

    note.updated_at = datetime.now()
    await db.commit()
    await db.refresh(note)
    logger.info(f"Updated note {note_id}")
    return note


async def delete_note(db: AsyncSession, note_id: str) -> None:
    """Delete a note. Uploaded attachments stay in storage."""
    note = await db.get(AdvisorNote, note_id)
    if note is None:
        raise NoteNotFoundError(f"Note not found: {note_id}")

    await db.delete(note)
    await db.commit()
    logger.info(f"Deleted note {note_id}")
