"""Advisor notes API router."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import require_advisor
from ..database import AdvisorNote, get_db, get_project_groups, get_students
from ..models import CurrentUser, SelectionSet, Student, Team
from ..selection import resolve
from ..services.media import MediaFile, MediaUploader, get_media_uploader
from ..services.notes import (
    NoteNotFoundError,
    attach_media,
    create_note,
    delete_note,
    get_advisor_notes,
    update_note,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["notes"])


class CreateNoteRequest(BaseModel):
    mode: str = "single"
    student_ids: list[str] = Field(default_factory=list)
    team_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None


class UpdateNoteRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    # Re-tag only when mode is given
    mode: Optional[str] = None
    student_ids: list[str] = Field(default_factory=list)
    team_id: Optional[str] = None


class NoteResponse(BaseModel):
    id: str
    advisor_id: str
    student_ids: list[str]
    student_names: list[str]
    team_id: Optional[str]
    team_name: Optional[str]
    title: str
    content: str
    media: list[dict]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FailedUpload(BaseModel):
    name: str
    error: str


class MediaUploadResponse(BaseModel):
    note: NoteResponse
    failed: list[FailedUpload]


def get_uploader() -> MediaUploader:
    uploader = get_media_uploader()
    if uploader is None:
        raise HTTPException(
            status_code=503,
            detail="Media storage not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.",
        )
    return uploader


async def _resolve_selection(
    db: AsyncSession, mode: str, student_ids: list[str], team_id: Optional[str]
) -> SelectionSet:
    students = [Student.model_validate(s) for s in await get_students(db)]
    teams = [Team.model_validate(t) for t in await get_project_groups(db)]
    return resolve(mode, student_ids, team_id, students, teams)


async def _get_own_note(db: AsyncSession, note_id: str, advisor: CurrentUser) -> AdvisorNote:
    note = await db.get(AdvisorNote, note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Note not found")
    if note.advisor_id != advisor.id:
        raise HTTPException(status_code=403, detail="Not allowed to change another advisor's note")
    return note


@router.post("", response_model=NoteResponse)
async def create_advisor_note(
    request: CreateNoteRequest,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    """Create a note tagged to one student, several students or a team."""
    selection = await _resolve_selection(db, request.mode, request.student_ids, request.team_id)

    try:
        note = await create_note(db, advisor.id, selection, request.title, request.content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return NoteResponse.model_validate(note)


@router.get("", response_model=list[NoteResponse])
async def list_advisor_notes(
    student_id: Optional[str] = None,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    """Notes written by the caller, optionally only those tagged to a student."""
    notes = await get_advisor_notes(db, advisor.id, student_id)
    return [NoteResponse.model_validate(n) for n in notes]


@router.patch("/{note_id}", response_model=NoteResponse)
async def update_advisor_note(
    note_id: str,
    request: UpdateNoteRequest,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    """Edit a note's title or content, or re-tag it when a mode is given."""
    await _get_own_note(db, note_id, advisor)

    selection = None
    if request.mode is not None:
        selection = await _resolve_selection(db, request.mode, request.student_ids, request.team_id)

    try:
        note = await update_note(db, note_id, request.title, request.content, selection)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return NoteResponse.model_validate(note)


@router.delete("/{note_id}")
async def delete_advisor_note(
    note_id: str,
    advisor: CurrentUser = Depends(require_advisor),
    db: AsyncSession = Depends(get_db),
):
    await _get_own_note(db, note_id, advisor)
    await delete_note(db, note_id)
    return {"message": "Note deleted successfully"}


@router.post("/{note_id}/media", response_model=MediaUploadResponse)
async def upload_note_media(
    note_id: str,
    files: list[UploadFile] = File(...),
    advisor: CurrentUser = Depends(require_advisor),
    uploader: MediaUploader = Depends(get_uploader),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Upload attachments to a note, one at a time.

    A failed upload is reported back; the note and the other
    attachments are kept.
    """
    await _get_own_note(db, note_id, advisor)

    media_files = [
        MediaFile(
            name=f.filename or "",
            content_type=f.content_type or "",
            data=await f.read(),
        )
        for f in files
    ]

    # Storage client calls block
    report = await run_in_threadpool(uploader.upload_all, media_files, note_id, advisor.id)

    try:
        note = await attach_media(db, note_id, report.results)
    except NoteNotFoundError:
        raise HTTPException(status_code=404, detail="Note not found")

    return MediaUploadResponse(
        note=NoteResponse.model_validate(note),
        failed=[FailedUpload(name=f.target, error=f.error) for f in report.failed],
    )
