from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .database import CalendlyEvent, MeetingStore, get_db, get_student_by_email
from .processor import parse_timestamp, process_invitee_canceled, process_invitee_created

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_SECRET = os.getenv("CALENDLY_WEBHOOK_SECRET", "")


def compute_signature(secret: str, body: bytes) -> str:
    """Hex-encoded HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


async def verify_calendly_signature(
    request: Request,
    calendly_webhook_signature: str | None = Header(None),
) -> None:
    """
    Verify the Calendly-Webhook-Signature header.

    For local dev: skips verification if CALENDLY_WEBHOOK_SECRET is not set.
    For production: requires a matching signature when the secret is set.
    """
    if not WEBHOOK_SECRET:
        logger.warning("CALENDLY_WEBHOOK_SECRET not set, skipping signature verification")
        return

    body = await request.body()
    expected = compute_signature(WEBHOOK_SECRET, body)
    if not calendly_webhook_signature or not hmac.compare_digest(calendly_webhook_signature, expected):
        logger.warning("Invalid webhook signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


async def process_calendly_event(db: AsyncSession, event: dict[str, Any]) -> None:
    """Store the raw event, then apply it to the meetings table."""
    event_type = event.get("event", "")
    payload = event.get("payload") or {}

    db.add(
        CalendlyEvent(
            event_type=event_type,
            payload=payload,
            created_at=parse_timestamp(event.get("created_at")),
        )
    )
    await db.commit()

    if event_type == "invitee.created":
        await handle_invitee_created(db, payload)
    elif event_type == "invitee.canceled":
        await handle_invitee_canceled(db, payload)
    else:
        logger.info(f"Unhandled event type: {event_type}")


async def handle_invitee_created(db: AsyncSession, payload: dict[str, Any]) -> str:
    """Create a scheduled meeting for a new booking, linked to the student if the email is known."""
    meeting_data = process_invitee_created(payload)

    email = payload.get("email")
    if email:
        student = await get_student_by_email(db, email)
        if student:
            meeting_data["student_id"] = student.id

    meeting_id = await MeetingStore(db).create_meeting(meeting_data)
    logger.info(
        f"Created meeting {meeting_id} from Calendly event {payload.get('uuid')} ({email})"
    )
    return meeting_id


async def handle_invitee_canceled(db: AsyncSession, payload: dict[str, Any]) -> None:
    """Mark the meeting booked under this Calendly event as cancelled."""
    store = MeetingStore(db)
    event_uuid = payload.get("uuid")
    meeting = await store.get_meeting_by_calendly_uuid(event_uuid) if event_uuid else None

    if meeting is None:
        logger.warning(f"Meeting not found for canceled Calendly event {event_uuid}")
        return

    await store.update_meeting(meeting.id, process_invitee_canceled(payload, datetime.now()))
    logger.info(f"Canceled meeting {meeting.id} from Calendly event {event_uuid}")


@router.post("/calendly")
async def webhook_calendly(
    request: Request,
    _: None = Depends(verify_calendly_signature),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Webhook endpoint to receive booking events from Calendly.

    Body: {"event": str, "payload": {...}, "created_at": ISO-8601}
    """
    body = await request.body()
    try:
        event = json.loads(body)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid JSON: {str(e)}",
        )

    if not isinstance(event, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Event must be a JSON object, got {type(event).__name__}",
        )

    payload = event.get("payload") or {}
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Event payload must be a JSON object, got {type(payload).__name__}",
        )
    logger.info(f"Received Calendly webhook event {event.get('event')} ({payload.get('uuid')})")

    try:
        await process_calendly_event(db, event)
    except Exception as e:
        logger.error(f"Error processing Calendly webhook: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    return {"message": "Event processed successfully"}
