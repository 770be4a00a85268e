from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .constants import DEFAULT_CANCELATION_REASON, SOURCE_CALENDLY
from .models import MeetingStatus


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into naive local time.

    Args:
        value: Timestamp such as "2024-03-01T17:00:00.000000Z"

    Returns:
        Local datetime without tzinfo, or None if the value is missing or malformed
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def process_invitee_created(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Build a meeting row from an invitee.created payload.

    Args:
        payload: The "payload" object of the webhook event

    Returns:
        Dictionary ready for MeetingStore.create_meeting
    """
    scheduled_event = payload.get("scheduled_event") or {}

    return {
        "calendly_event_uuid": payload.get("uuid"),
        "calendly_event_uri": payload.get("uri"),
        "student_email": payload.get("email"),
        "student_name": payload.get("name"),
        "scheduled_date": parse_timestamp(scheduled_event.get("start_time")),
        "end_time": parse_timestamp(scheduled_event.get("end_time")),
        "event_name": scheduled_event.get("name"),
        "title": scheduled_event.get("name") or "",
        "status": MeetingStatus.SCHEDULED,
        "source": SOURCE_CALENDLY,
    }


def process_invitee_canceled(payload: dict[str, Any], canceled_at: datetime) -> dict[str, Any]:
    """Build the meeting patch for an invitee.canceled payload."""
    cancellation = payload.get("cancellation") or {}
    return {
        "status": MeetingStatus.CANCELLED,
        "canceled_at": canceled_at,
        "cancelation_reason": cancellation.get("reason") or DEFAULT_CANCELATION_REASON,
    }
