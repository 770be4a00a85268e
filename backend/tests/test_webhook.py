"""Tests for the Calendly webhook endpoint."""

import json

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_tracker import webhook
from study_tracker.database import CalendlyEvent, Meeting, UserProfile
from study_tracker.processor import parse_timestamp

SECRET = "test-webhook-secret"


def invitee_event(event_type: str, uuid: str = "evt-123", **payload_fields) -> dict:
    payload = {
        "uuid": uuid,
        "uri": f"https://api.calendly.com/scheduled_events/{uuid}",
        "email": "ada@example.edu",
        "name": "Ada Lovelace",
        "scheduled_event": {
            "name": "Advising check-in",
            "start_time": "2024-03-15T17:00:00.000000Z",
            "end_time": "2024-03-15T17:30:00.000000Z",
        },
    }
    payload.update(payload_fields)
    return {"event": event_type, "payload": payload, "created_at": "2024-03-10T12:00:00.000000Z"}


async def post_signed(client: AsyncClient, event: dict, secret: str = SECRET):
    body = json.dumps(event).encode("utf-8")
    return await client.post(
        "/webhook/calendly",
        content=body,
        headers={
            "Content-Type": "application/json",
            "Calendly-Webhook-Signature": webhook.compute_signature(secret, body),
        },
    )


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(webhook, "WEBHOOK_SECRET", SECRET)
    return SECRET


class TestSignature:
    """Tests for webhook signature verification."""

    @pytest.mark.asyncio
    async def test_rejects_non_post(self, client: AsyncClient):
        """Test that only POST is accepted."""
        response = await client.get("/webhook/calendly")
        assert response.status_code == 405

    @pytest.mark.asyncio
    async def test_rejects_bad_signature(self, client: AsyncClient, webhook_secret):
        """Test that a wrongly signed body is rejected."""
        response = await post_signed(client, invitee_event("invitee.created"), secret="wrong")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_missing_signature(self, client: AsyncClient, webhook_secret):
        """Test that an unsigned body is rejected when a secret is set."""
        response = await client.post("/webhook/calendly", json=invitee_event("invitee.created"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_skips_verification_without_secret(self, client: AsyncClient, monkeypatch):
        """Test that verification is skipped when no secret is configured."""
        monkeypatch.setattr(webhook, "WEBHOOK_SECRET", "")
        response = await client.post("/webhook/calendly", json=invitee_event("invitee.created"))
        assert response.status_code == 200


class TestEvents:
    """Tests for Calendly event handling."""

    @pytest.mark.asyncio
    async def test_invitee_created_schedules_meeting(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test that a booking creates a scheduled meeting for the matching student."""
        student = UserProfile(id="s1", name="Ada Lovelace", email="ada@example.edu")
        test_session.add(student)
        await test_session.commit()

        response = await post_signed(client, invitee_event("invitee.created"))
        assert response.status_code == 200
        assert response.json() == {"message": "Event processed successfully"}

        result = await test_session.execute(select(Meeting))
        meeting = result.scalar_one()
        assert meeting.status == "scheduled"
        assert meeting.source == "calendly"
        assert meeting.student_id == "s1"
        assert meeting.calendly_event_uuid == "evt-123"
        assert meeting.event_name == "Advising check-in"
        assert meeting.scheduled_date == parse_timestamp("2024-03-15T17:00:00.000000Z")

        events = (await test_session.execute(select(CalendlyEvent))).scalars().all()
        assert [e.event_type for e in events] == ["invitee.created"]

    @pytest.mark.asyncio
    async def test_unknown_invitee_has_no_student(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test that bookings from unknown emails keep the email only."""
        response = await post_signed(client, invitee_event("invitee.created", email="stranger@example.com"))
        assert response.status_code == 200

        meeting = (await test_session.execute(select(Meeting))).scalar_one()
        assert meeting.student_id is None
        assert meeting.student_email == "stranger@example.com"

    @pytest.mark.asyncio
    async def test_invitee_canceled_cancels_meeting(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test that a cancellation marks the meeting cancelled with its reason."""
        await post_signed(client, invitee_event("invitee.created"))
        response = await post_signed(
            client,
            invitee_event("invitee.canceled", cancellation={"reason": "Schedule conflict"}),
        )
        assert response.status_code == 200

        meeting = (await test_session.execute(select(Meeting))).scalar_one()
        assert meeting.status == "cancelled"
        assert meeting.cancelation_reason == "Schedule conflict"
        assert meeting.canceled_at is not None

    @pytest.mark.asyncio
    async def test_cancel_without_reason_uses_default(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test the default cancellation reason."""
        await post_signed(client, invitee_event("invitee.created"))
        await post_signed(client, invitee_event("invitee.canceled"))

        meeting = (await test_session.execute(select(Meeting))).scalar_one()
        assert meeting.cancelation_reason == "Student canceled"

    @pytest.mark.asyncio
    async def test_cancel_for_unknown_event_is_acknowledged(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test that cancelling an unknown booking still returns 200."""
        response = await post_signed(client, invitee_event("invitee.canceled", uuid="never-booked"))
        assert response.status_code == 200
        assert (await test_session.execute(select(Meeting))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_unhandled_event_is_stored(
        self, client: AsyncClient, test_session: AsyncSession, webhook_secret
    ):
        """Test that unhandled event types are kept in the event log."""
        response = await post_signed(client, {"event": "routing_form_submission.created", "payload": {}})
        assert response.status_code == 200

        events = (await test_session.execute(select(CalendlyEvent))).scalars().all()
        assert [e.event_type for e in events] == ["routing_form_submission.created"]

    @pytest.mark.asyncio
    async def test_internal_failure_returns_500(self, client: AsyncClient, monkeypatch, webhook_secret):
        """Test that processing errors return a generic 500."""
        async def explode(db, event):
            raise RuntimeError("store down")

        monkeypatch.setattr(webhook, "process_calendly_event", explode)
        response = await post_signed(client, invitee_event("invitee.created"))
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    @pytest.mark.asyncio
    async def test_invalid_json_returns_400(self, client: AsyncClient, monkeypatch):
        """Test that an unparseable body is a 400."""
        monkeypatch.setattr(webhook, "WEBHOOK_SECRET", "")
        response = await client.post(
            "/webhook/calendly", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_non_object_payload_returns_400(self, client: AsyncClient, webhook_secret):
        """Test that a payload that is not an object is a 400."""
        response = await post_signed(client, {"event": "invitee.created", "payload": ["not", "an", "object"]})
        assert response.status_code == 400
