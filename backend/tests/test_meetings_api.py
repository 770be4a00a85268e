"""Tests for the meetings API endpoints."""

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from study_tracker import auth
from study_tracker.auth import DEFAULT_DEV_USER
from study_tracker.database import MeetingStore, ProjectGroup, UserProfile
from study_tracker.models import MeetingStatus


def days_from_today(days: int) -> datetime:
    return datetime.combine(date.today() + timedelta(days=days), datetime.min.time())


async def seed_roster(session: AsyncSession) -> None:
    session.add_all(
        [
            UserProfile(id="s1", name="Ada Lovelace"),
            UserProfile(id="s2", name="Alan Turing"),
            UserProfile(id="s3", name="Grace Hopper"),
            ProjectGroup(id="team1", name="Robotics", student_ids=["s1", "s2"]),
        ]
    )
    await session.commit()


class FakeSupabaseAuth:
    """Accepts a fixed set of tokens, like a configured Supabase project would."""

    def __init__(self, tokens: dict[str, str]):
        self.tokens = tokens

    def get_user(self, token):
        if token not in self.tokens:
            raise ValueError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[token]))


class TestListing:
    """Tests for GET /api/meetings and its advisor variants."""

    @pytest.mark.asyncio
    async def test_upcoming_bucket_for_caller(self, client: AsyncClient, store: MeetingStore):
        """Upcoming lists today and later for the caller only, with counts over all their meetings."""
        await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(-1)})
        today_id = await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(0)})
        later_id = await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(3)})
        await store.create_meeting({"student_id": "someone-else", "scheduled_date": days_from_today(1)})

        response = await client.get("/api/meetings", params={"bucket": "upcoming"})
        assert response.status_code == 200

        data = response.json()
        assert [m["id"] for m in data["meetings"]] == [today_id, later_id]
        assert data["meeting_counts"]["total"] == 3
        assert data["meeting_counts"]["past"] == 1
        assert data["attendance_counts"]["scheduled"] == 3

    @pytest.mark.asyncio
    async def test_overridden_meetings_are_hidden(self, client: AsyncClient, store: MeetingStore, advisor: str):
        """A meeting replaced by an advisor log no longer shows up in listings."""
        old_id = await store.create_meeting(
            {"student_id": "s1", "scheduled_date": days_from_today(-2), "status": MeetingStatus.PENDING_REVIEW}
        )
        response = await client.post(
            "/api/meetings/advisor-log",
            json={
                "mode": "single",
                "student_ids": ["s1"],
                "meeting_date": days_from_today(-2).date().isoformat(),
                "advisor_name": "Dr. Rivera",
            },
        )
        assert response.status_code == 200
        new_id = response.json()["logged"][0]["meeting_id"]

        response = await client.get("/api/meetings", params={"student_id": "s1"})
        ids = [m["id"] for m in response.json()["meetings"]]
        assert ids == [new_id]
        assert old_id not in ids

    @pytest.mark.asyncio
    async def test_needs_attention(self, client: AsyncClient, store: MeetingStore, advisor: str):
        """Pending-review meetings need attention; cancelled ones do not."""
        pending_id = await store.create_meeting(
            {"student_id": "s1", "scheduled_date": days_from_today(5), "status": MeetingStatus.PENDING_REVIEW}
        )
        await store.create_meeting(
            {"student_id": "s1", "scheduled_date": days_from_today(-5), "status": MeetingStatus.CANCELLED}
        )

        response = await client.get("/api/meetings/needs-attention")
        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == [pending_id]

    @pytest.mark.asyncio
    async def test_advisor_meetings(
        self, client: AsyncClient, test_session: AsyncSession, store: MeetingStore, advisor: str
    ):
        """Advisors see meetings they logged and meetings of students assigned to them."""
        test_session.add_all(
            [
                UserProfile(id="s1", name="Ada Lovelace", advisor_id=advisor),
                UserProfile(id="s2", name="Alan Turing", advisor_id="adv-2"),
            ]
        )
        await test_session.commit()

        assigned_id = await store.create_meeting({"student_id": "s1", "scheduled_date": days_from_today(-3)})
        logged_id = await store.create_advisor_meeting_log(
            {"student_id": "s2", "scheduled_date": days_from_today(-1)}, advisor
        )
        await store.create_meeting({"student_id": "s2", "scheduled_date": days_from_today(-2)})

        response = await client.get("/api/meetings/advisor")
        assert response.status_code == 200
        assert [m["id"] for m in response.json()["meetings"]] == [logged_id, assigned_id]


class TestAccessControl:
    """Role and ownership checks on the meetings routes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path, body",
        [
            ("/api/meetings/{id}/attendance", {"student_attended": True}),
            ("/api/meetings/{id}/feedback", {"feedback": "Nice"}),
        ],
    )
    async def test_students_cannot_confirm_or_give_feedback(
        self, client: AsyncClient, store: MeetingStore, path, body
    ):
        """Attendance confirmation and feedback are advisor-only."""
        meeting_id = await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(-1)})

        response = await client.post(path.format(id=meeting_id), json=body)
        assert response.status_code == 403

        meeting = await store.get_meeting(meeting_id)
        assert meeting.attendance_marked is False
        assert meeting.advisor_feedback == ""

    @pytest.mark.asyncio
    async def test_students_cannot_log_for_others(self, client: AsyncClient, test_session: AsyncSession):
        """Only advisors write meeting logs on a student's behalf."""
        await seed_roster(test_session)
        response = await client.post(
            "/api/meetings/advisor-log",
            json={"mode": "single", "student_ids": ["s1"], "meeting_date": "2024-03-15", "advisor_name": "Me"},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_students_cannot_see_needs_attention(self, client: AsyncClient):
        """The review queue spans every student, so it is advisor-only."""
        response = await client.get("/api/meetings/needs-attention")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_students_cannot_read_other_students(self, client: AsyncClient, store: MeetingStore):
        """A student asking for someone else's meetings is refused."""
        await store.create_meeting({"student_id": "s1", "scheduled_date": days_from_today(1)})
        response = await client.get("/api/meetings", params={"student_id": "s1"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_student_can_name_themselves(self, client: AsyncClient):
        """Passing one's own id is the same as passing none."""
        response = await client.get("/api/meetings", params={"student_id": DEFAULT_DEV_USER})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_token_is_rejected_when_auth_is_configured(
        self, client: AsyncClient, store: MeetingStore, test_session: AsyncSession, monkeypatch
    ):
        """With Supabase configured, a bad token gets 401 instead of the development user."""
        test_session.add(UserProfile(id="adv-9", name="Dr. Okafor", user_type="advisor"))
        await test_session.commit()
        monkeypatch.setattr(
            auth, "supabase_client", SimpleNamespace(auth=FakeSupabaseAuth({"good-token": "adv-9"}))
        )
        meeting_id = await store.create_meeting({"student_id": "s1", "scheduled_date": days_from_today(-1)})

        response = await client.post(
            f"/api/meetings/{meeting_id}/attendance",
            json={"student_attended": True},
            headers={"Authorization": "Bearer garbage"},
        )
        assert response.status_code == 401

        response = await client.post(f"/api/meetings/{meeting_id}/attendance", json={"student_attended": True})
        assert response.status_code == 401

        response = await client.post(
            f"/api/meetings/{meeting_id}/attendance",
            json={"student_attended": True},
            headers={"Authorization": "Bearer good-token"},
        )
        assert response.status_code == 200
        assert response.json()["attendance_marked"] is True


class TestStudentActions:
    """Tests for the routes students use on their own meetings."""

    @pytest.mark.asyncio
    async def test_self_logged_meeting_awaits_review(self, client: AsyncClient):
        """A self-logged meeting is stored as pending-review for the caller."""
        response = await client.post(
            "/api/meetings", json={"scheduled_date": "2024-03-15", "title": "Weekly check-in"}
        )
        assert response.status_code == 200

        meeting = response.json()
        assert meeting["student_id"] == DEFAULT_DEV_USER
        assert meeting["status"] == "pending-review"
        assert meeting["source"] == "manual"
        assert meeting["student_self_reported"] is True
        assert meeting["attendance_marked"] is False
        assert meeting["scheduled_date"].startswith("2024-03-15T00:00:00")

    @pytest.mark.asyncio
    async def test_student_attendance(self, client: AsyncClient, store: MeetingStore):
        """A legacy spelling is accepted and stored canonically, without confirming."""
        meeting_id = await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(-1)})

        response = await client.post(
            f"/api/meetings/{meeting_id}/student-attendance", json={"status": "no-show"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "missed"
        assert response.json()["attendance_marked"] is False

    @pytest.mark.asyncio
    async def test_student_attendance_rejects_bad_status(self, client: AsyncClient, store: MeetingStore):
        """Only attended/missed can be self-reported."""
        meeting_id = await store.create_meeting({"student_id": DEFAULT_DEV_USER, "scheduled_date": days_from_today(-1)})

        response = await client.post(
            f"/api/meetings/{meeting_id}/student-attendance", json={"status": "cancelled"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_student_attendance_unknown_meeting(self, client: AsyncClient):
        """Reporting on a missing meeting is a 404."""
        response = await client.post(
            "/api/meetings/missing/student-attendance", json={"status": "attended"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_student_attendance_on_someone_elses_meeting(self, client: AsyncClient, store: MeetingStore):
        """Students can only report on their own meetings."""
        meeting_id = await store.create_meeting({"student_id": "s1", "scheduled_date": days_from_today(-1)})

        response = await client.post(
            f"/api/meetings/{meeting_id}/student-attendance", json={"status": "missed"}
        )
        assert response.status_code == 403
        assert (await store.get_meeting(meeting_id)).status == "scheduled"

    @pytest.mark.asyncio
    async def test_student_attendance_after_advisor_confirmation(self, client: AsyncClient, store: MeetingStore):
        """A confirmed outcome cannot be overwritten by a self-report."""
        meeting_id = await store.create_meeting(
            {
                "student_id": DEFAULT_DEV_USER,
                "scheduled_date": days_from_today(-1),
                "status": MeetingStatus.COMPLETED,
                "attendance_marked": True,
            }
        )

        response = await client.post(
            f"/api/meetings/{meeting_id}/student-attendance", json={"status": "missed"}
        )
        assert response.status_code == 409

        meeting = await store.get_meeting(meeting_id)
        assert meeting.status == "attended"
        assert meeting.student_self_reported is False


class TestAdvisorActions:
    """Tests for advisor confirmation, feedback and meeting logs."""

    @pytest.mark.asyncio
    async def test_mark_attendance(self, client: AsyncClient, store: MeetingStore, advisor: str):
        """Confirming attendance sets the outcome and the notes."""
        meeting_id = await store.create_meeting(
            {"student_id": "s1", "scheduled_date": days_from_today(-1), "status": MeetingStatus.PENDING_REVIEW}
        )

        response = await client.post(
            f"/api/meetings/{meeting_id}/attendance",
            json={"student_attended": True, "notes": "Discussed thesis scope"},
        )
        assert response.status_code == 200
        meeting = response.json()
        assert meeting["status"] == "attended"
        assert meeting["attendance_marked"] is True
        assert meeting["attendance_notes"] == "Discussed thesis scope"

    @pytest.mark.asyncio
    async def test_mark_attendance_unknown_meeting(self, client: AsyncClient, advisor: str):
        """Confirming a missing meeting is a 404."""
        response = await client.post("/api/meetings/missing/attendance", json={"student_attended": True})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_feedback(self, client: AsyncClient, store: MeetingStore, advisor: str):
        """Feedback is stored without touching the status."""
        meeting_id = await store.create_meeting({"student_id": "s1", "scheduled_date": days_from_today(-1)})

        response = await client.post(
            f"/api/meetings/{meeting_id}/feedback",
            json={"feedback": "Solid week", "action_items": ["Email mentor"], "next_steps": "Prototype"},
        )
        assert response.status_code == 200
        meeting = response.json()
        assert meeting["advisor_feedback"] == "Solid week"
        assert meeting["action_items"] == ["Email mentor"]
        assert meeting["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_team_log_fans_out(
        self, client: AsyncClient, test_session: AsyncSession, store: MeetingStore, advisor: str
    ):
        """A team log writes one missed meeting per member and nothing for others."""
        await seed_roster(test_session)

        response = await client.post(
            "/api/meetings/advisor-log",
            json={
                "mode": "team",
                "team_id": "team1",
                "meeting_date": "2024-03-15",
                "advisor_name": "Dr. Rivera",
                "attended": False,
            },
        )
        assert response.status_code == 200

        data = response.json()
        assert sorted(entry["student_id"] for entry in data["logged"]) == ["s1", "s2"]
        assert data["failed"] == []
        assert data["team_name"] == "Robotics"

        for student_id in ("s1", "s2"):
            meetings = await store.get_user_meetings(student_id)
            assert [m.status for m in meetings] == ["missed"]
            assert meetings[0].advisor_id == advisor
        assert await store.get_user_meetings("s3") == []

    @pytest.mark.asyncio
    async def test_duplicate_selection_reports_every_log(
        self, client: AsyncClient, test_session: AsyncSession, store: MeetingStore, advisor: str
    ):
        """Picking a student twice yields two response entries, each with its own meeting id."""
        await seed_roster(test_session)

        response = await client.post(
            "/api/meetings/advisor-log",
            json={
                "mode": "multiple",
                "student_ids": ["s1", "s1"],
                "meeting_date": "2024-03-15",
                "advisor_name": "Dr. Rivera",
            },
        )
        assert response.status_code == 200

        logged = response.json()["logged"]
        assert [entry["student_id"] for entry in logged] == ["s1", "s1"]
        assert len({entry["meeting_id"] for entry in logged}) == 2
        assert len(await store.get_user_meetings("s1")) == 2

    @pytest.mark.asyncio
    async def test_log_with_empty_selection(self, client: AsyncClient, advisor: str):
        """A team that does not exist selects nobody, which is a 400."""
        response = await client.post(
            "/api/meetings/advisor-log",
            json={"mode": "team", "team_id": "nope", "meeting_date": "2024-03-15", "advisor_name": "Dr. Rivera"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_log_with_bad_date(self, client: AsyncClient, advisor: str):
        """A date that is not YYYY-MM-DD is a 400."""
        response = await client.post(
            "/api/meetings/advisor-log",
            json={"mode": "multiple", "student_ids": ["s1"], "meeting_date": "soon", "advisor_name": "Dr. Rivera"},
        )
        assert response.status_code == 400
