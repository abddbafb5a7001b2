"""
Tests for interview scheduling, calendar sync and panel feedback.
"""

from datetime import datetime, timedelta, timezone

import pytest

from api.services import candidates as candidate_service
from api.services import interviews as interview_service
from api.services import notifications as notification_service
from api.services import oauth_tokens
from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from core.utils.datetime import now
from tests.helpers import FakeGoogle

WHEN = datetime(2026, 11, 3, 9, 30, tzinfo=timezone.utc)


def interview_data(application, panel, **overrides):
    data = {
        "job_candidate_id": application["id"],
        "scheduled_at": WHEN.isoformat(),
        "duration": 60,
        "timezone": "Asia/Kolkata",
        "mode": "in_person",
        "location": "Bangalore office",
        "notes": "Focus on system design",
        "panel_member_ids": [u.id for u in panel],
    }
    data.update(overrides)
    return data


async def connect_google(user):
    await oauth_tokens.store_token(
        user.id, "google", "access-token", "refresh-token", now() + timedelta(hours=1)
    )


class TestValidateInterviewData:

    def test_required(self):
        errors = interview_service.validate_interview_data({})

        assert set(errors) == {
            "job_candidate_id", "scheduled_at", "duration", "timezone", "panel_member_ids", "mode",
        }

    @pytest.mark.parametrize("duration", [0, -30, "60", True, None])
    def test_duration(self, duration):
        errors = interview_service.validate_interview_data({"duration": duration}, partial=True)

        assert errors == {"duration": ["Duration must be a positive number of minutes"]}

    def test_in_person_needs_location(self):
        errors = interview_service.validate_interview_data({"mode": "in_person", "location": " "}, partial=True)

        assert errors == {"location": ["Location is required for in-person interviews"]}

    @pytest.mark.parametrize("url", ["", "zoom.us/j/1", "ftp://example.com/room"])
    def test_custom_url_needs_http_url(self, url):
        errors = interview_service.validate_interview_data({"mode": "custom_url", "location": url}, partial=True)

        assert "location" in errors

    def test_unknown_mode(self):
        assert "mode" in interview_service.validate_interview_data({"mode": "phone"}, partial=True)

    def test_unparseable_time(self):
        errors = interview_service.validate_interview_data({"scheduled_at": "next tuesday"}, partial=True)

        assert errors == {"scheduled_at": ["A valid scheduled time is required"]}

    def test_video_modes_need_no_location(self):
        assert interview_service.validate_interview_data({"mode": "google_meet"}, partial=True) == {}


class TestCreateInterview:

    async def test_in_person(self, admin, recruiter, hiring_manager, application):
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter, hiring_manager]), admin.id
        )

        assert interview["status"] == "scheduled"
        assert interview["candidate_name"] == "Jane Doe"
        assert interview["job_title"] == "Backend Engineer"
        assert interview["scheduled_at"] == WHEN.isoformat()
        assert interview["meeting_link"] is None
        assert [m["user_id"] for m in interview["panel_members"]] == [recruiter.id, hiring_manager.id]
        assert interview["feedback"] == []

    async def test_timeline_and_panel_notified(self, admin, recruiter, application):
        interview = await interview_service.create_interview(
            interview_data(application, [admin, recruiter]), admin.id
        )

        timeline = await candidate_service.get_activity_timeline(application["id"])
        assert timeline[0]["activity_type"] == "interview_scheduled"
        assert timeline[0]["metadata"]["interview_id"] == interview["id"]

        inbox = await notification_service.get_notifications(recruiter.id)
        assert [n["type"] for n in inbox["notifications"]] == ["interview_scheduled"]
        assert await notification_service.get_unread_count(admin.id) == 0

    async def test_custom_url_becomes_meeting_link(self, admin, recruiter, application):
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter], mode="custom_url", location="https://zoom.us/j/123"),
            admin.id,
        )

        assert interview["meeting_link"] == "https://zoom.us/j/123"

    async def test_google_meet_link(self, admin, recruiter, application, fake_google):
        await connect_google(admin)

        interview = await interview_service.create_interview(
            interview_data(application, [recruiter], mode="google_meet", location=None), admin.id
        )

        assert interview["meeting_link"] == FakeGoogle.MEET_LINK
        assert (await interview_service.get_interview(interview["id"]))["meeting_link"] == FakeGoogle.MEET_LINK
        [request] = fake_google.calls("POST")
        assert request.headers["Authorization"] == "Bearer access-token"

    async def test_google_meet_without_connection(self, admin, recruiter, application, fake_google):
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter], mode="google_meet", location=None), admin.id
        )

        assert interview["meeting_link"] is None
        assert fake_google.requests == []

    async def test_panel_calendars_receive_events(self, admin, recruiter, hiring_manager, application, fake_google):
        await connect_google(recruiter)

        await interview_service.create_interview(
            interview_data(application, [recruiter, hiring_manager]), admin.id
        )

        assert len(fake_google.calls("POST")) == 1

    async def test_unknown_panel_member(self, admin, application):
        data = interview_data(application, [admin])
        data["panel_member_ids"] = [admin.id, 9999]

        with pytest.raises(ValidationError) as exc_info:
            await interview_service.create_interview(data, admin.id)

        assert exc_info.value.errors == {"panel_member_ids": ["Panel members not found: 9999"]}

    async def test_panel_member_from_other_company(self, admin, other_admin, application):
        with pytest.raises(ValidationError) as exc_info:
            await interview_service.create_interview(interview_data(application, [admin, other_admin]), admin.id)

        assert exc_info.value.errors == {"panel_member_ids": [f"Panel members not found: {other_admin.id}"]}

    async def test_unknown_application(self, admin):
        with pytest.raises(NotFoundError):
            await interview_service.create_interview(
                interview_data({"id": 777}, [admin]), admin.id
            )

    async def test_job_lookup(self, admin, job, application):
        interview = await interview_service.create_interview(interview_data(application, [admin]), admin.id)

        assert await interview_service.get_interview_job_id(interview["id"]) == job["id"]


class TestUpdateInterview:

    async def test_reschedule_logged(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)
        later = WHEN + timedelta(days=1)

        updated = await interview_service.update_interview(
            interview["id"], {"scheduled_at": later.isoformat()}, admin.id
        )

        assert updated["scheduled_at"] == later.isoformat()
        timeline = await candidate_service.get_activity_timeline(application["id"])
        assert timeline[0]["activity_type"] == "interview_rescheduled"
        assert timeline[0]["metadata"]["old_scheduled_at"] == WHEN.isoformat()

    async def test_same_time_not_logged(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)

        await interview_service.update_interview(interview["id"], {"notes": "Bring laptop"}, admin.id)

        timeline = await candidate_service.get_activity_timeline(application["id"])
        assert timeline[0]["activity_type"] == "interview_scheduled"

    async def test_calendar_sync(self, admin, recruiter, hiring_manager, application, fake_google):
        await connect_google(recruiter)
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter, hiring_manager]), admin.id
        )

        await interview_service.update_interview(interview["id"], {"duration": 90}, admin.id)
        assert len(fake_google.calls("PATCH")) == 1

        await interview_service.update_interview(
            interview["id"], {"panel_member_ids": [hiring_manager.id]}, admin.id
        )
        [delete] = fake_google.calls("DELETE")
        assert delete.url.path.endswith("/evt-1")

    async def test_switch_to_custom_url(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)

        updated = await interview_service.update_interview(
            interview["id"], {"mode": "custom_url", "location": "https://meet.example.com/room"}, admin.id
        )

        assert updated["mode"] == "custom_url"
        assert updated["meeting_link"] == "https://meet.example.com/room"

    async def test_invalid_update(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)

        with pytest.raises(ValidationError) as exc_info:
            await interview_service.update_interview(interview["id"], {"location": "", "duration": 0})

        assert set(exc_info.value.errors) == {"location", "duration"}

    async def test_cancelled_cannot_change(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)
        await interview_service.cancel_interview(interview["id"])

        with pytest.raises(ValidationError):
            await interview_service.update_interview(interview["id"], {"duration": 30})

    async def test_unknown(self):
        with pytest.raises(NotFoundError):
            await interview_service.update_interview(404, {"duration": 30})


class TestCancelInterview:

    async def test_cancel(self, admin, recruiter, application, fake_google):
        await connect_google(recruiter)
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)

        cancelled = await interview_service.cancel_interview(interview["id"], "Candidate withdrew", admin.id)

        assert cancelled["status"] == "cancelled"
        assert cancelled["cancel_reason"] == "Candidate withdrew"
        assert len(fake_google.calls("DELETE")) == 1
        timeline = await candidate_service.get_activity_timeline(application["id"])
        assert timeline[0]["description"] == "Interview cancelled. Reason: Candidate withdrew"

    async def test_cancel_twice(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)
        await interview_service.cancel_interview(interview["id"])

        with pytest.raises(ValidationError) as exc_info:
            await interview_service.cancel_interview(interview["id"])

        assert exc_info.value.errors == {"status": ["Interview is already cancelled"]}


class TestListInterviews:

    async def test_filters(self, company, other_company, admin, recruiter, hiring_manager, application):
        first = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)
        second = await interview_service.create_interview(
            interview_data(application, [hiring_manager], scheduled_at=(WHEN + timedelta(days=2)).isoformat()),
            admin.id,
        )
        await interview_service.cancel_interview(first["id"])

        everything = await interview_service.list_interviews(company.id)
        scheduled = await interview_service.list_interviews(company.id, status="scheduled")
        mine = await interview_service.list_interviews(company.id, panel_member_id=recruiter.id)
        upcoming = await interview_service.list_interviews(company.id, date_from=WHEN + timedelta(days=1))

        assert [i["id"] for i in everything] == [first["id"], second["id"]]
        assert [i["id"] for i in scheduled] == [second["id"]]
        assert [i["id"] for i in mine] == [first["id"]]
        assert [i["id"] for i in upcoming] == [second["id"]]
        assert await interview_service.list_interviews(other_company.id) == []

    async def test_unknown_status(self, company):
        with pytest.raises(ValidationError):
            await interview_service.list_interviews(company.id, status="postponed")


class TestFeedback:

    @pytest.mark.parametrize("rating,recommendation,field", [
        (0, "hire", "rating"),
        (6, "hire", "rating"),
        (True, "hire", "rating"),
        (3, "maybe", "recommendation"),
    ])
    async def test_validation(self, admin, application, rating, recommendation, field):
        interview = await interview_service.create_interview(interview_data(application, [admin]), admin.id)

        with pytest.raises(ValidationError) as exc_info:
            await interview_service.submit_feedback(interview["id"], admin.id, rating, recommendation)

        assert field in exc_info.value.errors

    async def test_only_panel_members(self, admin, recruiter, application):
        interview = await interview_service.create_interview(interview_data(application, [recruiter]), admin.id)

        with pytest.raises(ForbiddenError):
            await interview_service.submit_feedback(interview["id"], admin.id, 4, "hire")

    async def test_resubmission_replaces(self, admin, recruiter, hiring_manager, application):
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter, hiring_manager]), admin.id
        )

        await interview_service.submit_feedback(interview["id"], recruiter.id, 2, "no_hire")
        feedback = await interview_service.submit_feedback(
            interview["id"], recruiter.id, 5, "strong_hire", "Excellent design skills"
        )

        details = await interview_service.get_interview(interview["id"])
        assert len(details["feedback"]) == 1
        assert feedback["rating"] == 5
        assert feedback["recommendation"] == "strong_hire"
        assert details["status"] == "scheduled"

    async def test_completes_when_all_submitted(self, admin, recruiter, hiring_manager, application):
        interview = await interview_service.create_interview(
            interview_data(application, [recruiter, hiring_manager]), admin.id
        )

        await interview_service.submit_feedback(interview["id"], recruiter.id, 4, "hire")
        await interview_service.submit_feedback(interview["id"], hiring_manager.id, 3, "hire")

        assert (await interview_service.get_interview(interview["id"]))["status"] == "completed"

    async def test_cancelled_interview(self, admin, application):
        interview = await interview_service.create_interview(interview_data(application, [admin]), admin.id)
        await interview_service.cancel_interview(interview["id"])

        with pytest.raises(ValidationError):
            await interview_service.submit_feedback(interview["id"], admin.id, 4, "hire")
