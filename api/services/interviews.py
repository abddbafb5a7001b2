"""
Interview service functions.

Scheduling writes the interview and its panel in one transaction. Timeline
entries, panel notifications, calendar events and the invitation email
follow the commit; their failures are logged and never undo the interview.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from core.integrations.calendar import Attendee, CalendarEventInput
from core.integrations.email import get_email_service
from core.utils.datetime import ensure_utc, parse_datetime
from core.utils.validators import validate_url
from database.engine import AsyncSessionLocal
from database.models.candidates import ActivityType, Candidate, JobCandidate
from database.models.interviews import (
    Interview,
    InterviewFeedback,
    InterviewMode,
    InterviewPanelMember,
    InterviewStatus,
    Recommendation,
)
from database.models.jobs import Job
from database.models.notifications import NotificationType
from database.models.users import User
from api.services import calendar as calendar_service
from api.services import notifications
from api.services.candidates import record_activity

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return parse_datetime(value)
    return None


def validate_interview_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, List[str]]:
    """
    Field errors for interview input.

    With ``partial`` only the fields present are checked; mode and location
    are always checked together.
    """
    errors: Dict[str, List[str]] = {}

    def present(key: str) -> bool:
        return not partial or key in data

    if not partial and not data.get("job_candidate_id"):
        errors["job_candidate_id"] = ["Job candidate ID is required"]

    if present("scheduled_at") and _coerce_datetime(data.get("scheduled_at")) is None:
        errors["scheduled_at"] = ["A valid scheduled time is required"]

    if present("duration"):
        duration = data.get("duration")
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            errors["duration"] = ["Duration must be a positive number of minutes"]

    if present("timezone") and not (data.get("timezone") or "").strip():
        errors["timezone"] = ["Timezone is required"]

    if present("panel_member_ids") and not data.get("panel_member_ids"):
        errors["panel_member_ids"] = ["At least one panel member is required"]

    if present("mode"):
        try:
            mode = InterviewMode(data.get("mode"))
        except ValueError:
            errors["mode"] = [f"Mode must be one of: {', '.join(m.value for m in InterviewMode)}"]
            mode = None

        location = (data.get("location") or "").strip()
        if mode == InterviewMode.IN_PERSON and not location:
            errors["location"] = ["Location is required for in-person interviews"]
        elif mode == InterviewMode.CUSTOM_URL:
            valid, _ = validate_url(location)
            if not valid:
                errors["location"] = ["A valid http(s) meeting URL is required for custom URL interviews"]

    return errors


async def _check_panel(session: AsyncSession, panel_member_ids: List[int], company_id: int) -> List[int]:
    """Panel members must be users of the job's company."""
    ids = list(dict.fromkeys(panel_member_ids))
    found = set((await session.execute(
        select(User.id).where(User.id.in_(ids), User.company_id == company_id)
    )).scalars().all())
    missing = [uid for uid in ids if uid not in found]
    if missing:
        raise ValidationError(
            {"panel_member_ids": [f"Panel members not found: {', '.join(map(str, missing))}"]}
        )
    return ids


async def _panel_ids(session: AsyncSession, interview_id: int) -> List[int]:
    result = await session.execute(
        select(InterviewPanelMember.user_id)
        .where(InterviewPanelMember.interview_id == interview_id)
        .order_by(InterviewPanelMember.id)
    )
    return list(result.scalars().all())


async def _context(session: AsyncSession, job_candidate_id: int) -> tuple[JobCandidate, Candidate, Job]:
    row = (await session.execute(
        select(JobCandidate, Candidate, Job)
        .join(Candidate, Candidate.id == JobCandidate.candidate_id)
        .join(Job, Job.id == JobCandidate.job_id)
        .where(JobCandidate.id == job_candidate_id)
    )).first()
    if not row:
        raise NotFoundError("Job candidate")
    return row


async def _interview_dict(session: AsyncSession, interview: Interview) -> Dict[str, Any]:
    jc, candidate, job = await _context(session, interview.job_candidate_id)
    panel = (await session.execute(
        select(User.id, User.name, User.email)
        .join(InterviewPanelMember, InterviewPanelMember.user_id == User.id)
        .where(InterviewPanelMember.interview_id == interview.id)
        .order_by(InterviewPanelMember.id)
    )).all()
    feedback = (await session.execute(
        select(InterviewFeedback).where(InterviewFeedback.interview_id == interview.id)
    )).scalars().all()

    return {
        "id": interview.id,
        "job_candidate_id": interview.job_candidate_id,
        "candidate_id": candidate.id,
        "candidate_name": candidate.name,
        "candidate_email": candidate.email,
        "job_id": job.id,
        "job_title": job.title,
        "scheduled_at": ensure_utc(interview.scheduled_at).isoformat(),
        "duration": interview.duration,
        "timezone": interview.timezone,
        "mode": interview.mode.value if hasattr(interview.mode, "value") else interview.mode,
        "location": interview.location,
        "meeting_link": interview.meeting_link,
        "notes": interview.notes,
        "status": interview.status.value if hasattr(interview.status, "value") else interview.status,
        "cancel_reason": interview.cancel_reason,
        "scheduled_by": interview.scheduled_by,
        "panel_members": [
            {"user_id": uid, "name": name, "email": email} for uid, name, email in panel
        ],
        "feedback": [f.to_dict() for f in feedback],
        "created_at": interview.created_at.isoformat() if interview.created_at else None,
        "updated_at": interview.updated_at.isoformat() if interview.updated_at else None,
    }


async def _load_interview(session: AsyncSession, interview_id: int) -> Interview:
    interview = await session.get(Interview, interview_id)
    if not interview:
        raise NotFoundError("Interview")
    return interview


async def get_interview_job_id(interview_id: int) -> int:
    """Job of an interview; used by routes for access checks."""
    async with AsyncSessionLocal() as session:
        interview = await _load_interview(session, interview_id)
        jc = await session.get(JobCandidate, interview.job_candidate_id)
        return jc.job_id


def _event_input(details: Dict[str, Any], attendees: List[Attendee]) -> CalendarEventInput:
    start = ensure_utc(_coerce_datetime(details["scheduled_at"]))
    description = f"Interview with {details['candidate_name']} for {details['job_title']}"
    if details.get("meeting_link"):
        description += f"\nJoin: {details['meeting_link']}"
    elif details.get("location"):
        description += f"\nLocation: {details['location']}"
    return CalendarEventInput(
        title=f"Interview: {details['candidate_name']} - {details['job_title']}",
        start_time=start,
        end_time=start + timedelta(minutes=details["duration"]),
        timezone=details["timezone"],
        description=description,
        attendees=attendees,
        request_id=f"interview-{details['id']}",
    )


def _attendees(details: Dict[str, Any]) -> List[Attendee]:
    attendees = [Attendee(email=m["email"], name=m["name"]) for m in details["panel_members"]]
    attendees.append(Attendee(email=details["candidate_email"], name=details["candidate_name"]))
    return attendees


async def _after_schedule(details: Dict[str, Any], scheduled_by: int) -> Optional[str]:
    """Timeline, notifications, calendar events and invitation email. Returns a meeting link."""
    interview_id = details["id"]
    when = details["scheduled_at"]

    try:
        async with AsyncSessionLocal() as session:
            await record_activity(
                session,
                details["job_candidate_id"],
                ActivityType.INTERVIEW_SCHEDULED,
                f"Interview scheduled for {when}",
                {"interview_id": interview_id, "scheduled_at": when, "mode": details["mode"]},
                created_by=scheduled_by,
            )
            await notifications.add_notifications(
                session,
                [m["user_id"] for m in details["panel_members"] if m["user_id"] != scheduled_by],
                NotificationType.INTERVIEW_SCHEDULED,
                "Interview Scheduled",
                f"You are on the panel for {details['candidate_name']}'s interview "
                f"for {details['job_title']} on {when}",
                entity_type="interview",
                entity_id=interview_id,
            )
            await session.commit()
    except Exception as e:
        logger.error(f"Failed to record interview {interview_id} activity: {e}")

    meeting_link = None
    try:
        event = _event_input(details, _attendees(details))
        meeting_link = await calendar_service.generate_meeting_link(
            details["mode"], scheduled_by, event, interview_id=interview_id,
        )
        if meeting_link:
            event.description += f"\nJoin: {meeting_link}"
        others = [m["user_id"] for m in details["panel_members"]]
        if meeting_link:
            others = [uid for uid in others if uid != scheduled_by]
        link = await calendar_service.create_calendar_events_for_interview(interview_id, others, event)
        meeting_link = meeting_link or link
    except Exception as e:
        logger.error(f"Failed to create calendar events for interview {interview_id}: {e}")

    if meeting_link and details["mode"] in (InterviewMode.GOOGLE_MEET.value, InterviewMode.MICROSOFT_TEAMS.value):
        async with AsyncSessionLocal() as session:
            interview = await session.get(Interview, interview_id)
            interview.meeting_link = meeting_link
            await session.commit()

    try:
        await get_email_service().send_interview_invitation(
            details["candidate_email"],
            details["candidate_name"],
            details["job_title"],
            when,
            details["duration"],
            details["mode"],
            meeting_link=meeting_link or details.get("meeting_link"),
            location=details.get("location"),
        )
    except Exception as e:
        logger.error(f"Failed to send interview invitation for {interview_id}: {e}")

    return meeting_link


async def create_interview(data: Dict[str, Any], scheduled_by: int) -> Dict[str, Any]:
    """
    Schedule an interview.

    Args:
        data: job_candidate_id, scheduled_at, duration (minutes), timezone,
            mode, location, notes, panel_member_ids
        scheduled_by: User scheduling the interview

    Raises:
        ValidationError: Invalid fields or unknown panel members
        NotFoundError: Unknown job candidate
    """
    errors = validate_interview_data(data)
    if errors:
        raise ValidationError(errors)

    mode = InterviewMode(data["mode"])
    location = (data.get("location") or "").strip() or None

    async with AsyncSessionLocal() as session:
        _, _, job = await _context(session, data["job_candidate_id"])
        panel_ids = await _check_panel(session, data["panel_member_ids"], job.company_id)

        interview = Interview(
            job_candidate_id=data["job_candidate_id"],
            scheduled_at=_coerce_datetime(data["scheduled_at"]),
            duration=data["duration"],
            timezone=data["timezone"].strip(),
            mode=mode,
            location=location,
            meeting_link=location if mode == InterviewMode.CUSTOM_URL else None,
            notes=data.get("notes"),
            status=InterviewStatus.SCHEDULED,
            scheduled_by=scheduled_by,
        )
        session.add(interview)
        await session.flush()

        for user_id in panel_ids:
            session.add(InterviewPanelMember(interview_id=interview.id, user_id=user_id))
        await session.commit()

        details = await _interview_dict(session, interview)

    logger.info(f"Interview {details['id']} scheduled for job candidate {details['job_candidate_id']}")

    meeting_link = await _after_schedule(details, scheduled_by)
    if meeting_link and not details["meeting_link"]:
        details["meeting_link"] = meeting_link
    return details


async def update_interview(interview_id: int, data: Dict[str, Any], updated_by: Optional[int] = None) -> Dict[str, Any]:
    """
    Update time, duration, mode, location, notes or panel.

    Raises:
        NotFoundError: Unknown interview
        ValidationError: Cancelled interview or invalid fields
    """
    async with AsyncSessionLocal() as session:
        interview = await _load_interview(session, interview_id)
        if InterviewStatus(interview.status) == InterviewStatus.CANCELLED:
            raise ValidationError({"status": ["Cancelled interviews cannot be updated"]})

        current_mode = interview.mode.value if hasattr(interview.mode, "value") else interview.mode
        merged = dict(data)
        if "mode" in data or "location" in data:
            merged.setdefault("mode", current_mode)
            merged.setdefault("location", interview.location)
        errors = validate_interview_data(merged, partial=True)
        if errors:
            raise ValidationError(errors)

        old_time = ensure_utc(interview.scheduled_at)
        old_panel = await _panel_ids(session, interview_id)

        if "scheduled_at" in data:
            interview.scheduled_at = _coerce_datetime(data["scheduled_at"])
        if "duration" in data:
            interview.duration = data["duration"]
        if "timezone" in data:
            interview.timezone = data["timezone"].strip()
        if "mode" in merged:
            interview.mode = InterviewMode(merged["mode"])
            interview.location = (merged.get("location") or "").strip() or None
            if interview.mode == InterviewMode.CUSTOM_URL:
                interview.meeting_link = interview.location
            elif interview.mode == InterviewMode.IN_PERSON:
                interview.meeting_link = None
        if "notes" in data:
            interview.notes = data["notes"]

        new_panel = old_panel
        if data.get("panel_member_ids") is not None:
            _, _, job = await _context(session, interview.job_candidate_id)
            new_panel = await _check_panel(session, data["panel_member_ids"], job.company_id)
            await session.execute(
                delete(InterviewPanelMember).where(InterviewPanelMember.interview_id == interview_id)
            )
            for user_id in new_panel:
                session.add(InterviewPanelMember(interview_id=interview_id, user_id=user_id))

        await session.commit()
        details = await _interview_dict(session, interview)

    time_changed = ensure_utc(_coerce_datetime(details["scheduled_at"])) != old_time
    removed = [uid for uid in old_panel if uid not in new_panel]
    added = [uid for uid in new_panel if uid not in old_panel]

    try:
        if time_changed:
            async with AsyncSessionLocal() as session:
                await record_activity(
                    session,
                    details["job_candidate_id"],
                    ActivityType.INTERVIEW_RESCHEDULED,
                    f"Interview rescheduled from {old_time.isoformat()} to {details['scheduled_at']}",
                    {
                        "interview_id": interview_id,
                        "old_scheduled_at": old_time.isoformat(),
                        "new_scheduled_at": details["scheduled_at"],
                    },
                    created_by=updated_by,
                )
                await session.commit()

        event = _event_input(details, _attendees(details))
        await calendar_service.update_calendar_events_for_interview(interview_id, event)
        if removed:
            await calendar_service.delete_calendar_events_for_interview(interview_id, removed)
        if added:
            await calendar_service.create_calendar_events_for_interview(interview_id, added, event)
    except Exception as e:
        logger.error(f"Failed to sync interview {interview_id} after update: {e}")

    return details


async def cancel_interview(interview_id: int, reason: Optional[str] = None, cancelled_by: Optional[int] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        interview = await _load_interview(session, interview_id)
        if InterviewStatus(interview.status) == InterviewStatus.CANCELLED:
            raise ValidationError({"status": ["Interview is already cancelled"]})

        interview.status = InterviewStatus.CANCELLED
        interview.cancel_reason = reason

        description = "Interview cancelled"
        if reason:
            description += f". Reason: {reason}"
        await record_activity(
            session,
            interview.job_candidate_id,
            ActivityType.INTERVIEW_CANCELLED,
            description,
            {"interview_id": interview_id, "reason": reason},
            created_by=cancelled_by,
        )
        await session.commit()
        details = await _interview_dict(session, interview)

    try:
        await calendar_service.delete_calendar_events_for_interview(interview_id)
    except Exception as e:
        logger.error(f"Failed to delete calendar events for interview {interview_id}: {e}")

    return details


async def get_interview(interview_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        interview = await _load_interview(session, interview_id)
        return await _interview_dict(session, interview)


async def list_interviews(
    company_id: int,
    job_id: Optional[int] = None,
    status: Optional[str] = None,
    panel_member_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Company interviews ordered by scheduled time."""
    query = (
        select(Interview)
        .join(JobCandidate, JobCandidate.id == Interview.job_candidate_id)
        .join(Job, Job.id == JobCandidate.job_id)
        .where(Job.company_id == company_id)
    )
    if job_id is not None:
        query = query.where(Job.id == job_id)
    if status:
        try:
            query = query.where(Interview.status == InterviewStatus(status))
        except ValueError:
            raise ValidationError({"status": [f"Unknown status: {status}"]})
    if panel_member_id is not None:
        query = query.where(Interview.id.in_(
            select(InterviewPanelMember.interview_id).where(InterviewPanelMember.user_id == panel_member_id)
        ))
    if date_from is not None:
        query = query.where(Interview.scheduled_at >= date_from)
    if date_to is not None:
        query = query.where(Interview.scheduled_at <= date_to)

    async with AsyncSessionLocal() as session:
        result = await session.execute(query.order_by(Interview.scheduled_at))
        return [await _interview_dict(session, i) for i in result.scalars().all()]


async def submit_feedback(
    interview_id: int,
    panel_member_id: int,
    rating: int,
    recommendation: str,
    comments: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Record (or replace) a panel member's scorecard.

    The interview is marked completed once every panel member has submitted.

    Raises:
        ForbiddenError: The user is not on the interview panel
    """
    errors: Dict[str, List[str]] = {}
    if not isinstance(rating, int) or isinstance(rating, bool) or not MIN_RATING <= rating <= MAX_RATING:
        errors["rating"] = [f"Rating must be between {MIN_RATING} and {MAX_RATING}"]
    try:
        recommendation_value = Recommendation(recommendation)
    except ValueError:
        errors["recommendation"] = [
            f"Recommendation must be one of: {', '.join(r.value for r in Recommendation)}"
        ]
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        interview = await _load_interview(session, interview_id)
        if InterviewStatus(interview.status) == InterviewStatus.CANCELLED:
            raise ValidationError({"status": ["Cannot submit feedback for a cancelled interview"]})

        panel = await _panel_ids(session, interview_id)
        if panel_member_id not in panel:
            raise ForbiddenError("Only panel members can submit feedback for this interview")

        feedback = (await session.execute(
            select(InterviewFeedback).where(
                InterviewFeedback.interview_id == interview_id,
                InterviewFeedback.panel_member_id == panel_member_id,
            )
        )).scalar_one_or_none()
        if feedback is None:
            feedback = InterviewFeedback(interview_id=interview_id, panel_member_id=panel_member_id)
            session.add(feedback)
        feedback.rating = rating
        feedback.recommendation = recommendation_value
        feedback.comments = comments
        await session.flush()

        submitted = set((await session.execute(
            select(InterviewFeedback.panel_member_id).where(InterviewFeedback.interview_id == interview_id)
        )).scalars().all())
        if set(panel) <= submitted:
            interview.status = InterviewStatus.COMPLETED
            logger.info(f"All feedback received, interview {interview_id} completed")

        await session.commit()
        return feedback.to_dict()
