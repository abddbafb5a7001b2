"""
In-app notifications.

Besides plain CRUD this module fans out stage-change notices to the
people working a job and reminds panel members about missing feedback.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import and_, or_, select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.utils.datetime import ensure_utc, now
from database.engine import AsyncSessionLocal
from database.models.candidates import Candidate, JobCandidate
from database.models.interviews import (
    Interview,
    InterviewFeedback,
    InterviewPanelMember,
    InterviewStatus,
)
from database.models.jobs import Job
from database.models.notifications import Notification, NotificationType
from database.models.users import User, UserRole

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def _notification_type(value: Any) -> NotificationType:
    try:
        return NotificationType(value)
    except ValueError:
        raise ValidationError(
            {"type": [f"Type must be one of: {', '.join(t.value for t in NotificationType)}"]}
        )


async def add_notifications(
    session: AsyncSession,
    user_ids: Iterable[int],
    type: NotificationType,
    title: str,
    message: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
) -> int:
    """Queue one notification per user on the caller's session. Returns the count."""
    count = 0
    for user_id in user_ids:
        session.add(Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
        ))
        count += 1
    return count


async def get_job_stakeholder_ids(
    session: AsyncSession,
    job: Job,
    exclude_user_id: Optional[int] = None,
) -> List[int]:
    """
    Assigned recruiter plus active admins and hiring managers of the job's company.
    """
    result = await session.execute(
        select(User.id).where(
            User.company_id == job.company_id,
            User.is_active.is_(True),
            User.role.in_([UserRole.ADMIN, UserRole.HIRING_MANAGER]),
        ).order_by(User.id)
    )
    recipients = list(result.scalars().all())
    if job.assigned_recruiter_id and job.assigned_recruiter_id not in recipients:
        recipients.insert(0, job.assigned_recruiter_id)

    return [uid for uid in dict.fromkeys(recipients) if uid != exclude_user_id]


async def create_notification(
    user_id: int,
    type: str,
    title: str,
    message: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
) -> Dict[str, Any]:
    errors: Dict[str, List[str]] = {}
    if not user_id:
        errors["user_id"] = ["User ID is required"]
    if not type:
        errors["type"] = ["Type is required"]
    if not (title or "").strip():
        errors["title"] = ["Title is required"]
    if not (message or "").strip():
        errors["message"] = ["Message is required"]
    if errors:
        raise ValidationError(errors)

    notification_type = _notification_type(type)

    async with AsyncSessionLocal() as session:
        if not await session.get(User, user_id):
            raise NotFoundError("User")

        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title.strip(),
            message=message.strip(),
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
        )
        session.add(notification)
        await session.commit()
        return notification.to_dict()


async def get_notifications(
    user_id: int,
    unread_only: bool = False,
    limit: int = DEFAULT_LIMIT,
) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        result = await session.execute(
            query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        )
        items = [n.to_dict() for n in result.scalars().all()]

        return {
            "notifications": items,
            "unread_count": await _unread_count(session, user_id),
        }


async def _unread_count(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
    )
    return result.scalar() or 0


async def get_unread_count(user_id: int) -> int:
    async with AsyncSessionLocal() as session:
        return await _unread_count(session, user_id)


async def _load_own_notification(
    session: AsyncSession,
    notification_id: int,
    user_id: int,
) -> Notification:
    notification = await session.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise NotFoundError("Notification")
    return notification


async def mark_as_read(notification_id: int, user_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        notification = await _load_own_notification(session, notification_id, user_id)
        notification.is_read = True
        await session.commit()
        return notification.to_dict()


async def mark_all_as_read(user_id: int) -> int:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await session.commit()
        return result.rowcount or 0


async def delete_notification(notification_id: int, user_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        notification = await _load_own_notification(session, notification_id, user_id)
        await session.delete(notification)
        await session.commit()
        return True


# ==================== Stage changes ===================== #
async def create_stage_change_notifications(
    job_candidate_id: int,
    from_stage: str,
    to_stage: str,
    moved_by: Optional[int] = None,
) -> int:
    """
    Tell the job's recruiter, admins and hiring managers that a candidate moved.

    The user who made the move is not notified.

    Returns:
        Number of notifications created
    """
    async with AsyncSessionLocal() as session:
        row = (await session.execute(
            select(JobCandidate, Candidate, Job)
            .join(Candidate, Candidate.id == JobCandidate.candidate_id)
            .join(Job, Job.id == JobCandidate.job_id)
            .where(JobCandidate.id == job_candidate_id)
        )).first()
        if not row:
            raise NotFoundError("Job candidate")
        jc, candidate, job = row

        recipients = await get_job_stakeholder_ids(session, job, exclude_user_id=moved_by)
        count = await add_notifications(
            session,
            recipients,
            NotificationType.STAGE_CHANGE,
            "Candidate Stage Changed",
            f"{candidate.name} moved from {from_stage} to {to_stage} for {job.title}",
            entity_type="job_candidate",
            entity_id=jc.id,
        )
        await session.commit()

    logger.debug(f"Sent {count} stage change notifications for job candidate {job_candidate_id}")
    return count


# ==================== Feedback reminders ===================== #
async def get_feedback_completion_status(interview_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        if not await session.get(Interview, interview_id):
            raise NotFoundError("Interview")

        members = (await session.execute(
            select(User.id, User.name)
            .join(InterviewPanelMember, InterviewPanelMember.user_id == User.id)
            .where(InterviewPanelMember.interview_id == interview_id)
            .order_by(User.name)
        )).all()
        submitted_ids = set((await session.execute(
            select(InterviewFeedback.panel_member_id)
            .where(InterviewFeedback.interview_id == interview_id)
        )).scalars().all())

    pending = [
        {"user_id": uid, "user_name": name}
        for uid, name in members
        if uid not in submitted_ids
    ]
    total = len(members)
    submitted = total - len(pending)
    return {
        "total": total,
        "submitted": submitted,
        "pending": len(pending),
        "percentage": round(submitted / total * 100, 1) if total else 0.0,
        "is_complete": not pending,
        "pending_members": pending,
    }


async def get_pending_feedback_interviews(
    company_id: Optional[int] = None,
    hours_threshold: int = 24,
) -> List[Dict[str, Any]]:
    """
    Interviews still waiting on panel feedback.

    Covers completed interviews and scheduled ones that started more than
    ``hours_threshold`` hours ago.
    """
    cutoff = now() - timedelta(hours=hours_threshold)

    async with AsyncSessionLocal() as session:
        query = (
            select(Interview, Candidate, Job)
            .join(JobCandidate, JobCandidate.id == Interview.job_candidate_id)
            .join(Candidate, Candidate.id == JobCandidate.candidate_id)
            .join(Job, Job.id == JobCandidate.job_id)
            .where(or_(
                Interview.status == InterviewStatus.COMPLETED,
                and_(
                    Interview.status == InterviewStatus.SCHEDULED,
                    Interview.scheduled_at <= cutoff,
                ),
            ))
            .order_by(Interview.scheduled_at)
        )
        if company_id is not None:
            query = query.where(Job.company_id == company_id)
        rows = (await session.execute(query)).all()
        if not rows:
            return []

        interview_ids = [interview.id for interview, _, _ in rows]
        members = (await session.execute(
            select(InterviewPanelMember.interview_id, User.id, User.name)
            .join(User, User.id == InterviewPanelMember.user_id)
            .where(InterviewPanelMember.interview_id.in_(interview_ids))
        )).all()
        submitted = set((await session.execute(
            select(InterviewFeedback.interview_id, InterviewFeedback.panel_member_id)
            .where(InterviewFeedback.interview_id.in_(interview_ids))
        )).all())

    pending_by_interview: Dict[int, List[Dict[str, Any]]] = {}
    for interview_id, uid, name in members:
        if (interview_id, uid) not in submitted:
            pending_by_interview.setdefault(interview_id, []).append(
                {"user_id": uid, "user_name": name}
            )

    items = []
    for interview, candidate, job in rows:
        pending = pending_by_interview.get(interview.id)
        if not pending:
            continue
        scheduled_at = ensure_utc(interview.scheduled_at)
        items.append({
            "interview_id": interview.id,
            "job_candidate_id": interview.job_candidate_id,
            "candidate_name": candidate.name,
            "job_id": job.id,
            "job_title": job.title,
            "scheduled_at": scheduled_at.isoformat(),
            "hours_since_interview": round((now() - scheduled_at).total_seconds() / 3600, 1),
            "pending_members": pending,
        })
    return items


async def process_feedback_pending_notifications(hours_threshold: int = 24) -> int:
    """
    Remind panel members about missing feedback.

    Members who still have an unread reminder for the interview are skipped.

    Returns:
        Number of notifications created
    """
    pending = await get_pending_feedback_interviews(hours_threshold=hours_threshold)
    if not pending:
        return 0

    count = 0
    async with AsyncSessionLocal() as session:
        for item in pending:
            entity_id = str(item["interview_id"])
            already_notified = set((await session.execute(
                select(Notification.user_id).where(
                    Notification.type == NotificationType.FEEDBACK_PENDING,
                    Notification.entity_type == "interview",
                    Notification.entity_id == entity_id,
                    Notification.is_read.is_(False),
                )
            )).scalars().all())

            recipients = [
                m["user_id"] for m in item["pending_members"]
                if m["user_id"] not in already_notified
            ]
            count += await add_notifications(
                session,
                recipients,
                NotificationType.FEEDBACK_PENDING,
                "Interview Feedback Pending",
                f"Please submit your feedback for {item['candidate_name']}'s interview "
                f"for {item['job_title']}",
                entity_type="interview",
                entity_id=item["interview_id"],
            )
        await session.commit()

    logger.info(f"Created {count} feedback reminder notifications")
    return count
