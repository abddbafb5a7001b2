"""
Candidate service functions for API endpoints.

Candidates belong to a company; applying one to a job creates a
JobCandidate that moves through the job's pipeline.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import delete, select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.security import AuditAction, ResourceType, log_audit_event
from core.utils.validators import validate_email
from database.engine import AsyncSessionLocal
from database.models.candidates import (
    ActivityType,
    Candidate,
    CandidateActivity,
    JobCandidate,
    StageHistory,
)
from database.models.calendar import CalendarEvent
from database.models.interviews import Interview, InterviewFeedback, InterviewPanelMember
from database.models.jobs import Job
from database.models.pipelines import PipelineStage
from database.models.users import User
from api.services import auto_rejection, notifications, stage_history

logger = logging.getLogger(__name__)

QUEUE_STAGE_NAME = "Queue"
REJECTION_KEYWORDS = ("reject", "declined", "not selected")

REQUIRED_FIELDS = ("name", "email", "location", "source")
PROFILE_FIELDS = (
    "name", "email", "phone", "location", "experience_years", "current_company",
    "current_ctc", "expected_ctc", "notice_period", "availability", "skills",
    "source", "resume_url",
)

SORT_OPTIONS = ("score_asc", "score_desc", "name", "updated")


def is_rejection_stage(name: str) -> bool:
    lowered = (name or "").lower()
    return any(keyword in lowered for keyword in REJECTION_KEYWORDS)


def validate_candidate_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}

    for field in REQUIRED_FIELDS:
        if partial and field not in data:
            continue
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[field] = [f"{field.replace('_', ' ').capitalize()} is required"]

    if data.get("email") and "email" not in errors:
        valid, _ = validate_email(data["email"])
        if not valid:
            errors["email"] = ["Invalid email format"]

    experience = data.get("experience_years")
    if experience is not None and experience < 0:
        errors["experience_years"] = ["Experience cannot be negative"]

    return errors


def job_candidate_to_dict(jc: JobCandidate, stage: Optional[PipelineStage] = None) -> Dict[str, Any]:
    item = {
        "id": jc.id,
        "job_id": jc.job_id,
        "candidate_id": jc.candidate_id,
        "current_stage_id": jc.current_stage_id,
        "score": jc.score,
        "applied_at": jc.applied_at.isoformat() if jc.applied_at else None,
        "updated_at": jc.updated_at.isoformat() if jc.updated_at else None,
    }
    if stage is not None:
        item["stage_name"] = stage.name
    return item


async def find_candidate_by_email(
    session: AsyncSession,
    company_id: int,
    email: str,
) -> Optional[Candidate]:
    result = await session.execute(
        select(Candidate).where(
            Candidate.company_id == company_id,
            Candidate.email == email.strip().lower(),
        )
    )
    return result.scalar_one_or_none()


async def find_queue_stage(session: AsyncSession, job_id: int) -> Optional[PipelineStage]:
    """The "Queue" stage of a job, falling back to the stage at position 0."""
    result = await session.execute(
        select(PipelineStage).where(
            PipelineStage.job_id == job_id,
            PipelineStage.name == QUEUE_STAGE_NAME,
        ).limit(1)
    )
    stage = result.scalar_one_or_none()
    if stage:
        return stage

    result = await session.execute(
        select(PipelineStage).where(
            PipelineStage.job_id == job_id,
            PipelineStage.parent_id.is_(None),
            PipelineStage.position == 0,
        ).limit(1)
    )
    return result.scalar_one_or_none()


async def _load_candidate(
    session: AsyncSession,
    candidate_id: int,
    company_id: Optional[int] = None,
) -> Candidate:
    candidate = await session.get(Candidate, candidate_id)
    if not candidate or (company_id is not None and candidate.company_id != company_id):
        raise NotFoundError("Candidate")
    return candidate


async def _load_job_candidate(session: AsyncSession, job_candidate_id: int) -> JobCandidate:
    jc = await session.get(JobCandidate, job_candidate_id)
    if not jc:
        raise NotFoundError("Job candidate")
    return jc


async def get_job_candidate_job_id(job_candidate_id: int) -> int:
    """Job of an application; used by routes for access checks."""
    async with AsyncSessionLocal() as session:
        jc = await _load_job_candidate(session, job_candidate_id)
        return jc.job_id


# ==================== Candidate CRUD ===================== #
async def create_candidate(company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a candidate profile.

    Raises:
        ValidationError: Missing required fields or malformed email
        ConflictError: Email already used by a candidate of this company
    """
    errors = validate_candidate_data(data)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        existing = await find_candidate_by_email(session, company_id, data["email"])
        if existing:
            raise ConflictError(
                "Candidate with this email already exists",
                data={"existing_id": existing.id},
            )

        values = {k: data[k] for k in PROFILE_FIELDS if data.get(k) is not None}
        values["email"] = values["email"].strip().lower()
        values["name"] = values["name"].strip()
        candidate = Candidate(company_id=company_id, **values)
        session.add(candidate)
        await session.commit()

        logger.info(f"Created candidate {candidate.id} in company {company_id}")
        return candidate.to_dict()


async def get_candidate(candidate_id: int, company_id: Optional[int] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        candidate = await _load_candidate(session, candidate_id, company_id)
        return candidate.to_dict()


async def get_candidate_by_email(company_id: int, email: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        candidate = await find_candidate_by_email(session, company_id, email)
        return candidate.to_dict() if candidate else None


async def update_candidate(
    candidate_id: int,
    data: Dict[str, Any],
    company_id: Optional[int] = None,
) -> Dict[str, Any]:
    errors = validate_candidate_data(data, partial=True)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        candidate = await _load_candidate(session, candidate_id, company_id)

        if data.get("email"):
            email = data["email"].strip().lower()
            if email != candidate.email:
                existing = await find_candidate_by_email(session, candidate.company_id, email)
                if existing and existing.id != candidate.id:
                    raise ConflictError(
                        "Candidate with this email already exists",
                        data={"existing_id": existing.id},
                    )
            data = {**data, "email": email}

        for field in PROFILE_FIELDS:
            if field in data:
                setattr(candidate, field, data[field])

        await session.commit()
        return candidate.to_dict()


async def _delete_candidate_rows(session: AsyncSession, candidate_id: int) -> None:
    """Delete a candidate and their applications, children first."""
    jc_ids = select(JobCandidate.id).where(JobCandidate.candidate_id == candidate_id)
    interview_ids = select(Interview.id).where(Interview.job_candidate_id.in_(jc_ids))

    await session.execute(delete(CalendarEvent).where(CalendarEvent.interview_id.in_(interview_ids)))
    await session.execute(delete(InterviewFeedback).where(InterviewFeedback.interview_id.in_(interview_ids)))
    await session.execute(
        delete(InterviewPanelMember).where(InterviewPanelMember.interview_id.in_(interview_ids))
    )
    await session.execute(delete(Interview).where(Interview.job_candidate_id.in_(jc_ids)))
    await session.execute(delete(CandidateActivity).where(CandidateActivity.candidate_id == candidate_id))
    await session.execute(delete(StageHistory).where(StageHistory.job_candidate_id.in_(jc_ids)))
    await session.execute(delete(JobCandidate).where(JobCandidate.candidate_id == candidate_id))
    await session.execute(delete(Candidate).where(Candidate.id == candidate_id))


async def delete_candidate(
    candidate_id: int,
    company_id: Optional[int] = None,
    deleted_by: Optional[int] = None,
) -> bool:
    async with AsyncSessionLocal() as session:
        await _load_candidate(session, candidate_id, company_id)
        await _delete_candidate_rows(session, candidate_id)
        await session.commit()

    log_audit_event(
        AuditAction.DELETE, ResourceType.CANDIDATE, candidate_id,
        user_id=deleted_by, company_id=company_id,
    )
    return True


async def update_resume_url(
    candidate_id: int,
    resume_url: str,
    company_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Set the resume URL and log it on every application of the candidate."""
    async with AsyncSessionLocal() as session:
        candidate = await _load_candidate(session, candidate_id, company_id)
        candidate.resume_url = resume_url

        jc_ids = (await session.execute(
            select(JobCandidate.id).where(JobCandidate.candidate_id == candidate_id)
        )).scalars().all()
        for jc_id in jc_ids:
            session.add(CandidateActivity(
                candidate_id=candidate_id,
                job_candidate_id=jc_id,
                activity_type=ActivityType.RESUME_UPLOADED,
                description="Resume uploaded",
                activity_metadata={"resume_url": resume_url},
                created_by=user_id,
            ))

        await session.commit()
        return candidate.to_dict()


async def list_candidates(company_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(Candidate)
            .where(Candidate.company_id == company_id)
            .order_by(Candidate.created_at.desc())
        )
        return [c.to_dict() for c in result.scalars().all()]


async def search_candidates(
    company_id: int,
    query: Optional[str] = None,
    location: Optional[str] = None,
    experience_min: Optional[float] = None,
    experience_max: Optional[float] = None,
    source: Optional[str] = None,
    availability: Optional[str] = None,
    score_min: Optional[int] = None,
    score_max: Optional[int] = None,
    sort_by: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Filter the company's candidates.

    Score is the candidate's best score across applications; it is
    included in each item as ``score``.
    """
    if sort_by is not None and sort_by not in SORT_OPTIONS:
        raise ValidationError({"sort_by": [f"sort_by must be one of: {', '.join(SORT_OPTIONS)}"]})

    best_score = (
        select(
            JobCandidate.candidate_id.label("candidate_id"),
            func.max(JobCandidate.score).label("score"),
        )
        .group_by(JobCandidate.candidate_id)
        .subquery()
    )

    stmt = (
        select(Candidate, best_score.c.score)
        .outerjoin(best_score, best_score.c.candidate_id == Candidate.id)
        .where(Candidate.company_id == company_id)
    )

    if query and query.strip():
        pattern = f"%{query.strip()}%"
        stmt = stmt.where(or_(
            Candidate.name.ilike(pattern),
            Candidate.email.ilike(pattern),
            Candidate.phone.ilike(pattern),
        ))
    if location:
        stmt = stmt.where(Candidate.location.ilike(f"%{location}%"))
    if experience_min is not None:
        stmt = stmt.where(Candidate.experience_years >= experience_min)
    if experience_max is not None:
        stmt = stmt.where(Candidate.experience_years <= experience_max)
    if source:
        stmt = stmt.where(Candidate.source.ilike(f"%{source}%"))
    if availability:
        stmt = stmt.where(Candidate.availability.ilike(f"%{availability}%"))
    if score_min is not None:
        stmt = stmt.where(best_score.c.score >= score_min)
    if score_max is not None:
        stmt = stmt.where(best_score.c.score <= score_max)

    if sort_by == "score_asc":
        stmt = stmt.order_by(best_score.c.score.asc(), Candidate.id)
    elif sort_by == "score_desc":
        stmt = stmt.order_by(best_score.c.score.desc(), Candidate.id)
    elif sort_by == "name":
        stmt = stmt.order_by(Candidate.name.asc())
    else:
        stmt = stmt.order_by(Candidate.updated_at.desc(), Candidate.id.desc())

    async with AsyncSessionLocal() as session:
        result = await session.execute(stmt)
        return [
            {**candidate.to_dict(), "score": score}
            for candidate, score in result.all()
        ]


# ==================== Applications ===================== #
async def add_to_job(
    company_id: int,
    candidate_id: int,
    job_id: int,
    stage_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Apply a candidate to a job, placing them in Queue or in ``stage_id``.

    Raises:
        NotFoundError: Unknown candidate or job
        ValidationError: Stage not part of the job
        ConflictError: Candidate already applied to the job
    """
    async with AsyncSessionLocal() as session:
        candidate = await _load_candidate(session, candidate_id, company_id)
        job = await session.get(Job, job_id)
        if not job or job.company_id != company_id:
            raise NotFoundError("Job")

        if stage_id is not None:
            stage = await session.get(PipelineStage, stage_id)
            if not stage or stage.job_id != job_id:
                raise ValidationError({"stage_id": ["Stage not found in this job pipeline"]})
        else:
            stage = await find_queue_stage(session, job_id)
            if not stage:
                raise ValidationError({"stage_id": ["Job has no pipeline stages"]})

        existing = (await session.execute(
            select(JobCandidate.id).where(
                JobCandidate.job_id == job_id,
                JobCandidate.candidate_id == candidate_id,
            )
        )).scalar_one_or_none()
        if existing:
            raise ConflictError(
                "Candidate is already applied to this job",
                data={"existing_id": existing},
            )

        jc = JobCandidate(job_id=job_id, candidate_id=candidate.id, current_stage_id=stage.id)
        session.add(jc)
        await session.flush()

        await stage_history.create_stage_entry(
            session, jc.id, stage.id, stage.name, moved_by=user_id,
        )
        session.add(CandidateActivity(
            candidate_id=candidate.id,
            job_candidate_id=jc.id,
            activity_type=ActivityType.STAGE_CHANGE,
            description=f"Added to {job.title} in {stage.name} stage",
            activity_metadata={"to_stage_id": stage.id, "to_stage_name": stage.name},
            created_by=user_id,
        ))
        await session.flush()
        rejected = await auto_rejection.apply_auto_rejection(
            session, jc, candidate, job.auto_rejection_rules, stage, user_id=user_id,
        )
        await session.commit()

        logger.info(f"Candidate {candidate_id} added to job {job_id}")
        return job_candidate_to_dict(jc, rejected or stage)


async def change_stage(
    user: Optional[User],
    job_candidate_id: int,
    new_stage_id: int,
    rejection_reason: Optional[str] = None,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Move an application to another stage of its job.

    Returns:
        Dict with the updated ``job_candidate`` and the ``activity`` recorded
    """
    if not job_candidate_id:
        raise ValidationError({"job_candidate_id": ["Job candidate ID is required"]})
    if not new_stage_id:
        raise ValidationError({"new_stage_id": ["New stage ID is required"]})

    moved_by = user.id if user else None

    async with AsyncSessionLocal() as session:
        jc = await _load_job_candidate(session, job_candidate_id)
        new_stage = await session.get(PipelineStage, new_stage_id)
        if not new_stage or new_stage.job_id != jc.job_id:
            raise ValidationError({"new_stage_id": ["Stage not found in this job pipeline"]})

        if new_stage.name.lower() == "rejected" and not (rejection_reason or comment):
            raise ValidationError({
                "rejection_reason": ["Rejection reason is required when moving to Rejected stage"]
            })

        old_stage = await session.get(PipelineStage, jc.current_stage_id)
        old_stage_name = old_stage.name if old_stage else "Unknown"
        old_stage_id = jc.current_stage_id
        reason = comment or rejection_reason

        await stage_history.close_stage_entry(session, jc.id, old_stage_id)
        await stage_history.create_stage_entry(
            session, jc.id, new_stage.id, new_stage.name, comment=reason, moved_by=moved_by,
        )
        jc.current_stage_id = new_stage.id

        description = f"Moved from {old_stage_name} to {new_stage.name}"
        if reason:
            description += f". Reason: {reason}"
        activity = CandidateActivity(
            candidate_id=jc.candidate_id,
            job_candidate_id=jc.id,
            activity_type=ActivityType.STAGE_CHANGE,
            description=description,
            activity_metadata={
                "from_stage_id": old_stage_id,
                "from_stage_name": old_stage_name,
                "to_stage_id": new_stage.id,
                "to_stage_name": new_stage.name,
                "rejection_reason": rejection_reason,
                "comment": reason,
            },
            created_by=moved_by,
        )
        session.add(activity)
        await session.commit()

        response = {
            "job_candidate": job_candidate_to_dict(jc, new_stage),
            "activity": activity.to_dict(),
        }

    try:
        await notifications.create_stage_change_notifications(
            job_candidate_id, old_stage_name, new_stage.name, moved_by,
        )
    except Exception as e:
        logger.error(f"Failed to create stage change notifications: {e}")

    return response


async def get_available_stages(job_candidate_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        jc = await _load_job_candidate(session, job_candidate_id)
        result = await session.execute(
            select(PipelineStage)
            .where(PipelineStage.job_id == jc.job_id)
            .order_by(PipelineStage.position)
        )
        return [
            {"id": s.id, "name": s.name, "position": s.position, "parent_id": s.parent_id}
            for s in result.scalars().all()
        ]


async def update_score(
    job_candidate_id: int,
    score: int,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    if score is None or score < 0 or score > 100:
        raise ValidationError({"score": ["Score must be between 0 and 100"]})

    async with AsyncSessionLocal() as session:
        jc = await _load_job_candidate(session, job_candidate_id)
        old_score = jc.score
        jc.score = score

        activity = CandidateActivity(
            candidate_id=jc.candidate_id,
            job_candidate_id=jc.id,
            activity_type=ActivityType.SCORE_UPDATED,
            description=f"Score updated from {old_score if old_score is not None else 'unset'} to {score}",
            activity_metadata={"old_score": old_score, "new_score": score},
            created_by=user_id,
        )
        session.add(activity)
        await session.commit()

        return {"job_candidate": job_candidate_to_dict(jc), "activity": activity.to_dict()}


async def add_note(job_candidate_id: int, content: str, user_id: Optional[int] = None) -> Dict[str, Any]:
    content = (content or "").strip()
    if not content:
        raise ValidationError({"content": ["Note content is required"]})

    async with AsyncSessionLocal() as session:
        jc = await _load_job_candidate(session, job_candidate_id)
        activity = CandidateActivity(
            candidate_id=jc.candidate_id,
            job_candidate_id=jc.id,
            activity_type=ActivityType.NOTE_ADDED,
            description=content,
            created_by=user_id,
        )
        session.add(activity)
        await session.commit()
        return activity.to_dict()


async def get_activity_timeline(job_candidate_id: int) -> List[Dict[str, Any]]:
    """Activities of an application, newest first."""
    async with AsyncSessionLocal() as session:
        await _load_job_candidate(session, job_candidate_id)
        result = await session.execute(
            select(CandidateActivity)
            .where(CandidateActivity.job_candidate_id == job_candidate_id)
            .order_by(CandidateActivity.created_at.desc(), CandidateActivity.id.desc())
        )
        return [a.to_dict() for a in result.scalars().all()]


async def record_activity(
    session: AsyncSession,
    job_candidate_id: int,
    activity_type: ActivityType,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
    created_by: Optional[int] = None,
) -> CandidateActivity:
    """Add an activity inside the caller's transaction."""
    jc = await _load_job_candidate(session, job_candidate_id)
    activity = CandidateActivity(
        candidate_id=jc.candidate_id,
        job_candidate_id=jc.id,
        activity_type=activity_type,
        description=description,
        activity_metadata=metadata,
        created_by=created_by,
    )
    session.add(activity)
    await session.flush()
    return activity
