"""Job service functions."""

from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.security import AuditAction, ResourceType, log_audit_event
from database.engine import AsyncSessionLocal
from database.models.calendar import CalendarEvent
from database.models.candidates import Candidate, CandidateActivity, JobCandidate, StageHistory
from database.models.interviews import Interview, InterviewFeedback, InterviewPanelMember
from database.models.jobs import Job, JobPriority, JobStatus
from database.models.pipelines import PipelineStage
from database.models.users import User
from database.models.vendors import VendorJobAssignment
from api.services.auto_rejection import validate_auto_rejection_rules
from api.services.job_access import build_job_scope, validate_job_access

logger = logging.getLogger(__name__)

# (name, position, mandatory)
DEFAULT_STAGES = [
    ("Queue", 0, False),
    ("Applied", 1, False),
    ("Screening", 2, True),
    ("Shortlisted", 3, True),
    ("Interview", 4, False),
    ("Selected", 5, False),
    ("Offer", 6, True),
    ("Hired", 7, False),
    ("Rejected", 8, True),
]

MANDATORY_STAGES = {name for name, _, mandatory in DEFAULT_STAGES if mandatory}

_DEFAULT_NAMES = {name.lower(): name for name, _, _ in DEFAULT_STAGES}

INTERVIEW_STAGE_NAMES = ("Interview", "Selected")
OFFER_STAGE_NAME = "Offer"

UPDATABLE_FIELDS = (
    "title", "department", "location", "locations", "employment_type", "work_mode",
    "description", "skills", "experience_min", "experience_max", "salary_min",
    "salary_max", "salary_currency", "openings", "priority", "status",
    "assigned_recruiter_id", "mandatory_criteria", "screening_questions", "auto_rejection_rules",
)


def canonical_stage_name(name: str) -> str:
    """Default stage names match case-insensitively and keep their own spelling."""
    return _DEFAULT_NAMES.get(name.lower(), name)


def is_mandatory_stage(name: str) -> bool:
    return canonical_stage_name(name) in MANDATORY_STAGES


def validate_job_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, List[str]]:
    """
    Field errors for job input.

    Range checks apply to whatever values ``data`` holds, so callers pass
    merged values on update.
    """
    errors: Dict[str, List[str]] = {}

    if not partial or "title" in data:
        if not (data.get("title") or "").strip():
            errors["title"] = ["Title is required"]

    exp_min, exp_max = data.get("experience_min"), data.get("experience_max")
    if exp_min is not None and exp_max is not None and exp_min > exp_max:
        errors["experience_min"] = ["Minimum experience cannot exceed maximum experience"]

    sal_min, sal_max = data.get("salary_min"), data.get("salary_max")
    if sal_min is not None and sal_max is not None and sal_min > sal_max:
        errors["salary_min"] = ["Minimum salary cannot exceed maximum salary"]

    if data.get("openings") is not None and data["openings"] < 1:
        errors["openings"] = ["Openings must be at least 1"]

    if data.get("status") is not None:
        try:
            JobStatus(data["status"])
        except ValueError:
            errors["status"] = [f"Status must be one of: {', '.join(s.value for s in JobStatus)}"]

    if data.get("priority") is not None:
        try:
            JobPriority(data["priority"])
        except ValueError:
            errors["priority"] = [
                f"Priority must be one of: {', '.join(p.value for p in JobPriority)}"
            ]

    errors.update(validate_auto_rejection_rules(data.get("auto_rejection_rules")))

    return errors


def normalize_pipeline_stages(stages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Normalize a custom stage list.

    Missing mandatory stages are added at their default position, the list is
    sorted, positions are reassigned 0..n-1, and ``is_default`` and
    ``is_mandatory`` are derived from the name.
    """
    normalized = []
    for index, stage in enumerate(stages):
        name = (stage.get("name") or "").strip()
        if not name:
            raise ValidationError({"pipeline_stages": [f"Stage {index + 1} has no name"]})
        normalized.append({
            "name": canonical_stage_name(name),
            "position": stage.get("position", index),
            "sub_stages": list(stage.get("sub_stages") or []),
        })

    present = {s["name"] for s in normalized}
    for name, position, mandatory in DEFAULT_STAGES:
        if mandatory and name not in present:
            normalized.append({
                "name": name,
                "position": position,
                "sub_stages": [],
            })

    # Stable sort keeps given order for equal positions
    normalized.sort(key=lambda s: s["position"])
    for position, stage in enumerate(normalized):
        stage["position"] = position
        stage["is_default"] = stage["name"] in _DEFAULT_NAMES.values()
        stage["is_mandatory"] = is_mandatory_stage(stage["name"])
    return normalized


def sub_stage_position(stage_count: int, parent_position: int, index: int) -> int:
    """Sub-stage positions live past the top-level range."""
    return stage_count * 100 + parent_position * 10 + index


async def _create_stages(
    session: AsyncSession,
    job_id: int,
    custom_stages: Optional[List[Dict[str, Any]]],
) -> None:
    if not custom_stages:
        for name, position, mandatory in DEFAULT_STAGES:
            session.add(PipelineStage(
                job_id=job_id,
                name=name,
                position=position,
                is_default=True,
                is_mandatory=mandatory,
            ))
        await session.flush()
        return

    stages = normalize_pipeline_stages(custom_stages)
    for stage in stages:
        parent = PipelineStage(
            job_id=job_id,
            name=stage["name"],
            position=stage["position"],
            is_default=stage["is_default"],
            is_mandatory=stage["is_mandatory"],
        )
        session.add(parent)
        await session.flush()

        for i, sub in enumerate(stage["sub_stages"]):
            raw_name = sub.get("name") if isinstance(sub, dict) else sub
            sub_name = (raw_name or "").strip()
            if not sub_name:
                continue
            session.add(PipelineStage(
                job_id=job_id,
                parent_id=parent.id,
                name=sub_name,
                position=sub_stage_position(len(stages), stage["position"], i),
                is_default=False,
                is_mandatory=False,
            ))
    await session.flush()


async def _replace_stages(
    session: AsyncSession,
    job_id: int,
    custom_stages: List[Dict[str, Any]],
) -> None:
    """Swap the whole pipeline; only allowed before anyone has applied."""
    applied = (await session.execute(
        select(func.count(JobCandidate.id)).where(JobCandidate.job_id == job_id)
    )).scalar_one()
    if applied:
        raise ValidationError({
            "pipeline_stages": ["Pipeline cannot be replaced while the job has candidates"]
        })

    normalize_pipeline_stages(custom_stages)
    await session.execute(
        delete(PipelineStage).where(PipelineStage.job_id == job_id, PipelineStage.parent_id.is_not(None))
    )
    await session.execute(delete(PipelineStage).where(PipelineStage.job_id == job_id))
    await _create_stages(session, job_id, custom_stages)
    logger.info(f"Replaced pipeline of job {job_id}")


async def _stage_counts(session: AsyncSession, job_ids: Iterable[int]) -> Dict[int, Dict[str, int]]:
    """Candidate, interview and offer counts per job."""
    job_ids = list(job_ids)
    counts = {
        job_id: {"candidate_count": 0, "interview_count": 0, "offer_count": 0}
        for job_id in job_ids
    }
    if not job_ids:
        return counts

    result = await session.execute(
        select(JobCandidate.job_id, PipelineStage.name, func.count(JobCandidate.id))
        .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
        .where(JobCandidate.job_id.in_(job_ids))
        .group_by(JobCandidate.job_id, PipelineStage.name)
    )
    for job_id, stage_name, count in result.all():
        entry = counts[job_id]
        entry["candidate_count"] += count
        if stage_name in INTERVIEW_STAGE_NAMES:
            entry["interview_count"] += count
        if stage_name == OFFER_STAGE_NAME:
            entry["offer_count"] += count
    return counts


async def _job_stages(session: AsyncSession, job_id: int) -> List[Dict[str, Any]]:
    """Top-level stages in order, each with its sub-stages."""
    result = await session.execute(
        select(PipelineStage)
        .where(PipelineStage.job_id == job_id)
        .order_by(PipelineStage.position)
    )
    stages = result.scalars().all()
    top_level = [s.to_dict() | {"sub_stages": []} for s in stages if s.parent_id is None]
    by_id = {s["id"]: s for s in top_level}
    for stage in stages:
        if stage.parent_id is not None and stage.parent_id in by_id:
            by_id[stage.parent_id]["sub_stages"].append(stage.to_dict())
    return top_level


async def _load_job(session: AsyncSession, job_id: int) -> Job:
    job = await session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job")
    return job


async def _validate_recruiter(session: AsyncSession, company_id: int, user_id: Optional[int]) -> None:
    if user_id is None:
        return
    recruiter = await session.get(User, user_id)
    if not recruiter or recruiter.company_id != company_id:
        raise ValidationError({"assigned_recruiter_id": ["Assigned recruiter not found"]})


async def create_job(user: User, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a job and its pipeline in one transaction.

    Args:
        user: Creating user; the job belongs to their company
        data: Job fields plus optional ``pipeline_stages``

    Returns:
        The job with its stages
    """
    errors = validate_job_data(data)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        await _validate_recruiter(session, user.company_id, data.get("assigned_recruiter_id"))

        job = Job(
            company_id=user.company_id,
            title=data["title"].strip(),
            department=data.get("department"),
            location=data.get("location"),
            locations=data.get("locations"),
            employment_type=data.get("employment_type"),
            work_mode=data.get("work_mode"),
            description=data.get("description"),
            skills=data.get("skills"),
            experience_min=data.get("experience_min"),
            experience_max=data.get("experience_max"),
            salary_min=data.get("salary_min"),
            salary_max=data.get("salary_max"),
            salary_currency=data.get("salary_currency"),
            openings=data.get("openings") or 1,
            priority=JobPriority(data.get("priority") or JobPriority.MEDIUM.value),
            status=JobStatus(data.get("status") or JobStatus.ACTIVE.value),
            assigned_recruiter_id=data.get("assigned_recruiter_id"),
            mandatory_criteria=data.get("mandatory_criteria"),
            screening_questions=data.get("screening_questions"),
            auto_rejection_rules=data.get("auto_rejection_rules"),
            created_by=user.id,
        )
        session.add(job)
        await session.flush()

        await _create_stages(session, job.id, data.get("pipeline_stages"))
        await session.commit()

        logger.info(f"Created job {job.id} for company {user.company_id}")
        return {
            **job.to_dict(),
            "stages": await _job_stages(session, job.id),
            "candidate_count": 0,
            "interview_count": 0,
            "offer_count": 0,
        }


async def get_job(user: User, job_id: int) -> Dict[str, Any]:
    """Job details with stages and pipeline counts."""
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        job = await _load_job(session, job_id)
        counts = await _stage_counts(session, [job_id])
        return {
            **job.to_dict(),
            "stages": await _job_stages(session, job_id),
            **counts[job_id],
        }


async def list_jobs(user: User, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Jobs visible to ``user``, newest first."""
    async with AsyncSessionLocal() as session:
        query = select(Job).where(build_job_scope(user))

        if status:
            try:
                query = query.where(Job.status == JobStatus(status))
            except ValueError:
                raise ValidationError({"status": [f"Unknown status: {status}"]})

        result = await session.execute(query.order_by(Job.created_at.desc(), Job.id.desc()))
        jobs = result.scalars().all()
        counts = await _stage_counts(session, [j.id for j in jobs])
        return [{**job.to_dict(), **counts[job.id]} for job in jobs]


async def update_job(user: User, job_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """Update job fields; ranges are checked against the merged result."""
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        job = await _load_job(session, job_id)

        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
        merged = {field: getattr(job, field) for field in UPDATABLE_FIELDS}
        merged = {k: getattr(v, "value", v) for k, v in merged.items()}
        merged.update(changes)
        errors = validate_job_data(merged)
        if errors:
            raise ValidationError(errors)

        if "assigned_recruiter_id" in changes:
            await _validate_recruiter(session, job.company_id, changes["assigned_recruiter_id"])

        for field, value in changes.items():
            if field == "status":
                value = JobStatus(value)
            elif field == "priority":
                value = JobPriority(value)
            elif field == "title":
                value = value.strip()
            setattr(job, field, value)

        if data.get("pipeline_stages"):
            await _replace_stages(session, job_id, data["pipeline_stages"])

        await session.commit()
        counts = await _stage_counts(session, [job_id])
        return {**job.to_dict(), "stages": await _job_stages(session, job_id), **counts[job_id]}


async def _delete_job_rows(session: AsyncSession, job_id: int) -> None:
    """Delete a job and everything hanging off it, children first."""
    jc_ids = select(JobCandidate.id).where(JobCandidate.job_id == job_id)
    interview_ids = select(Interview.id).where(Interview.job_candidate_id.in_(jc_ids))

    await session.execute(delete(CalendarEvent).where(CalendarEvent.interview_id.in_(interview_ids)))
    await session.execute(delete(InterviewFeedback).where(InterviewFeedback.interview_id.in_(interview_ids)))
    await session.execute(
        delete(InterviewPanelMember).where(InterviewPanelMember.interview_id.in_(interview_ids))
    )
    await session.execute(delete(Interview).where(Interview.job_candidate_id.in_(jc_ids)))
    await session.execute(delete(CandidateActivity).where(CandidateActivity.job_candidate_id.in_(jc_ids)))
    await session.execute(delete(StageHistory).where(StageHistory.job_candidate_id.in_(jc_ids)))
    await session.execute(delete(JobCandidate).where(JobCandidate.job_id == job_id))
    await session.execute(delete(VendorJobAssignment).where(VendorJobAssignment.job_id == job_id))
    await session.execute(
        delete(PipelineStage).where(PipelineStage.job_id == job_id, PipelineStage.parent_id.is_not(None))
    )
    await session.execute(delete(PipelineStage).where(PipelineStage.job_id == job_id))
    await session.execute(delete(Job).where(Job.id == job_id))


async def delete_job(user: User, job_id: int) -> bool:
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        await _load_job(session, job_id)
        await _delete_job_rows(session, job_id)
        await session.commit()

    log_audit_event(
        AuditAction.DELETE, ResourceType.JOB, job_id, user_id=user.id, company_id=user.company_id
    )
    return True


async def toggle_job_status(user: User, job_id: int) -> Dict[str, Any]:
    """active -> closed, anything else -> active."""
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        job = await _load_job(session, job_id)
        job.status = JobStatus.CLOSED if JobStatus(job.status) == JobStatus.ACTIVE else JobStatus.ACTIVE
        await session.commit()
        logger.info(f"Job {job_id} status set to {job.status.value}")
        return job.to_dict()


async def duplicate_job(user: User, job_id: int) -> Dict[str, Any]:
    """
    Copy a job as "Copy of {title}" with its stages and sub-stages.

    Candidates are not copied; the copy starts active.
    """
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        source = await _load_job(session, job_id)

        copy = Job(
            company_id=source.company_id,
            title=f"Copy of {source.title}",
            status=JobStatus.ACTIVE,
            created_by=user.id,
        )
        for field in UPDATABLE_FIELDS:
            if field not in ("title", "status"):
                setattr(copy, field, getattr(source, field))
        session.add(copy)
        await session.flush()

        result = await session.execute(
            select(PipelineStage)
            .where(PipelineStage.job_id == job_id)
            .order_by(PipelineStage.position)
        )
        stages = result.scalars().all()

        id_map: Dict[int, int] = {}
        for stage in [s for s in stages if s.parent_id is None]:
            new_stage = PipelineStage(
                job_id=copy.id,
                name=stage.name,
                position=stage.position,
                is_default=stage.is_default,
                is_mandatory=stage.is_mandatory,
            )
            session.add(new_stage)
            await session.flush()
            id_map[stage.id] = new_stage.id

        for stage in [s for s in stages if s.parent_id is not None]:
            if stage.parent_id not in id_map:
                continue
            session.add(PipelineStage(
                job_id=copy.id,
                parent_id=id_map[stage.parent_id],
                name=stage.name,
                position=stage.position,
                is_default=stage.is_default,
                is_mandatory=stage.is_mandatory,
            ))

        await session.commit()
        logger.info(f"Duplicated job {job_id} as {copy.id}")
        return {
            **copy.to_dict(),
            "stages": await _job_stages(session, copy.id),
            "candidate_count": 0,
            "interview_count": 0,
            "offer_count": 0,
        }


async def get_job_candidates(user: User, job_id: int) -> List[Dict[str, Any]]:
    """Applications of a job with candidate profile and current stage."""
    await validate_job_access(user, job_id)

    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(JobCandidate, Candidate, PipelineStage)
            .join(Candidate, Candidate.id == JobCandidate.candidate_id)
            .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
            .where(JobCandidate.job_id == job_id)
            .order_by(JobCandidate.applied_at.desc())
        )
        return [
            {
                "id": jc.id,
                "job_id": jc.job_id,
                "candidate_id": jc.candidate_id,
                "current_stage_id": jc.current_stage_id,
                "stage_name": stage.name,
                "score": jc.score,
                "applied_at": jc.applied_at.isoformat() if jc.applied_at else None,
                "updated_at": jc.updated_at.isoformat() if jc.updated_at else None,
                "candidate": candidate.to_dict(),
            }
            for jc, candidate, stage in result.all()
        ]
