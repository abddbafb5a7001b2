"""
Bulk stage moves.

Every candidate is moved inside its own SAVEPOINT so one bad row rolls
back alone; the batch is committed once at the end.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.security import AuditAction, ResourceType, log_audit_event
from database.engine import AsyncSessionLocal
from database.models.candidates import ActivityType, Candidate, CandidateActivity, JobCandidate
from database.models.jobs import Job
from database.models.pipelines import PipelineStage
from database.models.users import User
from api.services import notifications, stage_history
from api.services.candidates import is_rejection_stage

logger = logging.getLogger(__name__)


def build_move_description(from_stage: str, to_stage: str, comment: Optional[str] = None) -> str:
    description = f"Moved from {from_stage} to {to_stage}"
    if comment:
        description += f". Comment: {comment}"
    return description


async def _move_one(
    session: AsyncSession,
    job_candidate_id: int,
    job_id: int,
    target: PipelineStage,
    comment: Optional[str],
    moved_by: Optional[int],
) -> Optional[str]:
    """
    Move one application. Returns the previous stage name, or None for a no-op.
    """
    jc = await session.get(JobCandidate, job_candidate_id)
    if not jc:
        raise NotFoundError("Job candidate")
    if jc.job_id != job_id:
        raise ValidationError(
            {"job_candidate_id": ["Candidate does not belong to the specified job"]},
            message="Candidate does not belong to the specified job",
        )

    if jc.current_stage_id == target.id:
        return None

    old_stage = await session.get(PipelineStage, jc.current_stage_id)
    old_stage_id = jc.current_stage_id
    old_stage_name = old_stage.name if old_stage else "Unknown"

    await stage_history.close_stage_entry(session, jc.id, old_stage_id)
    await stage_history.create_stage_entry(
        session, jc.id, target.id, target.name, comment=comment, moved_by=moved_by,
    )
    jc.current_stage_id = target.id

    session.add(CandidateActivity(
        candidate_id=jc.candidate_id,
        job_candidate_id=jc.id,
        activity_type=ActivityType.STAGE_CHANGE,
        description=build_move_description(old_stage_name, target.name, comment),
        activity_metadata={
            "from_stage_id": old_stage_id,
            "from_stage_name": old_stage_name,
            "to_stage_id": target.id,
            "to_stage_name": target.name,
            "comment": comment,
            "bulk_move": True,
        },
        created_by=moved_by,
    ))
    await session.flush()
    return old_stage_name


async def _candidate_name(session: AsyncSession, job_candidate_id: int) -> Optional[str]:
    result = await session.execute(
        select(Candidate.name)
        .join(JobCandidate, JobCandidate.candidate_id == Candidate.id)
        .where(JobCandidate.id == job_candidate_id)
    )
    return result.scalar_one_or_none()


async def bulk_move(
    user: Optional[User],
    job_id: int,
    candidate_ids: List[int],
    target_stage_id: int,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Move several applications of one job to the same stage.

    Args:
        user: User performing the move
        job_id: Job all applications must belong to
        candidate_ids: JobCandidate IDs to move
        target_stage_id: Destination stage of the job
        comment: Stored on the history entry; required for rejection stages

    Returns:
        Dict with success flag, moved/failed counts and per-item failures
    """
    if not candidate_ids:
        raise ValidationError({"candidate_ids": ["At least one candidate ID is required"]})
    if not target_stage_id:
        raise ValidationError({"target_stage_id": ["Target stage ID is required"]})
    if not job_id:
        raise ValidationError({"job_id": ["Job ID is required"]})

    moved_by = user.id if user else None
    failures: List[Dict[str, Any]] = []
    moved: List[tuple[int, str, str]] = []
    moved_count = 0

    async with AsyncSessionLocal() as session:
        if not await session.get(Job, job_id):
            raise NotFoundError("Job")

        target = await session.get(PipelineStage, target_stage_id)
        if not target or target.job_id != job_id:
            raise ValidationError({"target_stage_id": ["Target stage not found in this job pipeline"]})

        if is_rejection_stage(target.name) and not comment:
            raise ValidationError({"comment": ["A comment is required when moving to a rejection stage"]})

        for jc_id in candidate_ids:
            try:
                async with session.begin_nested():
                    old_stage_name = await _move_one(
                        session, jc_id, job_id, target, comment, moved_by,
                    )
                moved_count += 1
                if old_stage_name is not None:
                    moved.append((jc_id, old_stage_name, target.name))
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                logger.warning(f"Bulk move failed for job candidate {jc_id}: {message}")
                failures.append({
                    "job_candidate_id": jc_id,
                    "candidate_name": await _candidate_name(session, jc_id),
                    "error": message,
                })

        await session.commit()

    log_audit_event(
        AuditAction.BULK_MOVE, ResourceType.JOB_CANDIDATE,
        user_id=moved_by, company_id=user.company_id if user else None,
        details={"job_id": job_id, "target_stage_id": target_stage_id, "moved": moved_count},
    )

    for jc_id, from_stage, to_stage in moved:
        try:
            await notifications.create_stage_change_notifications(jc_id, from_stage, to_stage, moved_by)
        except Exception as e:
            logger.error(f"Failed to create stage change notifications: {e}")

    return {
        "success": len(failures) == 0,
        "moved_count": moved_count,
        "failed_count": len(failures),
        "failures": failures,
    }
