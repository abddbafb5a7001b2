"""
Pipeline stage management.

Top-level stages of a job always hold contiguous positions 0..n-1; every
insert, reorder and delete below keeps them that way.
"""

from typing import Any, Dict, List
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.security import AuditAction, ResourceType, log_audit_event
from database.engine import AsyncSessionLocal
from database.models.candidates import JobCandidate
from database.models.jobs import Job
from database.models.pipelines import PipelineStage

logger = logging.getLogger(__name__)


def compute_reorder(positions: List[int], old: int, new: int) -> List[int]:
    """
    Positions after moving the stage at ``old`` to ``new``.

    Moving down shifts (old, new] up by one slot; moving up shifts
    [new, old) down by one slot.

    Args:
        positions: Current positions, any order
        old: Position of the moved stage
        new: Target position

    Returns:
        New positions, in the same order as ``positions``
    """
    result = []
    for p in positions:
        if p == old:
            result.append(new)
        elif old < new and old < p <= new:
            result.append(p - 1)
        elif new < old and new <= p < old:
            result.append(p + 1)
        else:
            result.append(p)
    return result


async def _top_level_stages(session: AsyncSession, job_id: int) -> List[PipelineStage]:
    result = await session.execute(
        select(PipelineStage)
        .where(PipelineStage.job_id == job_id, PipelineStage.parent_id.is_(None))
        .order_by(PipelineStage.position)
    )
    return list(result.scalars().all())


async def _ordered_stage_dicts(session: AsyncSession, job_id: int) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in await _top_level_stages(session, job_id)]


async def _load_stage(session: AsyncSession, stage_id: int) -> PipelineStage:
    stage = await session.get(PipelineStage, stage_id)
    if not stage:
        raise NotFoundError("Stage")
    return stage


async def get_stage_job_id(stage_id: int) -> int:
    """Job owning a stage; used by routes for access checks."""
    async with AsyncSessionLocal() as session:
        stage = await _load_stage(session, stage_id)
        return stage.job_id


async def get_stages_by_job_id(job_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        if not await session.get(Job, job_id):
            raise NotFoundError("Job")
        result = await session.execute(
            select(PipelineStage)
            .where(PipelineStage.job_id == job_id)
            .order_by(PipelineStage.position)
        )
        return [s.to_dict() for s in result.scalars().all()]


async def insert_stage(job_id: int, name: str, position: int) -> List[Dict[str, Any]]:
    """
    Insert a custom stage at ``position`` (0..count), shifting later stages.

    Returns:
        The job's top-level stages in order
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError({"name": ["Stage name is required"]})

    async with AsyncSessionLocal() as session:
        if not await session.get(Job, job_id):
            raise NotFoundError("Job")

        stages = await _top_level_stages(session, job_id)
        if position is None or position < 0 or position > len(stages):
            raise ValidationError(
                {"position": [f"Position must be between 0 and {len(stages)}"]}
            )

        for stage in stages:
            if stage.position >= position:
                stage.position += 1

        session.add(PipelineStage(
            job_id=job_id,
            name=name,
            position=position,
            is_default=False,
            is_mandatory=False,
        ))
        await session.commit()

        logger.info(f"Inserted stage '{name}' at {position} in job {job_id}")
        return await _ordered_stage_dicts(session, job_id)


async def reorder_stage(stage_id: int, new_position: int) -> List[Dict[str, Any]]:
    """Move a stage to ``new_position`` (0..count-1)."""
    async with AsyncSessionLocal() as session:
        stage = await _load_stage(session, stage_id)
        if stage.parent_id is not None:
            raise ValidationError({"stage_id": ["Sub-stages cannot be reordered"]})

        stages = await _top_level_stages(session, stage.job_id)
        if new_position is None or new_position < 0 or new_position >= len(stages):
            raise ValidationError(
                {"position": [f"Position must be between 0 and {len(stages) - 1}"]}
            )

        old_position = stage.position
        if old_position == new_position:
            return [s.to_dict() for s in stages]

        new_positions = compute_reorder([s.position for s in stages], old_position, new_position)
        for s, position in zip(stages, new_positions):
            s.position = position

        await session.commit()
        logger.info(f"Moved stage {stage_id} from {old_position} to {new_position}")
        return await _ordered_stage_dicts(session, stage.job_id)


async def delete_stage(stage_id: int, user_id: int | None = None) -> List[Dict[str, Any]]:
    """
    Delete a custom stage and close the gap it leaves.

    Raises:
        ValidationError: Default or mandatory stage, or stage holds candidates
    """
    async with AsyncSessionLocal() as session:
        stage = await _load_stage(session, stage_id)

        if stage.is_default:
            raise ValidationError({"stage": ["Default stages cannot be deleted"]})
        if stage.is_mandatory:
            raise ValidationError({"stage": ["Mandatory stages cannot be deleted"]})

        sub_ids = list((await session.execute(
            select(PipelineStage.id).where(PipelineStage.parent_id == stage_id)
        )).scalars().all())

        occupied = (await session.execute(
            select(func.count(JobCandidate.id))
            .where(JobCandidate.current_stage_id.in_([stage_id, *sub_ids]))
        )).scalar() or 0
        if occupied:
            raise ValidationError(
                {"stage": ["Cannot delete a stage that contains candidates"]}
            )

        job_id, position, is_top_level = stage.job_id, stage.position, stage.parent_id is None

        for sub_id in sub_ids:
            await session.delete(await session.get(PipelineStage, sub_id))
        await session.delete(stage)
        await session.flush()

        if is_top_level:
            for s in await _top_level_stages(session, job_id):
                if s.position > position:
                    s.position -= 1

        await session.commit()

        log_audit_event(AuditAction.DELETE, ResourceType.STAGE, stage_id, user_id=user_id)
        return await _ordered_stage_dicts(session, job_id)


async def update_stage(stage_id: int, name: str) -> Dict[str, Any]:
    """Rename a stage. Mandatory stages keep their names."""
    name = (name or "").strip()
    if not name:
        raise ValidationError({"name": ["Stage name is required"]})

    async with AsyncSessionLocal() as session:
        stage = await _load_stage(session, stage_id)
        if stage.is_mandatory and name != stage.name:
            raise ValidationError({"name": ["Mandatory stages cannot be renamed"]})
        stage.name = name
        await session.commit()
        return stage.to_dict()
