"""
Stage history: one row per visit of an application to a pipeline stage.

``create_stage_entry`` and ``close_stage_entry`` take the caller's session
so stage moves open and close entries inside the same transaction.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from core.utils.datetime import ensure_utc, now
from database.engine import AsyncSessionLocal
from database.models.candidates import JobCandidate, StageHistory
from database.models.users import User

logger = logging.getLogger(__name__)


def calculate_duration_hours(entered_at: datetime, exited_at: datetime) -> float:
    return (ensure_utc(exited_at) - ensure_utc(entered_at)).total_seconds() / 3600


async def _with_mover_names(
    session: AsyncSession,
    entries: List[StageHistory],
) -> List[Dict[str, Any]]:
    mover_ids = {e.moved_by for e in entries if e.moved_by}
    names: Dict[int, str] = {}
    if mover_ids:
        result = await session.execute(
            select(User.id, User.name).where(User.id.in_(mover_ids))
        )
        names = dict(result.all())

    items = []
    for entry in entries:
        item = entry.to_dict()
        item["moved_by_name"] = names.get(entry.moved_by)
        items.append(item)
    return items


async def create_stage_entry(
    session: AsyncSession,
    job_candidate_id: int,
    stage_id: int,
    stage_name: str,
    comment: Optional[str] = None,
    moved_by: Optional[int] = None,
) -> StageHistory:
    """Open a history entry. Flushes but does not commit."""
    if not await session.get(JobCandidate, job_candidate_id):
        raise NotFoundError("Job candidate")

    entry = StageHistory(
        job_candidate_id=job_candidate_id,
        stage_id=stage_id,
        stage_name=stage_name,
        entered_at=now(),
        comment=comment,
        moved_by=moved_by,
    )
    session.add(entry)
    await session.flush()
    return entry


async def close_stage_entry(
    session: AsyncSession,
    job_candidate_id: int,
    stage_id: int,
    exited_at: Optional[datetime] = None,
) -> Optional[StageHistory]:
    """
    Close the latest open entry for the stage.

    Returns:
        The closed entry, or None when nothing was open
    """
    result = await session.execute(
        select(StageHistory)
        .where(
            StageHistory.job_candidate_id == job_candidate_id,
            StageHistory.stage_id == stage_id,
            StageHistory.exited_at.is_(None),
        )
        .order_by(StageHistory.entered_at.desc(), StageHistory.id.desc())
        .limit(1)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        return None

    exited_at = exited_at or now()
    entry.exited_at = exited_at
    entry.duration_hours = calculate_duration_hours(entry.entered_at, exited_at)
    await session.flush()
    return entry


async def get_stage_history(job_candidate_id: int) -> List[Dict[str, Any]]:
    """All entries of an application, oldest first."""
    async with AsyncSessionLocal() as session:
        if not await session.get(JobCandidate, job_candidate_id):
            raise NotFoundError("Job candidate")

        result = await session.execute(
            select(StageHistory)
            .where(StageHistory.job_candidate_id == job_candidate_id)
            .order_by(StageHistory.entered_at.asc(), StageHistory.id.asc())
        )
        return await _with_mover_names(session, list(result.scalars().all()))


async def get_stage_history_by_candidate_id(candidate_id: int) -> List[Dict[str, Any]]:
    """Entries across every job the candidate applied to, newest first."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(StageHistory)
            .join(JobCandidate, JobCandidate.id == StageHistory.job_candidate_id)
            .where(JobCandidate.candidate_id == candidate_id)
            .order_by(StageHistory.entered_at.desc(), StageHistory.id.desc())
        )
        return await _with_mover_names(session, list(result.scalars().all()))


async def get_current_stage_entry(job_candidate_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(StageHistory)
            .where(
                StageHistory.job_candidate_id == job_candidate_id,
                StageHistory.exited_at.is_(None),
            )
            .order_by(StageHistory.entered_at.desc(), StageHistory.id.desc())
            .limit(1)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            return None
        return (await _with_mover_names(session, [entry]))[0]
