"""
Stage SLA configuration and breach detection.

A company sets, per stage name, how many days a candidate may stay in the
stage. Candidates of active jobs past that limit are breaches.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import math

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.utils.datetime import ensure_utc, fractional_days_between, now
from database.engine import AsyncSessionLocal
from database.models.candidates import Candidate, JobCandidate, StageHistory
from database.models.companies import Company
from database.models.jobs import Job, JobStatus
from database.models.notifications import Notification, NotificationType
from database.models.pipelines import PipelineStage
from database.models.sla import SLAConfig
from api.services import notifications

logger = logging.getLogger(__name__)

DEFAULT_SLA_THRESHOLDS = {
    "Applied": 3,
    "Screening": 5,
    "Interview": 7,
    "Technical Round": 7,
    "HR Round": 5,
    "Offer": 3,
}

ALERT_TYPES = ("sla", "feedback")


def evaluate_breach(
    entered_at: datetime,
    threshold_days: int,
    at: Optional[datetime] = None,
) -> Optional[Dict[str, int]]:
    """
    Days in stage and days overdue, or None when within the threshold.

    The comparison uses fractional days; reported values are floored.
    """
    days_in_stage = fractional_days_between(entered_at, at or now())
    if days_in_stage <= threshold_days:
        return None
    return {
        "days_in_stage": math.floor(days_in_stage),
        "days_overdue": math.floor(days_in_stage - threshold_days),
    }


def validate_sla_input(stage_name: Any, threshold_days: Any) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    if not isinstance(stage_name, str) or not stage_name.strip():
        errors["stage_name"] = ["Stage name is required"]

    if threshold_days is None:
        errors["threshold_days"] = ["Threshold days is required"]
    elif isinstance(threshold_days, bool) or not isinstance(threshold_days, (int, float)):
        errors["threshold_days"] = ["Threshold days must be a whole number"]
    elif threshold_days < 1:
        errors["threshold_days"] = ["Threshold days must be at least 1"]
    elif not float(threshold_days).is_integer():
        errors["threshold_days"] = ["Threshold days must be a whole number"]
    return errors


async def _require_company(session: AsyncSession, company_id: int) -> None:
    if not await session.get(Company, company_id):
        raise NotFoundError("Company")


async def _upsert_config(
    session: AsyncSession,
    company_id: int,
    stage_name: str,
    threshold_days: int,
) -> SLAConfig:
    stage_name = stage_name.strip()
    config = (await session.execute(
        select(SLAConfig).where(
            SLAConfig.company_id == company_id,
            SLAConfig.stage_name == stage_name,
        )
    )).scalar_one_or_none()

    if config:
        config.threshold_days = int(threshold_days)
    else:
        config = SLAConfig(
            company_id=company_id,
            stage_name=stage_name,
            threshold_days=int(threshold_days),
        )
        session.add(config)
    await session.flush()
    return config


async def get_sla_config(company_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        await _require_company(session, company_id)
        result = await session.execute(
            select(SLAConfig)
            .where(SLAConfig.company_id == company_id)
            .order_by(SLAConfig.stage_name)
        )
        return [c.to_dict() for c in result.scalars().all()]


async def update_sla_config(company_id: int, stage_name: str, threshold_days: int) -> Dict[str, Any]:
    errors = validate_sla_input(stage_name, threshold_days)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        await _require_company(session, company_id)
        config = await _upsert_config(session, company_id, stage_name, threshold_days)
        await session.commit()
        return config.to_dict()


async def update_sla_configs(company_id: int, configs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Upsert several configs in one transaction; any invalid entry rejects the batch."""
    errors: Dict[str, List[str]] = {}
    for i, item in enumerate(configs):
        for field, messages in validate_sla_input(item.get("stage_name"), item.get("threshold_days")).items():
            errors[f"configs[{i}].{field}"] = messages
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        await _require_company(session, company_id)
        results = [
            await _upsert_config(session, company_id, item["stage_name"], item["threshold_days"])
            for item in configs
        ]
        await session.commit()
        return [c.to_dict() for c in results]


async def delete_sla_config(company_id: int, config_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        config = await session.get(SLAConfig, config_id)
        if not config or config.company_id != company_id:
            raise NotFoundError("SLA configuration")
        await session.delete(config)
        await session.commit()
        return True


async def apply_default_thresholds(company_id: int) -> List[Dict[str, Any]]:
    return await update_sla_configs(
        company_id,
        [{"stage_name": name, "threshold_days": days} for name, days in DEFAULT_SLA_THRESHOLDS.items()],
    )


# ==================== Breaches ===================== #
async def _threshold_map(session: AsyncSession, company_id: int) -> Dict[str, int]:
    result = await session.execute(
        select(SLAConfig.stage_name, SLAConfig.threshold_days).where(SLAConfig.company_id == company_id)
    )
    return {name.lower(): days for name, days in result.all()}


async def _open_entry_times(session: AsyncSession, jc_ids: List[int]) -> Dict[int, datetime]:
    """Latest open history entry per application."""
    if not jc_ids:
        return {}
    result = await session.execute(
        select(StageHistory.job_candidate_id, StageHistory.entered_at)
        .where(StageHistory.job_candidate_id.in_(jc_ids), StageHistory.exited_at.is_(None))
        .order_by(StageHistory.entered_at)
    )
    # Ascending order, so later entries overwrite earlier ones
    return {jc_id: entered_at for jc_id, entered_at in result.all()}


def _build_breach(
    jc: JobCandidate,
    candidate: Candidate,
    job: Job,
    stage: PipelineStage,
    entered_at: datetime,
    threshold_days: int,
) -> Optional[Dict[str, Any]]:
    evaluation = evaluate_breach(entered_at, threshold_days)
    if not evaluation:
        return None
    return {
        "id": f"sla-{jc.id}",
        "job_candidate_id": jc.id,
        "candidate_id": candidate.id,
        "candidate_name": candidate.name,
        "job_id": job.id,
        "job_title": job.title,
        "stage_name": stage.name,
        "days_in_stage": evaluation["days_in_stage"],
        "threshold_days": threshold_days,
        "days_overdue": evaluation["days_overdue"],
        "entered_at": ensure_utc(entered_at).isoformat(),
    }


def _application_query():
    return (
        select(JobCandidate, Candidate, Job, PipelineStage)
        .join(Candidate, Candidate.id == JobCandidate.candidate_id)
        .join(Job, Job.id == JobCandidate.job_id)
        .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
    )


async def check_sla_breaches(company_id: int) -> List[Dict[str, Any]]:
    """Breaches across the company's active jobs, most overdue first."""
    async with AsyncSessionLocal() as session:
        thresholds = await _threshold_map(session, company_id)
        if not thresholds:
            return []

        rows = (await session.execute(
            _application_query().where(
                Job.company_id == company_id,
                Job.status == JobStatus.ACTIVE,
            )
        )).all()
        rows = [r for r in rows if r[3].name.lower() in thresholds]
        entered = await _open_entry_times(session, [r[0].id for r in rows])

    breaches = []
    for jc, candidate, job, stage in rows:
        breach = _build_breach(
            jc, candidate, job, stage,
            entered.get(jc.id) or jc.applied_at,
            thresholds[stage.name.lower()],
        )
        if breach:
            breaches.append(breach)

    breaches.sort(key=lambda b: b["days_overdue"], reverse=True)
    return breaches


async def check_candidate_sla_breach(job_candidate_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        row = (await session.execute(
            _application_query().where(JobCandidate.id == job_candidate_id)
        )).first()
        if not row:
            raise NotFoundError("Job candidate")
        jc, candidate, job, stage = row

        threshold = (await _threshold_map(session, job.company_id)).get(stage.name.lower())
        if not threshold:
            return None
        entered = await _open_entry_times(session, [jc.id])

    return _build_breach(jc, candidate, job, stage, entered.get(jc.id) or jc.applied_at, threshold)


async def create_sla_breach_notifications(company_id: int) -> int:
    """
    Notify each job's recruiter, admins and hiring managers about breaches.

    Recipients with an unread breach notice for the same application are
    skipped.

    Returns:
        Number of notifications created
    """
    breaches = await check_sla_breaches(company_id)
    if not breaches:
        return 0

    count = 0
    async with AsyncSessionLocal() as session:
        for breach in breaches:
            job = await session.get(Job, breach["job_id"])
            recipients = await notifications.get_job_stakeholder_ids(session, job)

            entity_id = str(breach["job_candidate_id"])
            already = set((await session.execute(
                select(Notification.user_id).where(
                    Notification.type == NotificationType.SLA_BREACH,
                    Notification.entity_type == "job_candidate",
                    Notification.entity_id == entity_id,
                    Notification.is_read.is_(False),
                )
            )).scalars().all())

            count += await notifications.add_notifications(
                session,
                [uid for uid in recipients if uid not in already],
                NotificationType.SLA_BREACH,
                "SLA Breach",
                f"{breach['candidate_name']} has been in {breach['stage_name']} for "
                f"{breach['days_in_stage']} days ({breach['days_overdue']} days overdue) "
                f"for {breach['job_title']}",
                entity_type="job_candidate",
                entity_id=breach["job_candidate_id"],
            )
        await session.commit()

    logger.info(f"Created {count} SLA breach notifications for company {company_id}")
    return count


async def get_alerts(company_id: int, type: Optional[str] = None) -> Dict[str, Any]:
    if type is not None and type not in ALERT_TYPES:
        raise ValidationError({"type": [f"Type must be one of: {', '.join(ALERT_TYPES)}"]})

    sla_breaches = await check_sla_breaches(company_id) if type in (None, "sla") else []
    pending_feedback = (
        await notifications.get_pending_feedback_interviews(company_id)
        if type in (None, "feedback") else []
    )
    return {
        "sla_breaches": sla_breaches,
        "pending_feedback": pending_feedback,
        "total": len(sla_breaches) + len(pending_feedback),
    }
