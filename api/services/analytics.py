"""
Hiring analytics.

All figures are limited to the jobs the requesting user can access
(recruiters: their assigned jobs) and narrowed further by optional filters:

    start_date, end_date, department, location, job_id, recruiter_id

Rates are percentages rounded to one decimal; day counts are rounded to
whole days unless noted.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging
import math
import statistics

from sqlalchemy import String, and_, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ValidationError
from core.utils.datetime import ensure_utc, fractional_days_between, now, parse_datetime, start_of_day, start_of_week
from database.engine import AsyncSessionLocal
from database.models.candidates import Candidate, JobCandidate, StageHistory
from database.models.interviews import Interview
from database.models.jobs import Job, JobStatus
from database.models.pipelines import PipelineStage
from database.models.users import User, UserRole
from api.services.candidates import is_rejection_stage
from api.services.job_access import build_job_scope

logger = logging.getLogger(__name__)

TIME_TO_FILL_TARGET_DAYS = 30
SLA_AT_RISK_DAYS = TIME_TO_FILL_TARGET_DAYS - 3
OFFER_ACCEPTANCE_THRESHOLD = 70

OFFER_STAGE = "offer"
HIRED_STAGE = "hired"

REJECTION_CATEGORIES = {
    "Skill mismatch": ("skill", "technical", "experience", "qualification", "competency", "ability"),
    "Compensation mismatch": ("salary", "compensation", "pay", "package", "benefits", "ctc"),
    "Culture fit": ("culture", "fit", "attitude", "personality", "team", "values"),
    "Location/notice/other": ("location", "notice", "availability", "other", "personal", "family"),
}
FALLBACK_REJECTION_CATEGORY = "Location/notice/other"

SLA_STATUS_ORDER = {"breached": 0, "at_risk": 1, "on_track": 2}


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def rate(part: float, whole: float) -> float:
    """Percentage with one decimal; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100, 1)


def whole_days(value: float) -> int:
    return int(round_half_up(value))


def categorize_rejection(comment: Optional[str]) -> str:
    text = (comment or "").lower()
    for category, keywords in REJECTION_CATEGORIES.items():
        if any(keyword in text for keyword in keywords):
            return category
    return FALLBACK_REJECTION_CATEGORY


def time_in_stage_suggestion(stage_name: str, avg_days: float) -> str:
    if avg_days > 14:
        return (
            f'The "{stage_name}" stage is taking {avg_days} days on average, which is significantly '
            f"longer than other stages. Consider streamlining this process or adding more resources "
            f"to reduce delays."
        )
    if avg_days > 7:
        return (
            f'The "{stage_name}" stage is taking {avg_days} days on average. This could be optimized '
            f"by setting clearer timelines or improving communication with stakeholders."
        )
    if avg_days > 3:
        return (
            f'The "{stage_name}" stage is taking {avg_days} days on average. Consider if this '
            f"timeline can be reduced while maintaining quality."
        )
    return (
        f'Your pipeline stages are moving efficiently. The longest stage "{stage_name}" takes '
        f"only {avg_days} days on average."
    )


def sla_status_for(days_open: int) -> str:
    if days_open > TIME_TO_FILL_TARGET_DAYS:
        return "breached"
    if days_open > SLA_AT_RISK_DAYS:
        return "at_risk"
    return "on_track"


# ==================== Scoping ===================== #
@dataclass
class Scope:
    job_clause: Any
    start: Optional[datetime]
    end: Optional[datetime]

    def in_range(self, column) -> List[Any]:
        conditions = []
        if self.start is not None:
            conditions.append(column >= self.start)
        if self.end is not None:
            conditions.append(column <= self.end)
        return conditions


def _parse_date(filters: Dict[str, Any], key: str) -> Optional[datetime]:
    raw = filters.get(key)
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    value = parse_datetime(str(raw))
    if value is None:
        raise ValidationError({key: ["Invalid date"]})
    return value


def build_scope(user: User, filters: Optional[Dict[str, Any]] = None) -> Scope:
    filters = filters or {}
    conditions = [build_job_scope(user)]

    if filters.get("job_id"):
        conditions.append(Job.id == filters["job_id"])
    if filters.get("department"):
        conditions.append(Job.department == filters["department"])
    if filters.get("location"):
        location = filters["location"]
        conditions.append(or_(
            Job.location == location,
            func.lower(cast(Job.locations, String)).like(f'%"{location.lower()}"%'),
        ))
    # Recruiters are already limited to their own jobs
    if filters.get("recruiter_id") and UserRole(user.role) != UserRole.RECRUITER:
        conditions.append(Job.assigned_recruiter_id == filters["recruiter_id"])

    start, end = _parse_date(filters, "start_date"), _parse_date(filters, "end_date")
    if start and end and start > end:
        raise ValidationError({"start_date": ["Start date must be before end date"]})
    return Scope(and_(*conditions), start, end)


async def _stage_groups(session: AsyncSession, scope: Scope) -> Tuple[List[str], Dict[int, str]]:
    """
    Stage names across scoped jobs, ordered by their lowest position, and a
    map of stage id to group name (sub-stages fold into their parent).
    """
    rows = (await session.execute(
        select(PipelineStage.id, PipelineStage.parent_id, PipelineStage.name, PipelineStage.position)
        .join(Job, Job.id == PipelineStage.job_id)
        .where(scope.job_clause)
        .order_by(PipelineStage.position)
    )).all()

    names: Dict[int, str] = {}
    positions: Dict[str, int] = {}
    for stage_id, parent_id, name, position in rows:
        if parent_id is None:
            names[stage_id] = name
            positions.setdefault(name, position)

    group_of = {}
    for stage_id, parent_id, name, _ in rows:
        group_of[stage_id] = names.get(parent_id, name) if parent_id is not None else name

    ordered = sorted(positions, key=lambda n: positions[n])
    return ordered, group_of


async def _applications(session: AsyncSession, scope: Scope, date_column=None) -> List[Tuple]:
    """(JobCandidate, Job, stage name, candidate source) rows in scope."""
    query = (
        select(JobCandidate, Job, PipelineStage.name, Candidate.source)
        .join(Job, Job.id == JobCandidate.job_id)
        .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
        .join(Candidate, Candidate.id == JobCandidate.candidate_id)
        .where(scope.job_clause)
    )
    if date_column is not None:
        query = query.where(*scope.in_range(date_column))
    return (await session.execute(query)).all()


async def _hired_at(session: AsyncSession, jc_ids: List[int]) -> Dict[int, datetime]:
    """When each application last entered a Hired stage."""
    if not jc_ids:
        return {}
    result = await session.execute(
        select(StageHistory.job_candidate_id, func.max(StageHistory.entered_at))
        .where(
            StageHistory.job_candidate_id.in_(jc_ids),
            func.lower(StageHistory.stage_name) == HIRED_STAGE,
        )
        .group_by(StageHistory.job_candidate_id)
    )
    return {jc_id: ensure_utc(at) for jc_id, at in result.all()}


async def _hires(session: AsyncSession, scope: Scope) -> List[Dict[str, Any]]:
    rows = [r for r in await _applications(session, scope) if r[2].lower() == HIRED_STAGE]
    hired_at = await _hired_at(session, [r[0].id for r in rows])

    hires = []
    for jc, job, _, source in rows:
        at = hired_at.get(jc.id) or ensure_utc(jc.updated_at)
        if scope.start and at < scope.start or scope.end and at > scope.end:
            continue
        hires.append({
            "job_candidate_id": jc.id,
            "job_id": job.id,
            "job_title": job.title,
            "department": job.department or "Unspecified",
            "source": source or "Unknown",
            "days": max(0.0, fractional_days_between(job.created_at, at)),
        })
    return hires


# ==================== Reports ===================== #
async def get_kpi_metrics(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Dashboard headline numbers."""
    scope = build_scope(user, filters)
    current = now()
    today = start_of_day(current)
    week = start_of_week(current)
    month = today.replace(day=1)

    async with AsyncSessionLocal() as session:
        active_roles = (await session.execute(
            select(func.count(Job.id)).where(scope.job_clause, Job.status == JobStatus.ACTIVE)
        )).scalar_one()

        applications = await _applications(session, scope)
        new_this_month = sum(1 for jc, *_ in applications if ensure_utc(jc.applied_at) >= month)

        interview_times = [
            ensure_utc(at) for at in (await session.execute(
                select(Interview.scheduled_at)
                .join(JobCandidate, JobCandidate.id == Interview.job_candidate_id)
                .join(Job, Job.id == JobCandidate.job_id)
                .where(scope.job_clause, Interview.scheduled_at >= week)
            )).scalars().all()
        ]

    offers_pending = sum(1 for _, _, stage, _ in applications if stage.lower() == OFFER_STAGE)
    time_to_fill = await get_time_to_fill(user, filters)
    offers = await get_offer_acceptance_rate(user, filters)
    sla = await get_sla_status(user, filters)

    return {
        "active_roles": active_roles,
        "active_candidates": len(applications),
        "new_candidates_this_month": new_this_month,
        "interviews_today": sum(1 for at in interview_times if today <= at < today + timedelta(days=1)),
        "interviews_this_week": sum(1 for at in interview_times if at < week + timedelta(days=7)),
        "offers_pending": offers_pending,
        "total_hires": offers["overall"]["accepted_offers"],
        "total_offers": offers["overall"]["total_offers"],
        "avg_time_to_fill": time_to_fill["overall"]["average"],
        "offer_acceptance_rate": offers["overall"]["acceptance_rate"],
        "roles_on_track": sla["summary"]["on_track"],
        "roles_at_risk": sla["summary"]["at_risk"],
        "roles_breached": sla["summary"]["breached"],
    }


async def _avg_days_by_stage(session: AsyncSession, scope: Scope) -> Dict[str, Tuple[float, int]]:
    """Average completed stage duration in days (one decimal) and sample size."""
    result = await session.execute(
        select(StageHistory.stage_name, func.avg(StageHistory.duration_hours), func.count(StageHistory.id))
        .join(JobCandidate, JobCandidate.id == StageHistory.job_candidate_id)
        .join(Job, Job.id == JobCandidate.job_id)
        .where(
            scope.job_clause,
            StageHistory.exited_at.is_not(None),
            StageHistory.duration_hours.is_not(None),
            *scope.in_range(StageHistory.entered_at),
        )
        .group_by(StageHistory.stage_name)
    )
    return {
        name: (round_half_up((avg_hours or 0) / 24, 1), count)
        for name, avg_hours, count in result.all()
    }


async def get_funnel_analytics(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Candidates currently in each stage, with stages of the same name merged
    across jobs.
    """
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        names, group_of = await _stage_groups(session, scope)
        applications = await _applications(session, scope, JobCandidate.applied_at)
        avg_days = await _avg_days_by_stage(session, scope)

    counts = defaultdict(int)
    for jc, *_ in applications:
        counts[group_of.get(jc.current_stage_id)] += 1

    total = len(applications)
    stages = []
    for i, name in enumerate(names):
        count = counts[name]
        next_count = counts[names[i + 1]] if i + 1 < len(names) else None
        stages.append({
            "name": name,
            "count": count,
            "percentage": rate(count, total),
            "conversion_to_next": rate(next_count, count) if next_count is not None else 0,
            "avg_days_in_stage": avg_days.get(name, (0, 0))[0],
        })

    total_hired = sum(s["count"] for s in stages if s["name"].lower() == HIRED_STAGE)
    return {
        "stages": stages,
        "total_applicants": total,
        "total_hired": total_hired,
        "overall_conversion_rate": rate(total_hired, total),
    }


async def get_time_to_fill(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Days from job creation to hire."""
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        hires = await _hires(session, scope)

    if not hires:
        return {
            "overall": {"average": 0, "median": 0, "target": TIME_TO_FILL_TARGET_DAYS},
            "by_department": [],
            "by_role": [],
        }

    days = [whole_days(h["days"]) for h in hires]
    by_department = defaultdict(list)
    by_role: Dict[int, Dict[str, Any]] = {}
    for hire, d in zip(hires, days):
        by_department[hire["department"]].append(d)
        by_role.setdefault(hire["job_id"], {"title": hire["job_title"], "days": []})["days"].append(d)

    roles = []
    for role_id, data in by_role.items():
        average = whole_days(statistics.mean(data["days"]))
        roles.append({
            "role_id": role_id,
            "role_name": data["title"],
            "average": average,
            "count": len(data["days"]),
            "is_over_target": average > TIME_TO_FILL_TARGET_DAYS,
        })

    return {
        "overall": {
            "average": whole_days(statistics.mean(days)),
            "median": whole_days(statistics.median(days)),
            "target": TIME_TO_FILL_TARGET_DAYS,
        },
        "by_department": [
            {"department": dept, "average": whole_days(statistics.mean(d)), "count": len(d)}
            for dept, d in by_department.items()
        ],
        "by_role": roles,
    }


async def get_time_in_stage(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Average days per stage, longest first, with the bottleneck called out."""
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        avg_days = await _avg_days_by_stage(session, scope)

    if not avg_days:
        return {
            "stages": [],
            "bottleneck_stage": "",
            "suggestion": "No stage history data available for the selected criteria.",
        }

    stages = [
        {"stage_name": name, "avg_days": days, "count": count}
        for name, (days, count) in avg_days.items()
        if days > 0
    ]
    if not stages:
        return {
            "stages": [],
            "bottleneck_stage": "",
            "suggestion": "No completed stage transitions found for the selected criteria.",
        }

    stages.sort(key=lambda s: s["avg_days"], reverse=True)
    bottleneck = stages[0]
    for stage in stages:
        stage["is_bottleneck"] = stage is bottleneck

    return {
        "stages": stages,
        "bottleneck_stage": bottleneck["stage_name"],
        "suggestion": time_in_stage_suggestion(bottleneck["stage_name"], bottleneck["avg_days"]),
    }


async def get_source_performance(user: User, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Per candidate source, sorted by hire rate."""
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        applications = await _applications(session, scope, JobCandidate.applied_at)
        hired = [r for r in applications if r[2].lower() == HIRED_STAGE]
        hired_at = await _hired_at(session, [r[0].id for r in hired])

    if not applications:
        return []

    groups: Dict[str, Dict[str, List[float]]] = {}
    for jc, job, stage, source in applications:
        group = groups.setdefault(source or "Unknown", {"total": [], "hire_days": []})
        group["total"].append(jc.id)
        if stage.lower() == HIRED_STAGE:
            at = hired_at.get(jc.id) or ensure_utc(jc.updated_at)
            group["hire_days"].append(max(0.0, fractional_days_between(job.created_at, at)))

    total = len(applications)
    performance = []
    for source, group in groups.items():
        candidate_count, hire_count = len(group["total"]), len(group["hire_days"])
        performance.append({
            "source": source,
            "candidate_count": candidate_count,
            "percentage": rate(candidate_count, total),
            "hire_count": hire_count,
            "hire_rate": rate(hire_count, candidate_count),
            "avg_time_to_hire": whole_days(statistics.mean(group["hire_days"])) if hire_count else 0,
        })

    performance.sort(key=lambda p: p["hire_rate"], reverse=True)
    return performance


async def _history_by_application(session: AsyncSession, scope: Scope) -> Dict[int, List[StageHistory]]:
    result = await session.execute(
        select(StageHistory)
        .join(JobCandidate, JobCandidate.id == StageHistory.job_candidate_id)
        .join(Job, Job.id == JobCandidate.job_id)
        .where(scope.job_clause, *scope.in_range(StageHistory.entered_at))
        .order_by(StageHistory.job_candidate_id, StageHistory.entered_at, StageHistory.id)
    )
    history = defaultdict(list)
    for entry in result.scalars().all():
        history[entry.job_candidate_id].append(entry)
    return history


def _rejected_from(entries: List[StageHistory]) -> List[Tuple[str, StageHistory]]:
    """(stage left, rejection entry) for each move into a rejection stage."""
    moves = []
    for previous, entry in zip(entries, entries[1:]):
        if is_rejection_stage(entry.stage_name) and not is_rejection_stage(previous.stage_name):
            moves.append((previous.stage_name, entry))
    return moves


async def get_drop_off_analysis(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Per stage, how many applications reached it and how many were rejected
    straight out of it.
    """
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        names, group_of = await _stage_groups(session, scope)
        history = await _history_by_application(session, scope)
        applications = await _applications(session, scope, JobCandidate.applied_at)

    reached = defaultdict(set)
    drop_offs = defaultdict(int)
    for jc_id, entries in history.items():
        for entry in entries:
            reached[entry.stage_name].add(jc_id)
        for stage_name, _ in _rejected_from(entries):
            drop_offs[stage_name] += 1
    for jc, *_ in applications:
        reached[group_of.get(jc.current_stage_id)].add(jc.id)

    by_stage = []
    for name in names:
        if is_rejection_stage(name):
            continue
        count = len(reached[name])
        by_stage.append({
            "stage_name": name,
            "reached_count": count,
            "drop_off_count": drop_offs[name],
            "drop_off_percentage": rate(drop_offs[name], count),
        })

    highest = max(by_stage, key=lambda s: s["drop_off_percentage"], default=None)
    return {
        "by_stage": by_stage,
        "highest_drop_off_stage": highest["stage_name"] if highest and highest["drop_off_percentage"] else "",
    }


async def get_rejection_reasons(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Rejection comments bucketed by keyword category."""
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        history = await _history_by_application(session, scope)

    categories = {category: 0 for category in REJECTION_CATEGORIES}
    by_stage = defaultdict(int)
    for entries in history.values():
        for stage_name, entry in _rejected_from(entries):
            categories[categorize_rejection(entry.comment)] += 1
            by_stage[stage_name] += 1

    total = sum(categories.values())
    top_stage = max(by_stage.items(), key=lambda item: item[1], default=("", 0))[0]
    return {
        "reasons": [
            {"reason": reason, "count": count, "percentage": rate(count, total)}
            for reason, count in categories.items()
        ],
        "total_rejections": total,
        "top_stage_for_rejection": top_stage,
    }


def _acceptance(total: int, accepted: int) -> Dict[str, Any]:
    return {"acceptance_rate": rate(accepted, total), "total_offers": total, "accepted_offers": accepted}


async def get_offer_acceptance_rate(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Applications in Offer or Hired count as offers; Hired ones as accepted.
    """
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        rows = [
            r for r in await _applications(session, scope, JobCandidate.updated_at)
            if r[2].lower() in (OFFER_STAGE, HIRED_STAGE)
        ]

    by_department: Dict[str, List[int]] = {}
    by_role: Dict[int, Dict[str, Any]] = {}
    for jc, job, stage, _ in rows:
        accepted = int(stage.lower() == HIRED_STAGE)
        dept = by_department.setdefault(job.department or "Unspecified", [0, 0])
        dept[0] += 1
        dept[1] += accepted
        role = by_role.setdefault(job.id, {"title": job.title, "total": 0, "accepted": 0})
        role["total"] += 1
        role["accepted"] += accepted

    accepted_total = sum(d[1] for d in by_department.values())
    roles = []
    for role_id, data in by_role.items():
        entry = {"role_id": role_id, "role_name": data["title"], **_acceptance(data["total"], data["accepted"])}
        entry["is_under_threshold"] = entry["acceptance_rate"] < OFFER_ACCEPTANCE_THRESHOLD
        roles.append(entry)

    return {
        "overall": _acceptance(len(rows), accepted_total),
        "by_department": [
            {"department": dept, **_acceptance(total, accepted)}
            for dept, (total, accepted) in by_department.items()
        ],
        "by_role": roles,
    }


async def get_sla_status(user: User, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Active roles against the time-to-fill target.

    Breached roles first, then at risk, then on track; oldest first within
    each group.
    """
    scope = build_scope(user, filters)
    async with AsyncSessionLocal() as session:
        jobs = (await session.execute(
            select(Job).where(scope.job_clause, Job.status == JobStatus.ACTIVE)
        )).scalars().all()

    current = now()
    summary = {"on_track": 0, "at_risk": 0, "breached": 0}
    roles = []
    for job in jobs:
        days_open = math.floor(fractional_days_between(job.created_at, current))
        status = sla_status_for(days_open)
        summary[status] += 1
        roles.append({
            "role_id": job.id,
            "role_name": job.title,
            "status": status,
            "days_open": days_open,
            "threshold": TIME_TO_FILL_TARGET_DAYS,
        })

    roles.sort(key=lambda r: (SLA_STATUS_ORDER[r["status"]], -r["days_open"]))
    return {"summary": summary, "roles": roles}
