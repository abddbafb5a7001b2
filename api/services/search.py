"""
Search service functions.

Free-text search over candidates and jobs with a small boolean syntax:

    react AND "new york" NOT intern

Every term must match one of the searched fields (case-insensitive
substring). A term preceded by NOT must match none of them. OR is accepted
and reported in ``operators`` but terms are always combined with AND.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging
import math
import re

from sqlalchemy import String, and_, cast, func, not_, or_, select
from sqlalchemy.sql.elements import ColumnElement

from core.exceptions import ValidationError
from core.utils.datetime import parse_datetime
from database.engine import AsyncSessionLocal
from database.models.candidates import Candidate, JobCandidate
from database.models.jobs import Job, JobPriority, JobStatus
from database.models.pipelines import PipelineStage
from database.models.users import User, UserRole
from api.services.job_access import build_job_scope

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r'\b(AND|OR|NOT)\b|\(|\)|"[^"]*"|[^\s()]+', re.IGNORECASE)
OPERATORS = ("AND", "OR", "NOT")

MAX_PAGE_SIZE = 100

CANDIDATE_TEXT_FIELDS = ("name", "email", "location", "current_company")
JOB_TEXT_FIELDS = ("title", "department", "description", "location")

FILTER_KEYS = (
    "stage", "date_range", "location", "source", "experience_min", "experience_max",
    "skills", "status", "department", "priority",
)

CANDIDATE_SORT_FIELDS = ("created_at", "name", "experience_years")
JOB_SORT_FIELDS = ("created_at", "title", "priority")


@dataclass
class ParsedQuery:
    terms: List[str]
    operators: List[str]
    is_valid: bool
    error: Optional[str] = None
    excluded: List[str] = field(default_factory=list)

    @property
    def included(self) -> List[str]:
        excluded = list(self.excluded)
        result = []
        for term in self.terms:
            if term in excluded:
                excluded.remove(term)
            else:
                result.append(term)
        return result


def _tokenize(query: str) -> List[Tuple[str, str]]:
    tokens = []
    for match in TOKEN_PATTERN.finditer(query or ""):
        value = match.group(0)
        upper = value.upper()
        if upper in OPERATORS:
            tokens.append((upper, upper))
        elif value == "(":
            tokens.append(("LPAREN", value))
        elif value == ")":
            tokens.append(("RPAREN", value))
        else:
            if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
                value = value[1:-1]
            tokens.append(("TERM", value))
    return tokens


def parse_boolean_query(query: Optional[str]) -> ParsedQuery:
    """
    Split a query into terms and operators.

    Never raises; malformed input comes back with ``is_valid=False`` and an
    error message.
    """
    try:
        tokens = _tokenize(query or "")
        depth = 0
        terms: List[str] = []
        operators: List[str] = []
        excluded: List[str] = []
        negate_next = False

        for kind, value in tokens:
            if kind == "LPAREN":
                depth += 1
            elif kind == "RPAREN":
                depth -= 1
                if depth < 0:
                    raise ValueError("Unbalanced parentheses")
            elif kind == "TERM":
                if not value:
                    continue
                terms.append(value)
                if negate_next:
                    excluded.append(value)
                    negate_next = False
            else:
                operators.append(kind)
                negate_next = kind == "NOT"

        if depth != 0:
            raise ValueError("Unbalanced parentheses")
        return ParsedQuery(terms=terms, operators=operators, is_valid=True, excluded=excluded)
    except ValueError as e:
        return ParsedQuery(terms=[], operators=[], is_valid=False, error=str(e))


def count_active_filters(filters: Optional[Dict[str, Any]]) -> int:
    if not filters:
        return 0
    count = 0
    for key in ("stage", "location", "source", "skills", "status", "department", "priority"):
        if filters.get(key):
            count += 1
    if filters.get("date_range"):
        count += 1
    if filters.get("experience_min") is not None or filters.get("experience_max") is not None:
        count += 1
    return count


def clear_all_filters() -> Dict[str, Any]:
    return {key: None for key in FILTER_KEYS}


def _contains(column, term: str) -> ColumnElement[bool]:
    # NULL columns compare as empty text so NOT terms keep the row
    return func.coalesce(column, "").ilike(f"%{term}%")


def _json_contains(column, term: str) -> ColumnElement[bool]:
    # JSON string arrays are searched through their text form
    return func.lower(func.coalesce(cast(column, String), "")).like(f"%{term.lower()}%")


def _candidate_term_clause(term: str) -> ColumnElement[bool]:
    return or_(
        *(_contains(getattr(Candidate, f), term) for f in CANDIDATE_TEXT_FIELDS),
        _json_contains(Candidate.skills, term),
    )


def _job_term_clause(term: str) -> ColumnElement[bool]:
    return or_(
        *(_contains(getattr(Job, f), term) for f in JOB_TEXT_FIELDS),
        _json_contains(Job.locations, term),
    )


def _term_conditions(parsed: ParsedQuery, term_clause) -> List[ColumnElement[bool]]:
    if not parsed.is_valid:
        return []
    conditions = [term_clause(term) for term in parsed.included]
    conditions += [not_(term_clause(term)) for term in parsed.excluded]
    return conditions


def _as_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v not in (None, "")]
    return [value]


def _date_range_conditions(column, date_range: Any) -> List[ColumnElement[bool]]:
    if not date_range:
        return []
    conditions = []
    for key, op in (("start", column.__ge__), ("end", column.__le__)):
        raw = date_range.get(key) if isinstance(date_range, dict) else None
        if raw is None:
            continue
        value = parse_datetime(raw) if isinstance(raw, str) else raw
        if value is None:
            raise ValidationError({f"date_range.{key}": ["Invalid date"]})
        conditions.append(op(value))
    return conditions


def _candidate_filter_conditions(filters: Dict[str, Any]) -> List[ColumnElement[bool]]:
    conditions = []

    locations = _as_list(filters.get("location"))
    if locations:
        conditions.append(func.lower(Candidate.location).in_([l.lower() for l in locations]))

    sources = _as_list(filters.get("source"))
    if sources:
        conditions.append(Candidate.source.in_(sources))

    if filters.get("experience_min") is not None:
        conditions.append(Candidate.experience_years >= filters["experience_min"])
    if filters.get("experience_max") is not None:
        conditions.append(Candidate.experience_years <= filters["experience_max"])

    for skill in _as_list(filters.get("skills")):
        conditions.append(_json_contains(Candidate.skills, skill))

    conditions += _date_range_conditions(Candidate.created_at, filters.get("date_range"))

    stages = _as_list(filters.get("stage"))
    if stages:
        conditions.append(Candidate.id.in_(
            select(JobCandidate.candidate_id)
            .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
            .where(PipelineStage.name.in_(stages))
        ))
    return conditions


def _job_filter_conditions(filters: Dict[str, Any]) -> List[ColumnElement[bool]]:
    conditions = []

    statuses = _as_list(filters.get("status"))
    if statuses:
        try:
            conditions.append(Job.status.in_([JobStatus(s) for s in statuses]))
        except ValueError:
            raise ValidationError({"status": [f"Status must be one of: {', '.join(s.value for s in JobStatus)}"]})

    departments = _as_list(filters.get("department"))
    if departments:
        conditions.append(Job.department.in_(departments))

    locations = _as_list(filters.get("location"))
    if locations:
        conditions.append(or_(*(
            or_(func.lower(Job.location) == loc.lower(), _json_contains(Job.locations, loc))
            for loc in locations
        )))

    priorities = _as_list(filters.get("priority"))
    if priorities:
        try:
            conditions.append(Job.priority.in_([JobPriority(p) for p in priorities]))
        except ValueError:
            raise ValidationError({"priority": [f"Priority must be one of: {', '.join(p.value for p in JobPriority)}"]})

    if filters.get("experience_min") is not None:
        conditions.append(Job.experience_min >= filters["experience_min"])
    if filters.get("experience_max") is not None:
        conditions.append(Job.experience_max <= filters["experience_max"])

    for skill in _as_list(filters.get("skills")):
        conditions.append(_json_contains(Job.skills, skill))

    conditions += _date_range_conditions(Job.created_at, filters.get("date_range"))
    return conditions


def _check_paging(page: int, page_size: int) -> None:
    errors = {}
    if page < 1:
        errors["page"] = ["Page must be at least 1"]
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        errors["page_size"] = [f"Page size must be between 1 and {MAX_PAGE_SIZE}"]
    if errors:
        raise ValidationError(errors)


def _order_by(model, sort_by: str, sort_order: str, allowed):
    if sort_by not in allowed:
        raise ValidationError({"sort_by": [f"Sort field must be one of: {', '.join(allowed)}"]})
    if sort_order not in ("asc", "desc"):
        raise ValidationError({"sort_order": ["Sort order must be asc or desc"]})
    column = getattr(model, sort_by)
    return (column.asc() if sort_order == "asc" else column.desc(), model.id)


def _text_matches(value: Any, term: str) -> bool:
    return isinstance(value, str) and term.lower() in value.lower()


def _list_matches(values: Any, term: str) -> bool:
    return isinstance(values, list) and any(_text_matches(v, term) for v in values)


def candidate_highlights(candidate: Candidate, terms: List[str]) -> List[str]:
    highlights = []
    for term in terms:
        for f in CANDIDATE_TEXT_FIELDS:
            if _text_matches(getattr(candidate, f), term):
                highlights.append(f"{f}:{term}")
        if _list_matches(candidate.skills, term):
            highlights.append(f"skills:{term}")
    return highlights


def job_highlights(job: Job, terms: List[str]) -> List[str]:
    highlights = []
    for term in terms:
        for f in JOB_TEXT_FIELDS:
            if _text_matches(getattr(job, f), term):
                highlights.append(f"{f}:{term}")
        if _list_matches(job.locations, term):
            highlights.append(f"locations:{term}")
    return highlights


def _page_result(items, total: int, page: int, page_size: int, highlights) -> Dict[str, Any]:
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if total else 0,
        "highlights": highlights,
    }


async def search_candidates(
    company_id: int,
    query: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
    page: int = 1,
    page_size: int = 20,
    user: Optional[User] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """
    Search the company's candidates.

    Vendors only see candidates applied to jobs assigned to them.

    Returns:
        Page of candidates, each with its applications, plus highlights
        keyed by candidate id
    """
    _check_paging(page, page_size)
    filters = filters or {}
    parsed = parse_boolean_query(query)
    if not parsed.is_valid:
        logger.info(f"Ignoring invalid candidate search query {query!r}: {parsed.error}")

    conditions = [Candidate.company_id == company_id]
    conditions += _term_conditions(parsed, _candidate_term_clause)
    conditions += _candidate_filter_conditions(filters)
    if user is not None and UserRole(user.role) == UserRole.VENDOR:
        conditions.append(Candidate.id.in_(
            select(JobCandidate.candidate_id)
            .join(Job, Job.id == JobCandidate.job_id)
            .where(build_job_scope(user))
        ))

    where = and_(*conditions)
    async with AsyncSessionLocal() as session:
        total = (await session.execute(
            select(func.count()).select_from(Candidate).where(where)
        )).scalar_one()

        candidates = (await session.execute(
            select(Candidate)
            .where(where)
            .order_by(*_order_by(Candidate, sort_by, sort_order, CANDIDATE_SORT_FIELDS))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )).scalars().all()

        applications: Dict[int, List[Dict[str, Any]]] = {c.id: [] for c in candidates}
        if candidates:
            rows = await session.execute(
                select(JobCandidate, Job.title, PipelineStage.name)
                .join(Job, Job.id == JobCandidate.job_id)
                .join(PipelineStage, PipelineStage.id == JobCandidate.current_stage_id)
                .where(JobCandidate.candidate_id.in_(list(applications)))
                .order_by(JobCandidate.applied_at.desc())
            )
            for jc, job_title, stage_name in rows.all():
                applications[jc.candidate_id].append({
                    "job_candidate_id": jc.id,
                    "job_id": jc.job_id,
                    "job_title": job_title,
                    "stage_name": stage_name,
                    "score": jc.score,
                })

    terms = parsed.included
    highlights = {}
    for candidate in candidates:
        found = candidate_highlights(candidate, terms)
        if found:
            highlights[candidate.id] = found

    items = [{**c.to_dict(), "applications": applications[c.id]} for c in candidates]
    return _page_result(items, total, page, page_size, highlights)


async def search_jobs(
    user: User,
    query: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """Search the jobs ``user`` can access."""
    _check_paging(page, page_size)
    filters = filters or {}
    parsed = parse_boolean_query(query)

    conditions = [build_job_scope(user)]
    conditions += _term_conditions(parsed, _job_term_clause)
    conditions += _job_filter_conditions(filters)

    where = and_(*conditions)
    async with AsyncSessionLocal() as session:
        total = (await session.execute(
            select(func.count()).select_from(Job).where(where)
        )).scalar_one()

        jobs = (await session.execute(
            select(Job)
            .where(where)
            .order_by(*_order_by(Job, sort_by, sort_order, JOB_SORT_FIELDS))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )).scalars().all()

        counts: Dict[int, int] = {}
        if jobs:
            rows = await session.execute(
                select(JobCandidate.job_id, func.count(JobCandidate.id))
                .where(JobCandidate.job_id.in_([j.id for j in jobs]))
                .group_by(JobCandidate.job_id)
            )
            counts = dict(rows.all())

    terms = parsed.included
    highlights = {}
    for job in jobs:
        found = job_highlights(job, terms)
        if found:
            highlights[job.id] = found

    items = [{**j.to_dict(), "candidate_count": counts.get(j.id, 0)} for j in jobs]
    return _page_result(items, total, page, page_size, highlights)
