"""
Search endpoints.

Boolean free-text search with structured filters over candidates and jobs.
List-valued filters take repeated query parameters (``?location=NYC&location=Remote``).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import require_active_user
from api.services import search as search_service
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/search", tags=["search"])


def _filters(**values: Any) -> Dict[str, Any]:
    start = values.pop("start_date", None)
    end = values.pop("end_date", None)
    filters = {k: v for k, v in values.items() if v not in (None, [])}
    if start or end:
        filters["date_range"] = {"start": start, "end": end}
    return filters


@router.get(
    "/candidates",
    summary="Search Candidates",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def search_candidates(
    q: Optional[str] = Query(None, description='Boolean query, e.g. react AND "new york" NOT intern'),
    stage: Optional[List[str]] = Query(None),
    location: Optional[List[str]] = Query(None),
    source: Optional[List[str]] = Query(None),
    skills: Optional[List[str]] = Query(None),
    experience_min: Optional[int] = Query(None, ge=0),
    experience_max: Optional[int] = Query(None, ge=0),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1),
    page_size: int = Query(20),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    current_user: User = Depends(require_active_user),
):
    filters = _filters(
        stage=stage, location=location, source=source, skills=skills,
        experience_min=experience_min, experience_max=experience_max,
        start_date=start_date, end_date=end_date,
    )
    return await search_service.search_candidates(
        current_user.company_id,
        query=q,
        filters=filters,
        page=page,
        page_size=page_size,
        user=current_user,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get(
    "/jobs",
    summary="Search Jobs",
    dependencies=[Depends(require_permission(Permission.JOB_READ))],
)
async def search_jobs(
    q: Optional[str] = Query(None),
    status: Optional[List[str]] = Query(None),
    department: Optional[List[str]] = Query(None),
    location: Optional[List[str]] = Query(None),
    priority: Optional[List[str]] = Query(None),
    skills: Optional[List[str]] = Query(None),
    experience_min: Optional[int] = Query(None, ge=0),
    experience_max: Optional[int] = Query(None, ge=0),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1),
    page_size: int = Query(20),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    current_user: User = Depends(require_active_user),
):
    filters = _filters(
        status=status, department=department, location=location, priority=priority,
        skills=skills, experience_min=experience_min, experience_max=experience_max,
        start_date=start_date, end_date=end_date,
    )
    return await search_service.search_jobs(
        current_user,
        query=q,
        filters=filters,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
