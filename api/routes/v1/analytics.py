"""
Recruiting analytics endpoints.

Every metric accepts the same optional filters. Results only cover jobs the
caller can access.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import require_active_user
from api.services import analytics as analytics_service
from core.middleware.authorization import require_minimum_role
from database.models.users import User, UserRole

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_minimum_role(UserRole.RECRUITER))],
)


def analytics_filters(
    start_date: Optional[str] = Query(None, description="ISO date"),
    end_date: Optional[str] = Query(None, description="ISO date"),
    department: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    job_id: Optional[int] = Query(None),
    recruiter_id: Optional[int] = Query(None),
) -> Dict[str, Any]:
    values = {
        "start_date": start_date,
        "end_date": end_date,
        "department": department,
        "location": location,
        "job_id": job_id,
        "recruiter_id": recruiter_id,
    }
    return {k: v for k, v in values.items() if v is not None}


@router.get("/kpis", summary="KPI Metrics")
async def kpis(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_kpi_metrics(current_user, filters)


@router.get("/funnel", summary="Pipeline Funnel")
async def funnel(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_funnel_analytics(current_user, filters)


@router.get("/time-to-fill", summary="Time To Fill")
async def time_to_fill(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_time_to_fill(current_user, filters)


@router.get("/time-in-stage", summary="Time In Stage")
async def time_in_stage(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_time_in_stage(current_user, filters)


@router.get("/sources", summary="Source Performance")
async def sources(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_source_performance(current_user, filters)


@router.get("/drop-off", summary="Drop-off Analysis")
async def drop_off(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_drop_off_analysis(current_user, filters)


@router.get("/rejection-reasons", summary="Rejection Reasons")
async def rejection_reasons(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_rejection_reasons(current_user, filters)


@router.get("/offer-acceptance", summary="Offer Acceptance Rate")
async def offer_acceptance(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_offer_acceptance_rate(current_user, filters)


@router.get("/sla-status", summary="Role SLA Status")
async def sla_status(
    filters: Dict[str, Any] = Depends(analytics_filters),
    current_user: User = Depends(require_active_user),
):
    return await analytics_service.get_sla_status(current_user, filters)
