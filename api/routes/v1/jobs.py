"""
Job posting management endpoints.

Access to a single job follows the job access rules: admins and hiring
managers see every company job, recruiters their assigned jobs, vendors
their assigned jobs.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse, to_service_data
from api.schemas.jobs import JobCreate, JobUpdate
from api.services import jobs as job_service
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get(
    "",
    summary="List Jobs",
    description="Jobs visible to the current user. Requires job:read permission.",
    dependencies=[Depends(require_permission(Permission.JOB_READ))],
)
async def list_jobs(
    status: Optional[str] = Query(None, description="Filter by status (active, paused, closed, draft)"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.list_jobs(current_user, status)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Job",
    description="Create a job with the default or a custom pipeline. Requires job:create permission.",
    dependencies=[Depends(require_permission(Permission.JOB_CREATE))],
)
async def create_job(
    request: JobCreate,
    current_user: User = Depends(require_active_user),
):
    return await job_service.create_job(current_user, to_service_data(request))


@router.get(
    "/{job_id}",
    summary="Get Job Details",
    dependencies=[Depends(require_permission(Permission.JOB_READ))],
)
async def get_job(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.get_job(current_user, job_id)


@router.put(
    "/{job_id}",
    summary="Update Job",
    dependencies=[Depends(require_permission(Permission.JOB_UPDATE))],
)
async def update_job(
    request: JobUpdate,
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.update_job(current_user, job_id, to_service_data(request))


@router.delete(
    "/{job_id}",
    response_model=MessageResponse,
    summary="Delete Job",
    description="Delete a job with its pipeline and applications. Requires job:delete permission.",
    dependencies=[Depends(require_permission(Permission.JOB_DELETE))],
)
async def delete_job(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    await job_service.delete_job(current_user, job_id)
    return MessageResponse(message="Job deleted")


@router.post(
    "/{job_id}/toggle-status",
    summary="Toggle Job Status",
    description="Close an active job or reactivate any other. Requires job:update permission.",
    dependencies=[Depends(require_permission(Permission.JOB_UPDATE))],
)
async def toggle_job_status(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.toggle_job_status(current_user, job_id)


@router.post(
    "/{job_id}/duplicate",
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate Job",
    dependencies=[Depends(require_permission(Permission.JOB_CREATE))],
)
async def duplicate_job(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.duplicate_job(current_user, job_id)


@router.get(
    "/{job_id}/candidates",
    summary="List Job Candidates",
    description="Applications of a job with their current stage. Requires candidate:read permission.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_job_candidates(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    return await job_service.get_job_candidates(current_user, job_id)
