"""
Candidate management endpoints.

Candidate profiles are company-wide; applications (job candidates) follow
the access rules of their job.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import require_active_user
from api.schemas.candidates import (
    AddToJobRequest,
    CandidateCreate,
    CandidateUpdate,
    NoteCreate,
    ResumeUpdate,
    ScoreUpdate,
    StageChangeRequest,
)
from api.schemas.common import MessageResponse, to_service_data
from api.services import candidates as candidate_service
from api.services import stage_history
from api.services.job_access import validate_job_access
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(tags=["candidates"])


async def _check_application_access(user: User, job_candidate_id: int) -> None:
    await validate_job_access(user, await candidate_service.get_job_candidate_job_id(job_candidate_id))


# ==================== Candidates ==================== #
@router.get(
    "/candidates",
    summary="List Candidates",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def list_candidates(current_user: User = Depends(require_active_user)):
    return await candidate_service.list_candidates(current_user.company_id)


@router.get(
    "/candidates/search",
    summary="Filter Candidates",
    description="Filter candidates by profile fields and best application score.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def search_candidates(
    query: Optional[str] = Query(None, description="Matches name, email or phone"),
    location: Optional[str] = Query(None),
    experience_min: Optional[float] = Query(None, ge=0),
    experience_max: Optional[float] = Query(None, ge=0),
    source: Optional[str] = Query(None),
    availability: Optional[str] = Query(None),
    score_min: Optional[int] = Query(None, ge=0, le=100),
    score_max: Optional[int] = Query(None, ge=0, le=100),
    sort_by: Optional[str] = Query(None, description="score_asc, score_desc, name or updated"),
    current_user: User = Depends(require_active_user),
):
    return await candidate_service.search_candidates(
        current_user.company_id,
        query=query,
        location=location,
        experience_min=experience_min,
        experience_max=experience_max,
        source=source,
        availability=availability,
        score_min=score_min,
        score_max=score_max,
        sort_by=sort_by,
    )


@router.post(
    "/candidates",
    status_code=status.HTTP_201_CREATED,
    summary="Create Candidate",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_CREATE))],
)
async def create_candidate(
    request: CandidateCreate,
    current_user: User = Depends(require_active_user),
):
    return await candidate_service.create_candidate(current_user.company_id, to_service_data(request))


@router.get(
    "/candidates/{candidate_id}",
    summary="Get Candidate",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_candidate(
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    return await candidate_service.get_candidate(candidate_id, current_user.company_id)


@router.put(
    "/candidates/{candidate_id}",
    summary="Update Candidate",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_UPDATE))],
)
async def update_candidate(
    request: CandidateUpdate,
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    return await candidate_service.update_candidate(
        candidate_id, to_service_data(request), current_user.company_id
    )


@router.delete(
    "/candidates/{candidate_id}",
    response_model=MessageResponse,
    summary="Delete Candidate",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_DELETE))],
)
async def delete_candidate(
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await candidate_service.delete_candidate(
        candidate_id, current_user.company_id, deleted_by=current_user.id
    )
    return MessageResponse(message="Candidate deleted")


@router.put(
    "/candidates/{candidate_id}/resume",
    summary="Update Resume",
    description="Record a new resume URL; stored files live outside this service.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_UPDATE))],
)
async def update_resume(
    request: ResumeUpdate,
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    return await candidate_service.update_resume_url(
        candidate_id, request.resume_url, current_user.company_id, user_id=current_user.id
    )


@router.get(
    "/candidates/{candidate_id}/history",
    summary="Candidate Stage History",
    description="Stage history across all of the candidate's applications, newest first.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_candidate_history(
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await candidate_service.get_candidate(candidate_id, current_user.company_id)
    return await stage_history.get_stage_history_by_candidate_id(candidate_id)


@router.post(
    "/candidates/{candidate_id}/jobs",
    status_code=status.HTTP_201_CREATED,
    summary="Add Candidate to Job",
    description="Apply the candidate to a job in its Queue stage or a given stage.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_CREATE))],
)
async def add_to_job(
    request: AddToJobRequest,
    candidate_id: int = Path(..., description="Candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, request.job_id)
    return await candidate_service.add_to_job(
        current_user.company_id,
        candidate_id,
        request.job_id,
        stage_id=request.stage_id,
        user_id=current_user.id,
    )


# ==================== Applications ==================== #
@router.put(
    "/job-candidates/{job_candidate_id}/stage",
    summary="Change Stage",
    description="Move an application to another stage. Rejection stages need a reason.",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def change_stage(
    request: StageChangeRequest,
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await candidate_service.change_stage(
        current_user,
        job_candidate_id,
        request.stage_id,
        rejection_reason=request.rejection_reason,
        comment=request.comment,
    )


@router.put(
    "/job-candidates/{job_candidate_id}/score",
    summary="Update Score",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_UPDATE))],
)
async def update_score(
    request: ScoreUpdate,
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await candidate_service.update_score(job_candidate_id, request.score, user_id=current_user.id)


@router.post(
    "/job-candidates/{job_candidate_id}/notes",
    status_code=status.HTTP_201_CREATED,
    summary="Add Note",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_UPDATE))],
)
async def add_note(
    request: NoteCreate,
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await candidate_service.add_note(job_candidate_id, request.content, user_id=current_user.id)


@router.get(
    "/job-candidates/{job_candidate_id}/activities",
    summary="Activity Timeline",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_activities(
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await candidate_service.get_activity_timeline(job_candidate_id)


@router.get(
    "/job-candidates/{job_candidate_id}/history",
    summary="Stage History",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_READ))],
)
async def get_history(
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await stage_history.get_stage_history(job_candidate_id)


@router.get(
    "/job-candidates/{job_candidate_id}/stages",
    summary="Available Stages",
    dependencies=[Depends(require_permission(Permission.PIPELINE_READ))],
)
async def get_available_stages(
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_application_access(current_user, job_candidate_id)
    return await candidate_service.get_available_stages(job_candidate_id)
