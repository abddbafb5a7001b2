"""
Interview scheduling and feedback endpoints.

Scheduling needs interview:create; panel members submit their own
feedback.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import require_active_user
from api.schemas.common import to_service_data
from api.schemas.interviews import FeedbackSubmit, InterviewCancel, InterviewCreate, InterviewUpdate
from api.services import interviews as interview_service
from api.services import notifications as notification_service
from api.services.candidates import get_job_candidate_job_id
from api.services.job_access import validate_job_access
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/interviews", tags=["interviews"])


async def _check_interview_access(user: User, interview_id: int) -> None:
    await validate_job_access(user, await interview_service.get_interview_job_id(interview_id))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Schedule Interview",
    description="Schedule an interview for an application. Requires interview:create permission.",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_CREATE))],
)
async def create_interview(
    request: InterviewCreate,
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, await get_job_candidate_job_id(request.job_candidate_id))
    return await interview_service.create_interview(to_service_data(request), scheduled_by=current_user.id)


@router.get(
    "",
    summary="List Interviews",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_READ))],
)
async def list_interviews(
    job_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="scheduled, completed or cancelled"),
    panel_member_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    current_user: User = Depends(require_active_user),
):
    if job_id is not None:
        await validate_job_access(current_user, job_id)
    return await interview_service.list_interviews(
        current_user.company_id,
        job_id=job_id,
        status=status,
        panel_member_id=panel_member_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get(
    "/{interview_id}",
    summary="Get Interview",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_READ))],
)
async def get_interview(
    interview_id: int = Path(..., description="Interview ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_interview_access(current_user, interview_id)
    return await interview_service.get_interview(interview_id)


@router.put(
    "/{interview_id}",
    summary="Update Interview",
    description="Reschedule or change the panel. Calendar events are kept in sync.",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_UPDATE))],
)
async def update_interview(
    request: InterviewUpdate,
    interview_id: int = Path(..., description="Interview ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_interview_access(current_user, interview_id)
    return await interview_service.update_interview(
        interview_id, to_service_data(request), updated_by=current_user.id
    )


@router.post(
    "/{interview_id}/cancel",
    summary="Cancel Interview",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_UPDATE))],
)
async def cancel_interview(
    request: InterviewCancel,
    interview_id: int = Path(..., description="Interview ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_interview_access(current_user, interview_id)
    return await interview_service.cancel_interview(
        interview_id, reason=request.reason, cancelled_by=current_user.id
    )


@router.post(
    "/{interview_id}/feedback",
    summary="Submit Feedback",
    description="Submit or replace the current user's scorecard. Only panel members may submit.",
)
async def submit_feedback(
    request: FeedbackSubmit,
    interview_id: int = Path(..., description="Interview ID"),
    current_user: User = Depends(require_active_user),
):
    return await interview_service.submit_feedback(
        interview_id,
        current_user.id,
        request.rating,
        request.recommendation,
        comments=request.comments,
    )


@router.get(
    "/{interview_id}/feedback-status",
    summary="Feedback Completion",
    dependencies=[Depends(require_permission(Permission.INTERVIEW_READ))],
)
async def feedback_status(
    interview_id: int = Path(..., description="Interview ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_interview_access(current_user, interview_id)
    return await notification_service.get_feedback_completion_status(interview_id)
