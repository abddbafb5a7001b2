"""
Pipeline stage endpoints.

Stage operations act on top-level stages; positions stay contiguous.
"""

from fastapi import APIRouter, Depends, Path, status

from api.dependencies import require_active_user
from api.schemas.jobs import StageCreate, StageReorder, StageUpdate
from api.services import pipeline as pipeline_service
from api.services.job_access import validate_job_access
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(tags=["pipeline"])


async def _check_stage_access(user: User, stage_id: int) -> None:
    await validate_job_access(user, await pipeline_service.get_stage_job_id(stage_id))


@router.get(
    "/jobs/{job_id}/stages",
    summary="List Stages",
    dependencies=[Depends(require_permission(Permission.PIPELINE_READ))],
)
async def list_stages(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, job_id)
    return await pipeline_service.get_stages_by_job_id(job_id)


@router.post(
    "/jobs/{job_id}/stages",
    status_code=status.HTTP_201_CREATED,
    summary="Insert Stage",
    description="Insert a stage at a position, shifting later stages. Requires pipeline:update permission.",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def insert_stage(
    request: StageCreate,
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, job_id)
    return await pipeline_service.insert_stage(job_id, request.name, request.position)


@router.put(
    "/stages/{stage_id}",
    summary="Rename Stage",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def update_stage(
    request: StageUpdate,
    stage_id: int = Path(..., description="Stage ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_stage_access(current_user, stage_id)
    return await pipeline_service.update_stage(stage_id, request.name)


@router.put(
    "/stages/{stage_id}/reorder",
    summary="Reorder Stage",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def reorder_stage(
    request: StageReorder,
    stage_id: int = Path(..., description="Stage ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_stage_access(current_user, stage_id)
    return await pipeline_service.reorder_stage(stage_id, request.new_position)


@router.delete(
    "/stages/{stage_id}",
    summary="Delete Stage",
    description="Delete an empty, non-mandatory stage. Requires pipeline:update permission.",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def delete_stage(
    stage_id: int = Path(..., description="Stage ID"),
    current_user: User = Depends(require_active_user),
):
    await _check_stage_access(current_user, stage_id)
    return await pipeline_service.delete_stage(stage_id, user_id=current_user.id)
