"""
SLA configuration and alert endpoints.

Configuration changes need settings:update; reading breaches and alerts is
open to recruiters and above.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse
from api.schemas.sla import SLAConfigBatch, SLAConfigInput
from api.services import sla as sla_service
from api.services.candidates import get_job_candidate_job_id
from api.services.job_access import validate_job_access
from core.middleware.authorization import Permission, require_minimum_role, require_permission
from database.models.users import User, UserRole

router = APIRouter(prefix="/sla", tags=["sla"])


@router.get(
    "/config",
    summary="Get SLA Configuration",
    dependencies=[Depends(require_minimum_role(UserRole.RECRUITER))],
)
async def get_config(current_user: User = Depends(require_active_user)):
    return await sla_service.get_sla_config(current_user.company_id)


@router.put(
    "/config",
    summary="Set Stage Threshold",
    dependencies=[Depends(require_permission(Permission.SETTINGS_UPDATE))],
)
async def update_config(
    request: SLAConfigInput,
    current_user: User = Depends(require_active_user),
):
    return await sla_service.update_sla_config(
        current_user.company_id, request.stage_name, request.threshold_days
    )


@router.put(
    "/config/batch",
    summary="Set Several Thresholds",
    dependencies=[Depends(require_permission(Permission.SETTINGS_UPDATE))],
)
async def update_configs(
    request: SLAConfigBatch,
    current_user: User = Depends(require_active_user),
):
    return await sla_service.update_sla_configs(
        current_user.company_id, [c.model_dump() for c in request.configs]
    )


@router.post(
    "/config/defaults",
    summary="Apply Default Thresholds",
    dependencies=[Depends(require_permission(Permission.SETTINGS_UPDATE))],
)
async def apply_defaults(current_user: User = Depends(require_active_user)):
    return await sla_service.apply_default_thresholds(current_user.company_id)


@router.delete(
    "/config/{config_id}",
    response_model=MessageResponse,
    summary="Delete Threshold",
    dependencies=[Depends(require_permission(Permission.SETTINGS_UPDATE))],
)
async def delete_config(
    config_id: int = Path(..., description="SLA config ID"),
    current_user: User = Depends(require_active_user),
):
    await sla_service.delete_sla_config(current_user.company_id, config_id)
    return MessageResponse(message="SLA configuration deleted")


@router.get(
    "/breaches",
    summary="SLA Breaches",
    dependencies=[Depends(require_minimum_role(UserRole.RECRUITER))],
)
async def get_breaches(current_user: User = Depends(require_active_user)):
    return await sla_service.check_sla_breaches(current_user.company_id)


@router.get(
    "/breaches/{job_candidate_id}",
    summary="Application SLA Status",
    dependencies=[Depends(require_minimum_role(UserRole.RECRUITER))],
)
async def get_candidate_breach(
    job_candidate_id: int = Path(..., description="Job candidate ID"),
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, await get_job_candidate_job_id(job_candidate_id))
    breach = await sla_service.check_candidate_sla_breach(job_candidate_id)
    return {"is_breached": breach is not None, "breach": breach}


@router.get(
    "/alerts",
    summary="Alerts",
    description="SLA breaches and interviews waiting on feedback.",
    dependencies=[Depends(require_minimum_role(UserRole.RECRUITER))],
)
async def get_alerts(
    type: Optional[str] = Query(None, description="sla or feedback"),
    current_user: User = Depends(require_active_user),
):
    return await sla_service.get_alerts(current_user.company_id, type)


@router.post(
    "/notify",
    summary="Send Breach Notifications",
    dependencies=[Depends(require_permission(Permission.SETTINGS_UPDATE))],
)
async def notify_breaches(current_user: User = Depends(require_active_user)):
    created = await sla_service.create_sla_breach_notifications(current_user.company_id)
    return {"notifications_created": created}
