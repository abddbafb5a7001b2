"""Company profile endpoints."""

from fastapi import APIRouter, Depends

from api.dependencies import require_active_user
from api.schemas.common import to_service_data
from api.schemas.companies import CompanyUpdate
from api.services import companies as company_service
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/companies", tags=["companies"])


@router.get(
    "/me",
    summary="Get Company",
    description="Profile of the current user's company.",
)
async def get_my_company(current_user: User = Depends(require_active_user)):
    return await company_service.get_company(current_user.company_id)


@router.put(
    "/me",
    summary="Update Company",
    description="Update the company profile. Requires company:update permission.",
    dependencies=[Depends(require_permission(Permission.COMPANY_UPDATE))],
)
async def update_my_company(
    request: CompanyUpdate,
    current_user: User = Depends(require_active_user),
):
    return await company_service.update_company(current_user.company_id, to_service_data(request))
