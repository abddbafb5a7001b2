"""
Vendor management endpoints.

Vendors are external agency users; admins manage them and their job
assignments.
"""

from fastapi import APIRouter, Depends, Path, status

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse, to_service_data
from api.schemas.vendors import JobAssignment, VendorCreate, VendorUpdate
from api.services import vendors as vendor_service
from core.middleware.authorization import require_minimum_role
from database.models.users import User, UserRole

router = APIRouter(
    prefix="/vendors",
    tags=["vendors"],
    dependencies=[Depends(require_minimum_role(UserRole.ADMIN))],
)


@router.get("", summary="List Vendors")
async def list_vendors(current_user: User = Depends(require_active_user)):
    return await vendor_service.get_vendors(current_user.company_id)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create Vendor")
async def create_vendor(
    request: VendorCreate,
    current_user: User = Depends(require_active_user),
):
    return await vendor_service.create_vendor(
        current_user.company_id,
        request.name,
        request.email,
        request.password,
        job_ids=request.job_ids,
        created_by=current_user.id,
    )


@router.get("/{vendor_id}", summary="Get Vendor")
async def get_vendor(
    vendor_id: int = Path(..., description="Vendor user ID"),
    current_user: User = Depends(require_active_user),
):
    return await vendor_service.get_vendor(vendor_id, current_user.company_id)


@router.put("/{vendor_id}", summary="Update Vendor")
async def update_vendor(
    request: VendorUpdate,
    vendor_id: int = Path(..., description="Vendor user ID"),
    current_user: User = Depends(require_active_user),
):
    return await vendor_service.update_vendor(vendor_id, current_user.company_id, to_service_data(request))


@router.post("/{vendor_id}/deactivate", summary="Deactivate Vendor")
async def deactivate_vendor(
    vendor_id: int = Path(..., description="Vendor user ID"),
    current_user: User = Depends(require_active_user),
):
    return await vendor_service.deactivate_vendor(vendor_id, current_user.company_id)


@router.delete("/{vendor_id}", response_model=MessageResponse, summary="Delete Vendor")
async def delete_vendor(
    vendor_id: int = Path(..., description="Vendor user ID"),
    current_user: User = Depends(require_active_user),
):
    await vendor_service.delete_vendor(vendor_id, current_user.company_id, deleted_by=current_user.id)
    return MessageResponse(message="Vendor deleted")


@router.post("/{vendor_id}/jobs", summary="Assign Jobs")
async def assign_jobs(
    request: JobAssignment,
    vendor_id: int = Path(..., description="Vendor user ID"),
    current_user: User = Depends(require_active_user),
):
    return await vendor_service.assign_jobs_to_vendor(vendor_id, current_user.company_id, request.job_ids)


@router.delete("/{vendor_id}/jobs/{job_id}", response_model=MessageResponse, summary="Remove Job Assignment")
async def remove_job_assignment(
    vendor_id: int = Path(..., description="Vendor user ID"),
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
):
    await vendor_service.get_vendor(vendor_id, current_user.company_id)
    await vendor_service.remove_job_assignment(vendor_id, job_id)
    return MessageResponse(message="Job assignment removed")
