"""
Bulk operations endpoints.

Provides:
- Moving many applications of a job to one stage
- Parsing CSV / Excel candidate uploads for preview
- Importing parsed candidates into a job's Queue stage
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, File, UploadFile

from api.dependencies import require_active_user
from api.schemas.bulk import BulkImportRequest, BulkMoveRequest
from api.services import bulk_import, bulk_move
from api.services.job_access import validate_job_access
from core.exceptions import ValidationError
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/bulk", tags=["bulk"])

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


@router.post(
    "/move",
    summary="Bulk Move Candidates",
    description="Move applications to a stage; failures are reported per candidate. Requires pipeline:update permission.",
    dependencies=[Depends(require_permission(Permission.PIPELINE_UPDATE))],
)
async def bulk_move_candidates(
    request: BulkMoveRequest,
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, request.job_id)
    return await bulk_move.bulk_move(
        current_user,
        request.job_id,
        request.candidate_ids,
        request.target_stage_id,
        comment=request.comment,
    )


@router.post(
    "/import/parse",
    summary="Parse Candidate Upload",
    description="Parse a .csv or .xlsx file and return candidates and row errors without saving.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_CREATE))],
)
async def parse_upload(
    file: UploadFile = File(..., description="CSV or XLSX file"),
    current_user: User = Depends(require_active_user),
):
    content = await file.read()
    if not content:
        raise ValidationError({"file": ["File is empty"]})
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError({"file": ["File must be 5 MB or smaller"]})

    result = bulk_import.parse_upload(file.filename, content)
    return {**asdict(result), "total": len(result.candidates)}


@router.post(
    "/import",
    summary="Import Candidates",
    description="Create or update candidates and add them to the job's Queue stage.",
    dependencies=[Depends(require_permission(Permission.CANDIDATE_CREATE))],
)
async def import_candidates(
    request: BulkImportRequest,
    current_user: User = Depends(require_active_user),
):
    await validate_job_access(current_user, request.job_id)
    return await bulk_import.import_candidates(
        request.job_id,
        current_user.company_id,
        [c.model_dump(exclude_none=True) for c in request.candidates],
        user_id=current_user.id,
        send_emails=request.send_emails,
    )
