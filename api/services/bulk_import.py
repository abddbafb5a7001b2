"""
Bulk candidate import from CSV or Excel.

Parsing is pure and returns validated rows plus per-row errors; importing
upserts candidates by email and drops new applications into the job's
Queue stage.
"""

from dataclasses import dataclass, field
from io import BytesIO, StringIO
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import csv
import logging

from openpyxl import load_workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.integrations.email import get_email_service
from core.security import AuditAction, ResourceType, log_audit_event
from core.utils.validators import is_valid_email_format
from database.engine import AsyncSessionLocal
from database.models.candidates import ActivityType, Candidate, CandidateActivity, JobCandidate
from database.models.companies import Company
from database.models.jobs import Job
from database.models.pipelines import PipelineStage
from api.services import auto_rejection, stage_history
from api.services.candidates import find_candidate_by_email, find_queue_stage

logger = logging.getLogger(__name__)

BULK_IMPORT_SOURCE = "Bulk Import"
DEFAULT_LOCATION = "Not specified"

EXPERIENCE_COLUMNS = ("experienceyears", "experience_years")
COMPANY_COLUMNS = ("currentcompany", "current_company", "company")


@dataclass
class ParseResult:
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _first(record: Dict[str, str], columns: Sequence[str]) -> str:
    for column in columns:
        if record.get(column):
            return record[column]
    return ""


def _parse_experience(value: str) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _check_headers(headers: List[str], kind: str) -> None:
    if "name" not in headers or "email" not in headers:
        raise ValidationError({"file": [f'{kind} must contain "name" and "email" columns']})


def _build_candidate(record: Dict[str, str]) -> Dict[str, Any]:
    skills = record.get("skills") or ""
    return {
        "name": record["name"],
        "email": record["email"].lower(),
        "phone": record.get("phone") or None,
        "location": record.get("location") or None,
        "experience_years": _parse_experience(_first(record, EXPERIENCE_COLUMNS)),
        "current_company": _first(record, COMPANY_COLUMNS) or None,
        "skills": [s.strip() for s in skills.split(";") if s.strip()] or None,
    }


def _parse_rows(headers: List[str], rows: Iterable[tuple[int, List[str]]]) -> ParseResult:
    """
    Validate data rows. ``rows`` yields (line number, cell values).
    """
    result = ParseResult()
    seen_rows = 0

    for line_no, values in rows:
        if not any((v or "").strip() for v in values):
            continue
        seen_rows += 1

        record = {
            header: (values[i] if i < len(values) and values[i] is not None else "").strip()
            for i, header in enumerate(headers)
        }

        if not record.get("name"):
            result.errors.append(f"Row {line_no}: Name is required")
            continue
        if not record.get("email"):
            result.errors.append(f"Row {line_no}: Email is required")
            continue
        if not is_valid_email_format(record["email"]):
            result.errors.append(f"Row {line_no}: Invalid email format")
            continue

        result.candidates.append(_build_candidate(record))

    if seen_rows and not result.candidates:
        raise ValidationError({"file": result.errors}, message="No valid rows found")

    return result


def parse_csv(content: str | bytes) -> ParseResult:
    """
    Parse CSV text with a header row.

    Raises:
        ValidationError: Missing name/email columns, or every data row invalid
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    content = content.lstrip("\ufeff")

    reader = csv.reader(StringIO(content))
    try:
        header_row = next(reader)
    except StopIteration:
        raise ValidationError({"file": ["CSV file must have a header row"]})

    headers = [h.strip().lower() for h in header_row]
    _check_headers(headers, "CSV")

    # reader.line_num is the physical line of the row just read (header = 1)
    return _parse_rows(headers, ((reader.line_num, row) for row in reader))


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_excel(content: bytes) -> ParseResult:
    """Parse the first worksheet of an .xlsx workbook."""
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError({"file": [f"Could not read Excel file: {e}"]})

    try:
        if not workbook.worksheets:
            raise ValidationError({"file": ["Excel file has no worksheets"]})
        rows = list(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()

    if not rows:
        raise ValidationError({"file": ["Excel file must have a header row"]})

    headers = [_cell_text(h).strip().lower() for h in rows[0]]
    _check_headers(headers, "Excel")

    return _parse_rows(
        headers,
        ((i, [_cell_text(v) for v in row]) for i, row in enumerate(rows[1:], start=2)),
    )


def parse_upload(filename: str, content: bytes) -> ParseResult:
    """Dispatch on file extension."""
    name = (filename or "").lower()
    if name.endswith(".csv"):
        return parse_csv(content)
    if name.endswith(".xlsx"):
        return parse_excel(content)
    raise ValidationError({"file": ["Only .csv and .xlsx files are supported"]})


async def _upsert_candidate(
    session: AsyncSession,
    company_id: int,
    data: Dict[str, Any],
) -> Candidate:
    candidate = await find_candidate_by_email(session, company_id, data["email"])
    if candidate:
        # Only non-empty imported values overwrite
        for key in ("name", "phone", "location", "experience_years", "current_company", "skills"):
            value = data.get(key)
            if value not in (None, "", []):
                setattr(candidate, key, value)
        await session.flush()
        return candidate

    candidate = Candidate(
        company_id=company_id,
        name=data["name"],
        email=data["email"].lower(),
        phone=data.get("phone"),
        location=data.get("location") or DEFAULT_LOCATION,
        experience_years=data.get("experience_years") or 0,
        current_company=data.get("current_company"),
        skills=data.get("skills") or [],
        source=BULK_IMPORT_SOURCE,
    )
    session.add(candidate)
    await session.flush()
    return candidate


async def _import_one(
    session: AsyncSession,
    company_id: int,
    job_id: int,
    queue_stage: PipelineStage,
    data: Dict[str, Any],
    user_id: Optional[int],
    rules: Optional[Dict[str, Any]] = None,
) -> Optional[Tuple[Candidate, bool]]:
    """
    Returns the candidate and whether the job's rules auto-rejected them,
    or None when the candidate already applied.
    """
    if not data.get("name") or not data.get("email"):
        raise ValidationError({"candidate": ["Name and email are required"]}, message="Name and email are required")

    candidate = await _upsert_candidate(session, company_id, data)

    existing = (await session.execute(
        select(JobCandidate.id).where(
            JobCandidate.job_id == job_id,
            JobCandidate.candidate_id == candidate.id,
        )
    )).scalar_one_or_none()
    if existing:
        return None

    jc = JobCandidate(job_id=job_id, candidate_id=candidate.id, current_stage_id=queue_stage.id)
    session.add(jc)
    await session.flush()

    await stage_history.create_stage_entry(
        session, jc.id, queue_stage.id, queue_stage.name,
        comment="Added via bulk import", moved_by=user_id,
    )
    session.add(CandidateActivity(
        candidate_id=candidate.id,
        job_candidate_id=jc.id,
        activity_type=ActivityType.STAGE_CHANGE,
        description=f"Added via bulk import to {queue_stage.name} stage",
        activity_metadata={"bulk_import": True, "imported_by": user_id},
        created_by=user_id,
    ))
    await session.flush()
    rejected = await auto_rejection.apply_auto_rejection(
        session, jc, candidate, rules, queue_stage, user_id=user_id,
    )
    return candidate, rejected is not None


async def import_candidates(
    job_id: int,
    company_id: int,
    candidates: List[Dict[str, Any]],
    user_id: Optional[int] = None,
    send_emails: bool = False,
) -> Dict[str, Any]:
    """
    Create or update candidates and place them in the job's Queue stage.

    Each row runs in its own SAVEPOINT. Invitation emails go out after the
    commit and never fail the import.

    Returns:
        Counts of imported, skipped and failed rows, failures, and
        invitation results
    """
    if not candidates:
        raise ValidationError({"candidates": ["At least one candidate is required"]})

    failures: List[Dict[str, Any]] = []
    imported: List[Dict[str, Any]] = []
    skipped_count = 0

    async with AsyncSessionLocal() as session:
        job = await session.get(Job, job_id)
        if not job or job.company_id != company_id:
            raise NotFoundError("Job")

        queue_stage = await find_queue_stage(session, job_id)
        if not queue_stage:
            raise ValidationError({"job": ["Job pipeline does not have a Queue stage"]})

        company = await session.get(Company, company_id)
        job_info = {
            "id": job.id,
            "title": job.title,
            "company_name": company.name if company else None,
        }

        for data in candidates:
            try:
                async with session.begin_nested():
                    outcome = await _import_one(
                        session, company_id, job_id, queue_stage, data, user_id,
                        rules=job.auto_rejection_rules,
                    )
                if outcome is None:
                    skipped_count += 1
                else:
                    candidate, rejected = outcome
                    imported.append({
                        "name": candidate.name,
                        "email": candidate.email,
                        "auto_rejected": rejected,
                    })
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                logger.warning(f"Bulk import failed for {data.get('email')}: {message}")
                failures.append({
                    "email": data.get("email"),
                    "name": data.get("name"),
                    "error": message,
                })

        await session.commit()

    invitations_sent = invitations_failed = 0
    if send_emails and imported:
        email_service = get_email_service()
        for candidate in imported:
            if candidate["auto_rejected"]:
                continue
            try:
                sent = await email_service.send_candidate_invitation(candidate, job_info)
            except Exception as e:
                logger.error(f"Failed to send invitation email to {candidate['email']}: {e}")
                sent = False
            if sent:
                invitations_sent += 1
            else:
                invitations_failed += 1

    log_audit_event(
        AuditAction.BULK_IMPORT, ResourceType.CANDIDATE,
        user_id=user_id, company_id=company_id,
        details={"job_id": job_id, "imported": len(imported), "failed": len(failures)},
    )

    return {
        "success": len(failures) == 0,
        "imported_count": len(imported),
        "skipped_count": skipped_count,
        "auto_rejected_count": sum(1 for c in imported if c["auto_rejected"]),
        "failed_count": len(failures),
        "failures": failures,
        "invitations_sent": invitations_sent,
        "invitations_failed": invitations_failed,
    }
