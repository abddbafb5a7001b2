"""
Tests for bulk stage moves and bulk candidate import.
"""

from io import BytesIO

import pytest
from openpyxl import Workbook

from api.services import bulk_import, bulk_move
from api.services import candidates as candidate_service
from api.services import jobs as job_service
from core.exceptions import NotFoundError, ValidationError
from tests.helpers import stage_id


async def _apply(company, job, *names):
    applications = []
    for name in names:
        email = f"{name.lower().replace(' ', '.')}@example.com"
        candidate = await candidate_service.create_candidate(company.id, {
            "name": name, "email": email, "location": "Remote", "source": "Referral",
        })
        applications.append(await candidate_service.add_to_job(company.id, candidate["id"], job["id"]))
    return applications


def _xlsx(rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestBulkMove:

    async def test_moves_all(self, admin, company, job):
        apps = await _apply(company, job, "Ann Lee", "Bo Chen")

        result = await bulk_move.bulk_move(
            admin, job["id"], [a["id"] for a in apps], stage_id(job, "Screening"), comment="Batch screen"
        )

        assert result == {"success": True, "moved_count": 2, "failed_count": 0, "failures": []}
        rows = await job_service.get_job_candidates(admin, job["id"])
        assert {r["stage_name"] for r in rows} == {"Screening"}

    async def test_same_stage_is_counted_noop(self, admin, company, job):
        apps = await _apply(company, job, "Ann Lee")

        result = await bulk_move.bulk_move(admin, job["id"], [apps[0]["id"]], stage_id(job, "Queue"))

        assert result["moved_count"] == 1
        timeline = await candidate_service.get_activity_timeline(apps[0]["id"])
        assert len(timeline) == 1

    async def test_partial_failure(self, admin, company, job):
        other_job = await job_service.create_job(admin, {"title": "Designer"})
        [good] = await _apply(company, job, "Ann Lee")
        [foreign] = await _apply(company, other_job, "Bo Chen")

        result = await bulk_move.bulk_move(
            admin, job["id"], [good["id"], foreign["id"], 999999], stage_id(job, "Shortlisted")
        )

        assert result["success"] is False
        assert result["moved_count"] == 1
        assert result["failed_count"] == 2
        assert result["failures"][0] == {
            "job_candidate_id": foreign["id"],
            "candidate_name": "Bo Chen",
            "error": "Candidate does not belong to the specified job",
        }
        assert result["failures"][1]["error"] == "Job candidate not found"
        assert result["failures"][1]["candidate_name"] is None

    async def test_failed_row_rolled_back_alone(self, admin, company, job):
        other_job = await job_service.create_job(admin, {"title": "Designer"})
        [good] = await _apply(company, job, "Ann Lee")
        [foreign] = await _apply(company, other_job, "Bo Chen")

        await bulk_move.bulk_move(admin, job["id"], [foreign["id"], good["id"]], stage_id(job, "Applied"))

        assert (await job_service.get_job_candidates(admin, other_job["id"]))[0]["stage_name"] == "Queue"
        assert (await job_service.get_job_candidates(admin, job["id"]))[0]["stage_name"] == "Applied"

    async def test_rejection_requires_comment(self, admin, company, job):
        apps = await _apply(company, job, "Ann Lee")

        with pytest.raises(ValidationError) as exc_info:
            await bulk_move.bulk_move(admin, job["id"], [apps[0]["id"]], stage_id(job, "Rejected"))

        assert "comment" in exc_info.value.errors

    async def test_target_stage_must_belong_to_job(self, admin, job):
        other_job = await job_service.create_job(admin, {"title": "Designer"})

        with pytest.raises(ValidationError):
            await bulk_move.bulk_move(admin, job["id"], [1], stage_id(other_job, "Applied"))

    async def test_empty_selection(self, admin, job):
        with pytest.raises(ValidationError):
            await bulk_move.bulk_move(admin, job["id"], [], stage_id(job, "Applied"))

    def test_description(self):
        assert bulk_move.build_move_description("Queue", "Applied", "ok") == "Moved from Queue to Applied. Comment: ok"


class TestParseCsv:

    def test_valid_rows(self):
        result = bulk_import.parse_csv(
            "Name,Email,Phone,Location,ExperienceYears,CurrentCompany,Skills\n"
            "Ann Lee,ANN@example.com,555-0100,Austin,5,Initech,Python; SQL;\n"
        )

        assert result.errors == []
        assert result.candidates == [{
            "name": "Ann Lee",
            "email": "ann@example.com",
            "phone": "555-0100",
            "location": "Austin",
            "experience_years": 5.0,
            "current_company": "Initech",
            "skills": ["Python", "SQL"],
        }]

    def test_row_errors_use_file_line_numbers(self):
        result = bulk_import.parse_csv(
            "name,email\n"
            "Ann Lee,ann@example.com\n"
            ",nobody@example.com\n"
            "Bo Chen,\n"
            "\n"
            "Cy Diaz,not-an-email\n"
        )

        assert len(result.candidates) == 1
        assert result.errors == [
            "Row 3: Name is required",
            "Row 4: Email is required",
            "Row 6: Invalid email format",
        ]

    def test_bom_and_bytes(self):
        result = bulk_import.parse_csv("\ufeffname,email\nAnn,ann@example.com\n".encode("utf-8"))

        assert result.candidates[0]["name"] == "Ann"

    def test_missing_columns(self):
        with pytest.raises(ValidationError) as exc_info:
            bulk_import.parse_csv("full_name,mail\nAnn,ann@example.com\n")

        assert exc_info.value.errors == {"file": ['CSV must contain "name" and "email" columns']}

    def test_no_valid_rows(self):
        with pytest.raises(ValidationError) as exc_info:
            bulk_import.parse_csv("name,email\n,a@example.com\n")

        assert exc_info.value.message == "No valid rows found"

    def test_header_only(self):
        assert bulk_import.parse_csv("name,email\n").candidates == []


class TestParseExcel:

    def test_valid_rows(self):
        content = _xlsx([
            ["Name", "Email", "Experience_Years", "Company"],
            ["Ann Lee", "ann@example.com", 3, "Initech"],
            ["Bo Chen", "bad-email", 2, None],
        ])

        result = bulk_import.parse_excel(content)

        assert result.candidates[0]["experience_years"] == 3.0
        assert result.candidates[0]["current_company"] == "Initech"
        assert result.errors == ["Row 3: Invalid email format"]

    def test_missing_columns(self):
        with pytest.raises(ValidationError) as exc_info:
            bulk_import.parse_excel(_xlsx([["Name", "Phone"], ["Ann", "1"]]))

        assert exc_info.value.errors == {"file": ['Excel must contain "name" and "email" columns']}

    def test_not_a_workbook(self):
        with pytest.raises(ValidationError):
            bulk_import.parse_excel(b"definitely not a zip")

    @pytest.mark.parametrize("filename", ["people.txt", "people.xls", ""])
    def test_unsupported_extension(self, filename):
        with pytest.raises(ValidationError) as exc_info:
            bulk_import.parse_upload(filename, b"")

        assert exc_info.value.errors == {"file": ["Only .csv and .xlsx files are supported"]}

    def test_dispatch(self):
        assert bulk_import.parse_upload("People.CSV", b"name,email\nAnn,ann@example.com\n").candidates


class TestImportCandidates:

    async def test_new_candidates(self, admin, company, job):
        result = await bulk_import.import_candidates(job["id"], company.id, [
            {"name": "Ann Lee", "email": "ann@example.com"},
            {"name": "Bo Chen", "email": "bo@example.com", "location": "Oslo"},
        ], user_id=admin.id)

        assert result["imported_count"] == 2
        assert result["failed_count"] == 0
        rows = await job_service.get_job_candidates(admin, job["id"])
        assert {r["stage_name"] for r in rows} == {"Queue"}
        by_name = {r["candidate"]["name"]: r["candidate"] for r in rows}
        assert by_name["Ann Lee"]["source"] == "Bulk Import"
        assert by_name["Ann Lee"]["location"] == "Not specified"
        assert by_name["Bo Chen"]["location"] == "Oslo"

    async def test_existing_candidate_updated_and_applied(self, admin, company, job, candidate):
        result = await bulk_import.import_candidates(job["id"], company.id, [
            {"name": "Jane Doe", "email": "jane.doe@example.com", "phone": "555-0199", "location": ""},
        ])

        assert result["imported_count"] == 1
        updated = await candidate_service.get_candidate(candidate["id"])
        assert updated["phone"] == "555-0199"
        assert updated["location"] == "Berlin"
        assert updated["source"] == "LinkedIn"

    async def test_existing_application_skipped(self, company, job, application):
        result = await bulk_import.import_candidates(job["id"], company.id, [
            {"name": "Jane Doe", "email": "jane.doe@example.com"},
        ])

        assert result["skipped_count"] == 1
        assert result["imported_count"] == 0
        assert result["success"] is True

    async def test_bad_row_reported(self, company, job):
        result = await bulk_import.import_candidates(job["id"], company.id, [
            {"name": "", "email": "x@example.com"},
            {"name": "Ann Lee", "email": "ann@example.com"},
        ])

        assert result["imported_count"] == 1
        assert result["failures"] == [
            {"email": "x@example.com", "name": "", "error": "Name and email are required"}
        ]

    async def test_invitations_when_email_disabled(self, company, job):
        result = await bulk_import.import_candidates(job["id"], company.id, [
            {"name": "Ann Lee", "email": "ann@example.com"},
        ], send_emails=True)

        assert result["invitations_sent"] == 0
        assert result["invitations_failed"] == 1

    async def test_other_company_job(self, other_company, job):
        with pytest.raises(NotFoundError):
            await bulk_import.import_candidates(job["id"], other_company.id, [
                {"name": "Ann Lee", "email": "ann@example.com"},
            ])
