"""
Tests for jobs, pipeline stages and per-job access.
"""

import pytest

from api.services import candidates as candidate_service
from api.services import jobs as job_service
from api.services import pipeline as pipeline_service
from api.services import vendors as vendor_service
from api.services.job_access import can_access_job, validate_job_access
from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from database.models.users import UserRole
from tests.helpers import make_user, stage_id

DEFAULT_NAMES = [
    "Queue", "Applied", "Screening", "Shortlisted", "Interview",
    "Selected", "Offer", "Hired", "Rejected",
]


class TestJobValidation:

    def test_valid(self):
        assert job_service.validate_job_data({"title": "Engineer", "openings": 2}) == {}

    @pytest.mark.parametrize("data,field,message", [
        ({"title": "  "}, "title", "Title is required"),
        ({"title": "x", "experience_min": 5, "experience_max": 2}, "experience_min",
         "Minimum experience cannot exceed maximum experience"),
        ({"title": "x", "salary_min": 90, "salary_max": 50}, "salary_min",
         "Minimum salary cannot exceed maximum salary"),
        ({"title": "x", "openings": 0}, "openings", "Openings must be at least 1"),
    ])
    def test_field_errors(self, data, field, message):
        assert job_service.validate_job_data(data)[field] == [message]

    def test_unknown_status_and_priority(self):
        errors = job_service.validate_job_data({"title": "x", "status": "open", "priority": "P0"})

        assert set(errors) == {"status", "priority"}

    def test_partial_skips_missing_title(self):
        assert job_service.validate_job_data({"openings": 3}, partial=True) == {}


class TestNormalizePipelineStages:

    def test_mandatory_stages_added(self):
        stages = job_service.normalize_pipeline_stages([
            {"name": "Applied", "position": 0},
            {"name": "Hired", "position": 7},
        ])

        names = [s["name"] for s in stages]
        assert names == ["Applied", "Screening", "Shortlisted", "Offer", "Hired", "Rejected"]
        assert [s["position"] for s in stages] == list(range(6))
        assert {s["name"] for s in stages if s["is_mandatory"]} == job_service.MANDATORY_STAGES

    def test_default_names_match_any_case(self):
        stages = job_service.normalize_pipeline_stages([
            {"name": "screening", "position": 0},
            {"name": "Hired", "position": 1, "is_default": False},
            {"name": "Phone Screen", "position": 1, "is_default": True},
        ])

        flags = [(s["name"], s["is_default"], s["is_mandatory"]) for s in stages]
        assert flags == [
            ("Screening", True, True),
            ("Hired", True, False),
            ("Phone Screen", False, False),
            ("Shortlisted", True, True),
            ("Offer", True, True),
            ("Rejected", True, True),
        ]

    def test_is_mandatory_stage(self):
        assert job_service.is_mandatory_stage("offer")
        assert not job_service.is_mandatory_stage("Offer Declined")

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            job_service.normalize_pipeline_stages([{"name": ""}])

    def test_sub_stage_positions_past_top_level(self):
        assert job_service.sub_stage_position(9, 4, 1) == 941


class TestCreateJob:

    async def test_default_pipeline(self, job):
        assert [s["name"] for s in job["stages"]] == DEFAULT_NAMES
        assert [s["position"] for s in job["stages"]] == list(range(9))
        assert job["status"] == "active"
        assert job["priority"] == "Medium"
        assert job["openings"] == 1
        assert job["candidate_count"] == 0

    async def test_custom_pipeline_with_sub_stages(self, admin):
        job = await job_service.create_job(admin, {
            "title": "Data Engineer",
            "pipeline_stages": [
                {"name": "Applied", "position": 0},
                {"name": "Interview", "position": 3, "sub_stages": ["Technical Round", "HR Round"]},
            ],
        })

        interview = next(s for s in job["stages"] if s["name"] == "Interview")
        assert [s["name"] for s in interview["sub_stages"]] == ["Technical Round", "HR Round"]
        assert all(s["parent_id"] == interview["id"] for s in interview["sub_stages"])
        assert "Rejected" in [s["name"] for s in job["stages"]]

    async def test_invalid_data(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.create_job(admin, {"title": "", "openings": 0})

        assert set(exc_info.value.errors) == {"title", "openings"}

    async def test_recruiter_from_other_company(self, admin, other_admin):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.create_job(admin, {"title": "x", "assigned_recruiter_id": other_admin.id})

        assert "assigned_recruiter_id" in exc_info.value.errors


class TestJobOperations:

    async def test_get_job_counts(self, admin, job, application):
        result = await job_service.get_job(admin, job["id"])

        assert result["candidate_count"] == 1
        assert result["interview_count"] == 0
        assert len(result["stages"]) == 9

    async def test_list_jobs_by_status(self, admin, job):
        other = await job_service.create_job(admin, {"title": "Designer", "status": "draft"})

        assert [j["id"] for j in await job_service.list_jobs(admin, "draft")] == [other["id"]]
        assert len(await job_service.list_jobs(admin)) == 2

    async def test_list_jobs_unknown_status(self, admin):
        with pytest.raises(ValidationError):
            await job_service.list_jobs(admin, "archived")

    async def test_update_checks_merged_ranges(self, admin, job):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.update_job(admin, job["id"], {"experience_max": 1})

        assert "experience_min" in exc_info.value.errors

    async def test_update(self, admin, job):
        result = await job_service.update_job(admin, job["id"], {"title": " Staff Engineer ", "priority": "High"})

        assert result["title"] == "Staff Engineer"
        assert result["priority"] == "High"

    async def test_update_replaces_pipeline(self, admin, job):
        result = await job_service.update_job(admin, job["id"], {
            "pipeline_stages": [
                {"name": "Applied", "position": 0},
                {"name": "Interview", "position": 3, "sub_stages": ["Technical Round"]},
            ],
        })

        names = [s["name"] for s in result["stages"]]
        assert names == ["Applied", "Screening", "Interview", "Shortlisted", "Offer", "Rejected"]
        assert [s["position"] for s in result["stages"]] == list(range(6))
        interview = result["stages"][2]
        assert [s["name"] for s in interview["sub_stages"]] == ["Technical Round"]

    async def test_pipeline_locked_once_candidates_apply(self, admin, job, application):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.update_job(admin, job["id"], {
                "title": "Renamed", "pipeline_stages": [{"name": "Applied"}],
            })

        assert "pipeline_stages" in exc_info.value.errors
        unchanged = await job_service.get_job(admin, job["id"])
        assert unchanged["title"] == "Backend Engineer"
        assert [s["name"] for s in unchanged["stages"]] == DEFAULT_NAMES

    async def test_invalid_auto_rejection_rules(self, admin, job):
        with pytest.raises(ValidationError) as exc_info:
            await job_service.update_job(admin, job["id"], {
                "auto_rejection_rules": {"enabled": True, "rules": [{"field": "age", "operator": "less_than", "value": 1}]},
            })

        assert "auto_rejection_rules.rules.0" in exc_info.value.errors

    async def test_toggle_status(self, admin, job):
        assert (await job_service.toggle_job_status(admin, job["id"]))["status"] == "closed"
        assert (await job_service.toggle_job_status(admin, job["id"]))["status"] == "active"

    async def test_duplicate(self, admin, job, application):
        copy = await job_service.duplicate_job(admin, job["id"])

        assert copy["title"] == "Copy of Backend Engineer"
        assert copy["id"] != job["id"]
        assert [s["name"] for s in copy["stages"]] == DEFAULT_NAMES
        assert copy["candidate_count"] == 0
        assert copy["skills"] == ["Python", "PostgreSQL"]

    async def test_delete(self, admin, job, application):
        assert await job_service.delete_job(admin, job["id"]) is True

        with pytest.raises(NotFoundError):
            await job_service.get_job(admin, job["id"])

    async def test_job_candidates(self, admin, job, application):
        rows = await job_service.get_job_candidates(admin, job["id"])

        assert len(rows) == 1
        assert rows[0]["stage_name"] == "Queue"
        assert rows[0]["candidate"]["name"] == "Jane Doe"


class TestJobAccess:

    async def test_admin_and_hiring_manager_see_all(self, admin, hiring_manager, job):
        assert await can_access_job(admin, job["id"])
        assert await can_access_job(hiring_manager, job["id"])

    async def test_assigned_recruiter(self, company, recruiter, job):
        other = await make_user(company.id, UserRole.RECRUITER, name="Ross")

        assert await can_access_job(recruiter, job["id"])
        with pytest.raises(ForbiddenError):
            await validate_job_access(other, job["id"])

    async def test_vendor_needs_assignment(self, company, vendor, job):
        assert not await can_access_job(vendor, job["id"])

        await vendor_service.assign_jobs_to_vendor(vendor.id, company.id, [job["id"]])

        assert await can_access_job(vendor, job["id"])

    async def test_other_company_sees_not_found(self, other_admin, job):
        with pytest.raises(NotFoundError):
            await validate_job_access(other_admin, job["id"])

    async def test_missing_job(self, admin):
        with pytest.raises(NotFoundError):
            await validate_job_access(admin, 424242)


class TestComputeReorder:

    @pytest.mark.parametrize("old,new,expected", [
        (1, 3, [0, 3, 1, 2, 4]),
        (3, 1, [0, 2, 3, 1, 4]),
        (2, 2, [0, 1, 2, 3, 4]),
        (0, 4, [4, 0, 1, 2, 3]),
    ])
    def test_moves(self, old, new, expected):
        assert pipeline_service.compute_reorder([0, 1, 2, 3, 4], old, new) == expected

    def test_result_stays_contiguous(self):
        result = pipeline_service.compute_reorder([4, 2, 0, 3, 1], 4, 0)

        assert sorted(result) == [0, 1, 2, 3, 4]


class TestPipelineStages:

    async def test_insert_shifts_later_stages(self, job):
        stages = await pipeline_service.insert_stage(job["id"], "Take-home", 3)

        assert [s["name"] for s in stages][2:5] == ["Screening", "Take-home", "Shortlisted"]
        assert [s["position"] for s in stages] == list(range(10))

    async def test_insert_at_end(self, job):
        stages = await pipeline_service.insert_stage(job["id"], "Alumni", 9)

        assert stages[-1]["name"] == "Alumni"

    @pytest.mark.parametrize("position", [-1, 10])
    async def test_insert_out_of_range(self, job, position):
        with pytest.raises(ValidationError) as exc_info:
            await pipeline_service.insert_stage(job["id"], "Extra", position)

        assert exc_info.value.errors["position"] == ["Position must be between 0 and 9"]

    async def test_reorder(self, job):
        stages = await pipeline_service.reorder_stage(stage_id(job, "Hired"), 1)

        assert [s["name"] for s in stages][:3] == ["Queue", "Hired", "Applied"]
        assert [s["position"] for s in stages] == list(range(9))

    async def test_reorder_out_of_range(self, job):
        with pytest.raises(ValidationError):
            await pipeline_service.reorder_stage(stage_id(job, "Queue"), 9)

    async def test_delete_custom_stage_closes_gap(self, job):
        stages = await pipeline_service.insert_stage(job["id"], "Take-home", 3)
        custom = next(s for s in stages if s["name"] == "Take-home")

        stages = await pipeline_service.delete_stage(custom["id"])

        assert [s["name"] for s in stages] == DEFAULT_NAMES
        assert [s["position"] for s in stages] == list(range(9))

    @pytest.mark.parametrize("name", ["Queue", "Rejected"])
    async def test_default_stages_protected(self, job, name):
        with pytest.raises(ValidationError) as exc_info:
            await pipeline_service.delete_stage(stage_id(job, name))

        assert exc_info.value.errors["stage"] == ["Default stages cannot be deleted"]

    async def test_occupied_stage_protected(self, company, job, candidate):
        stages = await pipeline_service.insert_stage(job["id"], "Take-home", 3)
        custom = next(s for s in stages if s["name"] == "Take-home")
        await candidate_service.add_to_job(company.id, candidate["id"], job["id"], stage_id=custom["id"])

        with pytest.raises(ValidationError) as exc_info:
            await pipeline_service.delete_stage(custom["id"])

        assert exc_info.value.errors["stage"] == ["Cannot delete a stage that contains candidates"]

    async def test_rename(self, job):
        assert (await pipeline_service.update_stage(stage_id(job, "Interview"), "Panel"))["name"] == "Panel"

    async def test_mandatory_not_renamed(self, job):
        with pytest.raises(ValidationError) as exc_info:
            await pipeline_service.update_stage(stage_id(job, "Offer"), "Proposal")

        assert exc_info.value.errors["name"] == ["Mandatory stages cannot be renamed"]

    async def test_stage_lookups(self, job):
        assert await pipeline_service.get_stage_job_id(stage_id(job, "Offer")) == job["id"]
        assert len(await pipeline_service.get_stages_by_job_id(job["id"])) == 9

        with pytest.raises(NotFoundError):
            await pipeline_service.get_stage_job_id(999999)
