"""
Tests for job and pipeline stage endpoints.
"""

from api.services import vendors as vendor_service
from tests.helpers import auth_headers, stage_id


class TestJobs:

    async def test_create_with_default_pipeline(self, client, admin):
        response = await client.post("/api/v1/jobs", headers=auth_headers(admin), json={
            "title": "Platform Engineer", "department": "Engineering",
        })

        assert response.status_code == 201
        job = response.json()
        assert [s["name"] for s in job["stages"]] == [
            "Queue", "Applied", "Screening", "Shortlisted", "Interview",
            "Selected", "Offer", "Hired", "Rejected",
        ]
        assert job["status"] == "active"

    async def test_recruiter_cannot_create(self, client, recruiter):
        response = await client.post("/api/v1/jobs", headers=auth_headers(recruiter), json={"title": "Nope"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    async def test_missing_token(self, client, job):
        response = await client.get(f"/api/v1/jobs/{job['id']}")

        assert response.status_code == 401

    async def test_other_company_job_is_not_found(self, client, other_admin, job):
        response = await client.get(f"/api/v1/jobs/{job['id']}", headers=auth_headers(other_admin))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_recruiter_sees_assigned_job(self, client, recruiter, job):
        listing = await client.get("/api/v1/jobs", headers=auth_headers(recruiter))

        assert [j["id"] for j in listing.json()] == [job["id"]]

    async def test_vendor_needs_assignment(self, client, company, vendor, job):
        url = f"/api/v1/jobs/{job['id']}"

        denied = await client.get(url, headers=auth_headers(vendor))
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "FORBIDDEN"

        await vendor_service.assign_jobs_to_vendor(vendor.id, company.id, [job["id"]])
        assert (await client.get(url, headers=auth_headers(vendor))).status_code == 200

    async def test_update(self, client, hiring_manager, job):
        response = await client.put(
            f"/api/v1/jobs/{job['id']}", headers=auth_headers(hiring_manager), json={"openings": 3},
        )

        assert response.status_code == 200
        assert response.json()["openings"] == 3

    async def test_update_screening_rules(self, client, admin, job):
        url = f"/api/v1/jobs/{job['id']}"
        rules = {"enabled": True, "rules": [{"field": "experience", "operator": "less_than", "value": 2}]}

        saved = await client.put(url, headers=auth_headers(admin), json={
            "auto_rejection_rules": rules,
            "screening_questions": [{"question": "Notice period?", "type": "text"}],
        })
        bad = await client.put(url, headers=auth_headers(admin), json={
            "auto_rejection_rules": {"enabled": True, "rules": [{"field": "experience", "operator": "contains", "value": 2}]},
        })

        assert saved.status_code == 200
        assert saved.json()["auto_rejection_rules"] == rules
        assert saved.json()["screening_questions"][0]["question"] == "Notice period?"
        assert bad.status_code == 400
        assert "auto_rejection_rules.rules.0" in bad.json()["error"]["details"]

    async def test_toggle_and_duplicate(self, client, admin, job):
        toggled = await client.post(f"/api/v1/jobs/{job['id']}/toggle-status", headers=auth_headers(admin))
        copied = await client.post(f"/api/v1/jobs/{job['id']}/duplicate", headers=auth_headers(admin))

        assert toggled.json()["status"] == "closed"
        assert copied.status_code == 201
        assert copied.json()["title"] == "Copy of Backend Engineer"
        assert copied.json()["status"] == "active"

    async def test_delete(self, client, admin, hiring_manager, job):
        url = f"/api/v1/jobs/{job['id']}"

        assert (await client.delete(url, headers=auth_headers(hiring_manager))).status_code == 403

        response = await client.delete(url, headers=auth_headers(admin))
        assert response.json() == {"message": "Job deleted"}
        assert (await client.get(url, headers=auth_headers(admin))).status_code == 404

    async def test_job_candidates(self, client, recruiter, job, application):
        response = await client.get(f"/api/v1/jobs/{job['id']}/candidates", headers=auth_headers(recruiter))

        [item] = response.json()
        assert item["stage_name"] == "Queue"
        assert item["candidate"]["name"] == "Jane Doe"


class TestPipelineStages:

    async def test_insert_and_reorder(self, client, recruiter, job):
        headers = auth_headers(recruiter)

        inserted = await client.post(
            f"/api/v1/jobs/{job['id']}/stages", headers=headers, json={"name": "Take-home", "position": 4},
        )
        assert inserted.status_code == 201
        names = [s["name"] for s in inserted.json()]
        assert names[3:6] == ["Shortlisted", "Take-home", "Interview"]

        take_home = next(s for s in inserted.json() if s["name"] == "Take-home")
        reordered = await client.put(
            f"/api/v1/stages/{take_home['id']}/reorder", headers=headers, json={"new_position": 1},
        )
        assert [s["name"] for s in reordered.json()][:3] == ["Queue", "Take-home", "Applied"]
        assert [s["position"] for s in reordered.json()] == list(range(10))

    async def test_insert_out_of_range(self, client, admin, job):
        response = await client.post(
            f"/api/v1/jobs/{job['id']}/stages", headers=auth_headers(admin), json={"name": "Late", "position": 42},
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"position": ["Position must be between 0 and 9"]}

    async def test_default_stage_cannot_be_deleted(self, client, admin, job):
        response = await client.delete(
            f"/api/v1/stages/{stage_id(job, 'Applied')}", headers=auth_headers(admin),
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"stage": ["Default stages cannot be deleted"]}

    async def test_mandatory_stage_cannot_be_renamed(self, client, admin, job):
        response = await client.put(
            f"/api/v1/stages/{stage_id(job, 'Offer')}", headers=auth_headers(admin), json={"name": "Proposal"},
        )

        assert response.status_code == 400

    async def test_vendor_cannot_change_pipeline(self, client, company, vendor, job):
        await vendor_service.assign_jobs_to_vendor(vendor.id, company.id, [job["id"]])

        listing = await client.get(f"/api/v1/jobs/{job['id']}/stages", headers=auth_headers(vendor))
        insert = await client.post(
            f"/api/v1/jobs/{job['id']}/stages", headers=auth_headers(vendor), json={"name": "X", "position": 0},
        )

        assert listing.status_code == 200
        assert insert.status_code == 403
