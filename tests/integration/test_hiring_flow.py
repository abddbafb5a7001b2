"""
End-to-end hiring flow through the HTTP API.

Scenario:
- A company signs up and its admin logs in
- The admin invites a recruiter and opens a job assigned to them
- The recruiter sources a candidate, screens them and schedules a panel
- Panel feedback completes the interview
- The candidate is offered and hired, and the reports reflect it
- Logging out revokes the token
"""

from tests.helpers import stage_id


async def login(client, email, password):
    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def test_full_hiring_flow(client):
    # Sign-up
    registered = await client.post("/api/v1/auth/register", json={
        "full_name": "Priya Shah",
        "email": "priya@northwind.io",
        "password": "northwind-admin",
        "company_name": "Northwind",
    })
    assert registered.status_code == 201
    admin = await login(client, "priya@northwind.io", "northwind-admin")
    admin_id = registered.json()["user"]["id"]

    recruiter_user = await client.post("/api/v1/users", headers=admin, json={
        "name": "Ravi Kumar", "email": "ravi@northwind.io", "password": "ravi-recruits", "role": "recruiter",
    })
    assert recruiter_user.status_code == 201
    recruiter = await login(client, "ravi@northwind.io", "ravi-recruits")

    # Job with a custom pipeline; mandatory stages are added
    created = await client.post("/api/v1/jobs", headers=admin, json={
        "title": "Site Reliability Engineer",
        "department": "Infrastructure",
        "location": "Pune",
        "assigned_recruiter_id": recruiter_user.json()["id"],
        "pipeline_stages": [
            {"name": "Queue", "position": 0},
            {"name": "Interview", "position": 1},
            {"name": "Hired", "position": 2},
        ],
    })
    assert created.status_code == 201
    job = created.json()
    assert {"Screening", "Shortlisted", "Offer", "Rejected"} <= {s["name"] for s in job["stages"]}

    # Sourcing
    candidate = await client.post("/api/v1/candidates", headers=recruiter, json={
        "name": "Meera Iyer",
        "email": "meera@example.com",
        "location": "Pune",
        "source": "Referral",
        "experience_years": 6,
        "skills": ["Kubernetes", "Go"],
    })
    assert candidate.status_code == 201
    application = await client.post(
        f"/api/v1/candidates/{candidate.json()['id']}/jobs", headers=recruiter, json={"job_id": job["id"]},
    )
    jc_id = application.json()["id"]

    for stage in ("Screening", "Interview"):
        moved = await client.put(
            f"/api/v1/job-candidates/{jc_id}/stage", headers=recruiter, json={"stage_id": stage_id(job, stage)},
        )
        assert moved.status_code == 200

    # Interview with a two-person panel
    interview = await client.post("/api/v1/interviews", headers=recruiter, json={
        "job_candidate_id": jc_id,
        "scheduled_at": "2030-05-14T10:00:00Z",
        "duration": 45,
        "timezone": "Asia/Kolkata",
        "mode": "custom_url",
        "location": "https://meet.example.com/sre-panel",
        "panel_member_ids": [admin_id, recruiter_user.json()["id"]],
    })
    assert interview.status_code == 201
    interview_id = interview.json()["id"]
    assert interview.json()["meeting_link"] == "https://meet.example.com/sre-panel"

    first = await client.post(f"/api/v1/interviews/{interview_id}/feedback", headers=admin, json={
        "rating": 5, "recommendation": "strong_hire", "comments": "Excellent incident handling",
    })
    assert first.status_code == 200
    status = await client.get(f"/api/v1/interviews/{interview_id}/feedback-status", headers=admin)
    assert status.json()["submitted"] == 1
    assert status.json()["is_complete"] is False

    await client.post(f"/api/v1/interviews/{interview_id}/feedback", headers=recruiter, json={
        "rating": 4, "recommendation": "hire",
    })
    completed = await client.get(f"/api/v1/interviews/{interview_id}", headers=recruiter)
    assert completed.json()["status"] == "completed"

    # Offer and hire
    for stage in ("Offer", "Hired"):
        await client.put(
            f"/api/v1/job-candidates/{jc_id}/stage", headers=recruiter, json={"stage_id": stage_id(job, stage)},
        )

    history = await client.get(f"/api/v1/job-candidates/{jc_id}/history", headers=recruiter)
    assert [h["stage_name"] for h in history.json()] == ["Queue", "Screening", "Interview", "Offer", "Hired"]

    # Reports
    kpis = (await client.get("/api/v1/analytics/kpis", headers=admin)).json()
    assert kpis["total_hires"] == 1
    offers = (await client.get("/api/v1/analytics/offer-acceptance", headers=admin)).json()
    assert offers["overall"]["acceptance_rate"] == 100.0
    sources = (await client.get("/api/v1/analytics/sources", headers=recruiter)).json()
    assert sources[0]["source"] == "Referral"
    assert sources[0]["hire_count"] == 1

    # Admin was notified of the recruiter's moves
    unread = await client.get("/api/v1/notifications/unread-count", headers=admin)
    assert unread.json()["count"] >= 4

    # Logout revokes the token
    assert (await client.post("/api/v1/auth/logout", headers=recruiter)).json() == {"message": "Logged out"}
    assert (await client.get("/api/v1/auth/me", headers=recruiter)).status_code == 401


async def test_tenants_are_isolated(client):
    tokens = {}
    for company, email in (("Northwind", "a@northwind.io"), ("Contoso", "b@contoso.io")):
        response = await client.post("/api/v1/auth/register", json={
            "full_name": "Owner", "email": email, "password": "long-enough", "company_name": company,
        })
        tokens[company] = {"Authorization": f"Bearer {response.json()['token']}"}

    job = await client.post("/api/v1/jobs", headers=tokens["Northwind"], json={"title": "Analyst"})
    candidate = await client.post("/api/v1/candidates", headers=tokens["Northwind"], json={
        "name": "Ola Berg", "email": "ola@example.com", "location": "Oslo", "source": "Website",
    })

    contoso = tokens["Contoso"]
    assert (await client.get(f"/api/v1/jobs/{job.json()['id']}", headers=contoso)).status_code == 404
    assert (await client.get(f"/api/v1/candidates/{candidate.json()['id']}", headers=contoso)).status_code == 404
    assert (await client.get("/api/v1/jobs", headers=contoso)).json() == []
    assert (await client.get("/api/v1/search/candidates", headers=contoso)).json()["total"] == 0
