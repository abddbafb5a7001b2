"""
Tests for the hiring analytics reports.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from api.services import analytics
from api.services import candidates as candidate_service
from api.services import jobs as job_service
from core.exceptions import ValidationError
from core.utils.datetime import now
from database.engine import AsyncSessionLocal
from database.models.jobs import Job
from database.models.users import UserRole
from tests.helpers import backdate_stage_entry, make_user, stage_id


async def open_job_for(job_id: int, days: int) -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(Job).where(Job.id == job_id).values(created_at=now() - timedelta(days=days))
        )
        await session.commit()


async def apply(company, job, name, source="Referral"):
    candidate = await candidate_service.create_candidate(company.id, {
        "name": name,
        "email": f"{name.split()[0].lower()}@example.com",
        "location": "Remote",
        "source": source,
    })
    return await candidate_service.add_to_job(company.id, candidate["id"], job["id"])


async def move(admin, job, application, stage, **kwargs):
    return await candidate_service.change_stage(admin, application["id"], stage_id(job, stage), **kwargs)


class TestHelpers:

    @pytest.mark.parametrize("part,whole,expected", [(1, 3, 33.3), (2, 3, 66.7), (1, 0, 0), (5, 5, 100.0)])
    def test_rate(self, part, whole, expected):
        assert analytics.rate(part, whole) == expected

    def test_round_half_up(self):
        assert analytics.whole_days(2.5) == 3
        assert analytics.whole_days(2.49) == 2
        assert analytics.round_half_up(0.25, 1) == 0.3

    @pytest.mark.parametrize("comment,category", [
        ("Weak technical skills", "Skill mismatch"),
        ("Salary expectations too high", "Compensation mismatch"),
        ("Not a culture match", "Culture fit"),
        ("Notice period of 90 days", "Location/notice/other"),
        ("", "Location/notice/other"),
        (None, "Location/notice/other"),
    ])
    def test_categorize_rejection(self, comment, category):
        assert analytics.categorize_rejection(comment) == category

    @pytest.mark.parametrize("days,status", [(0, "on_track"), (27, "on_track"), (28, "at_risk"), (31, "breached")])
    def test_sla_status(self, days, status):
        assert analytics.sla_status_for(days) == status

    @pytest.mark.parametrize("days,fragment", [
        (15.0, "significantly longer"),
        (8.0, "clearer timelines"),
        (4.0, "can be reduced"),
        (2.0, "moving efficiently"),
    ])
    def test_time_in_stage_suggestion(self, days, fragment):
        assert fragment in analytics.time_in_stage_suggestion("Screening", days)


class TestScope:

    def test_bad_dates(self, admin):
        with pytest.raises(ValidationError) as exc_info:
            analytics.build_scope(admin, {"start_date": "soon"})

        assert exc_info.value.errors == {"start_date": ["Invalid date"]}

    def test_reversed_range(self, admin):
        with pytest.raises(ValidationError):
            analytics.build_scope(admin, {"start_date": "2026-03-01", "end_date": "2026-02-01"})

    async def test_recruiter_limited_to_assigned_jobs(self, company, admin, job):
        other = await make_user(company.id, UserRole.RECRUITER, name="Ross", email="ross@example.com")

        assert (await analytics.get_kpi_metrics(other))["active_roles"] == 0
        assert (await analytics.get_kpi_metrics(admin))["active_roles"] == 1

    async def test_department_filter(self, admin, job):
        await job_service.create_job(admin, {"title": "Designer", "department": "Design"})

        sla = await analytics.get_sla_status(admin, {"department": "Design"})

        assert [r["role_name"] for r in sla["roles"]] == ["Designer"]


class TestFunnel:

    async def test_counts_and_conversion(self, company, admin, job):
        first = await apply(company, job, "Ann Lee")
        second = await apply(company, job, "Bo Chen")
        await apply(company, job, "Cy Diaz")
        await move(admin, job, first, "Screening")
        await move(admin, job, second, "Screening")

        funnel = await analytics.get_funnel_analytics(admin)

        stages = {s["name"]: s for s in funnel["stages"]}
        assert [s["name"] for s in funnel["stages"]][:3] == ["Queue", "Applied", "Screening"]
        assert stages["Queue"]["count"] == 1
        assert stages["Queue"]["percentage"] == 33.3
        assert stages["Screening"]["count"] == 2
        assert stages["Screening"]["conversion_to_next"] == 0
        assert stages["Applied"]["conversion_to_next"] == 0
        assert funnel["total_applicants"] == 3
        assert funnel["total_hired"] == 0
        assert funnel["overall_conversion_rate"] == 0

    async def test_sub_stages_fold_into_parent(self, company, admin):
        job = await job_service.create_job(admin, {
            "title": "Data Engineer",
            "pipeline_stages": [
                {"name": "Applied", "position": 0},
                {"name": "Interview", "position": 1, "sub_stages": ["Technical Round"]},
            ],
        })
        interview = next(s for s in job["stages"] if s["name"] == "Interview")
        technical = interview["sub_stages"][0]["id"]
        app = await apply(company, job, "Ann Lee")
        await candidate_service.change_stage(admin, app["id"], technical)

        funnel = await analytics.get_funnel_analytics(admin)

        assert {s["name"]: s["count"] for s in funnel["stages"]}["Interview"] == 1
        assert "Technical Round" not in [s["name"] for s in funnel["stages"]]

    async def test_empty(self, admin):
        assert await analytics.get_funnel_analytics(admin) == {
            "stages": [], "total_applicants": 0, "total_hired": 0, "overall_conversion_rate": 0,
        }


class TestHiringOutcomes:

    async def test_time_to_fill(self, company, admin, job):
        await open_job_for(job["id"], 20)
        app = await apply(company, job, "Ann Lee")
        await move(admin, job, app, "Hired")

        result = await analytics.get_time_to_fill(admin)

        assert result["overall"] == {"average": 20, "median": 20, "target": 30}
        assert result["by_department"] == [{"department": "Engineering", "average": 20, "count": 1}]
        assert result["by_role"][0]["is_over_target"] is False

    async def test_time_to_fill_without_hires(self, admin, job):
        result = await analytics.get_time_to_fill(admin)

        assert result == {"overall": {"average": 0, "median": 0, "target": 30}, "by_department": [], "by_role": []}

    async def test_offer_acceptance(self, company, admin, job):
        offered = await apply(company, job, "Ann Lee")
        hired = await apply(company, job, "Bo Chen")
        await move(admin, job, offered, "Offer")
        await move(admin, job, hired, "Hired")

        result = await analytics.get_offer_acceptance_rate(admin)

        assert result["overall"] == {"acceptance_rate": 50.0, "total_offers": 2, "accepted_offers": 1}
        assert result["by_role"][0]["is_under_threshold"] is True

    async def test_source_performance(self, company, admin, job):
        referral = await apply(company, job, "Ann Lee", source="Referral")
        await apply(company, job, "Bo Chen", source="Referral")
        await apply(company, job, "Cy Diaz", source="LinkedIn")
        await move(admin, job, referral, "Hired")

        result = await analytics.get_source_performance(admin)

        assert [r["source"] for r in result] == ["Referral", "LinkedIn"]
        assert result[0]["hire_rate"] == 50.0
        assert result[0]["percentage"] == 66.7
        assert result[1]["hire_count"] == 0
        assert result[1]["avg_time_to_hire"] == 0

    async def test_kpis(self, company, admin, job):
        offered = await apply(company, job, "Ann Lee")
        await apply(company, job, "Bo Chen")
        await move(admin, job, offered, "Offer")

        kpis = await analytics.get_kpi_metrics(admin)

        assert kpis["active_roles"] == 1
        assert kpis["active_candidates"] == 2
        assert kpis["offers_pending"] == 1
        assert kpis["total_offers"] == 1
        assert kpis["total_hires"] == 0
        assert kpis["roles_on_track"] == 1
        assert kpis["interviews_today"] == 0


class TestStageDurations:

    async def test_time_in_stage(self, company, admin, job):
        app = await apply(company, job, "Ann Lee")
        await backdate_stage_entry(app["id"], 10)
        await move(admin, job, app, "Applied")

        result = await analytics.get_time_in_stage(admin)

        assert result["bottleneck_stage"] == "Queue"
        assert result["stages"][0] == {"stage_name": "Queue", "avg_days": 10.0, "count": 1, "is_bottleneck": True}
        assert "clearer timelines" in result["suggestion"]

    async def test_time_in_stage_without_history(self, admin, job):
        result = await analytics.get_time_in_stage(admin)

        assert result["stages"] == []
        assert result["suggestion"] == "No stage history data available for the selected criteria."

    async def test_drop_off_and_rejection_reasons(self, company, admin, job):
        first = await apply(company, job, "Ann Lee")
        second = await apply(company, job, "Bo Chen")
        await move(admin, job, first, "Screening")
        await move(admin, job, second, "Screening")
        await move(admin, job, first, "Rejected", rejection_reason="Salary expectations too high")

        drop_off = await analytics.get_drop_off_analysis(admin)
        reasons = await analytics.get_rejection_reasons(admin)

        screening = next(s for s in drop_off["by_stage"] if s["stage_name"] == "Screening")
        assert screening == {
            "stage_name": "Screening", "reached_count": 2, "drop_off_count": 1, "drop_off_percentage": 50.0,
        }
        assert "Rejected" not in [s["stage_name"] for s in drop_off["by_stage"]]
        assert drop_off["highest_drop_off_stage"] == "Screening"

        assert reasons["total_rejections"] == 1
        assert reasons["top_stage_for_rejection"] == "Screening"
        by_reason = {r["reason"]: r for r in reasons["reasons"]}
        assert by_reason["Compensation mismatch"] == {"reason": "Compensation mismatch", "count": 1, "percentage": 100.0}
        assert by_reason["Culture fit"]["count"] == 0


class TestSlaStatus:

    async def test_ordering(self, admin, job):
        stale = await job_service.create_job(admin, {"title": "Stale role"})
        risky = await job_service.create_job(admin, {"title": "Risky role"})
        await open_job_for(stale["id"], 45)
        await open_job_for(risky["id"], 29)

        result = await analytics.get_sla_status(admin)

        assert result["summary"] == {"on_track": 1, "at_risk": 1, "breached": 1}
        assert [(r["role_name"], r["status"]) for r in result["roles"]] == [
            ("Stale role", "breached"),
            ("Risky role", "at_risk"),
            ("Backend Engineer", "on_track"),
        ]
        assert result["roles"][0]["days_open"] == 45

    async def test_closed_jobs_excluded(self, admin, job):
        await job_service.toggle_job_status(admin, job["id"])

        assert (await analytics.get_sla_status(admin))["roles"] == []
