"""
tests/test_lms_sources.py

Pytest unit tests for the per-collection LMS fetches against a fake endpoint.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.domain.roles import RawRole
from app.lms.errors import LMSRequestError
from app.lms.sources import course_total_percent
from conftest import ADMIN_ID, OTHER_STUDENT_ID, STUDENT_ID, TEACHER_ID, FakeLMS, ts


class TestUsers:
    def test_users_carry_site_roles(self, fake_lms: FakeLMS, make_sources) -> None:
        users = asyncio.run(make_sources().fetch_users())

        assert [user.id for user in users] == [ADMIN_ID, TEACHER_ID, STUDENT_ID, OTHER_STUDENT_ID]
        assert users[0].roles == (RawRole(shortname="siteadmin", name="Siteadmin", id="1"),)
        assert fake_lms.count("local_intelliboard_get_users_roles") == 4

    def test_users_request_non_deleted(self, fake_lms: FakeLMS, make_sources) -> None:
        asyncio.run(make_sources().fetch_users())
        _, form = next(call for call in fake_lms.calls if call[0] == "core_user_get_users")
        assert form["criteria[0][key]"] == "deleted"
        assert form["criteria[0][value]"] == "0"

    def test_failed_role_lookup_leaves_roles_empty(self, fake_lms: FakeLMS, make_sources) -> None:
        fake_lms.failing.add("local_intelliboard_get_users_roles")
        users = asyncio.run(make_sources().fetch_users())
        assert len(users) == 4
        assert all(user.roles == () for user in users)

    def test_user_listing_failure_raises(self, fake_lms: FakeLMS, make_sources) -> None:
        fake_lms.failing.add("core_user_get_users")
        with pytest.raises(LMSRequestError):
            asyncio.run(make_sources().fetch_users())

    def test_activity(self, make_sources) -> None:
        activity = asyncio.run(make_sources().fetch_activity())
        by_user = {record.user_id: record for record in activity}
        assert by_user[TEACHER_ID].first_access == ts(12)
        assert by_user[OTHER_STUDENT_ID].last_access == ts(50)


class TestCatalogue:
    def test_courses_exclude_site_and_hidden(self, make_sources) -> None:
        courses = asyncio.run(make_sources().fetch_courses())
        assert [course.id for course in courses] == [10, 12]

    def test_course_list_fetched_once_per_pass(self, fake_lms: FakeLMS, make_sources) -> None:
        sources = make_sources()

        async def run():
            return await asyncio.gather(
                sources.fetch_courses(),
                sources.fetch_enrollments(),
                sources.fetch_completions(),
            )

        asyncio.run(run())
        assert fake_lms.count("core_course_get_courses") == 1

    def test_categories_and_companies(self, make_sources) -> None:
        sources = make_sources()
        categories = asyncio.run(sources.fetch_categories())
        companies = asyncio.run(sources.fetch_companies())
        assert [category.name for category in categories] == ["Maths", "Literature"]
        assert [company.name for company in companies] == ["North School"]


class TestPerCourseCollections:
    def test_enrollments(self, make_sources) -> None:
        enrollments = asyncio.run(make_sources().fetch_enrollments())
        pairs = sorted((record.course_id, record.user_id) for record in enrollments)
        assert pairs == [(10, TEACHER_ID), (10, STUDENT_ID), (10, OTHER_STUDENT_ID), (12, STUDENT_ID)]
        teacher = next(record for record in enrollments if record.user_id == TEACHER_ID)
        assert teacher.roles[0].shortname == "editingteacher"
        assert teacher.last_access == ts(2)

    def test_completions(self, make_sources) -> None:
        completions = asyncio.run(make_sources().fetch_completions())
        by_pair = {(record.course_id, record.user_id): record for record in completions}
        assert by_pair[(10, STUDENT_ID)].completed is True
        assert by_pair[(10, STUDENT_ID)].grade_percent == pytest.approx(80.0)
        assert by_pair[(10, OTHER_STUDENT_ID)].completed is False
        assert by_pair[(10, OTHER_STUDENT_ID)].grade_percent == pytest.approx(40.0)
        assert by_pair[(12, STUDENT_ID)].grade_percent is None

    def test_partial_course_failure_keeps_other_courses(self, fake_lms: FakeLMS, make_sources) -> None:
        original = fake_lms.responses["core_enrol_get_enrolled_users"]

        def flaky(form):
            if form["courseid"] == "12":
                return httpx.Response(503)
            return original(form)

        fake_lms.responses["core_enrol_get_enrolled_users"] = flaky
        enrollments = asyncio.run(make_sources().fetch_enrollments())
        assert {record.course_id for record in enrollments} == {10}

    def test_every_course_failing_raises(self, fake_lms: FakeLMS, make_sources) -> None:
        fake_lms.failing.add("gradereport_user_get_grade_items")
        with pytest.raises(LMSRequestError):
            asyncio.run(make_sources().fetch_completions())

    def test_failed_completion_status_counts_as_incomplete(self, fake_lms: FakeLMS, make_sources) -> None:
        fake_lms.failing.add("core_completion_get_course_completion_status")
        completions = asyncio.run(make_sources().fetch_completions())
        assert len(completions) == 3
        assert not any(record.completed for record in completions)


class TestSubject:
    def test_roles_and_company(self, make_sources) -> None:
        subject = asyncio.run(make_sources().fetch_subject(TEACHER_ID))
        assert [role.shortname for role in subject.raw_roles] == ["editingteacher"]
        assert subject.company is not None and subject.company.id == 7
        assert subject.lookup_failed is False

    def test_failed_lookups_do_not_raise(self, fake_lms: FakeLMS, make_sources) -> None:
        fake_lms.failing.update({"local_intelliboard_get_users_roles", "block_iomad_company_admin_get_user_companies"})
        subject = asyncio.run(make_sources().fetch_subject(TEACHER_ID))
        assert subject.raw_roles == ()
        assert subject.company is None
        assert subject.lookup_failed is True


class TestCourseTotalPercent:
    def test_raw_over_range(self) -> None:
        items = [{"itemtype": "mod", "graderaw": 1}, {"itemtype": "course", "graderaw": 15, "grademin": 0, "grademax": 20}]
        assert course_total_percent(items) == pytest.approx(75.0)

    def test_formatted_percentage(self) -> None:
        assert course_total_percent([{"itemtype": "course", "percentageformatted": "62.50 %"}]) == pytest.approx(62.5)

    @pytest.mark.parametrize(
        "items",
        [None, [], [{"itemtype": "course", "percentageformatted": "-"}], [{"itemtype": "mod", "graderaw": 3}]],
    )
    def test_missing_grade(self, items) -> None:
        assert course_total_percent(items) is None
