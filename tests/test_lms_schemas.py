"""
tests/test_lms_schemas.py

Pytest unit tests for the LMS deserialization boundary.
"""

from __future__ import annotations

import json

import pytest

from app.domain.roles import RawRole
from app.lms.errors import LMSPayloadError
from app.lms.schemas import (
    LMSCompany,
    LMSCourse,
    LMSUser,
    extract_rows,
    parse_raw_roles,
    parse_records,
)


class TestParseRawRoles:
    def test_json_string_object_keyed_by_assignment(self) -> None:
        payload = {
            "data": json.dumps(
                {
                    "12": {"roleid": 3, "shortname": "editingteacher", "name": "Teacher"},
                    "13": {"roleid": 5, "shortname": "student", "name": "Student"},
                }
            )
        }
        roles = parse_raw_roles(payload)
        assert roles == [
            RawRole(shortname="editingteacher", name="Teacher", id="3"),
            RawRole(shortname="student", name="Student", id="5"),
        ]

    def test_plain_object(self) -> None:
        roles = parse_raw_roles({"7": {"id": 9, "shortname": "manager"}})
        assert roles == [RawRole(shortname="manager", name="", id="9")]

    def test_list(self) -> None:
        roles = parse_raw_roles([{"roleid": 5, "shortname": "student"}, {"name": "Principal"}])
        assert [role.shortname or role.name for role in roles] == ["student", "Principal"]

    @pytest.mark.parametrize(
        "payload",
        [None, 42, "student", {"data": "{not json"}, {"data": 17}, [1, "x", None], {"a": {"roleid": 1}}],
    )
    def test_unrecognised_shapes_yield_nothing(self, payload: object) -> None:
        assert parse_raw_roles(payload) == []


class TestExtractRows:
    def test_bare_list(self) -> None:
        assert extract_rows([1, 2], source="t") == [1, 2]

    def test_keyed_list(self) -> None:
        assert extract_rows({"users": [{"id": 1}], "warnings": []}, key="users", source="t") == [{"id": 1}]

    @pytest.mark.parametrize("payload", [{"users": "nope"}, "text", None, {"other": []}])
    def test_malformed_raises(self, payload: object) -> None:
        with pytest.raises(LMSPayloadError):
            extract_rows(payload, key="users", source="t")


class TestParseRecords:
    def test_bad_rows_are_counted_and_skipped(self) -> None:
        rows = [{"id": 1, "fullname": "A"}, {"fullname": "no id"}, "junk", {"id": "x"}, {"id": 2}]
        parsed = parse_records(LMSCourse, rows, source="courses")
        assert [course.id for course in parsed.records] == [1, 2]
        assert parsed.failed_records == 3

    def test_nulls_use_defaults(self) -> None:
        user = LMSUser.model_validate({"id": 4, "email": None, "lastaccess": None})
        assert user.email == ""
        assert user.lastaccess == 0

    def test_extra_fields_ignored(self) -> None:
        user = LMSUser.model_validate({"id": 4, "profileimageurl": "x", "customfields": []})
        assert user.id == 4

    def test_course_category_alias(self) -> None:
        assert LMSCourse.model_validate({"id": 3, "category": 8}).categoryid == 8

    def test_company_status(self) -> None:
        assert LMSCompany(id=1).status == "active"
        assert LMSCompany(id=1, suspended=True).status == "inactive"
