"""
app/lms/schemas.py

Typed records for every LMS collection and the parse helpers that sit at
the deserialization boundary.

Whole-response shape errors raise :class:`LMSPayloadError`. Individual
records that fail validation are counted and skipped so one bad row never
discards an otherwise usable collection.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from app.domain.roles import RawRole
from app.lms.errors import LMSPayloadError

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

# Moodle's front-page pseudo course.
SITE_COURSE_ID = 1


class _LMSRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # LMS payloads send null for unset optional fields; let defaults apply.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class LMSUser(_LMSRecord):
    id: int
    username: str = ""
    firstname: str = ""
    lastname: str = ""
    fullname: str = ""
    email: str = ""
    firstaccess: int = 0
    lastaccess: int = 0
    lastlogin: int = 0
    suspended: bool = False
    roles: tuple[RawRole, ...] = ()


class LMSCourse(_LMSRecord):
    id: int
    fullname: str = ""
    shortname: str = ""
    categoryid: int | None = None
    categoryname: str = ""
    visible: int = 1
    startdate: int = 0
    enddate: int = 0

    @model_validator(mode="before")
    @classmethod
    def _category_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("categoryid") is None and "category" in data:
            data = {**data, "categoryid": data.get("category")}
        return data


class LMSCategory(_LMSRecord):
    id: int
    name: str = ""
    parent: int = 0
    coursecount: int = 0


class LMSCompany(_LMSRecord):
    id: int
    name: str = ""
    shortname: str = ""
    city: str = ""
    country: str = ""
    usercount: int = 0
    coursecount: int = 0
    suspended: bool = False

    @property
    def status(self) -> str:
        return "inactive" if self.suspended else "active"


class CourseEnrollment(_LMSRecord):
    course_id: int
    user_id: int
    roles: tuple[RawRole, ...] = ()
    last_access: int = 0


class CourseCompletion(_LMSRecord):
    course_id: int
    user_id: int
    completed: bool = False
    grade_percent: float | None = None


class UserActivity(_LMSRecord):
    user_id: int
    first_access: int = 0
    last_access: int = 0
    last_login: int = 0


@dataclass
class ParsedCollection(Generic[RecordT]):
    """
    Validated records plus the number of rows that were skipped.
    """

    records: list[RecordT] = field(default_factory=list)
    failed_records: int = 0


def extract_rows(payload: Any, *, key: str | None = None, source: str) -> list[Any]:
    """
    Return the list of raw rows in *payload*.

    Accepts a bare list or, when *key* is given, an object carrying that key
    with a list value. Anything else is a malformed payload.
    """

    if isinstance(payload, list):
        return payload
    if key is not None and isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    raise LMSPayloadError(f"{source}: unexpected payload shape {type(payload).__name__}.")


def parse_records(
    model: type[RecordT],
    rows: list[Any],
    *,
    source: str,
) -> ParsedCollection[RecordT]:
    """
    Validate each row into *model*, skipping rows that do not conform.
    """

    parsed: ParsedCollection[RecordT] = ParsedCollection()
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            parsed.failed_records += 1
            continue
        try:
            parsed.records.append(model.model_validate(row))
        except ValidationError as exc:
            parsed.failed_records += 1
            logger.debug(
                "Skipping malformed LMS record source=%s index=%s errors=%s",
                source,
                index,
                exc.error_count(),
            )
    if parsed.failed_records:
        logger.info(
            "LMS records skipped source=%s failed=%s kept=%s",
            source,
            parsed.failed_records,
            len(parsed.records),
        )
    return parsed


def parse_raw_roles(payload: Any) -> list[RawRole]:
    """
    Interpret a role lookup response as a list of :class:`RawRole`.

    The role service answers in one of three shapes:

    * ``{"data": "<JSON string>"}`` where the string encodes an object keyed
      by assignment id (or a list);
    * a JSON object keyed by assignment id;
    * a list of role objects.

    Anything unrecognised yields an empty list.
    """

    if isinstance(payload, dict) and "data" in payload:
        inner = payload["data"]
        if isinstance(inner, str):
            try:
                inner = json.loads(inner)
            except ValueError:
                return []
        payload = inner

    if isinstance(payload, dict):
        candidates = list(payload.values())
    elif isinstance(payload, list):
        candidates = payload
    else:
        return []

    roles: list[RawRole] = []
    for candidate in candidates:
        role = _raw_role_from(candidate)
        if role is not None:
            roles.append(role)
    return roles


def _raw_role_from(candidate: Any) -> RawRole | None:
    if not isinstance(candidate, dict):
        return None
    shortname = candidate.get("shortname")
    name = candidate.get("name")
    if not isinstance(shortname, str) and not isinstance(name, str):
        return None
    role_id = candidate.get("roleid", candidate.get("id", ""))
    return RawRole(
        shortname=shortname if isinstance(shortname, str) else "",
        name=name if isinstance(name, str) else "",
        id="" if role_id is None else str(role_id),
    )
