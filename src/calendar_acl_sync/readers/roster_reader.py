"""Roster readers backed by the timetable database."""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..models.calendar import CalendarMapping
from ..models.participant import Participant, ParticipantRole
from ..utils.exceptions import ValidationError
from ..utils.logging import BoundLogger, bind_logger
from .base import MappingRepository, ParticipantSource
from .store import StoreClient

# Mappings whose course is still present (added or updated) in the current timetable
VALID_MAPPINGS_SQL = """
    SELECT ic.kkh, ic.calendar_id
    FROM icasync.icasync_calendar_mapping ic
    INNER JOIN (
        SELECT DISTINCT kkh
        FROM syncdb.u_jw_kcb_cur
        WHERE zt IN ('update', 'add')
    ) uk_filtered
        ON ic.kkh = uk_filtered.kkh
    WHERE ic.is_deleted = false
"""

TEACHERS_SQL = """
    SELECT gh AS user_id, xm AS user_name
    FROM syncdb.out_jsxx
    WHERE kkh = :kkh AND zt IN ('update', 'add')
"""

STUDENTS_SQL = """
    SELECT xh AS user_id, xm AS user_name
    FROM syncdb.out_xsxx
    WHERE kkh = :kkh AND zt IN ('update', 'add')
"""

EMPTY_COURSE_CODE_MESSAGE = "课程号不能为空 (course code must not be empty)"


class SqlMappingRepository(MappingRepository):
    """Read course to calendar mappings from the sync database."""

    def __init__(self, store: StoreClient, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger: BoundLogger = bind_logger(logger, __name__)

    async def get_valid_calendar_mappings(self) -> list[CalendarMapping]:
        self.logger.info("Fetching valid course calendar mappings")
        rows = await self.store.query(VALID_MAPPINGS_SQL)

        mappings = []
        for row in rows:
            try:
                mappings.append(CalendarMapping.model_validate(row))
            except PydanticValidationError:
                self.logger.warning(f"Skipping malformed calendar mapping row: {row}")

        self.logger.info(f"Found {len(mappings)} valid course calendar mappings")
        return mappings


class SqlParticipantSource(ParticipantSource):
    """Read course teachers and students from the sync database."""

    def __init__(self, store: StoreClient, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger: BoundLogger = bind_logger(logger, __name__)

    async def get_course_participants(self, course_code: str) -> list[Participant]:
        if not course_code or not course_code.strip():
            raise ValidationError(EMPTY_COURSE_CODE_MESSAGE)

        kkh = course_code.strip()
        params = {"kkh": kkh}
        teachers = await self.store.query(TEACHERS_SQL, params)
        students = await self.store.query(STUDENTS_SQL, params)

        participants = []
        for role, rows in ((ParticipantRole.TEACHER, teachers), (ParticipantRole.STUDENT, students)):
            for row in rows:
                try:
                    participants.append(_to_participant(row, role))
                except PydanticValidationError:
                    self.logger.warning(f"Skipping {role.value} row without user id in {kkh}: {row}")

        self.logger.info(
            f"Course {kkh}: {len(participants)} participants "
            f"({len(teachers)} teachers, {len(students)} students)"
        )
        return participants


def _to_participant(row: dict, role: ParticipantRole) -> Participant:
    user_id = row.get("user_id")
    return Participant(
        user_id="" if user_id is None else str(user_id),
        user_name=row.get("user_name") or "",
        role=role,
    )
