"""Roster participant and calendar permission models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ParticipantRole(str, Enum):
    """Role of a user inside a course roster."""

    TEACHER = "teacher"
    STUDENT = "student"


class AclRole(str, Enum):
    """Calendar permission roles managed by the sync."""

    WRITER = "writer"
    READER = "reader"


ROLE_TO_ACL = {
    ParticipantRole.TEACHER: AclRole.WRITER,
    ParticipantRole.STUDENT: AclRole.READER,
}

MANAGED_ACL_ROLES = frozenset(role.value for role in AclRole)


class Participant(BaseModel):
    """A user who should have access to a course calendar."""

    user_id: str = Field(min_length=1)
    user_name: str = ""
    role: ParticipantRole

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @property
    def acl_role(self) -> AclRole:
        return ROLE_TO_ACL[self.role]


class CurrentPermission(BaseModel):
    """A permission entry as reported by the calendar service."""

    user_id: str = Field(min_length=1)
    # Plain string: the service may report roles we do not manage (e.g. owner)
    role: str
    display_name: str = ""
    permission_id: Optional[str] = None

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @property
    def is_managed(self) -> bool:
        return self.role in MANAGED_ACL_ROLES
