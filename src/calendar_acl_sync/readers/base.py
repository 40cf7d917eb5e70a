"""Abstract base classes for roster readers."""

from abc import ABC, abstractmethod

from ..models.calendar import CalendarMapping
from ..models.participant import Participant


class MappingRepository(ABC):
    """Source of course to calendar mappings."""

    @abstractmethod
    async def get_valid_calendar_mappings(self) -> list[CalendarMapping]:
        """
        List the mappings eligible for participant sync.

        Returns:
            List of CalendarMapping objects

        Raises:
            StoreError: If the underlying query fails
        """


class ParticipantSource(ABC):
    """Source of the desired participants of a course."""

    @abstractmethod
    async def get_course_participants(self, course_code: str) -> list[Participant]:
        """
        Read the teachers and students of a course.

        Args:
            course_code: Course identifier (kkh)

        Returns:
            Teachers followed by students

        Raises:
            ValidationError: If course_code is empty
            StoreError: If the underlying query fails
        """
