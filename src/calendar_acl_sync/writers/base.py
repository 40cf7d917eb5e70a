"""Abstract base class for calendar permission (ACL) adapters."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..models.participant import CurrentPermission


class CalendarAclAdapter(ABC):
    """Abstract base class for calendar ACL adapters."""

    @abstractmethod
    async def get_all_calendar_permissions(
        self, calendar_id: str
    ) -> list[CurrentPermission]:
        """
        Read every permission of a calendar, following pagination.

        Args:
            calendar_id: Calendar identifier

        Returns:
            List of CurrentPermission objects

        Raises:
            ACLServiceError: If the calendar service call fails
        """

    @abstractmethod
    async def batch_create_calendar_permissions_limit(
        self,
        calendar_id: str,
        items: list[dict[str, str]],
    ) -> dict[str, list[Any]]:
        """
        Grant permissions, split into batches the service accepts.

        Args:
            calendar_id: Calendar identifier
            items: ``{"user_id": ..., "role": "writer" | "reader"}`` entries

        Returns:
            ``{"items": [created...], "errors": [messages...]}``

        Raises:
            ACLServiceError: If the call cannot be made at all
        """

    @abstractmethod
    async def get_calendar_permission_list(
        self,
        calendar_id: str,
        page_size: int = 100,
        page_token: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Read a single page of calendar permissions.

        Args:
            calendar_id: Calendar identifier
            page_size: Page size requested from the service
            page_token: Token of the page to read (None for the first page)

        Returns:
            ``{"items": [...], "next_page_token": str}``

        Raises:
            ACLServiceError: If the calendar service call fails
        """

    @abstractmethod
    async def delete_calendar_permission(
        self,
        calendar_id: str,
        user_id: str,
        permission_id: Optional[str] = None,
    ) -> None:
        """
        Revoke a user's permission on a calendar.

        Args:
            calendar_id: Calendar identifier
            user_id: User whose permission is revoked
            permission_id: Permission entry id, when already known

        Raises:
            ACLServiceError: If the deletion fails
        """
